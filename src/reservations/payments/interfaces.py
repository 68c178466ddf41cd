"""
Интерфейсы (порты) для контекста оплаты.
"""

from typing import Any, Dict, List, Optional, Protocol

from ..shared_kernel import EntityId
from .domain import PaymentProof, ProofStatus


class IPaymentProofRepository(Protocol):
    """Интерфейс репозитория подтверждений оплаты."""

    def next_id(self) -> EntityId: ...
    def get_by_id(self, proof_id: EntityId) -> Optional[PaymentProof]: ...
    def list_by_booking(self, booking_id: EntityId) -> List[PaymentProof]: ...
    def add(self, proof: PaymentProof) -> None: ...
    def update(
        self,
        proof_id: EntityId,
        patch: Dict[str, Any],
        expected_status: Optional[ProofStatus] = None,
    ) -> PaymentProof: ...
