"""
Инфраструктурный слой контекста оплаты.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

from ..shared_kernel import ConflictException, EntityId, NotFoundException
from . import interfaces as ports
from .domain import PaymentMethod, PaymentProof, ProofStatus


class InMemoryPaymentProofRepository(ports.IPaymentProofRepository):
    """Реализация журнала подтверждений оплаты в памяти."""

    def __init__(self):
        self._proofs: Dict[EntityId, PaymentProof] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def next_id(self) -> EntityId:
        with self._lock:
            proof_id = self._next_id
            self._next_id += 1
            return proof_id

    def get_by_id(self, proof_id: EntityId) -> Optional[PaymentProof]:
        proof = self._proofs.get(proof_id)
        return proof.model_copy() if proof is not None else None

    def list_by_booking(self, booking_id: EntityId) -> List[PaymentProof]:
        return [
            proof.model_copy()
            for proof in sorted(self._proofs.values(), key=lambda p: p.id)
            if proof.booking_id == booking_id
        ]

    def add(self, proof: PaymentProof) -> None:
        with self._lock:
            if proof.id is None:
                proof.id = self.next_id()
            if proof.id in self._proofs:
                raise ConflictException(f"Подтверждение оплаты {proof.id} уже существует")
            # Доплата при заезде записывается не более одного раза на бронь
            if proof.payment_method == PaymentMethod.CASH_ON_ARRIVAL and any(
                existing.booking_id == proof.booking_id
                and existing.payment_method == PaymentMethod.CASH_ON_ARRIVAL
                for existing in self._proofs.values()
            ):
                raise ConflictException(
                    f"Доплата при заезде для брони {proof.booking_id} уже записана"
                )
            self._proofs[proof.id] = proof.model_copy()

    def update(
        self,
        proof_id: EntityId,
        patch: Dict[str, Any],
        expected_status: Optional[ProofStatus] = None,
    ) -> PaymentProof:
        with self._lock:
            current = self._proofs.get(proof_id)
            if current is None:
                raise NotFoundException(f"Подтверждение оплаты {proof_id} не найдено")
            if expected_status is not None and current.status != expected_status:
                raise ConflictException(
                    f"Решение по оплате {proof_id} уже принято: {current.status.value}"
                )
            updated = current.model_copy(update=patch)
            self._proofs[proof_id] = updated
            return updated.model_copy()

    def snapshot(self) -> Tuple[Dict[EntityId, PaymentProof], int]:
        with self._lock:
            return dict(self._proofs), self._next_id

    def restore(self, state: Tuple[Dict[EntityId, PaymentProof], int]) -> None:
        with self._lock:
            self._proofs, self._next_id = dict(state[0]), state[1]
