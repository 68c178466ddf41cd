"""
Доменная модель контекста оплаты.

Подтверждения оплаты (proof of payment) образуют журнал только на добавление:
каждая новая попытка оплаты - отдельная запись, а "текущий" статус
определяется последней записью по дорожке (``original`` или ``balance``).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..booking.domain import Booking, BookingEvent
from ..shared_kernel import (
    BusinessRuleValidationException,
    ConflictException,
    EntityId,
    to_money,
)


class PaymentMethod(str, Enum):
    """Способы оплаты."""

    GCASH = "gcash"
    MAYA = "maya"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    CASH_ON_ARRIVAL = "cash_on_arrival"


# Для этих способов гость обязан указать номер транзакции
REFERENCE_REQUIRED_METHODS = (
    PaymentMethod.GCASH,
    PaymentMethod.MAYA,
    PaymentMethod.BANK_TRANSFER,
)


class ProofStatus(str, Enum):
    """Статус проверки подтверждения оплаты."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class PaymentTrack(str, Enum):
    """Дорожка оплаты: основная (предоплата / полная сумма) или доплата при заезде."""

    ORIGINAL = "original"
    BALANCE = "balance"


REJECTION_REASON_LABEL = "REJECTION REASON"
ADMIN_NOTES_LABEL = "ADMIN NOTES"


def compose_admin_notes(
    rejection_reason: Optional[str] = None, admin_notes: Optional[str] = None
) -> Optional[str]:
    """Собирает заметки администратора в структурированном виде.

    Причина отклонения идет первой, заметки отделяются пустой строкой::

        REJECTION REASON: <причина>

        ADMIN NOTES: <заметки>
    """
    parts = []
    if rejection_reason:
        parts.append(f"{REJECTION_REASON_LABEL}: {rejection_reason}")
    if admin_notes:
        parts.append(f"{ADMIN_NOTES_LABEL}: {admin_notes}")
    if not parts:
        return None
    return "\n\n".join(parts)


class PaymentProof(BaseModel):
    """Подтверждение оплаты, загруженное гостем или записанное администратором."""

    id: Optional[EntityId] = None
    booking_id: EntityId
    user_id: str
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    reference_number: Optional[str] = None
    status: ProofStatus = ProofStatus.PENDING
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    uploaded_at: datetime
    verified_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None

    @property
    def track(self) -> PaymentTrack:
        if self.payment_method == PaymentMethod.CASH_ON_ARRIVAL:
            return PaymentTrack.BALANCE
        return PaymentTrack.ORIGINAL

    @property
    def is_pending(self) -> bool:
        return self.status == ProofStatus.PENDING

    @classmethod
    def submit(
        cls,
        proof_id: EntityId,
        booking: Booking,
        amount: Decimal,
        payment_method: PaymentMethod,
        now: datetime,
        reference_number: Optional[str] = None,
    ) -> "PaymentProof":
        """Создает подтверждение в статусе pending после проверки реквизитов."""
        if amount is None or Decimal(amount) <= 0:
            raise BusinessRuleValidationException("Сумма оплаты должна быть больше 0")
        reference_number = (reference_number or "").strip() or None
        if payment_method in REFERENCE_REQUIRED_METHODS and not reference_number:
            raise BusinessRuleValidationException(
                f"Для способа оплаты {payment_method.value} требуется номер транзакции"
            )
        return cls(
            id=proof_id,
            booking_id=booking.id,
            user_id=booking.user_id,
            amount=to_money(amount),
            payment_method=payment_method,
            reference_number=reference_number,
            uploaded_at=now,
        )

    def approve(self, now: datetime, admin_notes: Optional[str] = None) -> None:
        """Подтверждает оплату. Решение принимается ровно один раз."""
        self._ensure_pending()
        self.status = ProofStatus.VERIFIED
        self.verified_at = now
        self.reviewed_at = now
        self.admin_notes = compose_admin_notes(admin_notes=admin_notes)

    def reject(
        self,
        now: datetime,
        reason: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> None:
        """Отклоняет оплату. Причина необязательна и сохраняется, только если указана."""
        self._ensure_pending()
        self.status = ProofStatus.REJECTED
        self.rejection_reason = (reason or "").strip() or None
        self.reviewed_at = now
        self.admin_notes = compose_admin_notes(self.rejection_reason, admin_notes)

    def _ensure_pending(self) -> None:
        if self.status != ProofStatus.PENDING:
            raise ConflictException(
                f"Решение по оплате {self.id} уже принято: {self.status.value}"
            )


class PaymentSummary(BaseModel):
    """Сводка оплаты по бронированию."""

    total_amount: Decimal
    total_paid: Decimal
    pending_amount: Decimal
    remaining_balance: Decimal


class ProofLedger:
    """Журнал подтверждений оплаты одной брони (чистые вычисления)."""

    def __init__(self, proofs: Iterable[PaymentProof]):
        self._proofs = sorted(proofs, key=lambda p: (p.uploaded_at, p.id or 0))

    @property
    def proofs(self) -> List[PaymentProof]:
        return list(self._proofs)

    def for_track(self, track: PaymentTrack) -> List[PaymentProof]:
        return [p for p in self._proofs if p.track == track]

    def latest(self, track: PaymentTrack) -> Optional[PaymentProof]:
        """Последняя запись по дорожке определяет ее текущий статус."""
        proofs = self.for_track(track)
        return proofs[-1] if proofs else None

    def is_verified(self, track: PaymentTrack) -> bool:
        latest = self.latest(track)
        return latest is not None and latest.status == ProofStatus.VERIFIED

    def has_pending(self, track: PaymentTrack) -> bool:
        return any(p.is_pending for p in self.for_track(track))

    def verified_amount(self, track: Optional[PaymentTrack] = None) -> Decimal:
        proofs = self._proofs if track is None else self.for_track(track)
        return sum(
            (p.amount for p in proofs if p.status == ProofStatus.VERIFIED),
            Decimal("0"),
        )

    def pending_amount(self) -> Decimal:
        return sum((p.amount for p in self._proofs if p.is_pending), Decimal("0"))

    def summarize(self, total_amount: Decimal) -> PaymentSummary:
        """Каждая запись учитывается один раз: либо как оплаченная, либо как ожидающая."""
        paid = self.verified_amount()
        pending = self.pending_amount()
        remaining = max(Decimal("0"), Decimal(total_amount) - paid - pending)
        return PaymentSummary(
            total_amount=to_money(total_amount),
            total_paid=to_money(paid),
            pending_amount=to_money(pending),
            remaining_balance=to_money(remaining),
        )


# Доменные события


class PaymentProofEvent(BookingEvent):
    """Событие по подтверждению оплаты (несет снимки брони и подтверждения)."""

    proof: PaymentProof

    def notification_extra(self) -> Dict[str, Any]:
        return {
            "proof_id": self.proof.id,
            "amount": self.proof.amount,
            "payment_method": self.proof.payment_method.value,
            "reference_number": self.proof.reference_number,
        }


class PaymentProofSubmitted(PaymentProofEvent):
    """Гость загрузил подтверждение оплаты."""


class PaymentProofVerified(PaymentProofEvent):
    """Оплата подтверждена администратором."""


class PaymentProofRejected(PaymentProofEvent):
    """Оплата отклонена администратором."""

    def notification_extra(self) -> Dict[str, Any]:
        extra = super().notification_extra()
        extra["rejection_reason"] = self.proof.rejection_reason
        return extra


class BalancePaidOnArrival(PaymentProofEvent):
    """Остаток оплачен при заезде."""
