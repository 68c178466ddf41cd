"""
Прикладной слой контекста оплаты.

Сервис ведет журнал подтверждений оплаты: прием подтверждений от гостя,
решение администратора и запись доплаты при заезде. Статус брони
(pending / confirmed) здесь не меняется, только статус оплаты.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from ..booking import interfaces as booking_ports
from ..booking.application import BookingDTO, publish_events, save_changes
from ..booking.domain import Booking
from ..shared_kernel import (
    BusinessRuleValidationException,
    ConflictException,
    EntityId,
    InvalidStateException,
    NotFoundException,
    PaymentType,
    to_money,
)
from .domain import (
    BalancePaidOnArrival,
    PaymentMethod,
    PaymentProof,
    PaymentProofRejected,
    PaymentProofSubmitted,
    PaymentProofVerified,
    PaymentSummary,
    PaymentTrack,
    ProofLedger,
    ProofStatus,
)

ARRIVAL_REFERENCE_PREFIX = "ARRIVAL"
ARRIVAL_NOTES_TEMPLATE = (
    "Balance payment marked as paid on arrival. Original payment ID: {proof_id}"
)


# Команды


class SubmitPaymentProofCommand(BaseModel):
    """Гость загружает подтверждение оплаты."""

    booking_id: EntityId
    user_id: str
    amount: Decimal
    payment_method: PaymentMethod
    reference_number: Optional[str] = None


class DecidePaymentProofCommand(BaseModel):
    """Решение администратора по подтверждению оплаты."""

    proof_id: EntityId
    approve: bool
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None


# DTO


class PaymentProofDTO(BaseModel):
    """DTO для представления подтверждения оплаты."""

    id: EntityId
    booking_id: EntityId
    amount: Decimal
    payment_method: PaymentMethod
    reference_number: Optional[str]
    status: ProofStatus
    track: PaymentTrack
    rejection_reason: Optional[str]
    admin_notes: Optional[str]
    uploaded_at: datetime
    verified_at: Optional[datetime]
    reviewed_at: Optional[datetime]

    @classmethod
    def from_domain(cls, proof: PaymentProof) -> "PaymentProofDTO":
        """Создает DTO из доменной модели."""
        return cls(
            id=proof.id,
            booking_id=proof.booking_id,
            amount=proof.amount,
            payment_method=proof.payment_method,
            reference_number=proof.reference_number,
            status=proof.status,
            track=proof.track,
            rejection_reason=proof.rejection_reason,
            admin_notes=proof.admin_notes,
            uploaded_at=proof.uploaded_at,
            verified_at=proof.verified_at,
            reviewed_at=proof.reviewed_at,
        )


class PaymentProofOperationResult(BaseModel):
    """Результат операции над подтверждением оплаты."""

    proof: PaymentProofDTO
    booking: BookingDTO
    summary: PaymentSummary
    warnings: List[str] = Field(default_factory=list)


# Сервисы приложения


class PaymentProofLedgerService:
    """Сервис приложения для журнала подтверждений оплаты."""

    def __init__(self, uow: booking_ports.IBookingUnitOfWork):
        """Инициализирует сервис."""
        self._uow = uow
        self._logger = uow.logger

    def submit_proof(
        self, command: SubmitPaymentProofCommand, now: datetime
    ) -> PaymentProofOperationResult:
        """Принимает подтверждение оплаты от гостя."""
        if command.payment_method == PaymentMethod.CASH_ON_ARRIVAL:
            return self.record_balance_on_arrival(
                command.booking_id,
                now,
                amount=command.amount,
                reference_number=command.reference_number,
                user_id=command.user_id,
            )

        with self._uow:
            booking = self._get_booking(command.booking_id, command.user_id)
            self._ensure_not_terminal(booking)

            proof = PaymentProof.submit(
                proof_id=self._uow.payment_proofs.next_id(),
                booking=booking,
                amount=command.amount,
                payment_method=command.payment_method,
                now=now,
                reference_number=command.reference_number,
            )
            ledger = ProofLedger(self._uow.payment_proofs.list_by_booking(booking.id))
            if ledger.has_pending(PaymentTrack.ORIGINAL):
                raise ConflictException(
                    f"По брони {booking.booking_number} уже есть оплата на проверке"
                )

            self._uow.payment_proofs.add(proof)
            original = booking.snapshot()
            booking.mark_payment_under_review(now)
            stored = save_changes(self._uow, original, booking)

        self._logger.info(
            "Payment proof submitted",
            booking_number=booking.booking_number,
            proof_id=proof.id,
            amount=proof.amount,
            payment_method=proof.payment_method.value,
        )
        event = PaymentProofSubmitted(occurred_on=now, booking=stored, proof=proof)
        return self._result(proof, stored, publish_events(self._uow, [event]))

    def decide(
        self, command: DecidePaymentProofCommand, now: datetime
    ) -> PaymentProofOperationResult:
        """Подтверждает или отклоняет оплату. Статус брони не меняется."""
        with self._uow:
            proof = self._uow.payment_proofs.get_by_id(command.proof_id)
            if proof is None:
                raise NotFoundException(f"Подтверждение оплаты {command.proof_id} не найдено")
            if proof.status != ProofStatus.PENDING:
                raise ConflictException(
                    f"Решение по оплате {proof.id} уже принято: {proof.status.value}"
                )

            booking = self._get_booking(proof.booking_id)
            self._ensure_not_terminal(booking)

            original = booking.snapshot()
            if command.approve:
                proof.approve(now, admin_notes=command.admin_notes)
                booking.mark_payment_verified(now)
            else:
                proof.reject(now, command.rejection_reason, admin_notes=command.admin_notes)
                booking.mark_payment_rejected(now)

            proof = self._uow.payment_proofs.update(
                proof.id,
                {
                    "status": proof.status,
                    "rejection_reason": proof.rejection_reason,
                    "admin_notes": proof.admin_notes,
                    "verified_at": proof.verified_at,
                    "reviewed_at": proof.reviewed_at,
                },
                expected_status=ProofStatus.PENDING,
            )
            stored = save_changes(self._uow, original, booking)

        self._logger.info(
            "Payment proof decided",
            booking_number=booking.booking_number,
            proof_id=proof.id,
            status=proof.status.value,
        )
        event_class = PaymentProofVerified if command.approve else PaymentProofRejected
        event = event_class(occurred_on=now, booking=stored, proof=proof)
        return self._result(proof, stored, publish_events(self._uow, [event]))

    def record_balance_on_arrival(
        self,
        booking_id: EntityId,
        now: datetime,
        amount: Optional[Decimal] = None,
        reference_number: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PaymentProofOperationResult:
        """Записывает доплату остатка при заезде (только для предоплаты 50%)."""
        with self._uow:
            booking = self._get_booking(booking_id, user_id)
            self._ensure_not_terminal(booking)
            if booking.payment_type != PaymentType.HALF:
                raise InvalidStateException(
                    "Доплата при заезде возможна только для брони с предоплатой 50%",
                    current_status=booking.status,
                    current_payment_status=booking.payment_status,
                )

            ledger = ProofLedger(self._uow.payment_proofs.list_by_booking(booking.id))
            original_proof = ledger.latest(PaymentTrack.ORIGINAL)
            if not ledger.is_verified(PaymentTrack.ORIGINAL):
                raise InvalidStateException(
                    "Доплата при заезде возможна только после подтверждения предоплаты",
                    current_status=booking.status,
                    current_payment_status=booking.payment_status,
                )
            if ledger.latest(PaymentTrack.BALANCE) is not None:
                raise ConflictException(
                    f"Доплата при заезде для брони {booking.booking_number} уже записана"
                )

            if amount is None:
                amount = booking.total_amount - ledger.verified_amount(PaymentTrack.ORIGINAL)
            amount = to_money(amount)
            if not Decimal("0") < amount < booking.total_amount:
                raise BusinessRuleValidationException(
                    "Сумма доплаты должна быть больше 0 и меньше полной стоимости"
                )

            proof = PaymentProof(
                id=self._uow.payment_proofs.next_id(),
                booking_id=booking.id,
                user_id=booking.user_id,
                amount=amount,
                payment_method=PaymentMethod.CASH_ON_ARRIVAL,
                reference_number=reference_number
                or f"{ARRIVAL_REFERENCE_PREFIX}-{booking.id}-{now:%Y%m%d%H%M%S}",
                status=ProofStatus.VERIFIED,
                admin_notes=ARRIVAL_NOTES_TEMPLATE.format(proof_id=original_proof.id),
                uploaded_at=now,
                verified_at=now,
                reviewed_at=now,
            )
            self._uow.payment_proofs.add(proof)

            original = booking.snapshot()
            booking.mark_fully_paid(now)
            stored = save_changes(self._uow, original, booking)

        self._logger.info(
            "Balance paid on arrival",
            booking_number=booking.booking_number,
            proof_id=proof.id,
            amount=proof.amount,
        )
        event = BalancePaidOnArrival(occurred_on=now, booking=stored, proof=proof)
        return self._result(proof, stored, publish_events(self._uow, [event]))

    def summarize(
        self, booking_id: EntityId, user_id: Optional[str] = None
    ) -> PaymentSummary:
        """Сводка: оплачено, на проверке, остаток."""
        booking = self._get_booking(booking_id, user_id)
        return self._summary(booking)

    def payment_history(
        self, booking_id: EntityId, user_id: Optional[str] = None
    ) -> List[PaymentProofDTO]:
        """Журнал подтверждений оплаты в порядке поступления."""
        booking = self._get_booking(booking_id, user_id)
        ledger = ProofLedger(self._uow.payment_proofs.list_by_booking(booking.id))
        return [PaymentProofDTO.from_domain(proof) for proof in ledger.proofs]

    def _summary(self, booking: Booking) -> PaymentSummary:
        ledger = ProofLedger(self._uow.payment_proofs.list_by_booking(booking.id))
        return ledger.summarize(booking.total_amount)

    def _result(
        self, proof: PaymentProof, booking: Booking, warnings: List[str]
    ) -> PaymentProofOperationResult:
        return PaymentProofOperationResult(
            proof=PaymentProofDTO.from_domain(proof),
            booking=BookingDTO.from_domain(booking),
            summary=self._summary(booking),
            warnings=warnings,
        )

    def _get_booking(self, booking_id: EntityId, user_id: Optional[str] = None) -> Booking:
        booking = self._uow.bookings.get_by_id(booking_id)
        if booking is None or (user_id is not None and booking.user_id != user_id):
            raise NotFoundException(f"Бронирование {booking_id} не найдено")
        return booking

    @staticmethod
    def _ensure_not_terminal(booking: Booking) -> None:
        if booking.is_terminal:
            raise InvalidStateException(
                f"Бронирование {booking.booking_number} в статусе {booking.status.value}, "
                f"изменение оплаты невозможно",
                current_status=booking.status,
                current_payment_status=booking.payment_status,
            )
