"""
Тесты подтверждений оплаты и журнала оплат.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from reservations.payments.domain import (
    PaymentMethod,
    PaymentProof,
    PaymentTrack,
    ProofLedger,
    ProofStatus,
    compose_admin_notes,
)
from reservations.shared_kernel import (
    BusinessRuleValidationException,
    ConflictException,
)

NOW = datetime(2026, 11, 2, 10, 0)


def make_proof(
    proof_id: int,
    amount: str,
    status: ProofStatus = ProofStatus.PENDING,
    method: PaymentMethod = PaymentMethod.GCASH,
    uploaded_at: datetime = NOW,
) -> PaymentProof:
    return PaymentProof(
        id=proof_id,
        booking_id=1,
        user_id="guest-1",
        amount=Decimal(amount),
        payment_method=method,
        reference_number="REF",
        status=status,
        uploaded_at=uploaded_at,
    )


class TestPaymentProof:
    """Тесты для PaymentProof."""

    def test_submit_creates_pending_proof(self, booking_factory):
        booking = booking_factory()

        proof = PaymentProof.submit(
            proof_id=1,
            booking=booking,
            amount=Decimal("16500"),
            payment_method=PaymentMethod.GCASH,
            now=NOW,
            reference_number=" 1234567890 ",
        )

        assert proof.status == ProofStatus.PENDING
        assert proof.reference_number == "1234567890"
        assert proof.amount == Decimal("16500.00")
        assert proof.track == PaymentTrack.ORIGINAL
        assert proof.user_id == booking.user_id

    @pytest.mark.parametrize(
        "method", [PaymentMethod.GCASH, PaymentMethod.MAYA, PaymentMethod.BANK_TRANSFER]
    )
    def test_reference_required_for_transfers(self, booking_factory, method):
        with pytest.raises(BusinessRuleValidationException):
            PaymentProof.submit(
                proof_id=1,
                booking=booking_factory(),
                amount=Decimal("100"),
                payment_method=method,
                now=NOW,
                reference_number="  ",
            )

    def test_card_does_not_require_reference(self, booking_factory):
        proof = PaymentProof.submit(
            proof_id=1,
            booking=booking_factory(),
            amount=Decimal("100"),
            payment_method=PaymentMethod.CARD,
            now=NOW,
        )

        assert proof.reference_number is None

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_amount_must_be_positive(self, booking_factory, amount):
        with pytest.raises(BusinessRuleValidationException):
            PaymentProof.submit(
                proof_id=1,
                booking=booking_factory(),
                amount=Decimal(amount),
                payment_method=PaymentMethod.CARD,
                now=NOW,
            )

    def test_decision_is_made_once(self):
        proof = make_proof(1, "5000")

        proof.approve(NOW, admin_notes="Сверено с выпиской")

        assert proof.status == ProofStatus.VERIFIED
        assert proof.verified_at == NOW
        assert proof.admin_notes == "ADMIN NOTES: Сверено с выпиской"
        with pytest.raises(ConflictException):
            proof.approve(NOW)
        with pytest.raises(ConflictException):
            proof.reject(NOW, "Повтор")

    def test_reject_without_reason(self):
        proof = make_proof(1, "5000")

        proof.reject(NOW, " ", admin_notes="Чек не найден в выписке")

        assert proof.status == ProofStatus.REJECTED
        assert proof.rejection_reason is None
        assert proof.reviewed_at == NOW
        assert proof.admin_notes == "ADMIN NOTES: Чек не найден в выписке"

    def test_reject_composes_notes(self):
        proof = make_proof(1, "5000")

        proof.reject(NOW, "Сумма не совпадает", admin_notes="Попросить новый скриншот")

        assert proof.status == ProofStatus.REJECTED
        assert proof.rejection_reason == "Сумма не совпадает"
        assert proof.verified_at is None
        assert proof.reviewed_at == NOW
        assert proof.admin_notes == (
            "REJECTION REASON: Сумма не совпадает\n\n"
            "ADMIN NOTES: Попросить новый скриншот"
        )

    def test_cash_on_arrival_is_balance_track(self):
        proof = make_proof(1, "5000", method=PaymentMethod.CASH_ON_ARRIVAL)

        assert proof.track == PaymentTrack.BALANCE


def test_compose_admin_notes():
    assert compose_admin_notes() is None
    assert compose_admin_notes("Нечитаемый чек") == "REJECTION REASON: Нечитаемый чек"
    assert compose_admin_notes(admin_notes="ok") == "ADMIN NOTES: ok"


class TestProofLedger:
    """Тесты для ProofLedger."""

    def test_latest_submission_defines_track_status(self):
        rejected = make_proof(1, "5000", status=ProofStatus.REJECTED)
        resubmitted = make_proof(
            2, "5000", status=ProofStatus.VERIFIED, uploaded_at=NOW + timedelta(hours=1)
        )

        ledger = ProofLedger([resubmitted, rejected])

        assert [p.id for p in ledger.proofs] == [1, 2]
        assert ledger.latest(PaymentTrack.ORIGINAL).id == 2
        assert ledger.is_verified(PaymentTrack.ORIGINAL)
        assert ledger.latest(PaymentTrack.BALANCE) is None
        assert not ledger.has_pending(PaymentTrack.ORIGINAL)

    def test_summary_counts_each_proof_once(self):
        ledger = ProofLedger(
            [
                make_proof(1, "3000", status=ProofStatus.REJECTED),
                make_proof(2, "5000", status=ProofStatus.VERIFIED),
                make_proof(
                    3,
                    "2000",
                    status=ProofStatus.PENDING,
                    uploaded_at=NOW + timedelta(hours=1),
                ),
            ]
        )

        summary = ledger.summarize(Decimal("10000"))

        assert summary.total_paid == Decimal("5000.00")
        assert summary.pending_amount == Decimal("2000.00")
        assert summary.remaining_balance == Decimal("3000.00")

    def test_remaining_balance_never_negative(self):
        ledger = ProofLedger([make_proof(1, "12000", status=ProofStatus.VERIFIED)])

        summary = ledger.summarize(Decimal("10000"))

        assert summary.remaining_balance == Decimal("0.00")
