"""
Tests for PaymentService and the payment side of the derived view.
"""

from datetime import date
from decimal import Decimal

import pytest

from jobwork_kernel.domain.events import EventType, ForwardDetails, ReceiveDetails
from jobwork_kernel.exceptions import InvalidPaymentError, VoucherNotFoundError
from jobwork_kernel.selectors.payment_selector import PaymentSelector
from jobwork_engines.payment_types import MatchTier, PaymentState

FORWARD_ID = "evnt_MFV20250721_0001_003"


@pytest.fixture
def worked_voucher(voucher_service, create_voucher, deterministic_clock):
    """V1 receives 100 pieces and forwards 90 stitched pieces to V2 at 10 each."""
    voucher = create_voucher(100)
    deterministic_clock.advance(60)
    voucher_service.append_event(
        voucher.voucher_no,
        EventType.RECEIVE,
        ReceiveDetails(receiver_id="V1", quantity_received=100),
        user_id="V1",
        parent_event_id=voucher.events[0].event_id,
    )
    deterministic_clock.advance(60)
    return voucher_service.append_event(
        voucher.voucher_no,
        EventType.FORWARD,
        ForwardDetails(
            sender_id="V1",
            receiver_id="V2",
            quantity_forwarded=90,
            job_work="Stitching",
            price_per_piece=Decimal("10"),
        ),
        user_id="V1",
    )


def _pay(payment_service, voucher, amount, *, vendor="V1", forward_event_id=FORWARD_ID, **kwargs):
    kwargs.setdefault("price_per_piece", Decimal("10"))
    kwargs.setdefault("net_qty", 90)
    return payment_service.record_payment(
        voucher.voucher_no,
        vendor_id=vendor,
        amount_paid=Decimal(amount),
        forward_event_id=forward_event_id,
        **kwargs,
    )


class TestRecordPayment:

    def test_keyed_payment_recorded(self, session, payment_service, worked_voucher, captured_logs):
        payment = _pay(payment_service, worked_voucher, "400")

        assert payment.id
        assert payment.voucher_id == worked_voucher.id
        assert payment.job_work_done == "Stitching"
        assert payment.total_amount == Decimal("900")
        assert payment.payment_date == date(2025, 7, 21)
        assert PaymentSelector(session).for_forward_event(FORWARD_ID) == [payment]

        (record,) = [r for r in captured_logs() if r["message"] == "payment_recorded"]
        assert record["vendor_id"] == "V1"
        assert record["voucher_id"] == worked_voucher.id

    def test_partial_then_settled(self, payment_service, view_service, worked_voucher):
        _pay(payment_service, worked_voucher, "400")
        (status,) = view_service.view(worked_voucher.voucher_no).payments_needed
        assert status.status == PaymentState.PARTIALLY_PAID
        assert status.pending_amount == Decimal("500")
        assert status.match_tier == MatchTier.EVENT

        _pay(payment_service, worked_voucher, "500")
        view = view_service.view(worked_voucher.voucher_no)
        assert view.payments_needed == ()
        (settled,) = view.payments_completed
        assert settled.status == PaymentState.PAID
        assert settled.amount_paid == Decimal("900")

    def test_legacy_payment_matched_by_vendor_and_job(self, payment_service, view_service, worked_voucher):
        _pay(payment_service, worked_voucher, "900", forward_event_id=None, job_work_done="Stitching")

        (settled,) = view_service.view(worked_voucher.voucher_no).payments_completed
        assert settled.match_tier == MatchTier.VENDOR_JOB_WORK

    def test_explicit_payment_date(self, payment_service, worked_voucher):
        payment = _pay(payment_service, worked_voucher, "10", payment_date=date(2025, 8, 1))
        assert payment.payment_date == date(2025, 8, 1)

    @pytest.mark.parametrize("amount, overrides", [
        ("0", {}),
        ("-5", {}),
        ("10", {"price_per_piece": Decimal("-1")}),
        ("10", {"net_qty": -1}),
    ])
    def test_invalid_amounts_rejected(self, payment_service, worked_voucher, amount, overrides):
        with pytest.raises(InvalidPaymentError):
            _pay(payment_service, worked_voucher, amount, **overrides)

    def test_vendor_required(self, payment_service, worked_voucher):
        with pytest.raises(InvalidPaymentError):
            _pay(payment_service, worked_voucher, "10", vendor="")

    def test_event_must_be_a_forward(self, payment_service, worked_voucher):
        with pytest.raises(InvalidPaymentError):
            _pay(payment_service, worked_voucher, "10", forward_event_id=worked_voucher.events[0].event_id)

    def test_vendor_must_be_forward_sender(self, payment_service, worked_voucher):
        with pytest.raises(InvalidPaymentError):
            _pay(payment_service, worked_voucher, "10", vendor="V2")

    def test_unknown_voucher(self, payment_service):
        with pytest.raises(VoucherNotFoundError):
            payment_service.record_payment(
                "MFV20990101_0001",
                vendor_id="V1",
                amount_paid=Decimal("10"),
                price_per_piece=Decimal("1"),
                net_qty=10,
                forward_event_id=None,
            )
