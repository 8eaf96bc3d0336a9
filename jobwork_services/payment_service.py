"""
PaymentService -- record money paid to a vendor.

Responsibility:
    Validates and inserts one payment record.  New payments are keyed to
    the forward event they settle, so reconciliation matches them
    exactly; ``forward_event_id=None`` is accepted for bulk imports of
    legacy data, which reconciliation matches by vendor and job work.

Architecture position:
    Services -- imperative shell.

Invariants enforced:
    - ``amount_paid`` is strictly positive; price and quantity are not
      negative.
    - A keyed payment references a forward event of the same voucher
      whose sender is the paid vendor.
    - ``total_amount`` is always ``price_per_piece * net_qty``.
    - Flush only; the caller owns the transaction.

Failure modes:
    - VoucherNotFoundError if the voucher does not exist.
    - InvalidPaymentError for bad amounts or a mismatched forward event.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from jobwork_kernel.domain.clock import Clock, SystemClock
from jobwork_kernel.domain.payments import Payment
from jobwork_kernel.exceptions import InvalidPaymentError
from jobwork_kernel.logging_config import LogContext, get_logger
from jobwork_kernel.models.payment import PaymentModel
from jobwork_kernel.selectors.payment_selector import PaymentSelector
from jobwork_kernel.selectors.voucher_selector import VoucherSelector
from jobwork_kernel.services.base import BaseService
from jobwork_engines.payments import voucher_key
from jobwork_services.change_feed import VoucherChangeFeed

logger = get_logger("services.payment")


class PaymentService(BaseService[PaymentModel]):
    """Write operations on payments."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        feed: VoucherChangeFeed | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._feed = feed
        self._vouchers = VoucherSelector(session)

    def record_payment(
        self,
        voucher_ref: str | UUID,
        *,
        vendor_id: str,
        amount_paid: Decimal,
        price_per_piece: Decimal,
        net_qty: int,
        forward_event_id: str | None,
        job_work_done: str | None = None,
        vendor_name: str = "",
        vendor_code: str = "",
        payment_date: date | None = None,
    ) -> Payment:
        """
        Insert a payment for ``vendor_id`` against a voucher.

        ``job_work_done`` defaults to the forward event's job work when
        the payment is keyed.
        """
        amount_paid = Decimal(amount_paid)
        price_per_piece = Decimal(price_per_piece)
        if amount_paid <= 0:
            raise InvalidPaymentError(f"amount_paid must be positive, got {amount_paid}")
        if price_per_piece < 0:
            raise InvalidPaymentError(f"price_per_piece must not be negative, got {price_per_piece}")
        if net_qty < 0:
            raise InvalidPaymentError(f"net_qty must not be negative, got {net_qty}")
        if not vendor_id:
            raise InvalidPaymentError("vendor_id is required")

        voucher = self._vouchers.require(voucher_ref)
        key = voucher_key(voucher)

        if forward_event_id is not None:
            event = voucher.get_event(forward_event_id)
            if event is None or not event.is_forward:
                raise InvalidPaymentError(
                    f"{forward_event_id} is not a forward event of {voucher.voucher_no}"
                )
            sender = event.details.sender_id
            if sender != vendor_id:
                raise InvalidPaymentError(
                    f"{forward_event_id} was forwarded by {sender}, not {vendor_id}"
                )
            if job_work_done is None:
                job_work_done = event.details.job_work

        payment = Payment(
            id="",
            voucher_id=key,
            vendor_id=vendor_id,
            amount_paid=amount_paid,
            job_work_done=job_work_done,
            vendor_name=vendor_name,
            vendor_code=vendor_code,
            price_per_piece=price_per_piece,
            net_qty=net_qty,
            total_amount=price_per_piece * net_qty,
            payment_date=payment_date or self._clock.today(),
            forward_event_id=forward_event_id,
        )
        row = PaymentModel.from_domain(payment)
        self.session.add(row)
        self.session.flush()
        recorded = row.to_domain()

        with LogContext.bind(voucher_id=key, vendor_id=vendor_id):
            logger.info("payment_recorded", extra={
                "payment_id": recorded.id,
                "voucher_no": voucher.voucher_no,
                "forward_event_id": forward_event_id,
                "amount_paid": str(amount_paid),
                "total_amount": str(recorded.total_amount),
            })

        if self._feed is not None:
            self._feed.notify(self.session, voucher, PaymentSelector(self.session).for_voucher(key))
        return recorded
