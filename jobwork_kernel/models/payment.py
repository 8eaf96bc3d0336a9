"""
Module: jobwork_kernel.models.payment
Responsibility: ORM persistence for vendor payments.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

``voucher_id`` is deliberately not a foreign key: payment history outlives
a deleted voucher and legacy rows may reference vouchers that were never
migrated.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from jobwork_kernel.db.base import TrackedBase
from jobwork_kernel.domain.payments import Payment


class PaymentModel(TrackedBase):
    """One payment made to a vendor for job work on a voucher."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_voucher", "voucher_id"),
        Index("idx_payment_vendor", "vendor_id"),
        Index("idx_payment_forward_event", "forward_event_id"),
    )

    voucher_id: Mapped[str] = mapped_column(String(40), nullable=False)

    vendor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vendor_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    vendor_code: Mapped[str] = mapped_column(String(50), default="", nullable=False)

    job_work_done: Mapped[str | None] = mapped_column(String(100), nullable=True)

    price_per_piece: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    net_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Null for legacy payments recorded before per-event keying
    forward_event_id: Mapped[str | None] = mapped_column(String(80), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.vendor_id} {self.amount_paid} on {self.voucher_id}>"

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentModel":
        return cls(
            voucher_id=payment.voucher_id,
            vendor_id=payment.vendor_id,
            vendor_name=payment.vendor_name,
            vendor_code=payment.vendor_code,
            job_work_done=payment.job_work_done,
            price_per_piece=payment.price_per_piece,
            net_qty=payment.net_qty,
            total_amount=payment.total_amount,
            amount_paid=payment.amount_paid,
            payment_date=payment.payment_date,
            forward_event_id=payment.forward_event_id,
        )

    def to_domain(self) -> Payment:
        return Payment(
            id=str(self.id),
            voucher_id=self.voucher_id,
            vendor_id=self.vendor_id,
            amount_paid=Decimal(self.amount_paid),
            job_work_done=self.job_work_done,
            vendor_name=self.vendor_name,
            vendor_code=self.vendor_code,
            price_per_piece=Decimal(self.price_per_piece),
            net_qty=self.net_qty,
            total_amount=Decimal(self.total_amount),
            payment_date=self.payment_date,
            forward_event_id=self.forward_event_id,
        )
