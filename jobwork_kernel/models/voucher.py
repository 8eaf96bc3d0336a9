"""
Module: jobwork_kernel.models.voucher
Responsibility: ORM persistence for vouchers and their embedded event history.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

The event list is stored as a JSON document in its record layout
(``VoucherEvent.to_dict``).  ``voucher_status`` and the ``total_*`` columns
are a cache of the fold over ``events``; VoucherService rewrites them on
every write and the view layer validates them on read.
"""

from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from jobwork_kernel.db.base import JSONDocument, TrackedBase
from jobwork_kernel.domain.events import parse_events
from jobwork_kernel.domain.voucher import CachedTotals, ItemDetails, Voucher, VoucherStatus


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; stored values are always UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class VoucherModel(TrackedBase):
    """
    One job-work voucher.

    Guarantees:
        - voucher_no is unique (uq_voucher_no).
        - financial_year holds the code of the year voucher_no was issued in.
    """

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint("voucher_no", name="uq_voucher_no"),
        Index("idx_voucher_financial_year", "financial_year"),
        Index("idx_voucher_status", "voucher_status"),
    )

    voucher_no: Mapped[str] = mapped_column(String(40), nullable=False)

    financial_year: Mapped[str] = mapped_column(String(10), nullable=False)

    voucher_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_by_user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    voucher_status: Mapped[str] = mapped_column(
        String(16),
        default=VoucherStatus.DISPATCHED.value,
        nullable=False,
    )

    item_details: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)

    events: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    # Cached running totals
    total_dispatched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_forwarded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_missing_on_arrival: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_damaged_on_arrival: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_damaged_after_work: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    admin_received_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Completion marker
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    completion_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Voucher {self.voucher_no}: {self.voucher_status}>"

    @classmethod
    def from_domain(cls, voucher: Voucher, financial_year: str) -> "VoucherModel":
        """Create an ORM row from a domain voucher, ready for session.add()."""
        model = cls(voucher_no=voucher.voucher_no, financial_year=financial_year)
        model.apply(voucher)
        return model

    def apply(self, voucher: Voucher) -> None:
        """Copy every mutable field of ``voucher`` onto this row."""
        self.voucher_date = voucher.created_at
        self.created_by_user_id = voucher.created_by_user_id
        self.voucher_status = voucher.voucher_status.value
        self.item_details = voucher.item_details.to_dict()
        self.events = [e.to_dict() for e in voucher.events]
        for name, value in voucher.totals.to_dict().items():
            setattr(self, name, value)
        self.completed_at = voucher.completed_at
        self.completed_by = voucher.completed_by
        self.completion_comment = voucher.completion_comment

    def to_domain(self) -> Voucher:
        """
        Convert to the frozen domain voucher.

        Raises:
            InvalidEventError: if the stored event document is malformed.
        """
        return Voucher(
            id=str(self.id),
            voucher_no=self.voucher_no,
            created_at=self.voucher_date,
            created_by_user_id=self.created_by_user_id,
            item_details=ItemDetails.from_dict(self.item_details),
            events=parse_events(self.events),
            voucher_status=VoucherStatus(self.voucher_status),
            totals=CachedTotals(**{name: getattr(self, name) for name in CachedTotals.field_names()}),
            completed_at=_aware(self.completed_at),
            completed_by=self.completed_by,
            completion_comment=self.completion_comment,
        )
