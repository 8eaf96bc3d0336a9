"""
Module: jobwork_kernel.models.voucher_number_counter
Responsibility: Per-financial-year counter row backing voucher number allocation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Each row holds the last sequence issued in one financial year.  Rows are
only ever read under ``SELECT ... FOR UPDATE`` by VoucherNumberService.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from jobwork_kernel.db.base import Base


class VoucherNumberCounter(Base):
    __tablename__ = "voucher_number_counters"

    # Financial year code, e.g. "2025-26"
    financial_year: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        unique=True,
    )

    # Last sequence issued in this year
    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return f"<VoucherNumberCounter {self.financial_year}: {self.current_value}>"
