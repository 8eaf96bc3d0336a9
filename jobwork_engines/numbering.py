"""
Voucher number computation within a financial year.

``next_number`` is the pure part of allocation: given the numbers already
issued, it returns the next one.  On its own it is only safe as a seed;
concurrent allocation goes through ``VoucherNumberService``, which holds a
row lock on a per-year counter.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from jobwork_kernel.domain.financial_year import DEFAULT_START_MONTH, FinancialYear
from jobwork_kernel.domain.numbering import (
    DEFAULT_PREFIX,
    DEFAULT_SEQUENCE_WIDTH,
    format_voucher_number,
    highest_sequence,
)
from jobwork_kernel.logging_config import get_logger
from jobwork_engines.tracer import traced_engine

logger = get_logger("engines.numbering")


@traced_engine("voucher_numbering", "1.0", fingerprint_fields=("today",))
def next_number(
    existing_numbers_in_year: Iterable[str],
    today: date,
    *,
    prefix: str = DEFAULT_PREFIX,
    width: int = DEFAULT_SEQUENCE_WIDTH,
    start_month: int = DEFAULT_START_MONTH,
) -> str:
    """
    Next unused voucher number for the financial year containing ``today``.

    Gaps left by deleted vouchers are never refilled: the result is one
    past the highest in-year sequence.  Malformed and out-of-year numbers
    are ignored.
    """
    fy = FinancialYear.containing(today, start_month)
    sequence = highest_sequence(existing_numbers_in_year, fy, prefix=prefix) + 1
    logger.debug("voucher_number_computed", extra={"financial_year": fy.code, "sequence": sequence})
    return format_voucher_number(today, sequence, prefix=prefix, width=width)
