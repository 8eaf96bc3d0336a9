"""
Voucher number and event id formats.

    voucher number  MFV20250723_0001   prefix + issue date + in-year sequence
    event id        evnt_MFV20250723_0001_003   voucher number + event serial
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from jobwork_kernel.domain.financial_year import FinancialYear
from jobwork_kernel.exceptions import InvalidVoucherNumberError

DEFAULT_PREFIX = "MFV"
DEFAULT_SEQUENCE_WIDTH = 4
DEFAULT_EVENT_SERIAL_WIDTH = 3

_EVENT_SERIAL_RE = re.compile(r"^evnt_.*_(\d+)$")


@dataclass(frozen=True, slots=True)
class VoucherNumber:
    """Parsed voucher number."""

    prefix: str
    issue_date: date
    sequence: int

    def format(self, width: int = DEFAULT_SEQUENCE_WIDTH) -> str:
        return format_voucher_number(self.issue_date, self.sequence, prefix=self.prefix, width=width)


def format_voucher_number(
    issue_date: date,
    sequence: int,
    *,
    prefix: str = DEFAULT_PREFIX,
    width: int = DEFAULT_SEQUENCE_WIDTH,
) -> str:
    if sequence < 1:
        raise ValueError(f"sequence must be positive, got {sequence}")
    return f"{prefix}{issue_date:%Y%m%d}_{sequence:0{width}d}"


def parse_voucher_number(voucher_no: str, *, prefix: str = DEFAULT_PREFIX) -> VoucherNumber:
    """
    Parse ``<prefix>YYYYMMDD_NNNN``.

    Raises:
        InvalidVoucherNumberError: if the number does not match the format
            or its date is not a real calendar date.
    """
    match = re.fullmatch(rf"{re.escape(prefix)}(\d{{8}})_(\d+)", voucher_no or "")
    if match is None:
        raise InvalidVoucherNumberError(voucher_no)
    raw_date, raw_seq = match.groups()
    try:
        issue_date = date(int(raw_date[:4]), int(raw_date[4:6]), int(raw_date[6:]))
    except ValueError:
        raise InvalidVoucherNumberError(voucher_no) from None
    return VoucherNumber(prefix=prefix, issue_date=issue_date, sequence=int(raw_seq))


def generate_event_id(
    voucher_no: str,
    serial: int,
    width: int = DEFAULT_EVENT_SERIAL_WIDTH,
) -> str:
    return f"evnt_{voucher_no}_{serial:0{width}d}"


def event_serial(event_id: str) -> int | None:
    """Trailing serial of an event id, or None for ids in another format."""
    match = _EVENT_SERIAL_RE.match(event_id or "")
    return int(match.group(1)) if match else None


def next_event_serial(event_ids: Iterable[str]) -> int:
    """Highest serial in use plus one; ids are never reused."""
    serials = [s for s in (event_serial(e) for e in event_ids) if s is not None]
    return max(serials, default=0) + 1


def highest_sequence(
    existing_numbers: Iterable[str],
    financial_year: FinancialYear,
    *,
    prefix: str = DEFAULT_PREFIX,
) -> int:
    """
    Largest sequence among ``existing_numbers`` issued inside ``financial_year``.

    Malformed numbers and numbers dated outside the year are ignored.
    Returns 0 when nothing qualifies.
    """
    highest = 0
    for voucher_no in existing_numbers:
        try:
            parsed = parse_voucher_number(voucher_no, prefix=prefix)
        except InvalidVoucherNumberError:
            continue
        if financial_year.contains(parsed.issue_date):
            highest = max(highest, parsed.sequence)
    return highest
