"""
VoucherPolicy -- the numbering and admin-identity settings kernel services run with.

The kernel never reads configuration itself.  ``jobwork_config.bridges``
builds a VoucherPolicy from the active configuration; tests construct one
directly.
"""

from __future__ import annotations

from dataclasses import dataclass

from jobwork_kernel.domain.financial_year import DEFAULT_START_MONTH
from jobwork_kernel.domain.numbering import (
    DEFAULT_EVENT_SERIAL_WIDTH,
    DEFAULT_PREFIX,
    DEFAULT_SEQUENCE_WIDTH,
)


@dataclass(frozen=True, slots=True)
class VoucherPolicy:
    voucher_prefix: str = DEFAULT_PREFIX
    voucher_sequence_width: int = DEFAULT_SEQUENCE_WIDTH
    event_serial_width: int = DEFAULT_EVENT_SERIAL_WIDTH
    financial_year_start_month: int = DEFAULT_START_MONTH
    admin_receiver_ids: tuple[str, ...] = ("admin",)
