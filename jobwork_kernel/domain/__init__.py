"""Pure domain types for the job-work kernel."""

from jobwork_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from jobwork_kernel.domain.events import (
    Discrepancies,
    DispatchDetails,
    EventDetails,
    EventType,
    ForwardDetails,
    ReceiveDetails,
    Transport,
    VoucherEvent,
    parse_events,
)
from jobwork_kernel.domain.financial_year import FinancialYear
from jobwork_kernel.domain.payments import Payment
from jobwork_kernel.domain.policy import VoucherPolicy
from jobwork_kernel.domain.voucher import (
    CachedTotals,
    ItemDetails,
    Voucher,
    VoucherStatus,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Discrepancies",
    "DispatchDetails",
    "EventDetails",
    "EventType",
    "ForwardDetails",
    "ReceiveDetails",
    "Transport",
    "VoucherEvent",
    "parse_events",
    "FinancialYear",
    "Payment",
    "VoucherPolicy",
    "CachedTotals",
    "ItemDetails",
    "Voucher",
    "VoucherStatus",
]
