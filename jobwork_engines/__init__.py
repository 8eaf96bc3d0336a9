"""
Pure derivation engines for job-work vouchers.

Nothing in this package performs I/O.  Engines take frozen domain
objects from ``jobwork_kernel.domain`` and return frozen results.
"""

from jobwork_engines.completion import (
    CompletionAnalysis,
    CompletionDecision,
    analyze_completion,
    plan_manual_completion,
)
from jobwork_engines.ledger import (
    UNKNOWN_SENDER,
    CacheDivergence,
    DamageTotals,
    ForwardViolation,
    TimelineEntry,
    build_timeline,
    compute_cached_totals,
    current_available_quantity,
    derive_status,
    find_cache_divergences,
    find_overforwarded_events,
    forward_demand,
    forwardable_quantity,
    pending_receipts,
    resolve_sender_id,
    sender_label,
    sort_events,
    total_damage,
    total_quantity_forwarded,
    total_quantity_received,
)
from jobwork_engines.numbering import next_number
from jobwork_engines.payment_types import (
    MatchTier,
    PaymentState,
    PaymentStatus,
    ReconciliationResult,
    SkippedEvent,
    UnattributedPayment,
)
from jobwork_engines.payments import VendorAccount, partition, reconcile, vendor_account

__all__ = [
    "CompletionAnalysis",
    "CompletionDecision",
    "analyze_completion",
    "plan_manual_completion",
    "UNKNOWN_SENDER",
    "CacheDivergence",
    "DamageTotals",
    "ForwardViolation",
    "TimelineEntry",
    "build_timeline",
    "compute_cached_totals",
    "current_available_quantity",
    "derive_status",
    "find_cache_divergences",
    "find_overforwarded_events",
    "forward_demand",
    "forwardable_quantity",
    "pending_receipts",
    "resolve_sender_id",
    "sender_label",
    "sort_events",
    "total_damage",
    "total_quantity_forwarded",
    "total_quantity_received",
    "next_number",
    "MatchTier",
    "PaymentState",
    "PaymentStatus",
    "ReconciliationResult",
    "SkippedEvent",
    "UnattributedPayment",
    "VendorAccount",
    "partition",
    "reconcile",
    "vendor_account",
]
