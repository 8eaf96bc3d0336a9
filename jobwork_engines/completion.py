"""
Completion analysis -- is a voucher's work really finished?

A voucher is complete when no vendor still holds forwardable pieces and
the admin side has received everything that was not written off:

    expected_admin_receive = initial_quantity - damage (arrival + work + missing)

``plan_manual_completion`` lets an admin close a voucher whose workflow
is logically done but whose quantities do not quite add up.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from jobwork_kernel.domain.voucher import Voucher, VoucherStatus
from jobwork_kernel.logging_config import get_logger
from jobwork_engines.ledger import (
    DEFAULT_ADMIN_IDS,
    compute_cached_totals,
    derive_status,
    forwardable_quantity,
    sort_events,
    total_damage,
)
from jobwork_engines.tracer import traced_engine

logger = get_logger("engines.completion")

COMPLETE_COMMENT = "All work completed - no partial quantities remaining"
FORCED_COMMENT = "Workflow logically complete with minor quantity discrepancies."


@dataclass(frozen=True, slots=True)
class CompletionAnalysis:
    is_complete: bool
    incomplete_vendors: tuple[str, ...]
    admin_received: int
    expected_admin_receive: int
    reason: str | None = None

    @property
    def admin_received_enough(self) -> bool:
        return self.admin_received >= self.expected_admin_receive

    @property
    def missing_quantity(self) -> int:
        return self.expected_admin_receive - self.admin_received


@dataclass(frozen=True, slots=True)
class CompletionDecision:
    can_complete: bool
    final_status: VoucherStatus
    comment: str
    analysis: CompletionAnalysis


def _vendor_ids(voucher: Voucher, admins: frozenset[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for event in voucher.events:
        if event.is_receive:
            party = event.receiver_id
        elif event.is_forward:
            party = event.sender_id
        else:
            continue
        if party and party not in admins:
            seen.setdefault(party)
    return tuple(seen)


@traced_engine("completion_analyzer", "1.0", fingerprint_fields=("voucher",))
def analyze_completion(
    voucher: Voucher,
    admin_ids: Iterable[str] = DEFAULT_ADMIN_IDS,
) -> CompletionAnalysis:
    admin_ids = tuple(admin_ids)
    admins = frozenset(admin_ids) | ({voucher.created_by_user_id} - {""})
    events = sort_events(voucher.events)

    incomplete = tuple(
        vendor for vendor in _vendor_ids(voucher, admins)
        if forwardable_quantity(vendor, events) > 0
    )
    expected = voucher.initial_quantity - total_damage(events).total
    admin_received = compute_cached_totals(voucher, admin_ids).admin_received_quantity

    reason = None
    if incomplete:
        reason = f"Vendors with pending forwardable quantity: {', '.join(incomplete)}"
    elif admin_received < expected:
        reason = (
            f"Admin has not received all expected quantity "
            f"(received: {admin_received}, expected: {expected})"
        )

    return CompletionAnalysis(
        is_complete=reason is None,
        incomplete_vendors=incomplete,
        admin_received=admin_received,
        expected_admin_receive=expected,
        reason=reason,
    )


def plan_manual_completion(
    voucher: Voucher,
    admin_ids: Iterable[str] = DEFAULT_ADMIN_IDS,
    force: bool = False,
    reason: str | None = None,
) -> CompletionDecision:
    """
    Decide whether an admin may close ``voucher`` now.

    Without ``force`` only a voucher that passes the analysis can be
    closed.  With ``force`` it is closed regardless and the comment
    records the admin's reason.
    """
    analysis = analyze_completion(voucher, admin_ids)

    if analysis.is_complete:
        return CompletionDecision(True, VoucherStatus.COMPLETED, COMPLETE_COMMENT, analysis)

    if force:
        logger.info("voucher_completion_forced", extra={
            "voucher_no": voucher.voucher_no,
            "incomplete_vendors": list(analysis.incomplete_vendors),
            "missing_quantity": analysis.missing_quantity,
        })
        comment = f"Manually marked as complete. {reason or FORCED_COMMENT}"
        return CompletionDecision(True, VoucherStatus.COMPLETED, comment, analysis)

    return CompletionDecision(False, derive_status(voucher), analysis.reason or "", analysis)
