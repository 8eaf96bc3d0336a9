"""
PaymentReconciler -- matches payments to priced forward events.

Architecture: jobwork_engines -- pure calculation, zero I/O.

Every forward event with ``price_per_piece > 0`` represents billable
vendor work worth ``price_per_piece * quantity_forwarded``.  Payments are
attributed to it in three tiers, first non-empty tier wins:

    1. EVENT            payments keyed to the event (``forward_event_id``)
    2. VENDOR_JOB_WORK  payments of the voucher for the same vendor and
                        job work
    3. VENDOR           payments of the voucher for the same vendor

Tiers 2 and 3 consider every payment of the voucher, keyed or not, so a
payment keyed to one forward also counts toward a sibling forward of the
same vendor that has no keyed payment of its own.
Tier 3 can aggregate payments meant for another job-work stage of the
same vendor; the tier is recorded on each result so such figures can be
told apart.

Forwards without a vendor or job work are skipped and reported, and
payments no forward absorbed are reported as unattributed.  Neither
raises.

The voucher detail view and the vendor account view both go through
``reconcile`` so their figures agree.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from jobwork_kernel.domain.events import VoucherEvent
from jobwork_kernel.domain.payments import Payment
from jobwork_kernel.domain.voucher import Voucher
from jobwork_kernel.logging_config import get_logger
from jobwork_engines.payment_types import (
    MatchTier,
    PaymentState,
    PaymentStatus,
    ReconciliationResult,
    SkippedEvent,
    SkipReason,
    UnattributedPayment,
)
from jobwork_engines.tracer import traced_engine

logger = get_logger("engines.payments")


def _is_billable(event: VoucherEvent) -> bool:
    if not event.is_forward:
        return False
    price = event.details.price_per_piece
    return price is not None and price > 0


def _match(
    voucher_id: str,
    event: VoucherEvent,
    payments: Sequence[Payment],
) -> tuple[MatchTier, list[Payment]]:
    keyed = [p for p in payments if p.forward_event_id == event.event_id]
    if keyed:
        return MatchTier.EVENT, keyed

    vendor_id = event.details.sender_id
    by_vendor = [p for p in payments if p.voucher_id == voucher_id and p.vendor_id == vendor_id]

    by_job = [p for p in by_vendor if p.job_work_done == event.details.job_work]
    if by_job:
        return MatchTier.VENDOR_JOB_WORK, by_job
    if by_vendor:
        return MatchTier.VENDOR, by_vendor
    return MatchTier.NONE, []


@traced_engine("payment_reconciler", "1.0", fingerprint_fields=("voucher_id",))
def reconcile(
    voucher_id: str,
    forward_events: Iterable[VoucherEvent],
    payments: Iterable[Payment],
) -> ReconciliationResult:
    """
    Reconcile a voucher's priced forward events against its payments.

    Args:
        voucher_id: Key the voucher's payments carry in ``voucher_id``.
        forward_events: The voucher's events; non-forward and unpriced
            events are ignored.
        payments: Payments referencing the voucher.

    Returns:
        ReconciliationResult with one PaymentStatus per billable forward,
        in event order, plus skipped events and unattributed payments.
    """
    payments = tuple(payments)
    statuses: list[PaymentStatus] = []
    skipped: list[SkippedEvent] = []
    used: set[str] = set()

    for event in forward_events:
        if not _is_billable(event):
            continue

        details = event.details
        if not details.sender_id or not details.job_work:
            reason = SkipReason.MISSING_VENDOR if not details.sender_id else SkipReason.MISSING_JOB_WORK
            skipped.append(SkippedEvent(voucher_id=voucher_id, event_id=event.event_id, reason=reason))
            logger.warning("payment_event_unattributed", extra={
                "voucher_id": voucher_id,
                "event_id": event.event_id,
                "reason": reason.value,
            })
            continue

        tier, matched = _match(voucher_id, event, payments)
        used.update(id(p) for p in matched)
        statuses.append(PaymentStatus.from_amounts(
            voucher_id=voucher_id,
            event_id=event.event_id,
            vendor_id=details.sender_id,
            job_work=details.job_work,
            price_per_piece=details.price_per_piece,
            quantity=details.quantity_forwarded,
            amount_paid=sum((p.amount_paid for p in matched), Decimal("0")),
            match_tier=tier,
            timestamp=event.timestamp,
            matched_payment_ids=tuple(p.id for p in matched),
        ))
        if tier in (MatchTier.VENDOR_JOB_WORK, MatchTier.VENDOR):
            logger.debug("payment_matched_by_fallback_tier", extra={
                "voucher_id": voucher_id,
                "event_id": event.event_id,
                "match_tier": tier.value,
            })

    unattributed = tuple(
        UnattributedPayment(
            payment_id=p.id,
            voucher_id=p.voucher_id,
            vendor_id=p.vendor_id,
            amount_paid=p.amount_paid,
        )
        for p in payments
        if id(p) not in used
    )
    for entry in unattributed:
        logger.warning("payment_unattributed", extra={
            "voucher_id": voucher_id,
            "payment_id": entry.payment_id,
            "vendor_id": entry.vendor_id,
            "amount_paid": str(entry.amount_paid),
        })

    return ReconciliationResult(
        statuses=tuple(statuses),
        skipped_events=tuple(skipped),
        unattributed_payments=unattributed,
    )


def partition(
    statuses: Iterable[PaymentStatus],
) -> tuple[tuple[PaymentStatus, ...], tuple[PaymentStatus, ...]]:
    """Split into (needs payment, fully settled) by pending amount."""
    needed: list[PaymentStatus] = []
    completed: list[PaymentStatus] = []
    for status in statuses:
        (completed if status.is_settled else needed).append(status)
    return tuple(needed), tuple(completed)


# =============================================================================
# Vendor account
# =============================================================================


@dataclass(frozen=True, slots=True)
class VendorAccount:
    """A vendor's work and payments across vouchers, newest first."""

    vendor_id: str
    transactions: tuple[PaymentStatus, ...]
    total_paid: Decimal
    total_pending: Decimal

    @property
    def pending(self) -> tuple[PaymentStatus, ...]:
        return partition(self.transactions)[0]

    @property
    def settled(self) -> tuple[PaymentStatus, ...]:
        return partition(self.transactions)[1]

    def filter_by_status(self, state: PaymentState | None) -> tuple[PaymentStatus, ...]:
        """Transactions in ``state``; None returns all of them."""
        if state is None:
            return self.transactions
        return tuple(t for t in self.transactions if t.status == state)


def voucher_key(voucher: Voucher) -> str:
    """The id payments use to reference ``voucher``."""
    return voucher.id or voucher.voucher_no


def vendor_account(
    vendor_id: str,
    vouchers: Iterable[Voucher],
    payments: Iterable[Payment],
) -> VendorAccount:
    """
    Build the account view for ``vendor_id``.

    Each voucher is reconciled exactly as its detail view reconciles it;
    only the vendor's own entries are kept.  ``total_paid`` is the sum of
    the vendor's payment records against the given vouchers.
    """
    payments = tuple(payments)
    transactions: list[PaymentStatus] = []
    total_paid = Decimal("0")

    for voucher in vouchers:
        key = voucher_key(voucher)
        voucher_payments = [p for p in payments if p.voucher_id == key]
        result = reconcile(key, voucher.events, voucher_payments)
        transactions.extend(s for s in result.statuses if s.vendor_id == vendor_id)
        total_paid += sum(
            (p.amount_paid for p in voucher_payments if p.vendor_id == vendor_id),
            Decimal("0"),
        )

    transactions.sort(key=lambda s: s.timestamp, reverse=True)
    total_pending = sum(
        (s.pending_amount for s in transactions if s.pending_amount > 0),
        Decimal("0"),
    )
    return VendorAccount(
        vendor_id=vendor_id,
        transactions=tuple(transactions),
        total_paid=total_paid,
        total_pending=total_pending,
    )
