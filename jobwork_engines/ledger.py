"""
EventLedger -- pure derivation of voucher state from its event history.

Responsibility:
    Folds a voucher's ordered events into everything downstream code
    needs: current status, usable received / forwarded totals, damage and
    loss totals, available quantity, sender identity for receives that
    omit it, the cached running totals, and per-holder availability.

Architecture: jobwork_engines -- pure calculation, zero I/O, zero DB access.
All inputs are frozen domain objects; every function is deterministic and
safe to call repeatedly or concurrently.

Invariants enforced:
    - Folding always consumes events ordered by timestamp (stable for
      equal timestamps), never raw array order.
    - Available quantity never goes below zero.
    - Only structurally invalid input raises (InvalidEventError); missing
      optional data yields best-effort results.

Open question carried from the source data:
    ``resolve_sender_id`` falls back to the nearest preceding forward
    addressed to the same receiver.  When several forwards reach one
    receiver before it records a receive, that heuristic can attribute
    the wrong sender.  Treat the result as best-effort display data.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from jobwork_kernel.domain.events import EventType, VoucherEvent
from jobwork_kernel.domain.voucher import CachedTotals, Voucher, VoucherStatus
from jobwork_kernel.exceptions import InvalidEventError
from jobwork_kernel.logging_config import get_logger
from jobwork_engines.tracer import traced_engine

logger = get_logger("engines.ledger")

UNKNOWN_SENDER = "Unknown"
COMPLETED_PSEUDO_EVENT = "completed"
DEFAULT_ADMIN_IDS: tuple[str, ...] = ("admin",)


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True, slots=True)
class DamageTotals:
    """Units written off: damaged on arrival, damaged during work, missing."""

    on_arrival: int = 0
    after_work: int = 0
    missing: int = 0

    @property
    def total(self) -> int:
        return self.on_arrival + self.after_work + self.missing


@dataclass(frozen=True, slots=True)
class CacheDivergence:
    """A stored voucher field that disagrees with the fold."""

    field: str
    stored: Any
    derived: Any


@dataclass(frozen=True, slots=True)
class ForwardViolation:
    """A forward that took more pieces than its sender held at that point."""

    event_id: str
    sender_id: str
    quantity_forwarded: int
    available: int
    damaged_after_job: int = 0

    @property
    def requested(self) -> int:
        return self.quantity_forwarded + self.damaged_after_job

    @property
    def excess(self) -> int:
        return self.requested - self.available


@dataclass(frozen=True, slots=True)
class TimelineEntry:
    """One row of a voucher's history, including the derived completion."""

    kind: str
    timestamp: datetime
    actor_id: str | None
    event: VoucherEvent | None = None

    @property
    def is_synthetic(self) -> bool:
        return self.event is None


# =============================================================================
# Ordering
# =============================================================================


def _require_events(events: Any) -> Sequence[VoucherEvent]:
    if not isinstance(events, (list, tuple)):
        raise InvalidEventError(f"events must be a list, got {type(events).__name__}")
    for event in events:
        if not isinstance(event, VoucherEvent):
            raise InvalidEventError(f"expected VoucherEvent, got {type(event).__name__}")
    return events


def sort_events(events: Sequence[VoucherEvent]) -> tuple[VoucherEvent, ...]:
    """Order events by timestamp ascending; ties keep their original order."""
    return tuple(sorted(_require_events(events), key=lambda e: e.timestamp))


def _ordered(voucher: Voucher, ordered_events: Sequence[VoucherEvent] | None) -> Sequence[VoucherEvent]:
    if ordered_events is None:
        return sort_events(voucher.events)
    return _require_events(ordered_events)


# =============================================================================
# Status and quantity folds
# =============================================================================


def derive_status(
    voucher: Voucher,
    ordered_events: Sequence[VoucherEvent] | None = None,
) -> VoucherStatus:
    """
    Status from the completion marker, else from the latest event.

    Precedence: completion marker -> Completed; latest event forward ->
    Forwarded; latest event receive -> Received; otherwise Dispatched.
    """
    if voucher.is_completed:
        return VoucherStatus.COMPLETED

    events = _ordered(voucher, ordered_events)
    if not events:
        return VoucherStatus.DISPATCHED

    latest = events[-1]
    if latest.event_type == EventType.FORWARD:
        return VoucherStatus.FORWARDED
    if latest.event_type == EventType.RECEIVE:
        return VoucherStatus.RECEIVED
    return VoucherStatus.DISPATCHED


def total_quantity_received(ordered_events: Sequence[VoucherEvent]) -> int:
    """Usable received units: quantity received less damage on arrival, per receive."""
    return sum(
        e.details.quantity_received - e.details.discrepancies.damaged_on_arrival
        for e in _require_events(ordered_events)
        if e.is_receive
    )


def total_quantity_forwarded(ordered_events: Sequence[VoucherEvent]) -> int:
    return sum(
        e.details.quantity_forwarded
        for e in _require_events(ordered_events)
        if e.is_forward
    )


def total_damage(ordered_events: Sequence[VoucherEvent]) -> DamageTotals:
    """
    Damage on arrival and missing come from receives; damage after work
    comes from forwards.
    """
    on_arrival = after_work = missing = 0
    for event in _require_events(ordered_events):
        if event.is_receive:
            on_arrival += event.details.discrepancies.damaged_on_arrival
            missing += event.details.discrepancies.missing
        elif event.is_forward:
            after_work += event.details.discrepancies.damaged_after_job
    return DamageTotals(on_arrival=on_arrival, after_work=after_work, missing=missing)


def current_available_quantity(voucher: Voucher) -> int:
    """Units still in the pipeline: not forwarded onward and not written off."""
    events = sort_events(voucher.events)
    damage = total_damage(events)
    available = (
        voucher.initial_quantity
        - total_quantity_forwarded(events)
        - damage.on_arrival
        - damage.after_work
        - damage.missing
    )
    return max(0, available)


# =============================================================================
# Sender resolution
# =============================================================================


def resolve_sender_id(
    event: VoucherEvent,
    ordered_events: Sequence[VoucherEvent],
) -> str | None:
    """
    Who sent the goods this event records.

    Resolution order: the event's own sender_id; the sender of its parent
    event when that parent is a forward; the nearest preceding forward
    addressed to the same receiver (best-effort, see module docstring).
    Returns None when nothing matches; display it via ``sender_label``.
    """
    events = _require_events(ordered_events)
    if event.sender_id:
        return event.sender_id

    if event.parent_event_id:
        for candidate in events:
            if candidate.event_id == event.parent_event_id:
                if candidate.is_forward and candidate.sender_id:
                    return candidate.sender_id
                break

    receiver = event.receiver_id
    if receiver is None:
        return None

    position = _position_of(event, events)
    for prior in reversed(events[:position]):
        if prior.is_forward and prior.receiver_id == receiver and prior.sender_id:
            logger.debug(
                "sender_resolved_by_nearest_forward",
                extra={
                    "event_id": event.event_id,
                    "resolved_from": prior.event_id,
                    "sender_id": prior.sender_id,
                },
            )
            return prior.sender_id
    return None


def _position_of(event: VoucherEvent, events: Sequence[VoucherEvent]) -> int:
    for index, candidate in enumerate(events):
        if candidate.event_id == event.event_id:
            return index
    # Not part of the sequence: everything strictly earlier precedes it.
    return sum(1 for candidate in events if candidate.timestamp < event.timestamp)


def sender_label(sender_id: str | None) -> str:
    return sender_id or UNKNOWN_SENDER


# =============================================================================
# Cached totals
# =============================================================================


def _is_admin_receive(
    event: VoucherEvent,
    by_id: dict[str, VoucherEvent],
    admin_ids: frozenset[str],
    creator_id: str,
) -> bool:
    if event.details.is_admin_receive:
        return True
    if event.parent_event_id:
        parent = by_id.get(event.parent_event_id)
        return parent is not None and parent.receiver_id in admin_ids
    return event.receiver_id in admin_ids or (
        bool(creator_id) and event.receiver_id == creator_id
    )


@traced_engine("event_ledger", "1.0", fingerprint_fields=("voucher",))
def compute_cached_totals(
    voucher: Voucher,
    admin_ids: Iterable[str] = DEFAULT_ADMIN_IDS,
) -> CachedTotals:
    """
    The running totals a voucher record must store.

    ``total_received`` here is the raw sum of quantity_received (damage on
    arrival is stored separately), matching the persisted record layout.
    ``admin_received_quantity`` counts receives flagged as admin receipts,
    receives answering a forward addressed to an admin id, and legacy
    receives recorded directly by an admin id or the voucher's creator.
    """
    events = sort_events(voucher.events)
    admins = frozenset(admin_ids)
    by_id = {e.event_id: e for e in events}

    dispatched = received = forwarded = 0
    missing = damaged_arrival = damaged_work = admin_received = 0
    for event in events:
        if event.is_dispatch:
            dispatched += event.details.quantity_dispatched
        elif event.is_receive:
            received += event.details.quantity_received
            missing += event.details.discrepancies.missing
            damaged_arrival += event.details.discrepancies.damaged_on_arrival
            if _is_admin_receive(event, by_id, admins, voucher.created_by_user_id):
                admin_received += event.details.quantity_received
        else:
            forwarded += event.details.quantity_forwarded
            damaged_work += event.details.discrepancies.damaged_after_job

    return CachedTotals(
        total_dispatched=dispatched,
        total_received=received,
        total_forwarded=forwarded,
        total_missing_on_arrival=missing,
        total_damaged_on_arrival=damaged_arrival,
        total_damaged_after_work=damaged_work,
        admin_received_quantity=admin_received,
    )


def find_cache_divergences(
    voucher: Voucher,
    admin_ids: Iterable[str] = DEFAULT_ADMIN_IDS,
) -> tuple[CacheDivergence, ...]:
    """Stored fields (status and totals) that disagree with the fold."""
    divergences: list[CacheDivergence] = []

    derived_status = derive_status(voucher)
    if voucher.voucher_status != derived_status:
        divergences.append(CacheDivergence(
            field="voucher_status",
            stored=voucher.voucher_status.value,
            derived=derived_status.value,
        ))

    derived = compute_cached_totals(voucher, admin_ids)
    for name in CachedTotals.field_names():
        stored_value = getattr(voucher.totals, name)
        derived_value = getattr(derived, name)
        if stored_value != derived_value:
            divergences.append(CacheDivergence(
                field=name, stored=stored_value, derived=derived_value,
            ))
    return tuple(divergences)


# =============================================================================
# Per-holder availability
# =============================================================================


def forwardable_quantity(
    holder_id: str,
    ordered_events: Sequence[VoucherEvent],
    *,
    before: str | None = None,
) -> int:
    """
    Pieces ``holder_id`` can still forward: received by the holder, less
    damage on arrival and missing pieces, less what the holder already
    forwarded and damaged during work.  Floored at zero.

    With ``before`` set to an event id, only events ordered ahead of that
    event are counted.
    """
    events = _require_events(ordered_events)
    if before is not None:
        for index, candidate in enumerate(events):
            if candidate.event_id == before:
                events = events[:index]
                break

    held = 0
    for event in events:
        if event.is_receive and event.receiver_id == holder_id:
            d = event.details.discrepancies
            held += event.details.quantity_received - d.damaged_on_arrival - d.missing
        elif event.is_forward and event.sender_id == holder_id:
            held -= forward_demand(event)
    return max(0, held)


def forward_demand(event: VoucherEvent) -> int:
    """Pieces a forward takes from its sender: forwarded plus damaged during work."""
    details = event.details
    return details.quantity_forwarded + details.discrepancies.damaged_after_job


@traced_engine("event_ledger", "1.0", fingerprint_fields=("ordered_events",))
def find_overforwarded_events(
    ordered_events: Sequence[VoucherEvent],
) -> tuple[ForwardViolation, ...]:
    """
    Forwards whose demand (see ``forward_demand``) exceeded the sender's
    availability at the point they were recorded.  The ledger reports
    these; it never rejects.
    """
    events = _require_events(ordered_events)
    violations: list[ForwardViolation] = []
    for event in events:
        if not event.is_forward or not event.sender_id:
            continue
        available = forwardable_quantity(event.sender_id, events, before=event.event_id)
        if forward_demand(event) > available:
            violations.append(ForwardViolation(
                event_id=event.event_id,
                sender_id=event.sender_id,
                quantity_forwarded=event.details.quantity_forwarded,
                available=available,
                damaged_after_job=event.details.discrepancies.damaged_after_job,
            ))
    return tuple(violations)



def pending_receipts(
    ordered_events: Sequence[VoucherEvent],
    receiver_id: str,
) -> tuple[VoucherEvent, ...]:
    """Dispatches and forwards addressed to ``receiver_id`` that no receive answers yet."""
    events = _require_events(ordered_events)
    answered = {e.parent_event_id for e in events if e.is_receive and e.parent_event_id}
    return tuple(
        e for e in events
        if (e.is_dispatch or e.is_forward)
        and e.receiver_id == receiver_id
        and e.event_id not in answered
    )


def build_timeline(
    voucher: Voucher,
    ordered_events: Sequence[VoucherEvent] | None = None,
) -> tuple[TimelineEntry, ...]:
    """Ordered history, closed by a synthetic ``completed`` entry when completed."""
    entries = [
        TimelineEntry(
            kind=e.event_type.value,
            timestamp=e.timestamp,
            actor_id=e.user_id,
            event=e,
        )
        for e in _ordered(voucher, ordered_events)
    ]
    if voucher.completed_at is not None:
        entries.append(TimelineEntry(
            kind=COMPLETED_PSEUDO_EVENT,
            timestamp=voucher.completed_at,
            actor_id=voucher.completed_by,
        ))
    return tuple(entries)
