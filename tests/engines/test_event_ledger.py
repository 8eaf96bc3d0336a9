"""
Tests for the EventLedger engine.

Covers:
- Status derivation and the completion marker
- Received / forwarded / damage folds and the available-quantity floor
- Ordering (timestamp sort, stability for ties)
- Sender resolution including the nearest-forward fallback
- Cached totals and divergence detection
- Per-holder availability and over-forward reporting
- Structural input validation
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from jobwork_engines.ledger import (
    UNKNOWN_SENDER,
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
from jobwork_kernel.domain.voucher import CachedTotals, VoucherStatus
from jobwork_kernel.exceptions import InvalidEventError
from tests.builders import BASE_TIME, at, dispatch, forward, make_voucher, receive

D1 = "evnt_MFV20250721_0001_001"
R1 = "evnt_MFV20250721_0001_002"
F1 = "evnt_MFV20250721_0001_003"
R2 = "evnt_MFV20250721_0001_004"
F2 = "evnt_MFV20250721_0001_005"


def _received_voucher():
    return make_voucher(
        dispatch(D1, qty=100),
        receive(R1, minutes=10, receiver="V1", sender="admin", qty=100,
                missing=5, damaged_on_arrival=3, parent=D1),
    )


def _forwarded_voucher():
    voucher = _received_voucher()
    return replace(voucher, events=voucher.events + (
        forward(F1, minutes=20, sender="V1", receiver="V2", qty=90,
                price="10", damaged_after_job=2),
    ))


class TestScenarios:
    """The worked dispatch -> receive -> forward walkthrough."""

    def test_dispatch_only(self):
        voucher = make_voucher(dispatch(D1, qty=100))

        assert derive_status(voucher) == VoucherStatus.DISPATCHED
        assert current_available_quantity(voucher) == 100

    def test_receive_with_discrepancies(self):
        voucher = _received_voucher()
        events = sort_events(voucher.events)

        assert total_quantity_received(events) == 97
        assert total_damage(events).missing == 5
        assert total_damage(events).on_arrival == 3
        assert current_available_quantity(voucher) == 92
        assert derive_status(voucher) == VoucherStatus.RECEIVED

    def test_forward_after_receive(self):
        voucher = _forwarded_voucher()
        events = sort_events(voucher.events)

        assert total_quantity_forwarded(events) == 90
        assert total_damage(events).after_work == 2
        assert current_available_quantity(voucher) == 0
        assert derive_status(voucher) == VoucherStatus.FORWARDED

    def test_receive_resolves_sender_from_parent_forward(self):
        voucher = _forwarded_voucher()
        answer = receive(R2, minutes=30, receiver="V2", qty=90, parent=F1)
        events = sort_events(voucher.events + (answer,))

        assert resolve_sender_id(answer, events) == "V1"


class TestDeriveStatus:

    def test_no_events_is_dispatched(self):
        voucher = make_voucher()
        assert derive_status(voucher) == VoucherStatus.DISPATCHED

    def test_completion_marker_wins(self):
        voucher = replace(_forwarded_voucher(), completed_at=at(60))
        assert derive_status(voucher) == VoucherStatus.COMPLETED

    def test_latest_event_by_timestamp_not_array_order(self):
        """A forward stored last but timestamped earlier does not decide status."""
        voucher = make_voucher(
            dispatch(D1, qty=100),
            receive(R1, minutes=30, receiver="V2", qty=10),
            forward(F1, minutes=20, sender="V1", receiver="V2", qty=10),
        )
        assert derive_status(voucher) == VoucherStatus.RECEIVED

    def test_idempotent(self):
        voucher = _forwarded_voucher()
        assert derive_status(voucher) == derive_status(voucher)
        assert current_available_quantity(voucher) == current_available_quantity(voucher)
        events = sort_events(voucher.events)
        assert total_damage(events) == total_damage(events)

    def test_monotonic_over_stage_sequence(self):
        """dispatch -> receive -> forward -> completion never steps backwards."""
        events = _forwarded_voucher().events
        ranks = []
        for count in range(1, len(events) + 1):
            ranks.append(derive_status(make_voucher(*events[:count])).rank)
        ranks.append(derive_status(make_voucher(*events, completed_at=at(40))).rank)

        assert ranks == sorted(ranks)
        assert ranks[-1] == VoucherStatus.COMPLETED.rank


class TestOrdering:

    def test_sorts_by_timestamp(self):
        late = receive(R1, minutes=10, receiver="V1", qty=100)
        early = dispatch(D1)
        assert sort_events([late, early]) == (early, late)

    def test_ties_keep_original_order(self):
        a = receive(R1, minutes=5, receiver="V1", qty=1)
        b = receive(R2, minutes=5, receiver="V2", qty=2)
        c = receive("evnt_MFV20250721_0001_009", minutes=5, receiver="V3", qty=3)

        first = sort_events([b, a, c])
        second = sort_events(list(first))

        assert first == (b, a, c)
        assert second == first

    def test_non_list_rejected(self):
        with pytest.raises(InvalidEventError):
            sort_events("not a list")

    def test_foreign_element_rejected(self):
        with pytest.raises(InvalidEventError):
            sort_events([dispatch(D1), {"event_type": "receive"}])


class TestAvailableQuantity:

    def test_floor_at_zero_when_over_forwarded(self):
        voucher = make_voucher(
            dispatch(D1, qty=50),
            receive(R1, minutes=1, receiver="V1", qty=50, damaged_on_arrival=20, missing=20),
            forward(F1, minutes=2, sender="V1", receiver="V2", qty=80, damaged_after_job=30),
            initial=50,
        )
        assert current_available_quantity(voucher) == 0

    def test_conservation_holds_for_well_formed_voucher(self):
        voucher = _forwarded_voucher()
        events = sort_events(voucher.events)
        damage = total_damage(events)

        assert voucher.initial_quantity >= total_quantity_forwarded(events) + damage.total

    def test_missing_counted_once(self):
        voucher = make_voucher(
            dispatch(D1, qty=10),
            receive(R1, minutes=1, receiver="V1", qty=10, missing=4),
            initial=10,
        )
        assert current_available_quantity(voucher) == 6


class TestSenderResolution:

    def test_own_sender_first(self):
        event = receive(R1, minutes=10, receiver="V1", qty=1, sender="admin")
        assert resolve_sender_id(event, (dispatch(D1), event)) == "admin"

    def test_nearest_preceding_forward_to_same_receiver(self):
        events = (
            dispatch(D1),
            forward(F1, minutes=5, sender="V1", receiver="V3", qty=10),
            forward(F2, minutes=6, sender="V2", receiver="V3", qty=10),
            receive(R2, minutes=7, receiver="V3", qty=10),
        )
        assert resolve_sender_id(events[-1], events) == "V2"

    def test_forward_after_receive_is_not_considered(self):
        orphan = receive(R1, minutes=5, receiver="V3", qty=10)
        events = (
            dispatch(D1),
            orphan,
            forward(F1, minutes=6, sender="V1", receiver="V3", qty=10),
        )
        assert resolve_sender_id(orphan, events) is None
        assert sender_label(resolve_sender_id(orphan, events)) == UNKNOWN_SENDER

    def test_dispatch_parent_falls_through_to_heuristic(self):
        events = (
            dispatch(D1, receiver="V1"),
            receive(R1, minutes=5, receiver="V1", qty=10, parent=D1),
        )
        assert resolve_sender_id(events[-1], events) is None

    def test_fallback_is_logged(self, captured_logs):
        events = (
            forward(F1, minutes=5, sender="V1", receiver="V3", qty=10),
            receive(R2, minutes=7, receiver="V3", qty=10),
        )
        resolve_sender_id(events[-1], events)

        logs = captured_logs()
        assert any(r["message"] == "sender_resolved_by_nearest_forward" for r in logs)


class TestCachedTotals:

    def test_totals_for_full_history(self):
        voucher = make_voucher(*_forwarded_voucher().events + (
            receive(R2, minutes=30, receiver="V2", qty=88, parent=F1),
            forward(F2, minutes=40, sender="V2", receiver="admin", qty=88),
            receive("evnt_MFV20250721_0001_006", minutes=50, receiver="admin", qty=88, parent=F2),
        ))
        totals = compute_cached_totals(voucher)

        assert totals == CachedTotals(
            total_dispatched=100,
            total_received=100 + 88 + 88,
            total_forwarded=90 + 88,
            total_missing_on_arrival=5,
            total_damaged_on_arrival=3,
            total_damaged_after_work=2,
            admin_received_quantity=88,
        )

    def test_flagged_admin_receive_counted(self):
        voucher = make_voucher(
            dispatch(D1),
            receive(R1, minutes=1, receiver="office", qty=40, is_admin_receive=True),
        )
        assert compute_cached_totals(voucher).admin_received_quantity == 40

    def test_legacy_receive_by_creator_counted(self):
        voucher = make_voucher(
            dispatch(D1, sender="owner"),
            receive(R1, minutes=1, receiver="owner", qty=40),
            created_by="owner",
        )
        assert compute_cached_totals(voucher, admin_ids=()).admin_received_quantity == 40

    def test_divergence_detected(self):
        voucher = _forwarded_voucher()
        stale = replace(
            voucher,
            voucher_status=VoucherStatus.RECEIVED,
            totals=replace(compute_cached_totals(voucher), total_forwarded=0),
        )
        fields = {d.field: d for d in find_cache_divergences(stale)}

        assert set(fields) == {"voucher_status", "total_forwarded"}
        assert fields["total_forwarded"].stored == 0
        assert fields["total_forwarded"].derived == 90
        assert fields["voucher_status"].derived == VoucherStatus.FORWARDED.value

    def test_in_sync_voucher_has_no_divergence(self):
        voucher = _forwarded_voucher()
        synced = replace(
            voucher,
            voucher_status=derive_status(voucher),
            totals=compute_cached_totals(voucher),
        )
        assert find_cache_divergences(synced) == ()

    def test_trace_record_emitted(self, captured_logs):
        compute_cached_totals(_received_voucher())

        traces = [r for r in captured_logs() if r["message"] == "JOBWORK_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "event_ledger"


class TestHolderAvailability:

    def test_forwardable_after_receive(self):
        events = sort_events(_received_voucher().events)
        assert forwardable_quantity("V1", events) == 92

    def test_forwardable_after_forward(self):
        events = sort_events(_forwarded_voucher().events)
        assert forwardable_quantity("V1", events) == 0

    def test_before_limits_the_window(self):
        events = sort_events(_forwarded_voucher().events)
        assert forwardable_quantity("V1", events, before=F1) == 92

    def test_over_forward_reported_not_rejected(self):
        events = sort_events((
            dispatch(D1),
            receive(R1, minutes=1, receiver="V1", qty=50),
            forward(F1, minutes=2, sender="V1", receiver="V2", qty=60),
        ))
        (violation,) = find_overforwarded_events(events)

        assert violation.event_id == F1
        assert violation.available == 50
        assert violation.excess == 10

    def test_damage_after_job_counts_toward_over_forward(self):
        events = sort_events((
            dispatch(D1),
            receive(R1, minutes=1, receiver="V1", qty=100, missing=5, damaged_on_arrival=3),
            forward(F1, minutes=2, sender="V1", receiver="V2", qty=90, damaged_after_job=3),
        ))
        (violation,) = find_overforwarded_events(events)

        assert violation.available == 92
        assert violation.requested == 93
        assert violation.excess == 1
        assert forward_demand(events[-1]) == 93

    def test_pending_receipts(self):
        events = sort_events(_forwarded_voucher().events)

        assert [e.event_id for e in pending_receipts(events, "V2")] == [F1]
        assert pending_receipts(events, "V1") == ()


class TestTimeline:

    def test_completed_entry_appended(self):
        voucher = replace(_forwarded_voucher(), completed_at=at(90), completed_by="admin")
        timeline = build_timeline(voucher)

        assert [entry.kind for entry in timeline] == ["dispatch", "receive", "forward", "completed"]
        assert timeline[-1].is_synthetic
        assert timeline[-1].timestamp == BASE_TIME + timedelta(minutes=90)
        assert timeline[-1].actor_id == "admin"

    def test_open_voucher_has_no_synthetic_entry(self):
        timeline = build_timeline(_forwarded_voucher())
        assert not any(entry.is_synthetic for entry in timeline)
