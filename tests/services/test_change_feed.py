"""
Tests for VoucherChangeFeed delivery semantics.

Views are delivered only after the owning session commits, never for a
rolled-back write, and a failing subscriber does not block the others.
Several feeds sharing one session each deliver only their own views.
"""

from jobwork_kernel.domain.events import EventType, ReceiveDetails
from jobwork_kernel.domain.voucher import VoucherStatus
from jobwork_services.change_feed import VoucherChangeFeed
from jobwork_services.voucher_service import VoucherService


def _receive_all(voucher_service, voucher):
    return voucher_service.append_event(
        voucher.voucher_no,
        EventType.RECEIVE,
        ReceiveDetails(receiver_id="V1", quantity_received=voucher.initial_quantity),
        user_id="V1",
        parent_event_id=voucher.events[0].event_id,
    )


class TestDelivery:

    def test_delivered_after_commit(self, session, change_feed, create_voucher):
        received = []
        change_feed.subscribe(received.append)

        voucher = create_voucher()
        assert received == []

        session.commit()

        (view,) = received
        assert view.voucher_no == voucher.voucher_no
        assert view.status == VoucherStatus.DISPATCHED

    def test_latest_view_per_voucher_wins(self, session, change_feed, voucher_service, create_voucher):
        received = []
        change_feed.subscribe(received.append)

        voucher = create_voucher()
        _receive_all(voucher_service, voucher)
        session.commit()

        (view,) = received
        assert view.status == VoucherStatus.RECEIVED
        assert view.total_received == 100

    def test_rollback_discards(self, session, change_feed, create_voucher):
        received = []
        change_feed.subscribe(received.append)

        create_voucher()
        session.rollback()
        session.commit()

        assert received == []

    def test_payment_write_publishes(self, session, change_feed, payment_service, create_voucher):
        from decimal import Decimal

        voucher = create_voucher()
        session.commit()
        received = []
        change_feed.subscribe(received.append)

        payment_service.record_payment(
            voucher.voucher_no,
            vendor_id="V1",
            amount_paid=Decimal("50"),
            price_per_piece=Decimal("5"),
            net_qty=10,
            forward_event_id=None,
        )
        session.commit()

        (view,) = received
        assert view.voucher_id == voucher.id
        assert len(view.unattributed_payments) == 1


class TestSubscriptions:

    def test_filter_by_voucher(self, session, change_feed, voucher_service, create_voucher):
        first = create_voucher()
        session.commit()

        received = []
        change_feed.subscribe(received.append, voucher_id=first.voucher_no)
        create_voucher()
        session.commit()
        assert received == []

        _receive_all(voucher_service, first)
        session.commit()
        assert [v.voucher_no for v in received] == [first.voucher_no]

    def test_cancel_stops_delivery(self, session, change_feed, create_voucher):
        received = []
        subscription = change_feed.subscribe(received.append)
        subscription.cancel()
        subscription.cancel()

        create_voucher()
        session.commit()

        assert received == []
        assert change_feed.subscriber_count == 0

    def test_failing_subscriber_is_logged_and_skipped(self, session, change_feed, create_voucher, captured_logs):
        def broken(view):
            raise RuntimeError("screen closed")

        received = []
        change_feed.subscribe(broken)
        change_feed.subscribe(received.append)

        create_voucher()
        session.commit()

        assert len(received) == 1
        (record,) = [r for r in captured_logs() if r["message"] == "voucher_subscriber_failed"]
        assert record["exc_message"] == "screen closed"
        assert record["exc_type"] == "RuntimeError"

    def test_notify_without_subscribers_only_folds(self, session, change_feed, create_voucher):
        create_voucher()
        assert "jobwork_pending_views" not in session.info


class TestSeveralFeeds:

    def test_each_feed_delivers_its_own_views(
        self, session, deterministic_clock, policy, change_feed, voucher_service, create_voucher,
    ):
        first = create_voucher()
        second = create_voucher()
        session.commit()

        other_feed = VoucherChangeFeed(policy.admin_receiver_ids)
        other_service = VoucherService(session, deterministic_clock, policy, feed=other_feed)
        seen_by_first_feed = []
        seen_by_other_feed = []
        change_feed.subscribe(seen_by_first_feed.append)
        other_feed.subscribe(seen_by_other_feed.append)

        voucher_service.resync(first.voucher_no)
        other_service.resync(second.voucher_no)
        session.commit()

        assert [v.voucher_no for v in seen_by_first_feed] == [first.voucher_no]
        assert [v.voucher_no for v in seen_by_other_feed] == [second.voucher_no]

    def test_rollback_clears_every_feed(self, session, deterministic_clock, policy, change_feed, create_voucher):
        voucher = create_voucher()
        session.commit()

        other_feed = VoucherChangeFeed(policy.admin_receiver_ids)
        other_service = VoucherService(session, deterministic_clock, policy, feed=other_feed)
        received = []
        other_feed.subscribe(received.append)

        other_service.resync(voucher.voucher_no)
        session.rollback()
        session.commit()

        assert received == []
