"""
VoucherChangeFeed -- push a freshly derived view after every voucher write.

Responsibility:
    Subscribers register a callback, optionally for one voucher.  Writers
    call ``notify(session, voucher, payments)`` after flushing; the feed
    folds the new raw data into a DerivedVoucherView and delivers it once
    the session commits.  A rollback discards the pending views, so
    subscribers never see data that was not persisted.  Each feed keeps
    its own pending views, so several feeds can share one session.

Architecture position:
    Services -- imperative shell.  The ledger itself holds no state; this
    is the subscription boundary around it.

Failure modes:
    - A subscriber that raises is logged with its traceback and skipped;
      the remaining subscribers still receive the view.  The write it
      follows has already committed.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from sqlalchemy import event
from sqlalchemy.orm import Session

from jobwork_kernel.domain.payments import Payment
from jobwork_kernel.domain.voucher import Voucher
from jobwork_kernel.logging_config import get_logger
from jobwork_engines.ledger import DEFAULT_ADMIN_IDS
from jobwork_services.views import DerivedVoucherView, build_derived_view, log_divergences

logger = get_logger("services.change_feed")

Subscriber = Callable[[DerivedVoucherView], None]

_PENDING_KEY = "jobwork_pending_views"


@dataclass
class Subscription:
    """Handle returned by ``subscribe``; ``cancel()`` stops delivery."""

    feed: VoucherChangeFeed
    token: int
    voucher_id: str | None = None
    active: bool = field(default=True)

    def cancel(self) -> None:
        if self.active:
            self.feed._unsubscribe(self.token)
            self.active = False


class VoucherChangeFeed:
    """Observer registry recomputing voucher views on every raw-data change."""

    def __init__(self, admin_ids: Iterable[str] = DEFAULT_ADMIN_IDS):
        self._admin_ids = tuple(admin_ids)
        self._subscribers: dict[int, tuple[str | None, Subscriber]] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, callback: Subscriber, voucher_id: str | None = None) -> Subscription:
        """Deliver views of ``voucher_id`` (or of every voucher) to ``callback``."""
        token = next(self._tokens)
        self._subscribers[token] = (voucher_id, callback)
        return Subscription(feed=self, token=token, voucher_id=voucher_id)

    def _unsubscribe(self, token: int) -> None:
        self._subscribers.pop(token, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, view: DerivedVoucherView) -> int:
        """Deliver ``view`` now.  Returns the number of subscribers reached."""
        delivered = 0
        for token, (voucher_id, callback) in list(self._subscribers.items()):
            if voucher_id is not None and voucher_id not in (view.voucher_id, view.voucher_no):
                continue
            try:
                callback(view)
            except Exception:
                logger.exception("voucher_subscriber_failed", extra={
                    "voucher_no": view.voucher_no,
                    "subscription": token,
                })
                continue
            delivered += 1
        return delivered

    def notify(self, session: Session, voucher: Voucher, payments: Iterable[Payment]) -> DerivedVoucherView:
        """
        Fold ``voucher`` and queue the view for delivery when ``session`` commits.

        A later notify for the same voucher in the same transaction
        replaces the earlier one.
        """
        view = build_derived_view(voucher, payments, self._admin_ids)
        log_divergences(view)
        if not self._subscribers:
            return view

        self._attach(session)
        self._pending(session)[view.voucher_id] = view
        return view

    def _pending(self, session: Session) -> dict[str, DerivedVoucherView]:
        return session.info[_PENDING_KEY][id(self)]

    def _attach(self, session: Session) -> None:
        by_feed = session.info.setdefault(_PENDING_KEY, {})
        if id(self) in by_feed:
            return
        by_feed[id(self)] = {}

        # Savepoint commits and rollbacks fire these hooks too; only the
        # outermost transaction decides delivery.
        def _deliver(sess: Session) -> None:
            if sess.get_nested_transaction() is not None:
                return
            pending = dict(self._pending(sess))
            self._pending(sess).clear()
            for view in pending.values():
                self.publish(view)

        def _discard(sess: Session, previous_transaction) -> None:
            if previous_transaction.nested:
                return
            dropped = self._pending(sess)
            if dropped:
                logger.debug("voucher_views_discarded", extra={"count": len(dropped)})
            dropped.clear()

        event.listen(session, "after_commit", _deliver)
        event.listen(session, "after_soft_rollback", _discard)
