"""
VoucherService -- every write to a voucher and its event history.

Responsibility:
    Creates vouchers (number allocation plus the originating dispatch
    event), appends receive / forward events, closes vouchers, edits item
    details and deletes vouchers.  After each write the cached status and
    running totals are re-derived from the full event list, so the stored
    cache always equals the fold at write time.

Architecture position:
    Services -- imperative shell composing kernel models, kernel services
    and the pure ledger engines.

Invariants enforced:
    - Event ids are ``evnt_{voucher_no}_{NNN}`` with NNN one past the
      highest serial on the voucher; ids are never reused.
    - A completed voucher accepts no further events or edits.
    - The voucher row is locked (``SELECT ... FOR UPDATE``) for the whole
      read-modify-write of its event list.
    - Flush only; the caller owns the transaction.

Failure modes:
    - VoucherNotFoundError, VoucherAlreadyCompletedError,
      VoucherNotCompletableError, DuplicateVoucherNumberError.
    - InvalidEventError for an unknown parent event or a details payload
      that does not match the event type.
    - ForwardQuantityExceededError when forward enforcement is on and the
      sender does not hold enough pieces.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jobwork_kernel.domain.clock import Clock, SystemClock
from jobwork_kernel.domain.events import (
    DispatchDetails,
    EventDetails,
    EventType,
    ForwardDetails,
    Transport,
    VoucherEvent,
)
from jobwork_kernel.domain.numbering import generate_event_id, next_event_serial
from jobwork_kernel.domain.policy import VoucherPolicy
from jobwork_kernel.domain.voucher import ItemDetails, Voucher
from jobwork_kernel.exceptions import (
    DuplicateEventIdError,
    DuplicateVoucherNumberError,
    ForwardQuantityExceededError,
    InvalidEventError,
    VoucherAlreadyCompletedError,
    VoucherNotCompletableError,
    VoucherNotFoundError,
)
from jobwork_kernel.logging_config import LogContext, get_logger
from jobwork_kernel.models.voucher import VoucherModel
from jobwork_kernel.selectors.base import BaseSelector
from jobwork_kernel.selectors.payment_selector import PaymentSelector
from jobwork_kernel.services.base import BaseService
from jobwork_kernel.services.voucher_number_service import VoucherNumberService
from jobwork_engines.completion import CompletionDecision, plan_manual_completion
from jobwork_engines.ledger import (
    compute_cached_totals,
    derive_status,
    forward_demand,
    forwardable_quantity,
    sort_events,
)
from jobwork_services.change_feed import VoucherChangeFeed

logger = get_logger("services.voucher")


class VoucherService(BaseService[VoucherModel]):
    """
    Write operations on vouchers.

    Usage:
        with session_scope() as session:
            service = VoucherService(session, clock=SystemClock())
            voucher = service.create_voucher(item, created_by="admin", receiver_id="V1")
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: VoucherPolicy | None = None,
        feed: VoucherChangeFeed | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy or VoucherPolicy()
        self._feed = feed
        self._numbers = VoucherNumberService(session, self._policy)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock(self, voucher_ref: str | UUID) -> VoucherModel:
        stmt = select(VoucherModel).with_for_update().execution_options(populate_existing=True)
        row_id = BaseSelector._as_uuid(voucher_ref)
        row = None
        if row_id is not None:
            row = self.session.execute(stmt.where(VoucherModel.id == row_id)).scalar_one_or_none()
        if row is None:
            row = self.session.execute(
                stmt.where(VoucherModel.voucher_no == str(voucher_ref))
            ).scalar_one_or_none()
        if row is None:
            raise VoucherNotFoundError(str(voucher_ref))
        return row

    def _synced(self, voucher: Voucher) -> Voucher:
        """``voucher`` with its cached status and totals re-derived from events."""
        events = sort_events(voucher.events)
        return replace(
            voucher,
            voucher_status=derive_status(voucher, events),
            totals=compute_cached_totals(voucher, self._policy.admin_receiver_ids),
        )

    def _save(self, row: VoucherModel, voucher: Voucher) -> Voucher:
        row.apply(self._synced(voucher))
        self.session.flush()
        saved = row.to_domain()
        self._publish(saved)
        return saved

    def _publish(self, voucher: Voucher) -> None:
        if self._feed is None:
            return
        payments = PaymentSelector(self.session).for_voucher(voucher.id or voucher.voucher_no)
        self._feed.notify(self.session, voucher, payments)

    @staticmethod
    def _ensure_open(voucher: Voucher) -> None:
        if voucher.is_completed:
            raise VoucherAlreadyCompletedError(voucher.voucher_no)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_voucher(
        self,
        item_details: ItemDetails,
        *,
        created_by: str,
        receiver_id: str,
        job_work: str | None = None,
        transport: Transport | None = None,
        comment: str = "",
        as_of: date | None = None,
    ) -> Voucher:
        """
        Create a voucher and its originating dispatch event.

        The dispatch sends ``item_details.initial_quantity`` pieces from
        ``created_by`` to ``receiver_id``; the number is allocated for
        the financial year containing ``as_of`` (default: today).
        """
        now = self._clock.now()
        issue_date = as_of or now.date()
        voucher_no = self._numbers.allocate(issue_date)

        dispatch = VoucherEvent(
            event_id=generate_event_id(voucher_no, 1, self._policy.event_serial_width),
            event_type=EventType.DISPATCH,
            timestamp=now,
            details=DispatchDetails(
                sender_id=created_by,
                receiver_id=receiver_id,
                quantity_dispatched=item_details.initial_quantity,
                job_work=job_work,
                transport=transport,
            ),
            user_id=created_by,
            comment=comment,
        )
        voucher = self._synced(Voucher(
            voucher_no=voucher_no,
            created_at=issue_date,
            created_by_user_id=created_by,
            item_details=item_details,
            events=(dispatch,),
        ))

        fy = self._numbers.financial_year(issue_date)
        row = VoucherModel.from_domain(voucher, fy.code)
        savepoint = self.session.begin_nested()
        try:
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateVoucherNumberError(voucher_no) from None

        created = row.to_domain()
        with LogContext.bind(voucher_id=created.id, actor_id=created_by):
            logger.info("voucher_created", extra={
                "voucher_no": voucher_no,
                "financial_year": fy.code,
                "initial_quantity": item_details.initial_quantity,
                "receiver_id": receiver_id,
            })
        self._publish(created)
        return created

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def append_event(
        self,
        voucher_ref: str | UUID,
        event_type: EventType,
        details: EventDetails,
        *,
        user_id: str,
        comment: str = "",
        parent_event_id: str | None = None,
        timestamp: datetime | None = None,
        enforce_forward_limit: bool = True,
    ) -> Voucher:
        """
        Append a receive or forward (or further dispatch) event.

        With ``enforce_forward_limit`` a forward is rejected when the
        sender does not hold ``quantity_forwarded + damaged_after_job``
        pieces.  The ledger itself never rejects; this check lives here.
        """
        row = self._lock(voucher_ref)
        voucher = row.to_domain()
        self._ensure_open(voucher)

        if parent_event_id is not None and voucher.get_event(parent_event_id) is None:
            raise InvalidEventError(f"unknown parent event {parent_event_id}")

        serial = next_event_serial(e.event_id for e in voucher.events)
        event = VoucherEvent(
            event_id=generate_event_id(voucher.voucher_no, serial, self._policy.event_serial_width),
            event_type=event_type,
            timestamp=timestamp or self._clock.now(),
            details=details,
            user_id=user_id,
            comment=comment,
            parent_event_id=parent_event_id,
        )
        if voucher.get_event(event.event_id) is not None:
            raise DuplicateEventIdError(voucher.voucher_no, event.event_id)

        if enforce_forward_limit and isinstance(details, ForwardDetails):
            self._check_forward(voucher, event)

        with LogContext.bind(voucher_id=voucher.id, event_id=event.event_id, actor_id=user_id):
            saved = self._save(row, replace(voucher, events=voucher.events + (event,)))
            logger.info("voucher_event_appended", extra={
                "voucher_no": voucher.voucher_no,
                "event_type": event_type.value,
                "voucher_status": saved.voucher_status.value,
            })
        return saved

    def _check_forward(self, voucher: Voucher, event: VoucherEvent) -> None:
        sender = event.details.sender_id or event.user_id
        if not sender:
            raise InvalidEventError("forward has no sender", event_id=event.event_id)
        available = forwardable_quantity(sender, sort_events(voucher.events))
        requested = forward_demand(event)
        if requested > available:
            logger.warning("voucher_forward_rejected", extra={
                "voucher_no": voucher.voucher_no,
                "sender_id": sender,
                "requested": requested,
                "available": available,
            })
            raise ForwardQuantityExceededError(voucher.voucher_no, sender, requested, available)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def mark_completed(
        self,
        voucher_ref: str | UUID,
        *,
        actor_id: str,
        force: bool = False,
        reason: str | None = None,
    ) -> tuple[Voucher, CompletionDecision]:
        """
        Set the completion marker.

        Raises:
            VoucherAlreadyCompletedError: if already completed.
            VoucherNotCompletableError: if analysis fails and ``force`` is off.
        """
        row = self._lock(voucher_ref)
        voucher = row.to_domain()
        self._ensure_open(voucher)

        decision = plan_manual_completion(voucher, self._policy.admin_receiver_ids, force, reason)
        if not decision.can_complete:
            raise VoucherNotCompletableError(voucher.voucher_no, decision.comment)

        completed = replace(
            voucher,
            completed_at=self._clock.now(),
            completed_by=actor_id,
            completion_comment=decision.comment,
        )
        with LogContext.bind(voucher_id=voucher.id, actor_id=actor_id):
            saved = self._save(row, completed)
            logger.info("voucher_completed", extra={
                "voucher_no": voucher.voucher_no,
                "forced": force and not decision.analysis.is_complete,
            })
        return saved, decision

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update_item_details(self, voucher_ref: str | UUID, item_details: ItemDetails) -> Voucher:
        row = self._lock(voucher_ref)
        voucher = row.to_domain()
        self._ensure_open(voucher)
        with LogContext.bind(voucher_id=voucher.id):
            saved = self._save(row, replace(voucher, item_details=item_details))
            logger.info("voucher_item_details_updated", extra={
                "voucher_no": voucher.voucher_no,
                "initial_quantity": item_details.initial_quantity,
            })
        return saved

    def resync(self, voucher_ref: str | UUID) -> Voucher:
        """Rewrite the cached status and totals from the fold."""
        row = self._lock(voucher_ref)
        voucher = row.to_domain()
        with LogContext.bind(voucher_id=voucher.id):
            saved = self._save(row, voucher)
            logger.info("voucher_cache_resynced", extra={"voucher_no": voucher.voucher_no})
        return saved

    def delete_voucher(self, voucher_ref: str | UUID) -> None:
        """Delete a voucher.  Its number is not reissued; payments are kept."""
        row = self._lock(voucher_ref)
        voucher_no = row.voucher_no
        self.session.delete(row)
        self.session.flush()
        logger.info("voucher_deleted", extra={"voucher_no": voucher_no})
