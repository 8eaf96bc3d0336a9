"""
Derived voucher views.

Responsibility:
    Folds a voucher and its payments into the record the presentation
    layer shows: status, quantities, damage, the payments split into
    needed / completed, plus everything the fold could not attribute.

Architecture position:
    Services -- imperative shell.  ``build_derived_view`` is pure; the
    ``VoucherViewService`` wrapper fetches through selectors and logs.

Invariants enforced:
    - The fold is authoritative.  Stored status and totals are compared
      against it and every disagreement is reported and logged, never
      trusted.
    - The voucher view and the vendor account reconcile through the same
      engine call, so their payment figures agree.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from jobwork_kernel.domain.payments import Payment
from jobwork_kernel.domain.policy import VoucherPolicy
from jobwork_kernel.domain.voucher import Voucher, VoucherStatus
from jobwork_kernel.logging_config import LogContext, get_logger
from jobwork_kernel.selectors.payment_selector import PaymentSelector
from jobwork_kernel.selectors.voucher_selector import VoucherSelector
from jobwork_engines.ledger import (
    DEFAULT_ADMIN_IDS,
    CacheDivergence,
    DamageTotals,
    ForwardViolation,
    current_available_quantity,
    derive_status,
    find_cache_divergences,
    find_overforwarded_events,
    sort_events,
    total_damage,
    total_quantity_forwarded,
    total_quantity_received,
)
from jobwork_engines.payment_types import PaymentStatus, SkippedEvent, UnattributedPayment
from jobwork_engines.payments import VendorAccount, partition, reconcile, vendor_account, voucher_key

logger = get_logger("services.views")


@dataclass(frozen=True, slots=True)
class DerivedVoucherView:
    """Everything the voucher detail screen shows, computed from raw data."""

    voucher_id: str
    voucher_no: str
    status: VoucherStatus
    available_quantity: int
    total_received: int
    total_forwarded: int
    damage: DamageTotals
    payments_needed: tuple[PaymentStatus, ...]
    payments_completed: tuple[PaymentStatus, ...]
    skipped_events: tuple[SkippedEvent, ...] = ()
    unattributed_payments: tuple[UnattributedPayment, ...] = ()
    cache_divergences: tuple[CacheDivergence, ...] = ()
    forward_violations: tuple[ForwardViolation, ...] = ()

    @property
    def has_stale_cache(self) -> bool:
        return bool(self.cache_divergences)


def build_derived_view(
    voucher: Voucher,
    payments: Iterable[Payment],
    admin_ids: Iterable[str] = DEFAULT_ADMIN_IDS,
) -> DerivedVoucherView:
    """Fold ``voucher`` and ``payments`` into a DerivedVoucherView."""
    admin_ids = tuple(admin_ids)
    events = sort_events(voucher.events)
    key = voucher_key(voucher)

    result = reconcile(key, events, payments)
    needed, completed = partition(result.statuses)

    return DerivedVoucherView(
        voucher_id=key,
        voucher_no=voucher.voucher_no,
        status=derive_status(voucher, events),
        available_quantity=current_available_quantity(voucher),
        total_received=total_quantity_received(events),
        total_forwarded=total_quantity_forwarded(events),
        damage=total_damage(events),
        payments_needed=needed,
        payments_completed=completed,
        skipped_events=result.skipped_events,
        unattributed_payments=result.unattributed_payments,
        cache_divergences=find_cache_divergences(voucher, admin_ids),
        forward_violations=find_overforwarded_events(events),
    )


class VoucherViewService:
    """
    Read-side entry point: fetch raw data, fold it, flag stale caches.

    Never writes.  Correcting a stale cache is VoucherService.resync().
    """

    def __init__(self, session: Session, policy: VoucherPolicy | None = None):
        self._policy = policy or VoucherPolicy()
        self._vouchers = VoucherSelector(session)
        self._payments = PaymentSelector(session)

    def view(self, voucher_ref: str) -> DerivedVoucherView:
        """
        Derived view of one voucher, by id or voucher number.

        Raises:
            VoucherNotFoundError: if the voucher does not exist.
        """
        voucher = self._vouchers.require(voucher_ref)
        with LogContext.bind(voucher_id=voucher_key(voucher)):
            view = build_derived_view(
                voucher,
                self._payments.for_voucher(voucher_key(voucher)),
                self._policy.admin_receiver_ids,
            )
            log_divergences(view)
        return view

    def vendor_account(self, vendor_id: str) -> VendorAccount:
        with LogContext.bind(vendor_id=vendor_id):
            vouchers = self._vouchers.list_for_vendor(vendor_id)
            payments = self._payments.for_vouchers(voucher_key(v) for v in vouchers)
            account = vendor_account(vendor_id, vouchers, payments)
            logger.debug("vendor_account_built", extra={
                "voucher_count": len(vouchers),
                "transaction_count": len(account.transactions),
                "total_pending": str(account.total_pending),
            })
        return account


def log_divergences(view: DerivedVoucherView) -> None:
    for divergence in view.cache_divergences:
        logger.warning("voucher_cache_divergence", extra={
            "voucher_no": view.voucher_no,
            "field": divergence.field,
            "stored": divergence.stored,
            "derived": divergence.derived,
        })
    for violation in view.forward_violations:
        logger.warning("voucher_forward_exceeds_available", extra={
            "voucher_no": view.voucher_no,
            "event_id": violation.event_id,
            "sender_id": violation.sender_id,
            "quantity_forwarded": violation.quantity_forwarded,
            "requested": violation.requested,
            "available": violation.available,
        })
