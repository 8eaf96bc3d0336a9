"""
Payment reconciliation value objects.

Immutable results produced by ``jobwork_engines.payments``.  Each
``PaymentStatus`` records which correlation tier supplied its paid amount
so every figure can be traced back to the payments that produced it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from jobwork_kernel.logging_config import get_logger

logger = get_logger("engines.payment_types")


class PaymentState(str, Enum):
    """Settlement state of one unit of forwarded work."""

    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"


class MatchTier(str, Enum):
    """Which lookup attributed payments to a forward event."""

    EVENT = "event"                        # payment.forward_event_id == event_id
    VENDOR_JOB_WORK = "vendor_job_work"    # fallback: voucher + vendor + job work
    VENDOR = "vendor"                      # fallback: voucher + vendor only
    NONE = "none"                          # nothing matched


class SkipReason(str, Enum):
    MISSING_VENDOR = "missing_vendor"
    MISSING_JOB_WORK = "missing_job_work"


def derive_payment_state(total_amount: Decimal, amount_paid: Decimal) -> PaymentState:
    if amount_paid == 0:
        return PaymentState.UNPAID
    if amount_paid >= total_amount:
        return PaymentState.PAID
    return PaymentState.PARTIALLY_PAID


@dataclass(frozen=True, slots=True)
class PaymentStatus:
    """Reconciled payment position of one forward event."""

    voucher_id: str
    event_id: str
    vendor_id: str
    job_work: str
    price_per_piece: Decimal
    quantity: int
    total_amount: Decimal
    amount_paid: Decimal
    pending_amount: Decimal
    status: PaymentState
    match_tier: MatchTier
    timestamp: datetime
    matched_payment_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.total_amount - self.amount_paid != self.pending_amount:
            logger.critical("payment_status_inconsistent_amounts", extra={
                "voucher_id": self.voucher_id,
                "event_id": self.event_id,
                "total_amount": str(self.total_amount),
                "amount_paid": str(self.amount_paid),
                "pending_amount": str(self.pending_amount),
            })
            raise ValueError(
                f"Pending amount {self.pending_amount} inconsistent with "
                f"total {self.total_amount} - paid {self.amount_paid}"
            )

    @property
    def is_settled(self) -> bool:
        return self.pending_amount <= 0

    @classmethod
    def from_amounts(
        cls,
        *,
        voucher_id: str,
        event_id: str,
        vendor_id: str,
        job_work: str,
        price_per_piece: Decimal,
        quantity: int,
        amount_paid: Decimal,
        match_tier: MatchTier,
        timestamp: datetime,
        matched_payment_ids: tuple[str, ...] = (),
    ) -> PaymentStatus:
        """Create a status from amounts, deriving total, pending and state."""
        total_amount = price_per_piece * quantity
        return cls(
            voucher_id=voucher_id,
            event_id=event_id,
            vendor_id=vendor_id,
            job_work=job_work,
            price_per_piece=price_per_piece,
            quantity=quantity,
            total_amount=total_amount,
            amount_paid=amount_paid,
            pending_amount=total_amount - amount_paid,
            status=derive_payment_state(total_amount, amount_paid),
            match_tier=match_tier,
            timestamp=timestamp,
            matched_payment_ids=matched_payment_ids,
        )


@dataclass(frozen=True, slots=True)
class SkippedEvent:
    """A priced forward that could not be attributed to a vendor or job."""

    voucher_id: str
    event_id: str
    reason: SkipReason


@dataclass(frozen=True, slots=True)
class UnattributedPayment:
    """A payment of the voucher that no qualifying forward event absorbed."""

    payment_id: str
    voucher_id: str
    vendor_id: str | None
    amount_paid: Decimal


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """Output of one reconciliation run."""

    statuses: tuple[PaymentStatus, ...] = ()
    skipped_events: tuple[SkippedEvent, ...] = ()
    unattributed_payments: tuple[UnattributedPayment, ...] = ()

    @property
    def total_amount(self) -> Decimal:
        return sum((s.total_amount for s in self.statuses), Decimal("0"))

    @property
    def total_paid(self) -> Decimal:
        return sum((s.amount_paid for s in self.statuses), Decimal("0"))

    @property
    def total_pending(self) -> Decimal:
        return sum((s.pending_amount for s in self.statuses if s.pending_amount > 0), Decimal("0"))

    @property
    def has_warnings(self) -> bool:
        return bool(self.skipped_events or self.unattributed_payments)
