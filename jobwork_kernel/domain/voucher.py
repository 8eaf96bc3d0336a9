"""
Voucher -- one job-work batch and its embedded event history.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

The ``total_*`` fields and ``voucher_status`` stored on a voucher record are
a read-through cache of what folding ``events`` produces.  The fold in
``jobwork_engines.ledger`` is authoritative; the cache is only trusted for
coarse list displays.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from jobwork_kernel.domain.events import (
    VoucherEvent,
    parse_events,
    parse_timestamp,
    read_count,
    read_decimal,
)
from jobwork_kernel.exceptions import InvalidEventError


class VoucherStatus(str, Enum):
    """Lifecycle stage of a voucher, ordered Dispatched < ... < Completed."""

    DISPATCHED = "Dispatched"
    RECEIVED = "Received"
    FORWARDED = "Forwarded"
    COMPLETED = "Completed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    VoucherStatus.DISPATCHED: 0,
    VoucherStatus.RECEIVED: 1,
    VoucherStatus.FORWARDED: 2,
    VoucherStatus.COMPLETED: 3,
}


@dataclass(frozen=True, slots=True)
class ItemDetails:
    """What was sent out: item, photos, piece count and supplier cost."""

    item_name: str
    initial_quantity: int
    supplier_name: str = ""
    supplier_price_per_piece: Decimal = Decimal("0")
    images: tuple[str, ...] = ()

    @property
    def supplier_total_cost(self) -> Decimal:
        return self.supplier_price_per_piece * self.initial_quantity

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ItemDetails:
        data = data or {}
        return cls(
            item_name=str(data.get("item_name") or ""),
            initial_quantity=read_count(data.get("initial_quantity")),
            supplier_name=str(data.get("supplier_name") or ""),
            supplier_price_per_piece=read_decimal(data.get("supplier_price_per_piece")) or Decimal("0"),
            images=tuple(str(i) for i in data.get("images") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_name": self.item_name,
            "images": list(self.images),
            "initial_quantity": self.initial_quantity,
            "supplier_name": self.supplier_name,
            "supplier_price_per_piece": str(self.supplier_price_per_piece),
        }


@dataclass(frozen=True, slots=True)
class CachedTotals:
    """Running totals stored alongside a voucher for list views."""

    total_dispatched: int = 0
    total_received: int = 0
    total_forwarded: int = 0
    total_missing_on_arrival: int = 0
    total_damaged_on_arrival: int = 0
    total_damaged_after_work: int = 0
    admin_received_quantity: int = 0

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CachedTotals:
        return cls(**{name: read_count(data.get(name)) for name in cls.field_names()})

    def to_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in self.field_names()}


@dataclass(frozen=True, slots=True)
class Voucher:
    """
    A tracked batch of goods moving through job-work stages.

    ``completed_at`` is the externally-set completion marker: an admin
    closes the voucher after receiving the final forwarded goods back.
    """

    voucher_no: str
    created_at: date
    created_by_user_id: str
    item_details: ItemDetails
    events: tuple[VoucherEvent, ...] = ()
    voucher_status: VoucherStatus = VoucherStatus.DISPATCHED
    totals: CachedTotals = field(default_factory=CachedTotals)
    id: str | None = None
    completed_at: datetime | None = None
    completed_by: str | None = None
    completion_comment: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def initial_quantity(self) -> int:
        return self.item_details.initial_quantity

    def get_event(self, event_id: str) -> VoucherEvent | None:
        for event in self.events:
            if event.event_id == event_id:
                return event
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Voucher:
        """
        Build a voucher from its document-store record.

        Legacy records that carry ``voucher_status == "Completed"`` but no
        completion timestamp are read as completed at ``updatedAt`` (or the
        latest event time).

        Raises:
            InvalidEventError: if ``events`` is structurally invalid.
        """
        if not isinstance(data, Mapping):
            raise InvalidEventError(f"voucher record must be a mapping, got {type(data).__name__}")

        events = parse_events(data.get("events"))
        try:
            status = VoucherStatus(data.get("voucher_status") or VoucherStatus.DISPATCHED.value)
        except ValueError:
            status = VoucherStatus.DISPATCHED

        completed_at = _optional_timestamp(data.get("completed_at"))
        if completed_at is None and status == VoucherStatus.COMPLETED:
            completed_at = _optional_timestamp(data.get("updatedAt"))
            if completed_at is None and events:
                completed_at = max(e.timestamp for e in events)

        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            voucher_no=str(data.get("voucher_no") or ""),
            created_at=_business_date(data.get("created_at")),
            created_by_user_id=str(data.get("created_by_user_id") or ""),
            item_details=ItemDetails.from_dict(data.get("item_details")),
            events=events,
            voucher_status=status,
            totals=CachedTotals.from_dict(data),
            completed_at=completed_at,
            completed_by=data.get("completed_by"),
            completion_comment=data.get("completion_comment"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "voucher_no": self.voucher_no,
            "voucher_status": self.voucher_status.value,
            "created_at": self.created_at.isoformat(),
            "created_by_user_id": self.created_by_user_id,
            "item_details": self.item_details.to_dict(),
            "events": [e.to_dict() for e in self.events],
            **self.totals.to_dict(),
        }
        if self.id is not None:
            data["id"] = self.id
        if self.completed_at is not None:
            data["completed_at"] = self.completed_at.isoformat()
            data["completed_by"] = self.completed_by
            data["completion_comment"] = self.completion_comment
        return data


def _optional_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return parse_timestamp(value)
    except InvalidEventError:
        return None


def _business_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return date.min
    return date.min
