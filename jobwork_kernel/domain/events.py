"""
Voucher events -- the typed record of one voucher state transition.

Responsibility:
    Defines the event model consumed by the ledger engines: an event type
    enum, one frozen details variant per event kind, and conversion to and
    from the document-store record shape.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ``VoucherEvent.details`` always matches ``event_type``
      (DispatchDetails / ReceiveDetails / ForwardDetails).
    - Timestamps are timezone-aware; naive input is taken as UTC, both
      when parsed from a record and when an event is constructed directly.

Failure modes:
    - InvalidEventError for structurally invalid records: a non-mapping
      record, unknown event_type, missing event_id or unparseable timestamp.
    - Missing or malformed optional numbers never raise; they read as 0
      (quantities) or None (price, expected quantity).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

from jobwork_kernel.exceptions import InvalidEventError
from jobwork_kernel.logging_config import get_logger

logger = get_logger("domain.events")


class EventType(str, Enum):
    """Kinds of stored voucher events."""

    DISPATCH = "dispatch"
    RECEIVE = "receive"
    FORWARD = "forward"


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def read_decimal(value: Any) -> Decimal | None:
    """
    Read a stored number as a finite Decimal.

    Returns None for missing values, booleans, unparseable text and
    non-finite values (NaN, Infinity).
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def read_count(value: Any) -> int:
    """Read a piece count; missing, malformed or non-finite values count as zero."""
    number = read_decimal(value)
    return int(number) if number is not None else 0


def _quantity(value: Any) -> int:
    """Read a piece count; missing or malformed values count as zero."""
    if value is None or value == "" or isinstance(value, bool):
        return 0
    number = read_decimal(value)
    if number is None:
        logger.debug("event_quantity_unreadable", extra={"raw_value": str(value)})
        return 0
    return int(number)


def _optional_quantity(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return _quantity(value)


def _price(value: Any) -> Decimal | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    number = read_decimal(value)
    if number is None:
        logger.debug("event_price_unreadable", extra={"raw_value": str(value)})
    return number


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an event timestamp.

    Accepts datetimes, ISO-8601 strings (``Z`` suffix allowed) and
    document-store ``{"seconds": ..., "nanoseconds": ...}`` mappings.
    Naive values are taken as UTC.

    Raises:
        InvalidEventError: if the value cannot be read as a timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            raise InvalidEventError(f"unparseable timestamp {value!r}") from None
    elif isinstance(value, Mapping) and "seconds" in value:
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1_000_000_000
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    else:
        raise InvalidEventError(f"unparseable timestamp {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Detail value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Discrepancies:
    """Shortfall and damage recorded against a receive or forward."""

    missing: int = 0
    damaged_on_arrival: int = 0
    damaged_after_job: int = 0
    damage_reason: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Discrepancies:
        if not data:
            return cls()
        return cls(
            missing=_quantity(data.get("missing")),
            damaged_on_arrival=_quantity(data.get("damaged_on_arrival")),
            damaged_after_job=_quantity(data.get("damaged_after_job")),
            damage_reason=_text(data.get("damage_reason")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "missing": self.missing,
            "damaged_on_arrival": self.damaged_on_arrival,
            "damaged_after_job": self.damaged_after_job,
            "damage_reason": self.damage_reason,
        }


@dataclass(frozen=True, slots=True)
class Transport:
    """Lorry receipt (LR) details of a shipment."""

    lr_no: str = ""
    lr_date: str = ""
    transporter_name: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Transport | None:
        if not data:
            return None
        return cls(
            lr_no=str(data.get("lr_no") or ""),
            lr_date=str(data.get("lr_date") or ""),
            transporter_name=str(data.get("transporter_name") or ""),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "lr_no": self.lr_no,
            "lr_date": self.lr_date,
            "transporter_name": self.transporter_name,
        }


@dataclass(frozen=True, slots=True)
class DispatchDetails:
    """Admin sends the batch to the first vendor."""

    sender_id: str | None = None
    receiver_id: str | None = None
    quantity_dispatched: int = 0
    job_work: str | None = None
    transport: Transport | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DispatchDetails:
        return cls(
            sender_id=_text(data.get("sender_id")),
            receiver_id=_text(data.get("receiver_id")),
            quantity_dispatched=_quantity(data.get("quantity_dispatched")),
            job_work=_text(data.get("jobWork")),
            transport=Transport.from_dict(data.get("transport")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "quantity_dispatched": self.quantity_dispatched,
            "jobWork": self.job_work,
        }
        if self.transport is not None:
            data["transport"] = self.transport.to_dict()
        return data


@dataclass(frozen=True, slots=True)
class ReceiveDetails:
    """A holder acknowledges incoming goods, noting shortfall and damage."""

    receiver_id: str | None = None
    sender_id: str | None = None
    quantity_received: int = 0
    quantity_expected: int | None = None
    discrepancies: Discrepancies = field(default_factory=Discrepancies)
    is_admin_receive: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReceiveDetails:
        return cls(
            receiver_id=_text(data.get("receiver_id")),
            sender_id=_text(data.get("sender_id")),
            quantity_received=_quantity(data.get("quantity_received")),
            quantity_expected=_optional_quantity(data.get("quantity_expected")),
            discrepancies=Discrepancies.from_dict(data.get("discrepancies")),
            is_admin_receive=data.get("is_admin_receive") is True,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "receiver_id": self.receiver_id,
            "sender_id": self.sender_id,
            "quantity_received": self.quantity_received,
            "discrepancies": self.discrepancies.to_dict(),
        }
        if self.quantity_expected is not None:
            data["quantity_expected"] = self.quantity_expected
        if self.is_admin_receive:
            data["is_admin_receive"] = True
        return data


@dataclass(frozen=True, slots=True)
class ForwardDetails:
    """A vendor sends (possibly job-worked) goods onward at an agreed price."""

    sender_id: str | None = None
    receiver_id: str | None = None
    quantity_forwarded: int = 0
    quantity_before_job: int | None = None
    job_work: str | None = None
    price_per_piece: Decimal | None = None
    discrepancies: Discrepancies = field(default_factory=Discrepancies)
    transport: Transport | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ForwardDetails:
        return cls(
            sender_id=_text(data.get("sender_id")),
            receiver_id=_text(data.get("receiver_id")),
            quantity_forwarded=_quantity(data.get("quantity_forwarded")),
            quantity_before_job=_optional_quantity(data.get("quantity_before_job")),
            job_work=_text(data.get("jobWork")),
            price_per_piece=_price(data.get("price_per_piece")),
            discrepancies=Discrepancies.from_dict(data.get("discrepancies")),
            transport=Transport.from_dict(data.get("transport")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "quantity_forwarded": self.quantity_forwarded,
            "jobWork": self.job_work,
            "discrepancies": self.discrepancies.to_dict(),
        }
        if self.quantity_before_job is not None:
            data["quantity_before_job"] = self.quantity_before_job
        if self.price_per_piece is not None:
            data["price_per_piece"] = str(self.price_per_piece)
        if self.transport is not None:
            data["transport"] = self.transport.to_dict()
        return data


EventDetails = Union[DispatchDetails, ReceiveDetails, ForwardDetails]

_DETAILS_BY_TYPE: dict[EventType, type] = {
    EventType.DISPATCH: DispatchDetails,
    EventType.RECEIVE: ReceiveDetails,
    EventType.FORWARD: ForwardDetails,
}


# ---------------------------------------------------------------------------
# Event
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VoucherEvent:
    """
    One immutable, timestamped transition applied to a voucher.

    ``event_id`` is unique within its voucher (``evnt_{voucher_no}_{NNN}``).
    ``parent_event_id`` points at the event this one responds to, e.g. a
    receive answering a forward.
    """

    event_id: str
    event_type: EventType
    timestamp: datetime
    details: EventDetails
    user_id: str | None = None
    comment: str = ""
    parent_event_id: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.timestamp, datetime) and self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))
        expected = _DETAILS_BY_TYPE[self.event_type]
        if not isinstance(self.details, expected):
            raise InvalidEventError(
                f"{self.event_type.value} event carries {type(self.details).__name__}",
                event_id=self.event_id,
            )

    @property
    def is_dispatch(self) -> bool:
        return self.event_type == EventType.DISPATCH

    @property
    def is_receive(self) -> bool:
        return self.event_type == EventType.RECEIVE

    @property
    def is_forward(self) -> bool:
        return self.event_type == EventType.FORWARD

    @property
    def sender_id(self) -> str | None:
        return self.details.sender_id

    @property
    def receiver_id(self) -> str | None:
        """Receiving party; receive events recorded without one fall back to the actor."""
        if self.is_receive and self.details.receiver_id is None:
            return self.user_id
        return self.details.receiver_id

    @property
    def discrepancies(self) -> Discrepancies:
        if isinstance(self.details, DispatchDetails):
            return Discrepancies()
        return self.details.discrepancies

    @classmethod
    def from_dict(cls, data: Any) -> VoucherEvent:
        """
        Build an event from its document-store record.

        Raises:
            InvalidEventError: if the record is structurally invalid.
        """
        if not isinstance(data, Mapping):
            raise InvalidEventError(f"event record must be a mapping, got {type(data).__name__}")

        event_id = _text(data.get("event_id"))
        if event_id is None:
            raise InvalidEventError("missing event_id")

        raw_type = data.get("event_type")
        try:
            event_type = EventType(raw_type)
        except ValueError:
            raise InvalidEventError(f"unknown event_type {raw_type!r}", event_id=event_id) from None

        try:
            timestamp = parse_timestamp(data.get("timestamp"))
        except InvalidEventError as exc:
            raise InvalidEventError(exc.reason, event_id=event_id) from None

        raw_details = data.get("details") or {}
        if not isinstance(raw_details, Mapping):
            raise InvalidEventError("details must be a mapping", event_id=event_id)

        return cls(
            event_id=event_id,
            event_type=event_type,
            timestamp=timestamp,
            details=_DETAILS_BY_TYPE[event_type].from_dict(raw_details),
            user_id=_text(data.get("user_id")),
            comment=str(data.get("comment") or ""),
            parent_event_id=_text(data.get("parent_event_id")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "comment": self.comment,
            "details": self.details.to_dict(),
        }
        if self.parent_event_id is not None:
            data["parent_event_id"] = self.parent_event_id
        return data


def parse_events(records: Any) -> tuple[VoucherEvent, ...]:
    """
    Parse a voucher's ``events`` array.

    A missing array (None) reads as no events.

    Raises:
        InvalidEventError: if ``records`` is not a list or any record is
            structurally invalid.
    """
    if records is None:
        return ()
    if not isinstance(records, (list, tuple)):
        raise InvalidEventError(f"events must be a list, got {type(records).__name__}")
    return tuple(
        record if isinstance(record, VoucherEvent) else VoucherEvent.from_dict(record)
        for record in records
    )
