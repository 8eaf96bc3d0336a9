"""
Payment -- money paid to a vendor for a unit of forwarded work.

Payments are created once and only aggregated afterwards.  Several
payments may exist for one forward event (partial payments).  Records
written before per-event keying carry no ``forward_event_id`` and are
matched by voucher, vendor and job work instead.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from jobwork_kernel.domain.events import read_count, read_decimal
from jobwork_kernel.exceptions import InvalidPaymentError
from jobwork_kernel.logging_config import get_logger

logger = get_logger("domain.payments")


def _money(value: Any) -> Decimal:
    amount = read_decimal(value)
    if amount is None:
        if value is not None and value != "":
            logger.debug("payment_amount_unreadable", extra={"raw_value": str(value)})
        return Decimal("0")
    return amount


def _payment_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


@dataclass(frozen=True, slots=True)
class Payment:
    """One payment record, as stored."""

    id: str
    voucher_id: str
    vendor_id: str | None
    amount_paid: Decimal
    job_work_done: str | None = None
    vendor_name: str = ""
    vendor_code: str = ""
    price_per_piece: Decimal = Decimal("0")
    net_qty: int = 0
    total_amount: Decimal = Decimal("0")
    payment_date: date | None = None
    forward_event_id: str | None = None

    @property
    def is_legacy(self) -> bool:
        """Recorded before payments were keyed to a forward event."""
        return self.forward_event_id is None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Payment:
        """Build a payment from its document-store record (camelCase keys)."""
        if not isinstance(data, Mapping):
            raise InvalidPaymentError(f"payment record must be a mapping, got {type(data).__name__}")
        return cls(
            id=str(data.get("id") or ""),
            voucher_id=str(data.get("voucherId") or ""),
            vendor_id=data.get("vendorId") or None,
            amount_paid=_money(data.get("amountPaid")),
            job_work_done=data.get("jobWorkDone") or None,
            vendor_name=str(data.get("vendorName") or ""),
            vendor_code=str(data.get("vendorCode") or ""),
            price_per_piece=_money(data.get("pricePerPiece")),
            net_qty=read_count(data.get("netQty")),
            total_amount=_money(data.get("totalAmount")),
            payment_date=_payment_date(data.get("paymentDate")),
            forward_event_id=data.get("forwardEventId") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "voucherId": self.voucher_id,
            "vendorId": self.vendor_id,
            "vendorName": self.vendor_name,
            "vendorCode": self.vendor_code,
            "jobWorkDone": self.job_work_done,
            "pricePerPiece": str(self.price_per_piece),
            "netQty": self.net_qty,
            "totalAmount": str(self.total_amount),
            "amountPaid": str(self.amount_paid),
            "paymentDate": self.payment_date.isoformat() if self.payment_date else None,
        }
        if self.forward_event_id is not None:
            data["forwardEventId"] = self.forward_event_id
        return data
