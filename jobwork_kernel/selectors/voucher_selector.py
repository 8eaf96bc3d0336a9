"""
VoucherSelector -- read access to vouchers as frozen domain objects.

Vendor lookups scan the event documents in Python: events are stored as
JSON, and a vendor appears in them either as a sender or a receiver.
"""

from uuid import UUID

from sqlalchemy import select

from jobwork_kernel.domain.voucher import Voucher
from jobwork_kernel.exceptions import VoucherNotFoundError
from jobwork_kernel.models.voucher import VoucherModel
from jobwork_kernel.selectors.base import BaseSelector


class VoucherSelector(BaseSelector[VoucherModel]):

    def _row(self, voucher_id: str | UUID) -> VoucherModel | None:
        row_id = self._as_uuid(voucher_id)
        if row_id is None:
            return None
        return self.session.get(VoucherModel, row_id)

    def get(self, voucher_id: str | UUID) -> Voucher | None:
        row = self._row(voucher_id)
        return row.to_domain() if row is not None else None

    def get_by_number(self, voucher_no: str) -> Voucher | None:
        row = self.session.execute(
            select(VoucherModel).where(VoucherModel.voucher_no == voucher_no)
        ).scalar_one_or_none()
        return row.to_domain() if row is not None else None

    def require(self, voucher_ref: str | UUID) -> Voucher:
        """
        Fetch by id, falling back to voucher number.

        Raises:
            VoucherNotFoundError: if neither matches.
        """
        voucher = self.get(voucher_ref) or self.get_by_number(str(voucher_ref))
        if voucher is None:
            raise VoucherNotFoundError(str(voucher_ref))
        return voucher

    def list_all(self) -> list[Voucher]:
        rows = self.session.execute(
            select(VoucherModel).order_by(VoucherModel.voucher_date, VoucherModel.voucher_no)
        ).scalars()
        return [row.to_domain() for row in rows]

    def list_by_financial_year(self, financial_year_code: str) -> list[Voucher]:
        rows = self.session.execute(
            select(VoucherModel)
            .where(VoucherModel.financial_year == financial_year_code)
            .order_by(VoucherModel.voucher_no)
        ).scalars()
        return [row.to_domain() for row in rows]

    def numbers_in_financial_year(self, financial_year_code: str) -> list[str]:
        return list(self.session.execute(
            select(VoucherModel.voucher_no)
            .where(VoucherModel.financial_year == financial_year_code)
        ).scalars())

    def list_for_vendor(self, vendor_id: str) -> list[Voucher]:
        """Vouchers with any event sent by or addressed to ``vendor_id``."""
        return [
            voucher for voucher in self.list_all()
            if any(vendor_id in (e.sender_id, e.receiver_id) for e in voucher.events)
        ]
