"""PaymentSelector -- read access to payments as frozen domain objects."""

from collections.abc import Iterable

from sqlalchemy import select

from jobwork_kernel.domain.payments import Payment
from jobwork_kernel.models.payment import PaymentModel
from jobwork_kernel.selectors.base import BaseSelector


class PaymentSelector(BaseSelector[PaymentModel]):

    def _list(self, *criteria) -> list[Payment]:
        rows = self.session.execute(
            select(PaymentModel)
            .where(*criteria)
            .order_by(PaymentModel.payment_date, PaymentModel.created_at)
        ).scalars()
        return [row.to_domain() for row in rows]

    def get(self, payment_id: str) -> Payment | None:
        row_id = self._as_uuid(payment_id)
        row = self.session.get(PaymentModel, row_id) if row_id is not None else None
        return row.to_domain() if row is not None else None

    def for_voucher(self, voucher_id: str) -> list[Payment]:
        return self._list(PaymentModel.voucher_id == voucher_id)

    def for_vouchers(self, voucher_ids: Iterable[str]) -> list[Payment]:
        ids = list(voucher_ids)
        if not ids:
            return []
        return self._list(PaymentModel.voucher_id.in_(ids))

    def for_vendor(self, vendor_id: str) -> list[Payment]:
        return self._list(PaymentModel.vendor_id == vendor_id)

    def for_forward_event(self, forward_event_id: str) -> list[Payment]:
        return self._list(PaymentModel.forward_event_id == forward_event_id)
