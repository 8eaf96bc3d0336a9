"""ORM models for the job-work kernel."""

from jobwork_kernel.models.payment import PaymentModel
from jobwork_kernel.models.voucher import VoucherModel
from jobwork_kernel.models.voucher_number_counter import VoucherNumberCounter

__all__ = [
    "PaymentModel",
    "VoucherModel",
    "VoucherNumberCounter",
]
