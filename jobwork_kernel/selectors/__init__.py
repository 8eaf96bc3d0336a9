"""Read-only selectors returning frozen domain objects."""

from jobwork_kernel.selectors.base import BaseSelector
from jobwork_kernel.selectors.payment_selector import PaymentSelector
from jobwork_kernel.selectors.voucher_selector import VoucherSelector

__all__ = ["BaseSelector", "PaymentSelector", "VoucherSelector"]
