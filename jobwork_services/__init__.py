"""
Application services: writes and derived views over the kernel.

Services compose kernel models and selectors with the pure engines in
``jobwork_engines``.  They flush and never commit.
"""

from jobwork_services.change_feed import Subscription, VoucherChangeFeed
from jobwork_services.payment_service import PaymentService
from jobwork_services.views import DerivedVoucherView, VoucherViewService, build_derived_view
from jobwork_services.voucher_service import VoucherService

__all__ = [
    "DerivedVoucherView",
    "PaymentService",
    "Subscription",
    "VoucherChangeFeed",
    "VoucherService",
    "VoucherViewService",
    "build_derived_view",
]
