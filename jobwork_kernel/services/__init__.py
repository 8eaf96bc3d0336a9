"""Kernel write services.  Flush only; the caller owns the transaction."""

from jobwork_kernel.services.base import BaseService
from jobwork_kernel.services.voucher_number_service import VoucherNumberService

__all__ = ["BaseService", "VoucherNumberService"]
