"""Translate the active configuration into kernel inputs."""

from __future__ import annotations

from jobwork_config.schema import JobWorkConfig
from jobwork_kernel.domain.policy import VoucherPolicy


def to_voucher_policy(config: JobWorkConfig) -> VoucherPolicy:
    return VoucherPolicy(
        voucher_prefix=config.voucher_prefix,
        voucher_sequence_width=config.voucher_sequence_width,
        event_serial_width=config.event_serial_width,
        financial_year_start_month=config.financial_year_start_month,
        admin_receiver_ids=config.admin_receiver_ids,
    )
