"""
Configuration schema (``jobwork_config.schema``).

Frozen dataclass describing every runtime setting.  Instances are only
produced by ``jobwork_config.loader.parse_config``, which validates each
value before construction.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class JobWorkConfig:
    """Active runtime configuration."""

    voucher_prefix: str
    voucher_sequence_width: int
    event_serial_width: int
    financial_year_start_month: int
    admin_receiver_ids: tuple[str, ...]
    database_url: str
    log_level: str
    checksum: str = ""
    source: str = ""
