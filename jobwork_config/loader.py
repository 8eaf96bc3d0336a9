"""
Configuration loader (``jobwork_config.loader``).

Responsibility
--------------
Reads YAML documents, merges an optional overlay onto the packaged
defaults, and parses the result into a validated ``JobWorkConfig``.
Runtime callers use ``jobwork_config.get_active_config()`` instead.

Failure modes
-------------
* Missing overlay file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid value  -> ``InvalidConfigError`` naming the offending key.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from jobwork_config.schema import JobWorkConfig
from jobwork_kernel.exceptions import InvalidConfigError

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        InvalidConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), "top level must be a mapping")
    return data


def merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively overlay ``overlay`` onto ``base``; lists and scalars replace."""
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise InvalidConfigError(key, "must be a mapping")
    return value


def _positive_int(value: Any, key: str, maximum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigError(key, f"must be an integer, got {value!r}")
    if value < 1 or (maximum is not None and value > maximum):
        bound = f"1-{maximum}" if maximum is not None else ">= 1"
        raise InvalidConfigError(key, f"must be {bound}, got {value}")
    return value


def _text(value: Any, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfigError(key, "must be a non-empty string")
    return value.strip()


def parse_config(data: Mapping[str, Any], source: str = "") -> JobWorkConfig:
    """
    Parse a merged configuration document.

    Raises:
        InvalidConfigError: if any value is missing or out of range.
    """
    voucher = _section(data, "voucher")
    fy = _section(data, "financial_year")

    admins = data.get("admin_receiver_ids")
    if isinstance(admins, str):
        admins = [admins]
    if not isinstance(admins, list) or not admins:
        raise InvalidConfigError("admin_receiver_ids", "must be a non-empty list")
    admin_ids = tuple(_text(a, "admin_receiver_ids") for a in admins)

    log_level = _text(data.get("log_level", "INFO"), "log_level").upper()
    if log_level not in _LOG_LEVELS:
        raise InvalidConfigError("log_level", f"unknown level {log_level!r}")

    prefix = _text(voucher.get("prefix"), "voucher.prefix")
    if not prefix.isalnum():
        raise InvalidConfigError("voucher.prefix", f"must be alphanumeric, got {prefix!r}")

    return JobWorkConfig(
        voucher_prefix=prefix,
        voucher_sequence_width=_positive_int(voucher.get("sequence_width"), "voucher.sequence_width", 9),
        event_serial_width=_positive_int(voucher.get("event_serial_width"), "voucher.event_serial_width", 9),
        financial_year_start_month=_positive_int(fy.get("start_month"), "financial_year.start_month", 12),
        admin_receiver_ids=admin_ids,
        database_url=_text(data.get("database_url"), "database_url"),
        log_level=log_level,
        checksum=compute_checksum(dict(data)),
        source=source,
    )
