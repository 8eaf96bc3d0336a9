"""
jobwork_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It reads the packaged ``defaults.yaml``, overlays the file
    named in ``JOBWORK_CONFIG_FILE`` when set, applies the ``DATABASE_URL``
    override, and validates the result into a frozen ``JobWorkConfig``.

Architecture position:
    Configuration sits above ``jobwork_kernel``.  The kernel never imports
    from this package; ``jobwork_config.bridges`` translates the config
    into kernel inputs.

Audit relevance:
    Every successful call emits a ``JOBWORK_CONFIG_TRACE`` log entry with
    the checksum of the merged document, so a run can be tied back to the
    exact settings that governed it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from jobwork_config.loader import load_yaml_file, merge, parse_config
from jobwork_config.schema import JobWorkConfig

_logger = logging.getLogger("jobwork_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"
CONFIG_FILE_ENV = "JOBWORK_CONFIG_FILE"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> JobWorkConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_file: Overlay file; defaults to ``$JOBWORK_CONFIG_FILE``.
        environ: Environment to read; defaults to ``os.environ``.

    Returns:
        Validated JobWorkConfig.

    Raises:
        FileNotFoundError: if the overlay file does not exist.
        InvalidConfigError: if a merged value is invalid.
    """
    env = os.environ if environ is None else environ

    data = load_yaml_file(DEFAULTS_FILE)
    sources = [str(DEFAULTS_FILE)]

    overlay_path = config_file or (Path(env[CONFIG_FILE_ENV]) if env.get(CONFIG_FILE_ENV) else None)
    if overlay_path is not None:
        data = merge(data, load_yaml_file(overlay_path))
        sources.append(str(overlay_path))

    if env.get(DATABASE_URL_ENV):
        data = merge(data, {"database_url": env[DATABASE_URL_ENV]})
        sources.append(f"${DATABASE_URL_ENV}")

    config = parse_config(data, source=" + ".join(sources))

    _logger.info(
        "JOBWORK_CONFIG_TRACE",
        extra={
            "trace_type": "JOBWORK_CONFIG_TRACE",
            "checksum": config.checksum,
            "source": config.source,
            "voucher_prefix": config.voucher_prefix,
            "financial_year_start_month": config.financial_year_start_month,
            "admin_receiver_count": len(config.admin_receiver_ids),
        },
    )
    return config


__all__ = ["JobWorkConfig", "get_active_config"]
