"""
docpost_config -- single public entrypoint for pipeline configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Sits above ``docpost_kernel``.  The kernel MUST NEVER import from
    ``docpost_config``; ``bridges`` translates the config into the kernel's
    own settings types.

Failure modes:
    - ``FileNotFoundError`` -- the configured YAML file does not exist.
    - ``ValueError`` -- malformed values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from docpost_config.loader import load_config
from docpost_config.schema import DocpostConfig

_logger = logging.getLogger("docpost.config")

CONFIG_ENV_VAR = "DOCPOST_CONFIG"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> DocpostConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then ``$DOCPOST_CONFIG``, then the
    shipped ``defaults.yaml``.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_PATH
    path = Path(path)

    config = load_config(path)

    _logger.info(
        "config_loaded",
        extra={
            "config_path": str(path),
            "currency": config.currency.code,
            "tax_mode": config.tax.mode,
            "warehouse_count": len(config.warehouses),
        },
    )
    return config


__all__ = ["DocpostConfig", "get_active_config"]
