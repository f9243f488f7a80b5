"""
stock_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``StockConfig``.

Architecture position:
    Configuration -- sits above ``stock_kernel`` and below
    ``stock_services``.  The kernel MUST NEVER import from ``stock_config``;
    the facade passes plain values down.

Resolution order (later wins):
    1. ``stock_config/sets/default.yaml`` (packaged)
    2. ``path`` argument, else the file named by ``STOCK_RECON_CONFIG``

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- unknown key, wrong type, non-positive size/timeout.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from stock_config.loader import (
    compute_checksum,
    load_yaml_file,
    merge_layers,
    parse_config,
)
from stock_config.schema import StockConfig

_logger = logging.getLogger("stock_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_ENV_VAR = "STOCK_RECON_CONFIG"


def get_active_config(path: Path | str | None = None) -> StockConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional YAML file overlaid on the packaged defaults.  When
            omitted, ``$STOCK_RECON_CONFIG`` is used if set.

    Returns:
        Validated, frozen ``StockConfig``.
    """
    layers = [load_yaml_file(_DEFAULT_CONFIG_FILE)]

    override = path if path is not None else os.environ.get(CONFIG_ENV_VAR)
    if override:
        layers.append(load_yaml_file(Path(override)))

    config = parse_config(merge_layers(*layers))

    _logger.info(
        "stock_config_loaded",
        extra={
            "checksum": compute_checksum(config),
            "override": str(override) if override else None,
            "database_backend": config.database_url.split(":", 1)[0],
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "StockConfig",
    "compute_checksum",
    "get_active_config",
]
