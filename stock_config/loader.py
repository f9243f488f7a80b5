"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Reads YAML configuration files, merges them over the packaged defaults and
parses the result into a validated ``StockConfig``.  Runtime callers go
through ``stock_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, wrong type or non-positive size/timeout  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import StockConfig

_POSITIVE_NUMBERS = (
    "summary_cache_ttl_seconds",
    "summary_batch_size",
    "summary_item_timeout_seconds",
    "store_timeout_seconds",
)
_STRINGS = ("database_url", "sync_key", "log_level")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def merge_layers(*layers: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge; later layers win."""
    merged: dict[str, Any] = {}
    for layer in layers:
        merged.update(layer)
    return merged


def parse_config(data: dict[str, Any]) -> StockConfig:
    """
    Validate a merged mapping and build a ``StockConfig``.

    Keys missing from ``data`` take the dataclass defaults.
    """
    unknown = sorted(set(data) - StockConfig.field_names())
    if unknown:
        raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")

    for key in _POSITIVE_NUMBERS:
        if key not in data:
            continue
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number, got {value!r}")
        if value <= 0:
            raise ValueError(f"{key} must be positive, got {value!r}")

    if "summary_batch_size" in data and not isinstance(data["summary_batch_size"], int):
        raise ValueError(
            f"summary_batch_size must be an integer, got {data['summary_batch_size']!r}"
        )

    for key in _STRINGS:
        if key in data and (not isinstance(data[key], str) or not data[key].strip()):
            raise ValueError(f"{key} must be a non-empty string, got {data[key]!r}")

    if "log_level" in data:
        level = data["log_level"].upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"log_level {data['log_level']!r} is not a logging level")
        data = {**data, "log_level": level}

    if "exclude_on_hold_orders_default" in data and not isinstance(
        data["exclude_on_hold_orders_default"], bool
    ):
        raise ValueError(
            "exclude_on_hold_orders_default must be a boolean, got "
            f"{data['exclude_on_hold_orders_default']!r}"
        )

    return StockConfig(**data)


def compute_checksum(config: StockConfig) -> str:
    """
    SHA-256 of the canonical JSON form of ``config``.

    Identical configurations always produce identical checksums.
    """
    canonical = json.dumps(config.to_dict(), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
