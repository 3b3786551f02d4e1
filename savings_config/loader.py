"""
Configuration Loader (``savings_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into a ``ProtocolConfig``.  This is
tooling behind ``savings_config.get_active_config()``; services receive
the parsed dataclass and never read files themselves.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys  -> ``ValueError`` naming them (typos must not silently
  fall back to defaults).
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

import yaml

from savings_config.schema import ProtocolConfig, ResourceCosts


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _reject_unknown(section: str, data: dict[str, Any], known: set[str]) -> None:
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in {section}: {unknown}")


def parse_resource_costs(data: dict[str, Any]) -> ResourceCosts:
    """Parse the ``costs`` mapping."""
    _reject_unknown("costs", data, {f.name for f in fields(ResourceCosts)})
    return ResourceCosts(**data)


def parse_protocol_config(data: dict[str, Any]) -> ProtocolConfig:
    """
    Parse a ``ProtocolConfig`` from a dict.

    Accepts either the bare mapping or one nested under a ``protocol`` key.
    Missing keys take the dataclass defaults.
    """
    if "protocol" in data:
        data = data["protocol"] or {}

    known = {f.name for f in fields(ProtocolConfig)}
    _reject_unknown("protocol", data, known)

    kwargs = dict(data)
    if "costs" in kwargs:
        kwargs["costs"] = parse_resource_costs(kwargs["costs"] or {})
    return ProtocolConfig(**kwargs)


def load_protocol_config(path: Path) -> ProtocolConfig:
    """Load and parse a protocol configuration file."""
    return parse_protocol_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def config_checksum(config: ProtocolConfig) -> str:
    """Checksum of a parsed configuration."""
    return compute_checksum(asdict(config))
