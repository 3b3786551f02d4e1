"""
savings_config -- single public entrypoint for protocol configuration.

Responsibility:
    Provides the one way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned frozen
    ``ProtocolConfig``; they never read files or environment variables.

Invariants enforced:
    - Validation: every problem found by ``validate_protocol_config`` is
      reported together before a config is handed out.
    - Deterministic identity: the same YAML always yields the same
      checksum, logged on every load.

Failure modes:
    - ``FileNotFoundError`` -- explicit path does not exist.
    - ``ValueError`` -- unknown keys in the YAML.
    - ``InvalidInputError`` -- values outside their allowed ranges.
"""

from __future__ import annotations

import logging
from pathlib import Path

from savings_config.loader import config_checksum, load_protocol_config
from savings_config.schema import ProtocolConfig, ResourceCosts
from savings_config.validator import validate_protocol_config
from savings_kernel.exceptions import InvalidInputError

_logger = logging.getLogger("savings_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def ensure_valid(config: ProtocolConfig) -> ProtocolConfig:
    """Return ``config`` or raise InvalidInputError listing every problem."""
    errors = validate_protocol_config(config)
    if errors:
        raise InvalidInputError("config", config.name, "; ".join(errors))
    return config


def get_active_config(path: Path | None = None) -> ProtocolConfig:
    """Load, validate and return the protocol configuration.

    Args:
        path: YAML file to load.  Defaults to the packaged defaults.yaml.
    """
    source = path or DEFAULT_CONFIG_PATH
    config = ensure_valid(load_protocol_config(source))

    _logger.info(
        "config_loaded",
        extra={
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config_checksum(config),
            "source": str(source),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ProtocolConfig",
    "ResourceCosts",
    "ensure_valid",
    "get_active_config",
]
