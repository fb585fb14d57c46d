"""
backoffice_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables.

Architecture position:
    Configuration -- sits above ``backoffice_kernel``.  The kernel MUST
    NEVER import from ``backoffice_config``; ``bridges`` translates the
    parsed configuration into kernel policy objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - The returned ``BackofficeConfig`` is frozen and has passed the
      loader's validation.
    - The signing secret may be supplied through ``BACKOFFICE_SECRET_KEY``
      so it does not have to live in the YAML set.

Failure modes:
    - ``FileNotFoundError`` -- configuration set not found.
    - ``ValueError`` / ``KeyError`` -- invalid or incomplete configuration.

Audit relevance:
    Every successful call emits a ``BACKOFFICE_CONFIG_TRACE`` log entry
    with the config id, version and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from backoffice_config.loader import load_yaml_file, parse_config
from backoffice_config.schema import BackofficeConfig

_logger = logging.getLogger("backoffice_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

SECRET_KEY_ENV = "BACKOFFICE_SECRET_KEY"


def get_active_config(config_path: Path | None = None) -> BackofficeConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration set file.
            Defaults to backoffice_config/sets/default.yaml.

    Returns:
        BackofficeConfig -- frozen, validated settings.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If validation fails.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)

    secret = os.environ.get(SECRET_KEY_ENV)
    if secret:
        data.setdefault("auth", {})["secret_key"] = secret

    config = parse_config(data)

    _logger.info(
        "BACKOFFICE_CONFIG_TRACE",
        extra={
            "trace_type": "BACKOFFICE_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
        },
    )
    return config


__all__ = ["BackofficeConfig", "SECRET_KEY_ENV", "get_active_config"]
