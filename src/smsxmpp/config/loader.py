"""Config loading: YAML file or directory of files, resolved to one dict."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from smsxmpp.config.directory import load_config_directory
from smsxmpp.core.errors import GatewayConfigurationError


def load_config(path: str | Path) -> dict[str, Any]:
    """Load config from YAML file. Use SafeLoader. Returns raw dict."""
    path = Path(path)
    if not path.exists():
        raise GatewayConfigurationError(f"Config file not found: {path}", code="not_found", details={"path": str(path)})

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse config {}: {}", path, exc)
        raise GatewayConfigurationError(
            f"Failed to parse config {path}: {exc}",
            code="parse_error",
            details={"path": str(path)},
            original_error=exc,
        ) from exc
    if not isinstance(data, dict):
        raise GatewayConfigurationError(
            f"Config file {path} has invalid structure (expected mapping)",
            code="invalid_structure",
            details={"path": str(path), "type": type(data).__name__},
        )
    return data


def load_config_with_env(path: str | Path) -> dict[str, Any]:
    """Load .env into the environment, then the YAML file or config directory at path."""
    from dotenv import load_dotenv

    load_dotenv()
    path = Path(path)
    if path.is_dir():
        logger.debug("Loading config directory {}", path)
        return load_config_directory(path)
    return load_config(path)
