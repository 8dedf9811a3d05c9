"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./sona.yaml (working directory)
3. ~/.sona/config.yaml (user home)

Environment variables override YAML: SONA_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from src.clients.shopify import DEFAULT_API_VERSION, DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class DaemonConfig(BaseModel):
    """Configuration for the API server process."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"


class ShopifyConfig(BaseModel):
    """Shopify Admin API call settings."""

    api_version: str = DEFAULT_API_VERSION
    request_timeout_seconds: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)


class AutomationDefaultsConfig(BaseModel):
    """Automation toggles used when a merchant has no stored settings.

    Refunds stay gated unless a merchant opts in.
    """

    order_updates: bool = True
    cancel_orders: bool = True
    automatic_refunds: bool = False
    historic_inbox_access: bool = False


class SonaConfig(BaseModel):
    """Top-level configuration for the automation service."""

    daemon: DaemonConfig = DaemonConfig()
    shopify: ShopifyConfig = ShopifyConfig()
    automation_defaults: AutomationDefaultsConfig = AutomationDefaultsConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations."""
    candidates = [
        Path.cwd() / "sona.yaml",
        Path.cwd() / "sona.yml",
        Path.home() / ".sona" / "config.yaml",
        Path.home() / ".sona" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply SONA_<SECTION>_<KEY> env var overrides to config data.

    Matches section names by longest prefix so multi-word section names
    like ``automation_defaults`` are handled correctly. For example,
    ``SONA_AUTOMATION_DEFAULTS_AUTOMATIC_REFUNDS`` maps to section
    ``automation_defaults``, field ``automatic_refunds``.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    prefix = "SONA_"
    known_sections = sorted(SonaConfig.model_fields.keys(), key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if not isinstance(data.get(matched_section), dict):
            data[matched_section] = {}
        # Coerce to int, bool, or keep as string
        try:
            data[matched_section][matched_field] = int(value)
        except ValueError:
            if value.lower() in ("true", "false"):
                data[matched_section][matched_field] = value.lower() == "true"
            else:
                data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> SonaConfig | None:
    """Load configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.sona/).

    Returns:
        Parsed and validated SonaConfig, or None if no config found.

    Raises:
        FileNotFoundError: An explicit config_path does not exist.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()
        if path is None:
            return None

    logger.info("Loading config from %s", path)

    with open(path) as f:
        raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return SonaConfig(**data)


def get_config(config_path: str | None = None) -> SonaConfig:
    """Load configuration, falling back to defaults plus env overrides."""
    config = load_config(config_path or os.environ.get("SONA_CONFIG_PATH"))
    if config is None:
        config = SonaConfig(**_apply_env_overrides({}))
    return config
