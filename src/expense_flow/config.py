"""YAML configuration loading with secret injection and environment overrides."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml

from expense_flow.models import AppConfig
from expense_flow.utils.secrets import resolve_secrets

logger = structlog.get_logger()

DEFAULT_CONFIG_PATHS = [
    Path("config.yaml"),
    Path("config.yml"),
    Path.home() / ".config" / "expense-flow" / "config.yaml",
]

ENV_PREFIX = "EXPENSE_FLOW__"


def find_config_file(config_path: Path | None = None) -> Path:
    """Find the configuration file.

    Args:
        config_path: Explicit path to config file. If None, searches default locations.

    Returns:
        Path to the configuration file.

    Raises:
        FileNotFoundError: If no configuration file is found.
    """
    if config_path is not None:
        if config_path.exists():
            return config_path
        raise FileNotFoundError(f"Config file not found: {config_path}")

    for path in DEFAULT_CONFIG_PATHS:
        if path.exists():
            logger.info("config_found", path=str(path))
            return path

    search_paths = ", ".join(str(p) for p in DEFAULT_CONFIG_PATHS)
    raise FileNotFoundError(
        f"No config file found. Searched: {search_paths}. "
        f"Create one from config.example.yaml."
    )


def apply_env_overrides(raw: dict[str, Any], environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Overlay ``EXPENSE_FLOW__SECTION__KEY`` environment variables onto raw config.

    Values are parsed as YAML scalars, so ``2000000`` becomes an int and
    ``[IDR, USD]`` a list.
    """
    environ = os.environ if environ is None else environ
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in raw.items()}

    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = [part.lower() for part in name[len(ENV_PREFIX):].split("__") if part]
        if not path:
            continue

        target = merged
        for part in path[:-1]:
            existing = target.get(part)
            if not isinstance(existing, dict):
                existing = {}
                target[part] = existing
            target = existing
        target[path[-1]] = yaml.safe_load(value)
        logger.debug("config_env_override", key=".".join(path))

    return merged


def load_config(
    config_path: Path | None = None,
    resolve_secrets_refs: bool = True,
    *,
    required: bool = True,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load and validate application configuration.

    Args:
        config_path: Explicit path to config file.
        resolve_secrets_refs: Whether to resolve ``op://`` and ``env:`` references.
            Set to False for validation without 1Password access.
        required: If False, fall back to defaults plus environment overrides
            when no config file exists.
        environ: Environment mapping used for overrides. Defaults to os.environ.

    Returns:
        Validated AppConfig instance.
    """
    try:
        path = find_config_file(config_path)
    except FileNotFoundError:
        if required or config_path is not None:
            raise
        logger.info("config_defaults", reason="no config file")
        raw: dict[str, Any] = {}
    else:
        logger.info("loading_config", path=str(path))
        raw = yaml.safe_load(path.read_text()) or {}

    raw = apply_env_overrides(raw, environ)

    if resolve_secrets_refs:
        raw = resolve_secrets(raw)

    return AppConfig.model_validate(raw)
