"""Secret reference resolution for configuration values.

Two reference forms are understood:

- ``op://vault/item/field`` is read through the 1Password CLI (``op read``).
- ``env:NAME`` is read from the process environment.

Anything else is returned unchanged.
"""

from __future__ import annotations

import os
import subprocess
from typing import Any

import structlog

logger = structlog.get_logger()

OP_PREFIX = "op://"
ENV_PREFIX = "env:"


def is_secret_reference(value: Any) -> bool:
    """Check if a value is a secret reference of either supported form."""
    return isinstance(value, str) and value.startswith((OP_PREFIX, ENV_PREFIX))


def _read_onepassword(reference: str) -> str:
    try:
        result = subprocess.run(
            ["op", "read", reference],
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
        )
    except FileNotFoundError:
        raise RuntimeError(
            "1Password CLI (`op`) is not installed or not in PATH. "
            "Install it from https://1password.com/downloads/command-line/"
        ) from None
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"Failed to resolve secret {reference}: {e.stderr.strip()}") from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(f"Timed out resolving secret {reference}. Is 1Password unlocked?") from e
    return result.stdout.strip()


def _read_environment(reference: str) -> str:
    name = reference[len(ENV_PREFIX):].strip()
    if not name:
        raise RuntimeError(f"Empty environment variable name in secret reference {reference!r}")
    try:
        return os.environ[name]
    except KeyError:
        raise RuntimeError(f"Environment variable {name} referenced by config is not set") from None


def resolve_secret(reference: str) -> str:
    """Resolve a single secret reference.

    Raises:
        RuntimeError: If the referenced secret cannot be read.
    """
    if not is_secret_reference(reference):
        return reference
    if reference.startswith(OP_PREFIX):
        return _read_onepassword(reference)
    return _read_environment(reference)


def resolve_secrets(data: Any) -> Any:
    """Recursively resolve every secret reference inside dicts and lists."""
    if isinstance(data, dict):
        return {key: _resolve_entry(key, value) for key, value in data.items()}
    if isinstance(data, list):
        return [resolve_secrets(item) for item in data]
    return data


def _resolve_entry(key: str, value: Any) -> Any:
    if is_secret_reference(value):
        logger.debug("resolving_secret", key=key, reference=value[:30] + "...")
        return resolve_secret(value)
    return resolve_secrets(value)
