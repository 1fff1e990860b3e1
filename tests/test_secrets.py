"""Tests for secret reference resolution."""

from __future__ import annotations

import subprocess
from unittest.mock import patch

import pytest

from expense_flow.utils.secrets import (
    is_secret_reference,
    resolve_secret,
    resolve_secrets,
)


class TestIsSecretReference:
    def test_onepassword_reference(self):
        assert is_secret_reference("op://vault/item/field") is True

    def test_env_reference(self):
        assert is_secret_reference("env:API_TOKEN") is True

    def test_plain_string(self):
        assert is_secret_reference("just-a-string") is False

    def test_non_string(self):
        assert is_secret_reference(1000000) is False


class TestResolveSecret:
    def test_plain_string_passthrough(self):
        assert resolve_secret("plain-value") == "plain-value"

    @patch("subprocess.run")
    def test_resolves_op_reference(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=0, stdout="resolved-secret\n", stderr=""
        )
        assert resolve_secret("op://vault/item/field") == "resolved-secret"
        mock_run.assert_called_once()

    @patch("subprocess.run", side_effect=FileNotFoundError)
    def test_op_not_installed(self, _mock_run):
        with pytest.raises(RuntimeError, match="not installed"):
            resolve_secret("op://vault/item/field")

    @patch("subprocess.run")
    def test_op_failure(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(1, "op", stderr="item not found")
        with pytest.raises(RuntimeError, match="Failed to resolve"):
            resolve_secret("op://vault/item/field")

    def test_env_reference(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("EXPENSE_FLOW_SECRET", "s3cret")
        assert resolve_secret("env:EXPENSE_FLOW_SECRET") == "s3cret"

    def test_env_reference_missing(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("EXPENSE_FLOW_MISSING", raising=False)
        with pytest.raises(RuntimeError, match="EXPENSE_FLOW_MISSING"):
            resolve_secret("env:EXPENSE_FLOW_MISSING")


class TestResolveSecrets:
    @patch("expense_flow.utils.secrets.resolve_secret")
    def test_resolves_nested_refs(self, mock_resolve):
        mock_resolve.side_effect = lambda ref: f"resolved:{ref}"

        data = {
            "plain": "value",
            "secret": "op://vault/item/field",
            "nested": {
                "deep_secret": "env:DEEP",
                "plain_nested": "ok",
                "listed": ["op://vault/item/listed", 5],
            },
        }
        result = resolve_secrets(data)

        assert result["plain"] == "value"
        assert result["secret"] == "resolved:op://vault/item/field"
        assert result["nested"]["deep_secret"] == "resolved:env:DEEP"
        assert result["nested"]["plain_nested"] == "ok"
        assert result["nested"]["listed"] == ["op://vault/item/listed", 5]
