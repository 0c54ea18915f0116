"""Tests for keyring-then-environment secret lookup."""

from unittest.mock import patch

import pytest

from exthost import secrets


def test_get_secret_fallback_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """When keyring returns None, fall back to os.environ."""
    monkeypatch.setenv("EXTHOST_TEST_KEY", "from-env")
    with patch("exthost.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = None
        assert secrets.get_secret("EXTHOST_TEST_KEY") == "from-env"
        mock_kr.get_password.assert_called_once_with("exthost", "EXTHOST_TEST_KEY")


def test_get_secret_prefers_keyring(monkeypatch: pytest.MonkeyPatch) -> None:
    """When keyring has a value, it takes precedence over env."""
    monkeypatch.setenv("EXTHOST_TEST_BOTH", "from-env")
    with patch("exthost.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = "from-keyring"
        assert secrets.get_secret("EXTHOST_TEST_BOTH") == "from-keyring"


def test_get_secret_keyring_error_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    """When keyring raises KeyringError, fall back to env."""
    from keyring.errors import KeyringError

    monkeypatch.setenv("EXTHOST_TEST_ERR", "from-env")
    with patch("exthost.secrets.keyring") as mock_kr:
        mock_kr.get_password.side_effect = KeyringError("fail")
        assert secrets.get_secret("EXTHOST_TEST_ERR") == "from-env"


def test_get_secret_missing_everywhere(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("EXTHOST_TEST_NONE", raising=False)
    with patch("exthost.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = None
        assert secrets.get_secret("EXTHOST_TEST_NONE") is None


@pytest.mark.asyncio
async def test_get_secret_async_prefers_keyring(monkeypatch: pytest.MonkeyPatch) -> None:
    """Async variant prefers keyring over env."""
    monkeypatch.setenv("EXTHOST_TEST_ASYNC", "from-env")
    with patch("exthost.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = "from-keyring"
        assert await secrets.get_secret_async("EXTHOST_TEST_ASYNC") == "from-keyring"


def test_delete_secret_reports_missing() -> None:
    from keyring.errors import PasswordDeleteError

    with patch("exthost.secrets.keyring") as mock_kr:
        mock_kr.delete_password.side_effect = PasswordDeleteError("absent")
        assert secrets.delete_secret("NOT_THERE") is False
        mock_kr.delete_password.side_effect = None
        assert secrets.delete_secret("THERE") is True


def test_set_secret_uses_service_name() -> None:
    with patch("exthost.secrets.keyring") as mock_kr:
        secrets.set_secret("OPENAI_API_KEY", "sk-1")
        mock_kr.set_password.assert_called_once_with("exthost", "OPENAI_API_KEY", "sk-1")


def test_is_keyring_available_detects_fail_backend() -> None:
    from keyring.backends.fail import Keyring as FailKeyring

    with patch("exthost.secrets.keyring") as mock_kr:
        mock_kr.get_keyring.return_value = FailKeyring()
        assert secrets.is_keyring_available() is False
        mock_kr.get_keyring.return_value = object()
        assert secrets.is_keyring_available() is True
