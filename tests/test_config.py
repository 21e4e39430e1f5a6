"""Тесты настроек мини-приложения."""

import pytest
from pydantic import ValidationError

from vpn_miniapp.config import Settings, settings
from vpn_miniapp.schemas.miniapp import PaymentProvider


def test_payment_providers_parsed_in_order(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "MINIAPP_PAYMENT_PROVIDERS", " telegram_stars, PLATEGA,unknown,PLATEGA ")

    assert settings.get_payment_providers() == [
        PaymentProvider.TELEGRAM_STARS,
        PaymentProvider.PLATEGA,
    ]


def test_empty_payment_providers_use_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "MINIAPP_PAYMENT_PROVIDERS", "  ")

    assert settings.get_payment_providers() == [
        PaymentProvider.PLATEGA,
        PaymentProvider.CRYPTOCLOUD,
        PaymentProvider.TELEGRAM_STARS,
    ]


def test_env_values_are_normalized(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("MINIAPP_API_URL", "https://api.example.com/api/")
    monkeypatch.setenv("MINIAPP_CARD_CURRENCY", " uah ")
    monkeypatch.setenv("MINIAPP_SCREEN_FADE_MS", "45")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "nested" / "miniapp.log"))

    loaded = Settings()

    assert loaded.get_api_base_url() == "https://api.example.com/api"
    assert loaded.MINIAPP_CARD_CURRENCY == "UAH"
    assert loaded.get_screen_fade_seconds() == pytest.approx(0.045)
    assert loaded.LOG_LEVEL == "DEBUG"
    assert (tmp_path / "nested").is_dir()


def test_poll_attempts_must_be_positive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MINIAPP_CREDENTIAL_POLL_ATTEMPTS", "0")

    with pytest.raises(ValidationError):
        Settings()
