# backend/tests/unit/test_settings.py
import pytest
from pydantic import ValidationError

from shopbot.config.settings import Settings, validate_environment


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_blank_trigger_code_means_match_everything():
    assert make_settings(trigger_code="   ").trigger_code is None
    assert make_settings(trigger_code=" shop ").trigger_code == "shop"


def test_log_level_is_normalized():
    assert make_settings(log_level="debug").log_level == "DEBUG"
    with pytest.raises(ValidationError):
        make_settings(log_level="chatty")


def test_urls_lose_trailing_slash():
    settings = make_settings(woocommerce_store_url="https://shop.example.com/", green_api_base_url="https://api.green-api.com/")
    assert settings.woocommerce_store_url == "https://shop.example.com"
    assert settings.green_api_base_url == "https://api.green-api.com"


def test_woocommerce_needs_all_three_values():
    partial = make_settings(woocommerce_store_url="https://shop.example.com", woocommerce_consumer_key="ck")
    assert partial.woocommerce_configured is False

    full = make_settings(
        woocommerce_store_url="https://shop.example.com",
        woocommerce_consumer_key="ck",
        woocommerce_consumer_secret="cs",
    )
    assert full.woocommerce_configured is True


def test_sweep_interval_must_be_positive():
    with pytest.raises(ValidationError):
        make_settings(session_sweep_interval_seconds=0)


def test_missing_sender_credentials_exit_outside_mock_mode(monkeypatch):
    monkeypatch.delenv("GREEN_API_INSTANCE_ID", raising=False)
    monkeypatch.delenv("GREEN_API_TOKEN", raising=False)
    settings = make_settings(environment="production", mock_mode=False)

    with pytest.raises(SystemExit):
        validate_environment(settings)


def test_mock_mode_needs_no_sender_credentials(monkeypatch):
    monkeypatch.delenv("GREEN_API_INSTANCE_ID", raising=False)
    monkeypatch.delenv("GREEN_API_TOKEN", raising=False)
    settings = make_settings(environment="production", mock_mode=True)

    assert validate_environment(settings) is settings
