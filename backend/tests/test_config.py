from __future__ import annotations

import pytest

from backend.app.config import (
    load_billing_config,
    load_database_config,
    load_handbook_config,
    load_http_config,
)


def test_billing_config_collects_rotated_secrets_and_prices() -> None:
    config = load_billing_config(
        {
            "STRIPE_SECRET_KEY": "sk_test_123",
            "STRIPE_WEBHOOK_SECRET": "whsec_new, whsec_mid",
            "STRIPE_WEBHOOK_SECRET_PREVIOUS": "whsec_old,whsec_new",
            "STRIPE_PRICE_PRO": "price_pro",
            "NEXT_PUBLIC_STRIPE_BUSINESS_PRICE_ID": "price_business",
            "BILLING_ORDERING_GUARD": "false",
        }
    )

    assert config.stripe_secret_key == "sk_test_123"
    assert config.webhook_secrets == ("whsec_new", "whsec_mid", "whsec_old")
    assert config.price_ids == {"pro": "price_pro", "business": "price_business"}
    assert config.ordering_guard is False
    assert config.refetch_subscriptions is True
    assert config.webhook_tolerance_seconds == 300


def test_billing_config_defaults_when_unset() -> None:
    config = load_billing_config({"STRIPE_PRICE_PRO": "", "NEXT_PUBLIC_STRIPE_GROWTH_PRICE_ID": "price_growth"})

    assert config.stripe_secret_key is None
    assert config.webhook_secrets == ()
    assert config.price_ids == {"pro": "price_growth"}
    assert config.ordering_guard is True


def test_database_config_rounds_timeout_up() -> None:
    config = load_database_config({"DB_PORT": "6543", "DB_CONNECT_TIMEOUT": "2.5"})

    assert config.port == 6543
    assert config.connect_timeout == 3
    assert config.as_connect_kwargs()["dbname"] == "handbooks_db"


def test_database_config_rejects_negative_timeout() -> None:
    with pytest.raises(ValueError):
        load_database_config({"DB_CONNECT_TIMEOUT": "-1"})


def test_handbook_and_http_config() -> None:
    handbook = load_handbook_config({"OPENAI_API_KEY": "sk-openai", "OPENAI_MODEL": " gpt-4o "})
    http = load_http_config({"CORS_ALLOW_ORIGINS": "https://app.example.com, https://admin.example.com", "LOG_LEVEL": "debug"})

    assert handbook.openai_api_key == "sk-openai"
    assert handbook.model == "gpt-4o"
    assert http.cors_allow_origins == ("https://app.example.com", "https://admin.example.com")
    assert http.log_level == "DEBUG"
    assert load_http_config({}).cors_allow_origins == ("*",)
