"""Environment driven configuration for billing, storage and handbook drafting."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection parameters for the PostgreSQL store."""

    host: str
    port: int
    dbname: str
    user: str
    password: str
    connect_timeout: int

    def as_connect_kwargs(self) -> Dict[str, object]:
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.dbname,
            "user": self.user,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
        }


@dataclass(frozen=True)
class BillingConfig:
    """Stripe credentials, price identifiers and reconciliation switches."""

    stripe_secret_key: Optional[str]
    webhook_secrets: Tuple[str, ...]
    price_ids: Dict[str, str] = field(default_factory=dict)
    webhook_tolerance_seconds: int = 300
    refetch_subscriptions: bool = True
    ordering_guard: bool = True


@dataclass(frozen=True)
class HandbookConfig:
    """Language model settings for handbook drafting."""

    openai_api_key: Optional[str]
    model: str = "gpt-4.1-mini"


@dataclass(frozen=True)
class HttpConfig:
    cors_allow_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _split_csv(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def load_database_config(env: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
    """Load :class:`DatabaseConfig` from environment variables."""

    env_mapping = os.environ if env is None else env
    return DatabaseConfig(
        host=env_mapping.get("DB_HOST", "127.0.0.1"),
        port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        dbname=env_mapping.get("DB_NAME", "handbooks_db"),
        user=env_mapping.get("DB_USER", "handbooks"),
        password=env_mapping.get("DB_PASSWORD", "handbooks"),
        connect_timeout=_parse_connect_timeout(env_mapping.get("DB_CONNECT_TIMEOUT", "5")),
    )


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables.

    ``STRIPE_WEBHOOK_SECRET`` may hold several comma separated secrets and
    ``STRIPE_WEBHOOK_SECRET_PREVIOUS`` is appended after them, so a rotated
    endpoint keeps accepting deliveries signed with the old secret.
    """

    env_mapping = os.environ if env is None else env

    secrets = list(_split_csv(env_mapping.get("STRIPE_WEBHOOK_SECRET")))
    for previous in _split_csv(env_mapping.get("STRIPE_WEBHOOK_SECRET_PREVIOUS")):
        if previous not in secrets:
            secrets.append(previous)

    # Empty strings fall through to the legacy variable names.
    price_ids: Dict[str, str] = {}
    starter = env_mapping.get("STRIPE_PRICE_STARTER") or None
    pro = env_mapping.get("STRIPE_PRICE_PRO") or env_mapping.get("NEXT_PUBLIC_STRIPE_GROWTH_PRICE_ID") or None
    business = (
        env_mapping.get("STRIPE_PRICE_BUSINESS")
        or env_mapping.get("NEXT_PUBLIC_STRIPE_BUSINESS_PRICE_ID")
        or None
    )
    if starter:
        price_ids["starter"] = starter
    if pro:
        price_ids["pro"] = pro
    if business:
        price_ids["business"] = business

    return BillingConfig(
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        webhook_secrets=tuple(secrets),
        price_ids=price_ids,
        webhook_tolerance_seconds=max(
            0, _to_int(env_mapping.get("STRIPE_WEBHOOK_TOLERANCE_SECONDS"), default=300)
        ),
        refetch_subscriptions=_to_bool(env_mapping.get("BILLING_REFETCH_SUBSCRIPTIONS"), default=True),
        ordering_guard=_to_bool(env_mapping.get("BILLING_ORDERING_GUARD"), default=True),
    )


def load_handbook_config(env: Optional[Mapping[str, str]] = None) -> HandbookConfig:
    env_mapping = os.environ if env is None else env
    return HandbookConfig(
        openai_api_key=env_mapping.get("OPENAI_API_KEY") or None,
        model=(env_mapping.get("OPENAI_MODEL") or "gpt-4.1-mini").strip(),
    )


def load_http_config(env: Optional[Mapping[str, str]] = None) -> HttpConfig:
    env_mapping = os.environ if env is None else env
    origins = _split_csv(env_mapping.get("CORS_ALLOW_ORIGINS")) or ("*",)
    return HttpConfig(
        cors_allow_origins=origins,
        log_level=(env_mapping.get("LOG_LEVEL") or "INFO").strip().upper(),
    )


__all__ = [
    "BillingConfig",
    "DatabaseConfig",
    "HandbookConfig",
    "HttpConfig",
    "load_billing_config",
    "load_database_config",
    "load_handbook_config",
    "load_http_config",
]
