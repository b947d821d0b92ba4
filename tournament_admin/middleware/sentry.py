"""Sentry error tracking integration.

Features:
- Automatic error capture
- Performance monitoring
- Expected settlement errors filtered out
"""

import logging
import os

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from tournament_admin.utils.errors import SettlementError


def init_sentry(
    dsn: str | None = None,
    environment: str = "development",
    release: str | None = None,
    traces_sample_rate: float = 0.1,
) -> bool:
    """Initialize Sentry SDK.

    Args:
        dsn: Sentry DSN. If None, uses SENTRY_DSN env var.
        environment: Environment name (development, staging, production)
        release: Release version string
        traces_sample_rate: Percentage of transactions to trace (0.0 to 1.0)

    Returns:
        True if Sentry was initialized, False otherwise
    """
    sentry_dsn = dsn or os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        return False

    logging_integration = LoggingIntegration(
        level=logging.INFO,
        event_level=logging.ERROR,
    )

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=environment,
        release=release or os.getenv("APP_VERSION", "1.0.0"),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            RedisIntegration(),
            logging_integration,
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=before_send,
        before_send_transaction=before_send_transaction,
    )
    return True


def before_send(event: dict, hint: dict) -> dict | None:
    """Drop expected business errors; keep failed settlements."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, SettlementError) and exc_value.status_code < 500:
            return None
    return event


def before_send_transaction(event: dict, hint: dict) -> dict | None:
    """Drop health check transactions."""
    transaction_name = event.get("transaction", "")
    if "/health" in transaction_name:
        return None
    return event


def set_settlement_context(tournament_id: str, settlement_id: str | None = None) -> None:
    """Tag subsequent events with the tournament being settled."""
    sentry_sdk.set_tag("tournament_id", tournament_id)
    if settlement_id:
        sentry_sdk.set_tag("settlement_id", settlement_id)
