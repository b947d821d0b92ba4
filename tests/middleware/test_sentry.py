"""
Sentry Filter Tests.
"""

from tournament_admin.middleware.sentry import before_send, before_send_transaction, init_sentry
from tournament_admin.utils.errors import (
    AlreadyDistributedError,
    SettlementFailedError,
)


def _hint(exc: Exception) -> dict:
    return {"exc_info": (type(exc), exc, None)}


class TestBeforeSend:
    def test_expected_errors_dropped(self):
        """409 등 예상된 비즈니스 에러는 전송하지 않음."""
        event = {"message": "conflict"}
        assert before_send(event, _hint(AlreadyDistributedError("t-1"))) is None

    def test_failed_settlement_kept(self):
        event = {"message": "failed"}
        assert before_send(event, _hint(SettlementFailedError("t-1", "db down"))) is event

    def test_unrelated_errors_kept(self):
        event = {"message": "boom"}
        assert before_send(event, _hint(RuntimeError("boom"))) is event
        assert before_send(event, {}) is event


class TestBeforeSendTransaction:
    def test_health_dropped(self):
        assert before_send_transaction({"transaction": "/health"}, {}) is None

    def test_api_kept(self):
        event = {"transaction": "/api/v1/tournaments/{tournament_id}/distribute-prizes"}
        assert before_send_transaction(event, {}) is event


def test_init_without_dsn(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    assert init_sentry(dsn=None) is False
