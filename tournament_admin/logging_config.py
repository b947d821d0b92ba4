"""Structured logging for the settlement service (structlog).

- production: JSON lines, one event per settlement step
- development: colored console output
- every event carries ``service`` / ``env``; inside a request ``trace_id``,
  inside a settlement run ``tournament_id`` and ``settlement_id``
- bearer tokens and secrets never reach the log output
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping

import structlog
from structlog.types import Processor

SERVICE_NAME = "tournament-admin"

# 로그에 남기면 안 되는 필드 (관리자 JWT 등)
SENSITIVE_KEYS = frozenset({"authorization", "token", "access_token", "jwt_secret_key", "password"})

# 정산 경로에서 시끄러운 서드파티 로거
QUIET_LOGGERS: dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "asyncpg": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "redis": logging.WARNING,
}


def mask_credentials(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace credential values with ``***``."""
    for key in event_dict.keys() & SENSITIVE_KEYS:
        event_dict[key] = "***"
    return event_dict


def _service_tagger(app_env: str) -> Processor:
    def add_service(
        logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("env", app_env)
        return event_dict

    return add_service


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Route structlog and stdlib logging through one renderer.

    Args:
        log_level: Root level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Force JSON output outside production
        app_env: Application environment
    """
    use_json = json_logs or app_env == "production"

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _service_tagger(app_env),
        mask_credentials,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info if use_json else structlog.dev.set_exc_info,
    ]
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level.upper())

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("prize_credited", user_id="u1", amount=630)
    """
    return structlog.get_logger(name)


def start_request_context(trace_id: str) -> None:
    """Reset the log context for a new HTTP request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trace_id=trace_id)


@contextmanager
def settlement_context(tournament_id: str, settlement_id: str | None = None) -> Iterator[None]:
    """Tag every log event inside the block with the settlement being run.

    Usage:
        with settlement_context("t-1", settlement_id):
            logger.info("settlement_started")  # includes tournament_id, settlement_id
    """
    fields: dict[str, Any] = {"tournament_id": tournament_id}
    if settlement_id is not None:
        fields["settlement_id"] = settlement_id
    with structlog.contextvars.bound_contextvars(**fields):
        yield
