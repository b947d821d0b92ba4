"""JSON utilities using orjson.

Usage:
    from tournament_admin.utils.json_utils import json_dumps, json_loads, ORJSONResponse

    json_str = json_dumps({"prizeAmount": 630})

    # FastAPI response
    return ORJSONResponse(content={"status": "ok"})
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import orjson
from fastapi.responses import JSONResponse


def _default_serializer(obj: Any) -> Any:
    """Custom serializer for types not natively supported by orjson."""
    if isinstance(obj, Decimal):
        # 정수 퍼센트는 숫자 그대로, 소수는 문자열로 보존
        if obj == obj.to_integral_value():
            return int(obj)
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return obj.decode("utf-8")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def json_dumps(data: Any, *, pretty: bool = False) -> str:
    """Serialize data to JSON string using orjson.

    Args:
        data: Data to serialize
        pretty: If True, format with indentation

    Returns:
        JSON string
    """
    options = orjson.OPT_UTC_Z
    if pretty:
        options |= orjson.OPT_INDENT_2

    return orjson.dumps(data, default=_default_serializer, option=options).decode("utf-8")


def json_loads(data: str | bytes) -> Any:
    """Deserialize JSON string/bytes to Python object."""
    return orjson.loads(data)


class ORJSONResponse(JSONResponse):
    """FastAPI response class rendering through orjson."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return orjson.dumps(
            content,
            default=_default_serializer,
            option=orjson.OPT_UTC_Z,
        )
