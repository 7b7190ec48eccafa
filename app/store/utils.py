from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app, g, jsonify, request

from app.store.config import is_production
from app.store.errors import StoreError

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


def error_response(message: str, status: int = 400):
    return jsonify({"error": message}), status


def error_from_exception(exc: StoreError):
    return error_response(exc.message, exc.status_code)


def server_error(message: str, exc: BaseException):
    """
    Log an unexpected failure with its stack trace and return a generic 500.
    Outside production the exception text is included as `message`.
    """
    current_app.logger.exception("%s (request_id=%s)", message, getattr(g, "request_id", None))
    s = getattr(g, "db_session", None)
    if s is not None:
        s.rollback()
    body: dict[str, Any] = {"error": message}
    if not is_production(current_app.config):
        body["message"] = str(exc)
    return jsonify(body), 500


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def first_of(payload: dict, *keys: str) -> Any:
    """Return the first present key; accepts snake_case and camelCase spellings."""
    for k in keys:
        if k in payload and payload[k] is not None:
            return payload[k]
    return None


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def parse_int(value: Any, default: int | None = None) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def parse_price(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d.quantize(Decimal("0.01"))


def parse_pagination() -> tuple[int, int]:
    """limit defaults to 50 and is clamped to 1..100; offset is never negative."""
    limit = parse_int(request.args.get("limit"), DEFAULT_LIMIT) or DEFAULT_LIMIT
    limit = max(1, min(limit, MAX_LIMIT))
    offset = parse_int(request.args.get("offset"), 0) or 0
    offset = max(0, offset)
    return limit, offset


def client_ip() -> str | None:
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return forwarded or request.remote_addr
