# Overview: Shared helpers for API routes: error mapping, pagination and date parsing.

from __future__ import annotations

from flask import current_app, jsonify, request

from ..services.concurrency import run_with_retry
from ..services.errors import InventoryError
from ..time_utils import end_of_day, parse_iso_datetime


def error_response(exc: InventoryError):
    return jsonify(exc.to_dict()), exc.http_status


def call_service(func, *args, **kwargs):
    """
    Run a service call with lock-conflict retries and map errors to JSON.

    Returns (result, None) on success or (None, response) on failure.
    """
    try:
        return run_with_retry(lambda: func(*args, **kwargs)), None
    except InventoryError as e:
        if e.http_status >= 409:
            current_app.logger.warning("%s %s refused: %s", request.method, request.path, e.message)
        return None, error_response(e)
    except Exception:
        current_app.logger.exception("Unexpected error in %s %s", request.method, request.path)
        return None, (jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500)


def get_json_body() -> dict:
    return request.get_json(silent=True) or {}


def parse_pagination() -> tuple[int, int]:
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get("per_page", 20, type=int)
    if page < 1:
        page = 1
    if per_page < 1:
        per_page = 1
    if per_page > 200:
        per_page = 200
    return page, per_page


def parse_date_range():
    """
    Read from_date / to_date query parameters.

    A date-only to_date covers the whole day. Raises ValueError on
    malformed input.
    """
    from_str = request.args.get("from_date")
    to_str = request.args.get("to_date")
    from_date = parse_iso_datetime(from_str) if from_str else None
    to_date = parse_iso_datetime(to_str) if to_str else None
    if to_date is not None and to_str and len(to_str.strip()) == 10:
        to_date = end_of_day(to_date)
    return from_date, to_date
