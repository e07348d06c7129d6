from __future__ import annotations

from datetime import date, datetime
from typing import Any

from flask import Request

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD (or a full ISO timestamp). Raises ValueError on garbage."""
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    s = str(value).strip()
    if not s:
        return None
    if len(s) > 10:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    return date.fromisoformat(s)


def parse_int(value: Any) -> int | None:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    return int(s)


def request_payload(req: Request) -> dict[str, Any]:
    """JSON object body, or form fields for classic posts."""
    if req.is_json:
        data = req.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return req.form.to_dict()


def page_args(req: Request) -> tuple[int, int]:
    """(page, per_page) from the query string, 1-based and clamped."""
    try:
        page = max(1, int(req.args.get("page") or 1))
    except ValueError:
        page = 1
    try:
        per_page = int(req.args.get("per_page") or DEFAULT_PAGE_SIZE)
    except ValueError:
        per_page = DEFAULT_PAGE_SIZE
    return page, min(max(per_page, 1), MAX_PAGE_SIZE)


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
