# roster_api/common/validation.py
"""
Declarative request-body checks.

    errors = check(body, {
        "date":  [required("Date is required"), matches(DATE_PATTERN, "Date must be in YYYY-MM-DD format")],
        "notes": [length(max_len=1000, msg="Notes must be 1000 characters or less")],
    })

Each check is `fn(value, body) -> message | None`. Fields without a
`required` check are skipped when absent. The first failing check of a field
wins; the result maps field -> message and is empty when the body is valid.
"""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional


Check = Callable[[object, dict], Optional[str]]

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)
TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$", re.ASCII)

_REQUIRED = "__required__"


def _blank(v) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def required(msg: str) -> Check:
    def _check(v, _body):
        return msg if _blank(v) else None
    _check.__name__ = _REQUIRED
    return _check


def matches(pattern: re.Pattern, msg: str) -> Check:
    def _check(v, _body):
        return None if isinstance(v, str) and pattern.match(v) else msg
    return _check


def length(min_len: int = 0, max_len: Optional[int] = None, msg: str = "Invalid length") -> Check:
    def _check(v, _body):
        if not isinstance(v, str):
            return msg
        n = len(v.strip())
        if n < min_len or (max_len is not None and n > max_len):
            return msg
        return None
    return _check


def int_range(lo: int, hi: int, msg: str) -> Check:
    def _check(v, _body):
        if isinstance(v, bool):
            return msg
        try:
            n = int(v)
        except (TypeError, ValueError):
            return msg
        if isinstance(v, float) and v != n:
            return msg
        return None if lo <= n <= hi else msg
    return _check


def check(body: dict, rules: Dict[str, List[Check]]) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for field, checks in rules.items():
        value = body.get(field)
        is_required = any(c.__name__ == _REQUIRED for c in checks)
        if not is_required and field not in body:
            continue
        if not is_required and value is None:
            continue
        for c in checks:
            msg = c(value, body)
            if msg:
                errors[field] = msg
                break
    return errors


# ---------- timesheet rules ----------

def _hm_minutes(s: str) -> Optional[int]:
    try:
        h, m = s.split(":")
        h, m = int(h), int(m)
    except (AttributeError, ValueError):
        return None
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return h * 60 + m


def worked_minutes(start_hm: str, end_hm: str, break_minutes: int = 0) -> Optional[int]:
    a, b = _hm_minutes(start_hm), _hm_minutes(end_hm)
    if a is None or b is None:
        return None
    return (b - a) - (break_minutes or 0)


def _date_window(today: date, max_age_days: int) -> Check:
    def _check(v, _body):
        try:
            d = date.fromisoformat(v)
        except (TypeError, ValueError):
            return "Date must be a valid calendar date"
        if d > today:
            return "Date cannot be in the future"
        if d < today - timedelta(days=max_age_days):
            return f"Cannot create timesheet entries older than {max_age_days} days"
        return None
    return _check


def _valid_clock(msg: str) -> Check:
    def _check(v, _body):
        return None if _hm_minutes(v) is not None else msg
    return _check


def _end_after_start(max_hours: int) -> Check:
    def _check(v, body):
        start = body.get("start_time")
        if not isinstance(start, str) or _hm_minutes(start) is None:
            return None
        if _hm_minutes(v) <= _hm_minutes(start):
            return "End time must be after start time"
        brk = body.get("break_time_minutes") or 0
        try:
            brk = int(brk)
        except (TypeError, ValueError):
            brk = 0
        if worked_minutes(start, v, brk) > max_hours * 60:
            return f"Maximum {max_hours} hours per shift allowed"
        return None
    return _check


def timesheet_rules(today: date, max_age_days: int = 30, max_hours: int = 16, partial: bool = False):
    """
    Rules for timesheet create (partial=False) and update (partial=True).
    `today` is the reference-zone calendar date, not the server's.
    """
    def req(msg):
        return [] if partial else [required(msg)]

    return {
        "date": req("Date is required") + [
            matches(DATE_PATTERN, "Date must be in YYYY-MM-DD format"),
            _date_window(today, max_age_days),
        ],
        "location_name": req("Location name is required") + [
            length(1, 255, "Location name must be 1-255 characters"),
        ],
        "start_time": req("Start time is required") + [
            matches(TIME_PATTERN, "Start time must be in HH:MM format"),
            _valid_clock("Start time must be a valid time"),
        ],
        "end_time": req("End time is required") + [
            matches(TIME_PATTERN, "End time must be in HH:MM format"),
            _valid_clock("End time must be a valid time"),
            _end_after_start(max_hours),
        ],
        "break_time_minutes": [
            int_range(0, 480, "Break time must be between 0 and 480 minutes (8 hours)"),
        ],
        "notes": [length(0, 1000, "Notes must be 1000 characters or less")],
        "client_name": [length(1, 50, "Client name must be 1-50 characters")],
        "client_notes": [length(0, 255, "Client notes must be 255 characters or less")],
    }


# ---------- civil date/time fields ----------

def civil_fields_to_storage(tc, body: dict, fields, required_msg: str = "{field} is required"):
    """
    Convert reference-zone strings in `body[field]` to UTC storage strings.

    Returns (stored, errors): stored maps field -> "YYYY-MM-DD HH:MM:SS" (UTC)
    for every field present and valid; errors maps field -> message for
    missing or malformed ones. Absent fields listed in `fields` count as
    missing; pass only the fields that are required at this point.
    """
    stored, errors = {}, {}
    for field in fields:
        raw = body.get(field)
        if _blank(raw):
            errors[field] = required_msg.format(field=field)
            continue
        res = tc.storage_from_civil(raw)
        if not res.ok:
            errors[field] = (
                f"{field} must be YYYY-MM-DD, YYYY-MM-DD HH:mm or YYYY-MM-DD HH:mm:ss "
                f"(local time, {tc.zone_name})"
            )
            continue
        stored[field] = res.value
    return stored, errors
