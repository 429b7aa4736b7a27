from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from flask import Blueprint, request, current_app

from roster_api.common.auth import requires_roles, current_user_id, current_roles
from roster_api.common.errors import APIError, ValidationFailed
from roster_api.common.http import ok, fail
from roster_api.common.paging import page_limit, paginate
from roster_api.common.validation import DATE_PATTERN, check, timesheet_rules
from roster_api.extensions import db, get_time_service
from roster_api.models.timesheet import TimesheetEntry, TIMESHEET_STATUSES
from roster_api.services import notifications
from roster_api.services.time_conversion import STORAGE_FORMAT

log = logging.getLogger(__name__)

bp = Blueprint("timesheets", __name__, url_prefix="/api/v1/timesheets")

EDITABLE_STATUSES = ("draft", "rejected")


# ---------- helpers ----------

def _body() -> dict:
    d = request.get_json(silent=True)
    return d if isinstance(d, dict) else {}


def _rules(partial=False):
    cfg = current_app.config
    return timesheet_rules(
        today=get_time_service().today(),
        max_age_days=int(cfg.get("TIMESHEET_MAX_AGE_DAYS", 30)),
        max_hours=int(cfg.get("TIMESHEET_MAX_SHIFT_HOURS", 16)),
        partial=partial,
    )


def _to_storage(day: str, hm: str, field: str) -> str:
    res = get_time_service().storage_from_civil(f"{day} {hm}")
    if not res.ok:
        raise ValidationFailed({field: f"{field} is not a valid local time"})
    return res.value


def _elapsed_hours(sign_in: str, sign_out: str, break_minutes: int) -> float:
    # real elapsed time between the UTC instants, so a DST change inside the shift counts correctly
    a = datetime.strptime(sign_in, STORAGE_FORMAT)
    b = datetime.strptime(sign_out, STORAGE_FORMAT)
    hours = (b - a).total_seconds() / 3600 - (break_minutes or 0) / 60
    return round(max(0.0, hours), 2)


def _overlapping(user_id: int, sign_in: str, sign_out: str, exclude_id=None):
    q = TimesheetEntry.query.filter(
        TimesheetEntry.user_id == user_id,
        TimesheetEntry.deleted_at.is_(None),
        TimesheetEntry.sign_in < sign_out,
        TimesheetEntry.sign_out > sign_in,
    )
    if exclude_id is not None:
        q = q.filter(TimesheetEntry.id != exclude_id)
    return q.first()


def _own_entry(entry_id: int) -> TimesheetEntry:
    e = db.session.get(TimesheetEntry, entry_id)
    if not e or e.deleted_at is not None or e.user_id != current_user_id():
        raise APIError("NOT_FOUND", "Timesheet entry not found", 404)
    return e


def _week_start(raw: str | None) -> date:
    """Monday of the week containing `raw` (default: this week in the reference zone)."""
    if raw:
        if not DATE_PATTERN.match(raw):
            raise ValidationFailed({"week_start": "week_start must be YYYY-MM-DD"})
        try:
            d = date.fromisoformat(raw)
        except ValueError:
            raise ValidationFailed({"week_start": "week_start must be a valid date"})
    else:
        d = get_time_service().today()
    return d - timedelta(days=d.weekday())


def _week_bounds(monday: date):
    tc = get_time_service()
    lo = tc.storage_from_civil(monday.isoformat())
    hi = tc.storage_from_civil((monday + timedelta(days=7)).isoformat())
    return lo.value, hi.value


def _apply_fields(e: TimesheetEntry, d: dict):
    day, start_hm, end_hm = d["date"], d["start_time"], d["end_time"]
    sign_in = _to_storage(day, start_hm, "start_time")
    sign_out = _to_storage(day, end_hm, "end_time")
    if sign_out <= sign_in:
        # only possible when the shift straddles a DST gap
        raise ValidationFailed({"end_time": "End time must be after start time"})

    clash = _overlapping(current_user_id(), sign_in, sign_out, exclude_id=e.id)
    if clash:
        raise APIError("OVERLAPPING_SHIFT", "Overlapping shift detected", 409, {"entry_id": clash.id})

    brk = int(d.get("break_time_minutes") or 0)
    e.sign_in = sign_in
    e.sign_out = sign_out
    e.break_minutes = brk
    e.hours = _elapsed_hours(sign_in, sign_out, brk)
    e.location_name = d["location_name"].strip()
    e.notes = d.get("notes") or None
    e.client_name = (d.get("client_name") or "").strip() or None
    e.client_notes = d.get("client_notes") or None


# ---------- employee ----------

@bp.post("/entries")
@requires_roles("employee")
def create_entry():
    d = _body()
    errors = check(d, _rules())
    if errors:
        raise ValidationFailed(errors)

    e = TimesheetEntry(user_id=current_user_id(), status="draft")
    _apply_fields(e, d)
    db.session.add(e)
    db.session.commit()
    return ok(e.to_dict(get_time_service()), status=201)


@bp.patch("/entries/<int:entry_id>")
@requires_roles("employee")
def update_entry(entry_id: int):
    tc = get_time_service()
    e = _own_entry(entry_id)
    if e.status not in EDITABLE_STATUSES:
        return fail(f"Cannot edit a {e.status} entry", status=409, code="NOT_EDITABLE")

    d = _body()
    errors = check(d, _rules(partial=True))
    if errors:
        raise ValidationFailed(errors)

    current = e.to_dict(tc)
    # to_dict renders missing optionals as "", the rules want them absent
    merged = {k: (current[k] if current[k] != "" else None) for k in
              ("date", "start_time", "end_time", "break_time_minutes", "location_name",
               "notes", "client_name", "client_notes")}
    merged.update({k: v for k, v in d.items() if k in merged})

    # re-check the combination (end after start, max hours, date window)
    errors = check(merged, _rules())
    if errors:
        raise ValidationFailed(errors)

    _apply_fields(e, merged)
    if e.status == "rejected":
        e.status = "draft"
    db.session.commit()
    return ok(e.to_dict(tc))


@bp.delete("/entries/<int:entry_id>")
@requires_roles("employee")
def delete_entry(entry_id: int):
    e = _own_entry(entry_id)
    if e.status != "draft":
        return fail("Only draft entries can be deleted", status=409, code="NOT_EDITABLE")
    e.deleted_at = datetime.utcnow()
    db.session.commit()
    return ok({"id": e.id, "deleted": True})


@bp.get("/week")
@requires_roles("employee")
def my_week():
    tc = get_time_service()
    monday = _week_start(request.args.get("week_start"))
    lo, hi = _week_bounds(monday)
    rows = (
        TimesheetEntry.query
        .filter(TimesheetEntry.user_id == current_user_id(),
                TimesheetEntry.deleted_at.is_(None),
                TimesheetEntry.sign_in >= lo,
                TimesheetEntry.sign_in < hi)
        .order_by(TimesheetEntry.sign_in.asc())
        .all()
    )
    total = round(sum(float(r.hours or 0) for r in rows), 2)
    return ok({
        "week_start": monday.isoformat(),
        "week_end": (monday + timedelta(days=6)).isoformat(),
        "entries": [r.to_dict(tc) for r in rows],
        "total_hours": total,
    })


@bp.post("/week/submit")
@requires_roles("employee")
def submit_week():
    tc = get_time_service()
    uid = current_user_id()
    monday = _week_start(_body().get("week_start"))
    lo, hi = _week_bounds(monday)

    drafts = (
        TimesheetEntry.query
        .filter(TimesheetEntry.user_id == uid,
                TimesheetEntry.deleted_at.is_(None),
                TimesheetEntry.status == "draft",
                TimesheetEntry.sign_in >= lo,
                TimesheetEntry.sign_in < hi)
        .all()
    )
    if not drafts:
        return fail("No draft entries to submit for this week", status=422, code="NOTHING_TO_SUBMIT")

    now_s = tc.now_for_storage()
    for r in drafts:
        r.status = "submitted"
        r.submitted_at = now_s
    db.session.commit()

    week_end = (monday + timedelta(days=6)).isoformat()
    total = round(sum(float(r.hours or 0) for r in drafts), 2)
    log.info("User %s submitted %d timesheet entries for week %s", uid, len(drafts), monday)
    notifications.notify_timesheet_submitted(uid, monday.isoformat(), week_end, len(drafts), total)
    return ok({
        "week_start": monday.isoformat(),
        "week_end": week_end,
        "submitted": len(drafts),
        "total_hours": total,
    })


# ---------- admin / staff ----------

@bp.get("/entries")
@requires_roles("staff")
def list_entries():
    tc = get_time_service()
    page, size = page_limit()
    q = TimesheetEntry.query.filter(TimesheetEntry.deleted_at.is_(None))

    status = request.args.get("status")
    if status:
        if status not in TIMESHEET_STATUSES:
            raise ValidationFailed({"status": f"status must be one of {', '.join(TIMESHEET_STATUSES)}"})
        q = q.filter(TimesheetEntry.status == status)
    user_id = request.args.get("user_id", type=int)
    if user_id:
        q = q.filter(TimesheetEntry.user_id == user_id)
    if request.args.get("week_start"):
        lo, hi = _week_bounds(_week_start(request.args.get("week_start")))
        q = q.filter(TimesheetEntry.sign_in >= lo, TimesheetEntry.sign_in < hi)

    q = q.order_by(TimesheetEntry.sign_in.desc(), TimesheetEntry.id.desc())
    items, total = paginate(q, page, size)
    return ok([r.to_dict(tc) for r in items], page=page, size=size, total=total)


def _review(entry_id: int, approved: bool):
    tc = get_time_service()
    e = db.session.get(TimesheetEntry, entry_id)
    if not e or e.deleted_at is not None:
        raise APIError("NOT_FOUND", "Timesheet entry not found", 404)
    if e.status != "submitted":
        return fail("Only submitted entries can be reviewed", status=409, code="NOT_SUBMITTED")

    e.status = "approved" if approved else "rejected"
    e.reviewed_at = tc.now_for_storage()
    e.reviewed_by_id = current_user_id()
    e.review_comment = (_body().get("comment") or "").strip() or None
    db.session.commit()
    log.info("Timesheet entry %s %s by user %s (roles=%s)",
             e.id, e.status, e.reviewed_by_id, sorted(current_roles()))
    return ok(e.to_dict(tc))


@bp.post("/entries/<int:entry_id>/approve")
@requires_roles("staff")
def approve_entry(entry_id: int):
    return _review(entry_id, approved=True)


@bp.post("/entries/<int:entry_id>/reject")
@requires_roles("staff")
def reject_entry(entry_id: int):
    return _review(entry_id, approved=False)
