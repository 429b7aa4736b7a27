from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from flask import Blueprint, request

from roster_api.common.auth import requires_roles, current_user_id, current_roles
from roster_api.common.errors import APIError, ValidationFailed
from roster_api.common.http import ok, fail
from roster_api.common.paging import page_limit, paginate
from roster_api.common.validation import (
    DATE_PATTERN, civil_fields_to_storage, check, int_range, length, required,
)
from roster_api.extensions import db, get_time_service
from roster_api.models.shift import ShiftRequest, StaffShift
from roster_api.models.user import User
from roster_api.services import notifications

log = logging.getLogger(__name__)

bp = Blueprint("shift_requests", __name__, url_prefix="/api/v1/shift-requests")

MAX_REQUIRED_STAFF = 50

_TIME_FIELDS = ("shiftdate", "starttime", "endtime")
_COLUMN_FOR = {"shiftdate": "shift_date", "starttime": "start_time", "endtime": "end_time"}


# ---------- helpers ----------

def _body() -> dict:
    d = request.get_json(silent=True)
    return d if isinstance(d, dict) else {}


def _plain_rules(partial: bool):
    def req(msg):
        return [] if partial else [required(msg)]
    return {
        "location_name": req("location_name is required") + [
            length(1, 255, "location_name must be 1-255 characters"),
        ],
        "client_name": [length(0, 255, "client_name must be 255 characters or less")],
        "required_staff": [
            int_range(1, MAX_REQUIRED_STAFF, f"required_staff must be between 1 and {MAX_REQUIRED_STAFF}"),
        ],
        "notes": [length(0, 2000, "notes must be 2000 characters or less")],
    }


def _check_window(start_s: str, end_s: str, errors: dict):
    # both are fixed-width UTC strings
    if start_s and end_s and end_s <= start_s:
        errors["endtime"] = "endtime must be after starttime"


def _get_shift(shift_id: int) -> ShiftRequest:
    s = db.session.get(ShiftRequest, shift_id)
    if not s or s.deleted_at is not None:
        raise APIError("NOT_FOUND", "Shift request not found", 404)
    return s


def _get_staff_shift(staff_shift_id: int) -> StaffShift:
    ss = db.session.get(StaffShift, staff_shift_id)
    if not ss or ss.shift_request.deleted_at is not None:
        raise APIError("NOT_FOUND", "Shift slot not found or has been deleted", 404)
    return ss


def _find_duplicate(location_name, shift_date, start_time, end_time, exclude_id=None):
    q = ShiftRequest.query.filter(
        ShiftRequest.location_name == location_name,
        ShiftRequest.shift_date == shift_date,
        ShiftRequest.start_time == start_time,
        ShiftRequest.end_time == end_time,
        ShiftRequest.deleted_at.is_(None),
    )
    if exclude_id is not None:
        q = q.filter(ShiftRequest.id != exclude_id)
    return q.first()


def _employee_clash(employee_id: int, shift: ShiftRequest):
    """A held (pending or approved) slot of this employee on another shift overlapping `shift`."""
    return (
        StaffShift.query.join(ShiftRequest)
        .filter(
            StaffShift.employee_id == employee_id,
            StaffShift.status.in_(("pending_approval", "approved")),
            ShiftRequest.id != shift.id,
            ShiftRequest.deleted_at.is_(None),
            ShiftRequest.start_time < shift.end_time,
            ShiftRequest.end_time > shift.start_time,
        )
        .first()
    )


def _day_bounds(from_s: str | None, to_s: str | None):
    """Reference-zone [from 00:00, to+1 00:00) as UTC storage strings."""
    tc = get_time_service()
    errors, lo, hi = {}, None, None
    if from_s:
        res = tc.storage_from_civil(from_s) if DATE_PATTERN.match(from_s) else None
        if res is None or not res.ok:
            errors["from"] = "from must be YYYY-MM-DD"
        else:
            lo = res.value
    if to_s:
        res = None
        if DATE_PATTERN.match(to_s):
            try:
                next_day = (date.fromisoformat(to_s) + timedelta(days=1)).isoformat()
                res = tc.storage_from_civil(next_day)
            except (ValueError, OverflowError):
                res = None
        if res is None or not res.ok:
            errors["to"] = "to must be YYYY-MM-DD"
        else:
            hi = res.value
    if errors:
        raise ValidationFailed(errors)
    return lo, hi


# ---------- shift requests ----------

@bp.post("")
@requires_roles("client", "staff")
def create_shift_request():
    d = _body()
    tc = get_time_service()

    errors = check(d, _plain_rules(partial=False))
    stored, time_errors = civil_fields_to_storage(tc, d, _TIME_FIELDS)
    errors.update(time_errors)
    _check_window(stored.get("starttime"), stored.get("endtime"), errors)
    if errors:
        raise ValidationFailed(errors)

    location_name = d["location_name"].strip()
    required_staff = int(d.get("required_staff") or 1)

    dup = _find_duplicate(location_name, stored["shiftdate"], stored["starttime"], stored["endtime"])
    if dup:
        log.info("Duplicate shift creation prevented: existing=%s location=%r start=%s",
                 dup.id, location_name, stored["starttime"])
        return fail(
            "A shift already exists for the same location, date and time. "
            "Update the existing shift instead of creating a new one.",
            status=409, code="DUPLICATE_SHIFT",
            detail={"existing_shift_id": dup.id, "required_staff": dup.required_staff},
        )

    shift = ShiftRequest(
        location_name=location_name,
        client_name=(d.get("client_name") or "").strip() or None,
        shift_date=stored["shiftdate"],
        start_time=stored["starttime"],
        end_time=stored["endtime"],
        required_staff=required_staff,
        notes=d.get("notes"),
        created_by_id=current_user_id(),
    )
    shift.staff_shifts = [StaffShift(order=i, status="open") for i in range(1, required_staff + 1)]
    db.session.add(shift)
    db.session.commit()

    notifications.notify_new_shift(shift)
    return ok(shift.to_dict(tc, with_staff=True), status=201)


@bp.get("")
@requires_roles("client", "staff", "employee")
def list_shift_requests():
    tc = get_time_service()
    lo, hi = _day_bounds(request.args.get("from"), request.args.get("to"))
    page, size = page_limit()

    q = ShiftRequest.query.filter(ShiftRequest.deleted_at.is_(None))
    if lo:
        q = q.filter(ShiftRequest.start_time >= lo)
    if hi:
        q = q.filter(ShiftRequest.start_time < hi)
    location = (request.args.get("location") or "").strip()
    if location:
        q = q.filter(ShiftRequest.location_name.ilike(f"%{location}%"))
    q = q.order_by(ShiftRequest.start_time.asc(), ShiftRequest.id.asc())

    items, total = paginate(q, page, size)
    return ok([s.to_dict(tc) for s in items], page=page, size=size, total=total)


@bp.get("/<int:shift_id>")
@requires_roles("client", "staff", "employee")
def get_shift_request(shift_id: int):
    return ok(_get_shift(shift_id).to_dict(get_time_service(), with_staff=True))


@bp.patch("/<int:shift_id>")
@requires_roles("client", "staff")
def update_shift_request(shift_id: int):
    shift = _get_shift(shift_id)
    d = _body()
    tc = get_time_service()

    errors = check(d, _plain_rules(partial=True))
    present = [f for f in _TIME_FIELDS if f in d]
    stored, time_errors = civil_fields_to_storage(tc, d, present)
    errors.update(time_errors)

    start_s = stored.get("starttime", shift.start_time)
    end_s = stored.get("endtime", shift.end_time)
    _check_window(start_s, end_s, errors)

    new_staff = d.get("required_staff")
    if new_staff is not None and "required_staff" not in errors:
        new_staff = int(new_staff)
        taken = [s for s in shift.staff_shifts if s.order > new_staff and s.status != "open"]
        if taken:
            errors["required_staff"] = "cannot drop slots that are already accepted or approved"
    if errors:
        raise ValidationFailed(errors)

    location_name = (d.get("location_name") or shift.location_name).strip()
    shift_date = stored.get("shiftdate", shift.shift_date)
    dup = _find_duplicate(location_name, shift_date, start_s, end_s, exclude_id=shift.id)
    if dup:
        return fail("Another shift already covers this location, date and time.",
                    status=409, code="DUPLICATE_SHIFT", detail={"existing_shift_id": dup.id})

    for field, value in stored.items():
        setattr(shift, _COLUMN_FOR[field], value)
    shift.location_name = location_name
    if "client_name" in d:
        shift.client_name = (d.get("client_name") or "").strip() or None
    if "notes" in d:
        shift.notes = d.get("notes")

    if new_staff is not None and new_staff != shift.required_staff:
        if new_staff > shift.required_staff:
            for i in range(shift.required_staff + 1, new_staff + 1):
                shift.staff_shifts.append(StaffShift(order=i, status="open"))
        else:
            shift.staff_shifts = [s for s in shift.staff_shifts if s.order <= new_staff]
        shift.required_staff = new_staff

    db.session.commit()
    return ok(shift.to_dict(tc, with_staff=True))


@bp.delete("/<int:shift_id>")
@requires_roles("client", "staff")
def delete_shift_request(shift_id: int):
    shift = _get_shift(shift_id)
    shift.deleted_at = datetime.utcnow()
    db.session.commit()
    return ok({"id": shift.id, "deleted": True})


# ---------- staff shift slots ----------

@bp.get("/mine")
@requires_roles("employee")
def my_staff_shifts():
    tc = get_time_service()
    uid = current_user_id()
    rows = (
        StaffShift.query.join(ShiftRequest)
        .filter(StaffShift.employee_id == uid, ShiftRequest.deleted_at.is_(None))
        .order_by(ShiftRequest.start_time.asc())
        .all()
    )
    return ok([{**s.to_dict(tc), "shift": s.shift_request.to_dict(tc)} for s in rows])


@bp.post("/staff-shifts/<int:staff_shift_id>/accept")
@requires_roles("employee", "staff")
def accept_staff_shift(staff_shift_id: int):
    tc = get_time_service()
    ss = _get_staff_shift(staff_shift_id)
    uid = current_user_id()

    if ss.status != "open":
        return fail("Shift slot is not open for acceptance", status=409, code="SLOT_NOT_OPEN")

    other = StaffShift.query.filter(
        StaffShift.shift_request_id == ss.shift_request_id,
        StaffShift.employee_id == uid,
        StaffShift.id != ss.id,
    ).first()
    if other:
        return fail("You have already accepted another slot for this shift.",
                    status=409, code="ALREADY_ASSIGNED")

    ss.status = "pending_approval"
    ss.employee_id = uid
    ss.accepted_at = tc.now_for_storage()
    ss.rejection_reason = None
    db.session.commit()

    notifications.notify_shift_accepted(ss)
    return ok(ss.to_dict(tc))


@bp.post("/staff-shifts/<int:staff_shift_id>/approve")
@requires_roles("staff")
def approve_staff_shift(staff_shift_id: int):
    tc = get_time_service()
    ss = _get_staff_shift(staff_shift_id)
    if ss.status != "pending_approval":
        return fail("Shift slot is not pending approval", status=409, code="SLOT_NOT_PENDING")

    ss.status = "approved"
    ss.approved_at = tc.now_for_storage()
    db.session.commit()

    notifications.notify_shift_reviewed(ss, approved=True)
    return ok(ss.to_dict(tc))


@bp.post("/staff-shifts/<int:staff_shift_id>/reject")
@requires_roles("staff")
def reject_staff_shift(staff_shift_id: int):
    """Clears the assignment and reopens the slot for other employees."""
    tc = get_time_service()
    ss = _get_staff_shift(staff_shift_id)
    if ss.status != "pending_approval":
        return fail("Shift slot is not pending approval", status=409, code="SLOT_NOT_PENDING")

    reason = (_body().get("reason") or "").strip() or None
    # tell the employee before the assignment is cleared
    notifications.notify_shift_reviewed(ss, approved=False, reason=reason)

    ss.status = "open"
    ss.employee_id = None
    ss.accepted_at = None
    ss.approved_at = None
    ss.rejection_reason = reason
    db.session.commit()
    return ok(ss.to_dict(tc))


@bp.post("/staff-shifts/<int:staff_shift_id>/assign")
@requires_roles("staff", "client")
def assign_staff_shift(staff_shift_id: int):
    """Put a named employee straight into an open slot; the slot is approved on the spot."""
    tc = get_time_service()
    ss = _get_staff_shift(staff_shift_id)

    email = (_body().get("email") or "").strip().lower()
    if not email:
        raise ValidationFailed({"email": "email is required"})
    employee = User.query.filter_by(email=email).first()
    if not employee or employee.deleted_at is not None or employee.status != "active":
        raise APIError("EMPLOYEE_NOT_FOUND", "No active employee with that email address", 404)
    if "employee" not in employee.role_codes():
        raise ValidationFailed({"email": "email does not belong to an employee"})

    if ss.status != "open":
        return fail("Shift slot is not open", status=409, code="SLOT_NOT_OPEN")

    shift = ss.shift_request
    if any(s.employee_id == employee.id for s in shift.staff_shifts if s.id != ss.id):
        return fail("Employee already holds a slot on this shift.", status=409, code="ALREADY_ASSIGNED")

    clash = _employee_clash(employee.id, shift)
    if clash:
        return fail("Employee already has a shift that overlaps this time.",
                    status=409, code="OVERLAPPING_SHIFT", detail={"staff_shift_id": clash.id})

    ss.status = "approved"
    ss.employee_id = employee.id
    ss.accepted_at = None
    ss.approved_at = tc.now_for_storage()
    ss.rejection_reason = None
    db.session.commit()
    log.info("Staff shift %s assigned to user %s by user %s", ss.id, employee.id, current_user_id())

    notifications.notify_shift_reviewed(ss, approved=True)
    return ok(ss.to_dict(tc))


@bp.post("/staff-shifts/<int:staff_shift_id>/remove")
@requires_roles("staff", "client")
def remove_staff_shift_employee(staff_shift_id: int):
    tc = get_time_service()
    ss = _get_staff_shift(staff_shift_id)
    if ss.employee_id is None:
        return fail("No employee is assigned to this shift slot", status=409, code="SLOT_NOT_ASSIGNED")

    notifications.notify_shift_removed(ss)
    log.info("User %s removed from staff shift %s by user %s", ss.employee_id, ss.id, current_user_id())

    ss.status = "open"
    ss.employee_id = None
    ss.accepted_at = None
    ss.approved_at = None
    db.session.commit()
    return ok(ss.to_dict(tc))


@bp.get("/available")
@requires_roles("employee", "staff")
def available_shift_requests():
    """
    Shift requests with at least one open slot, from today (reference zone)
    onwards or on one `date`. Employees do not see shifts they already hold a
    slot on.
    """
    tc = get_time_service()
    page, size = page_limit()

    q = ShiftRequest.query.filter(
        ShiftRequest.deleted_at.is_(None),
        ShiftRequest.staff_shifts.any(StaffShift.status == "open"),
    )
    day = request.args.get("date")
    if day:
        lo, hi = _day_bounds(day, day)
        q = q.filter(ShiftRequest.start_time >= lo, ShiftRequest.start_time < hi)
    else:
        q = q.filter(ShiftRequest.shift_date >= tc.storage_from_civil(tc.today().isoformat()).value)

    roles = current_roles()
    if not roles & {"staff", "admin"}:
        q = q.filter(~ShiftRequest.staff_shifts.any(StaffShift.employee_id == current_user_id()))

    q = q.order_by(ShiftRequest.start_time.asc(), ShiftRequest.id.asc())
    items, total = paginate(q, page, size)
    rows = [
        {**s.to_dict(tc), "open_slots": [ss.id for ss in s.staff_shifts if ss.status == "open"]}
        for s in items
    ]
    return ok(rows, page=page, size=size, total=total)
