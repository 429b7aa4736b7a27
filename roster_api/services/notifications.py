# roster_api/services/notifications.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from markupsafe import escape

from roster_api.extensions import db, get_time_service
from roster_api.models.user import User
from roster_api.models.shift import ShiftRequest, StaffShift
from roster_api.services.mailer import send_mail
from roster_api.services.time_conversion import DisplayPrecision

log = logging.getLogger(__name__)

_FOOTER = (
    '<hr style="border:none;border-top:1px solid #ddd;margin:30px 0;" />'
    '<p style="font-size:12px;color:#999;text-align:center;">'
    "This is an automated message. Please do not reply to this email.</p>"
)


def _shift_when(shift: ShiftRequest) -> dict:
    """Reference-zone display strings; missing/bad values become the placeholder."""
    tc = get_time_service()
    return {
        "date": tc.format_for_display(shift.shift_date, DisplayPrecision.DATE_ONLY),
        "start": tc.format_for_display(shift.start_time),
        "end": tc.format_for_display(shift.end_time),
    }


def _card(location: str, when: dict) -> str:
    return (
        '<div style="background:#e3f2fd;border:1px solid #bbdefb;border-radius:8px;padding:20px;margin:20px 0;">'
        f"<p><strong>Location:</strong> {escape(location)}</p>"
        f"<p><strong>Date:</strong> {escape(when['date'])}</p>"
        f"<p><strong>Time:</strong> {escape(when['start'])} - {escape(when['end'])}</p>"
        "</div>"
    )


# ---------- templates ----------

def shift_new_employee(employee_name: str, shift: ShiftRequest) -> dict:
    when = _shift_when(shift)
    return {
        "subject": f"New shift available: {when['date']} at {shift.location_name}",
        "html": (
            f"<p>Hi <strong>{escape(employee_name)}</strong>,</p>"
            f"<p>A new shift has been posted for <strong>{escape(shift.client_name or '')}</strong>.</p>"
            + _card(shift.location_name, when)
            + "<p>Log in to accept it before someone else does.</p>"
            + _FOOTER
        ),
    }


def shift_accepted_client(client_name: str, employee_name: str, shift: ShiftRequest) -> dict:
    when = _shift_when(shift)
    return {
        "subject": f"Shift Accepted Notification: {when['date']}",
        "html": (
            f"<p>Dear <strong>{escape(client_name)}</strong>,</p>"
            f"<p>Your shift at <strong>{escape(shift.location_name)}</strong> on "
            f"<strong>{escape(when['date'])}</strong> has been accepted by "
            f"<strong>{escape(employee_name)}</strong>.</p>"
            + _card(shift.location_name, when)
            + "<p>You will receive another notification once an administrator approves it.</p>"
            + _FOOTER
        ),
    }


def shift_approved_employee(employee_name: str, shift: ShiftRequest) -> dict:
    when = _shift_when(shift)
    return {
        "subject": f"Shift Approved: {when['date']} at {shift.location_name}",
        "html": (
            f"<p>Hi <strong>{escape(employee_name)}</strong>,</p>"
            "<p>Your shift has been <strong>approved</strong>.</p>"
            + _card(shift.location_name, when)
            + _FOOTER
        ),
    }


def shift_rejected_employee(employee_name: str, shift: ShiftRequest, reason: Optional[str]) -> dict:
    when = _shift_when(shift)
    reason_html = f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
    return {
        "subject": f"Shift Not Approved: {when['date']} at {shift.location_name}",
        "html": (
            f"<p>Hi <strong>{escape(employee_name)}</strong>,</p>"
            "<p>Your acceptance of this shift was not approved.</p>"
            + _card(shift.location_name, when)
            + reason_html
            + _FOOTER
        ),
    }


def shift_removed_employee(employee_name: str, shift: ShiftRequest) -> dict:
    when = _shift_when(shift)
    return {
        "subject": f"Shift Cancelled: {when['date']} at {shift.location_name}",
        "html": (
            f"<p>Hi <strong>{escape(employee_name)}</strong>,</p>"
            "<p>You have been removed from this shift and no longer need to attend.</p>"
            + _card(shift.location_name, when)
            + _FOOTER
        ),
    }


def timesheet_submitted_admin(employee_name: str, week_start: str, week_end: str,
                              entry_count: int, total_hours: float) -> dict:
    return {
        "subject": f"Timesheet submitted: {employee_name} ({week_start} to {week_end})",
        "html": (
            f"<p><strong>{escape(employee_name)}</strong> submitted a timesheet for review.</p>"
            f"<p><strong>Week:</strong> {escape(week_start)} to {escape(week_end)}</p>"
            f"<p><strong>Entries:</strong> {entry_count} &middot; "
            f"<strong>Total hours:</strong> {total_hours:.2f}</p>"
            + _FOOTER
        ),
    }


# ---------- delivery ----------

def _deliver(recipients: Iterable[User], build) -> int:
    """Send one message per recipient; failures are logged, never raised. Returns sent count."""
    sent = 0
    for u in recipients:
        if not u.email:
            continue
        tpl = build(u)
        try:
            if send_mail(u.email, tpl["subject"], tpl["html"]):
                sent += 1
        except Exception:
            log.exception("Email send error (%s) to %s", tpl["subject"], u.email)
    return sent


def _users_with_role(*codes: str) -> List[User]:
    users = User.query.filter(User.deleted_at.is_(None), User.status == "active").all()
    return [u for u in users if any(c in u.role_codes() for c in codes)]


def notify_new_shift(shift: ShiftRequest) -> int:
    employees = _users_with_role("employee")
    log.info("New shift %s: notifying %d employee(s)", shift.id, len(employees))
    return _deliver(employees, lambda u: shift_new_employee(u.full_name, shift))


def notify_shift_accepted(staff_shift: StaffShift) -> int:
    shift = staff_shift.shift_request
    employee = staff_shift.employee
    requester = shift.created_by
    if not requester:
        log.info("Shift %s has no requester to notify", shift.id)
        return 0
    employee_name = employee.full_name if employee else "An employee"
    return _deliver(
        [requester],
        lambda u: shift_accepted_client(shift.client_name or u.full_name, employee_name, shift),
    )


def notify_shift_reviewed(staff_shift: StaffShift, approved: bool, reason: Optional[str] = None) -> int:
    shift = staff_shift.shift_request
    employee = staff_shift.employee
    if not employee:
        return 0
    if approved:
        return _deliver([employee], lambda u: shift_approved_employee(u.full_name, shift))
    return _deliver([employee], lambda u: shift_rejected_employee(u.full_name, shift, reason))


def notify_shift_removed(staff_shift: StaffShift) -> int:
    employee = staff_shift.employee
    if not employee:
        return 0
    return _deliver([employee], lambda u: shift_removed_employee(u.full_name, staff_shift.shift_request))


def notify_timesheet_submitted(user_id: int, week_start: str, week_end: str,
                               entry_count: int, total_hours: float) -> int:
    employee = db.session.get(User, user_id)
    name = employee.full_name if employee else f"User {user_id}"
    admins = _users_with_role("admin", "staff")
    return _deliver(
        admins,
        lambda u: timesheet_submitted_admin(name, week_start, week_end, entry_count, total_hours),
    )
