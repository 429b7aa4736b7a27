import smtplib

import pytest

from roster_api.models.shift import ShiftRequest
from roster_api.services import mailer, notifications
from roster_api.services.time_conversion import DISPLAY_PLACEHOLDER


def _shift(**kw):
    fields = dict(
        location_name="Docklands Warehouse",
        client_name="Acme & Sons",
        shift_date="2025-01-14 13:00:00",
        start_time="2025-01-15 03:30:00",
        end_time="2025-01-15 11:30:00",
        required_staff=1,
    )
    fields.update(kw)
    return ShiftRequest(**fields)


def test_templates_render_reference_zone_times(app):
    tpl = notifications.shift_new_employee("Eli", _shift())
    assert tpl["subject"] == "New shift available: 2025-01-15 at Docklands Warehouse"
    assert "2025-01-15 14:30 - 2025-01-15 22:30" in tpl["html"]
    # user supplied text is escaped
    assert "Acme &amp; Sons" in tpl["html"]


def test_missing_times_render_placeholder(app):
    tpl = notifications.shift_approved_employee("Eli", _shift(start_time=None, end_time="garbage"))
    assert f"{DISPLAY_PLACEHOLDER} - {DISPLAY_PLACEHOLDER}" in tpl["html"]
    for bad in ("None", "null", "Invalid Date"):
        assert bad not in tpl["html"]


def test_rejection_reason_is_optional(app):
    with_reason = notifications.shift_rejected_employee("Eli", _shift(), "No <b>licence</b>")
    without = notifications.shift_rejected_employee("Eli", _shift(), None)
    assert "No &lt;b&gt;licence&lt;/b&gt;" in with_reason["html"]
    assert "Reason" not in without["html"]


def test_send_mail_is_a_noop_when_disabled(app, caplog):
    with caplog.at_level("INFO", logger="roster_api.services.mailer"):
        assert mailer.send_mail("a@b.c", "Hi", "<p>hi</p>") is False
    assert any("Mail disabled" in r.getMessage() for r in caplog.records)


def test_send_failures_are_logged_not_raised(app, users, monkeypatch, caplog):
    def boom(*a, **kw):
        raise OSError("smtp down")

    monkeypatch.setattr(notifications, "send_mail", boom)
    with caplog.at_level("ERROR", logger="roster_api.services.notifications"):
        sent = notifications.notify_timesheet_submitted(users["employee"].id, "2025-01-13", "2025-01-19", 3, 22.5)
    assert sent == 0
    assert any("Email send error" in r.getMessage() for r in caplog.records)


def test_timesheet_submission_goes_to_admin_and_staff(app, users, monkeypatch):
    outbox = []
    monkeypatch.setattr(notifications, "send_mail", lambda to, subject, html: outbox.append((to, subject)) or True)

    sent = notifications.notify_timesheet_submitted(users["employee"].id, "2025-01-13", "2025-01-19", 3, 22.5)
    assert sent == 2
    assert sorted(to for to, _ in outbox) == ["admin@test.local", "staff@test.local"]
    assert outbox[0][1] == "Timesheet submitted: Eli Employee (2025-01-13 to 2025-01-19)"


def test_new_shift_notifies_employees(client, auth, monkeypatch):
    outbox = []
    monkeypatch.setattr(notifications, "send_mail", lambda to, subject, html: outbox.append(to) or True)
    r = client.post("/api/v1/shift-requests", json={
        "location_name": "Docklands Warehouse",
        "shiftdate": "2025-01-15",
        "starttime": "2025-01-15 14:30",
        "endtime": "2025-01-15 22:30",
        "required_staff": 1,
    }, headers=auth("client"))
    assert r.status_code == 201
    assert sorted(outbox) == ["emp2@test.local", "emp@test.local"]


class _BrokenStartTLS(smtplib.SMTP):
    """Never connects; STARTTLS fails the way an unsupported server answers."""

    def __init__(self, host, port, timeout=None):
        super().__init__()

    def starttls(self, *args, **kwargs):
        raise smtplib.SMTPNotSupportedError("STARTTLS extension not supported by server.")


def test_smtp_error_is_not_masked_by_quit(app, monkeypatch):
    app.config.update(MAIL_ENABLED=True, SMTP_USE_SSL=False, SMTP_USER="roster@test.local")
    monkeypatch.setattr(mailer.smtplib, "SMTP", _BrokenStartTLS)
    with pytest.raises(smtplib.SMTPNotSupportedError):
        mailer.send_mail("a@b.c", "Hi", "<p>hi</p>")


def test_removal_template(app):
    tpl = notifications.shift_removed_employee("Eli", _shift())
    assert tpl["subject"] == "Shift Cancelled: 2025-01-15 at Docklands Warehouse"
    assert "2025-01-15 14:30 - 2025-01-15 22:30" in tpl["html"]
