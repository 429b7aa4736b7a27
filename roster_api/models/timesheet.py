# roster_api/models/timesheet.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import Index, CheckConstraint, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roster_api.extensions import db
from roster_api.services.time_conversion import DisplayPrecision, TimeConversionService

TIMESHEET_STATUSES = ("draft", "submitted", "approved", "rejected")


class TimesheetEntry(db.Model):
    """
    Hours an employee worked at a location.
    sign_in / sign_out are UTC "YYYY-MM-DD HH:MM:SS" strings.
    """

    __tablename__ = "timesheet_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    staff_shift_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("staff_shifts.id", ondelete="SET NULL"), nullable=True
    )

    sign_in: Mapped[str] = mapped_column(db.String(19), nullable=False)
    sign_out: Mapped[str] = mapped_column(db.String(19), nullable=False)
    break_minutes: Mapped[int] = mapped_column(nullable=False, default=0)
    hours: Mapped[float] = mapped_column(db.Numeric(5, 2), nullable=False, default=0)

    location_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default="draft")

    client_name: Mapped[Optional[str]] = mapped_column(db.String(50), nullable=True)
    client_notes: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    submitted_at: Mapped[Optional[str]] = mapped_column(db.String(19), nullable=True)
    reviewed_at: Mapped[Optional[str]] = mapped_column(db.String(19), nullable=True)
    reviewed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    review_comment: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint(
            "status in ('draft','submitted','approved','rejected')", name="ck_timesheet_status"
        ),
        CheckConstraint("break_minutes >= 0", name="ck_timesheet_break"),
        Index("ix_timesheet_user_sign_in", "user_id", "sign_in"),
    )

    def to_dict(self, tc: TimeConversionService) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.user_id,
            "date": tc.civil_for_api(self.sign_in, DisplayPrecision.DATE_ONLY),
            "start_time": tc.civil_for_api(self.sign_in, DisplayPrecision.TIME_MINUTES),
            "end_time": tc.civil_for_api(self.sign_out, DisplayPrecision.TIME_MINUTES),
            "break_time_minutes": self.break_minutes,
            "duration_hours": float(self.hours) if self.hours is not None else 0.0,
            "location_name": self.location_name,
            "notes": self.notes or "",
            "status": self.status,
            "client_name": self.client_name or "",
            "client_notes": self.client_notes or "",
            "submitted_at": tc.civil_for_api(self.submitted_at),
            "reviewed_at": tc.civil_for_api(self.reviewed_at),
            "reviewed_by": self.reviewed_by_id,
            "review_comment": self.review_comment,
        }
