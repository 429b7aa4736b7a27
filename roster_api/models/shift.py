# roster_api/models/shift.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import Index, CheckConstraint, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roster_api.extensions import db
from roster_api.services.time_conversion import DisplayPrecision, TimeConversionService

STAFF_SHIFT_STATUSES = ("open", "pending_approval", "approved")


class ShiftRequest(db.Model):
    """
    A client's request for N staff at a location over one time window.

    shift_date / start_time / end_time hold UTC "YYYY-MM-DD HH:MM:SS" strings
    (local midnight of the shift day for shift_date). No zone information
    lives in the database; fixed-width UTC strings sort chronologically.
    """

    __tablename__ = "shift_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    location_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    client_name: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    shift_date: Mapped[str] = mapped_column(db.String(19), nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(db.String(19), nullable=False)
    end_time: Mapped[str] = mapped_column(db.String(19), nullable=False)

    required_staff: Mapped[int] = mapped_column(nullable=False, default=1)
    notes: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)

    created_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    created_by = relationship("User", foreign_keys=[created_by_id])
    staff_shifts: Mapped[List["StaffShift"]] = relationship(
        back_populates="shift_request",
        order_by="StaffShift.order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("required_staff >= 1", name="ck_shift_required_staff"),
        Index("ix_shift_location_window", "location_name", "shift_date", "start_time", "end_time"),
    )

    def to_dict(self, tc: TimeConversionService, with_staff: bool = False) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "location_name": self.location_name,
            "client_name": self.client_name,
            # reference-zone strings, as the client typed them
            "shiftdate": tc.civil_for_api(self.shift_date, DisplayPrecision.DATE_ONLY),
            "starttime": tc.civil_for_api(self.start_time),
            "endtime": tc.civil_for_api(self.end_time),
            "required_staff": self.required_staff,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if with_staff:
            out["staff_shifts"] = [s.to_dict(tc) for s in self.staff_shifts]
        return out


class StaffShift(db.Model):
    """One staff slot of a ShiftRequest (order 1..required_staff)."""

    __tablename__ = "staff_shifts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    shift_request_id: Mapped[int] = mapped_column(
        ForeignKey("shift_requests.id", ondelete="CASCADE"), index=True, nullable=False
    )
    order: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default="open")

    employee_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True
    )
    # UTC storage strings, same contract as ShiftRequest
    accepted_at: Mapped[Optional[str]] = mapped_column(db.String(19), nullable=True)
    approved_at: Mapped[Optional[str]] = mapped_column(db.String(19), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)

    shift_request: Mapped[ShiftRequest] = relationship(back_populates="staff_shifts")
    employee = relationship("User", foreign_keys=[employee_id])

    __table_args__ = (
        CheckConstraint(
            "status in ('open','pending_approval','approved')", name="ck_staff_shift_status"
        ),
        UniqueConstraint("shift_request_id", "order", name="uq_staff_shift_request_order"),
    )

    def to_dict(self, tc: TimeConversionService) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shift_request_id": self.shift_request_id,
            "order": self.order,
            "status": self.status,
            "employee_id": self.employee_id,
            "accepted_at": tc.civil_for_api(self.accepted_at),
            "approved_at": tc.civil_for_api(self.approved_at),
            "rejection_reason": self.rejection_reason,
        }
