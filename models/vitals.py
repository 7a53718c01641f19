"""SQLModel table for per-visit vitals."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class Vitals(SQLModel, table=True):
    """Height/weight/BMI captured for one patient on one visit date.

    ``remote_id`` is the identifier the API assigns once the matching
    ``vital/add`` push succeeds; visit payloads reference it as ``vital_id``.
    """

    __tablename__ = "vitals"
    __table_args__ = (
        UniqueConstraint("patient_owner_id", "visit_date", name="ux_vitals_patient_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_owner_id: int = Field(foreign_key="patients.id", index=True)
    visit_date: date = Field(index=True)
    height_cm: float
    weight_kg: float
    bmi: float
    remote_id: Optional[int] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utc_now)


__all__ = ["Vitals"]
