"""Assessment forms captured after vitals, chosen by BMI."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


GENERAL_HEALTH_CHOICES = ("Good", "Poor")


class GeneralAssessment(SQLModel, table=True):
    """Visit form for BMI below 25."""

    __tablename__ = "assessment_general"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_owner_id: int = Field(foreign_key="patients.id", index=True)
    visit_date: date = Field(index=True)
    general_health: str
    ever_on_diet: bool = False
    comments: str
    created_at: datetime = Field(default_factory=utc_now)


class OverweightAssessment(SQLModel, table=True):
    """Visit form for BMI of 25 and above."""

    __tablename__ = "assessment_overweight"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_owner_id: int = Field(foreign_key="patients.id", index=True)
    visit_date: date = Field(index=True)
    general_health: str
    using_drugs: bool = False
    comments: str
    created_at: datetime = Field(default_factory=utc_now)


__all__ = ["GENERAL_HEALTH_CHOICES", "GeneralAssessment", "OverweightAssessment"]
