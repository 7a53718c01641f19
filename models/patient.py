# patients/models/patient.py
from datetime import date, datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class Patient(SQLModel, table=True):
    __tablename__ = "patients"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: str = Field(unique=True, index=True)  # sent as "unique"
    first_name: str
    last_name: str
    registration_date: date
    dob: Optional[date] = None
    gender: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
