"""SQLModel table for remote writes that still await confirmation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class Endpoint(str, Enum):
    REGISTER_PATIENT = "patients/register"
    ADD_VITALS = "vital/add"
    ADD_VISIT = "visits/add"


class PendingSync(SQLModel, table=True):
    __tablename__ = "pending_sync"

    id: Optional[int] = Field(default=None, primary_key=True)
    endpoint: str = Field(index=True)
    payload: str
    created_at: datetime = Field(default_factory=utc_now, index=True)
    attempt_count: int = Field(default=0)
    last_error: Optional[str] = None
    failed_at: Optional[datetime] = None


__all__ = ["Endpoint", "PendingSync"]
