from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, update
from sqlmodel import select

from datetime_utils import utc_now
from models.pending_op import Endpoint, PendingSync
from storage.db import get_session


VALID_ENDPOINTS = {endpoint.value for endpoint in Endpoint}
MAX_ERROR_LENGTH = 1000


@dataclass(frozen=True)
class PendingOperation:
    id: int
    endpoint: str
    payload: Optional[Dict[str, Any]]
    created_at: datetime
    attempt_count: int
    last_error: Optional[str]
    failed_at: Optional[datetime] = None


def _decode_payload(raw: str) -> Optional[Dict[str, Any]]:
    try:
        payload = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


class PendingOpsQueue:
    """Durable FIFO of remote writes that have not been acknowledged yet.

    Every method is a single short transaction, so the write path and a sync
    run can use the queue at the same time without extra locking.
    """

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    def enqueue(
        self,
        endpoint: Endpoint | str,
        payload: Dict[str, Any],
        last_error: Optional[str] = None,
    ) -> int:
        value = endpoint.value if isinstance(endpoint, Endpoint) else str(endpoint)
        if value not in VALID_ENDPOINTS:
            raise ValueError(f"Unsupported endpoint: {endpoint}")
        now = utc_now()
        record = PendingSync(
            endpoint=value,
            payload=json.dumps(payload, ensure_ascii=False),
            created_at=now,
            attempt_count=0,
            last_error=last_error[:MAX_ERROR_LENGTH] if last_error else None,
            failed_at=now if last_error else None,
        )
        with self._session_factory() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return int(record.id)

    def list_all(self) -> List[PendingOperation]:
        with self._session_factory() as session:
            stmt = select(PendingSync).order_by(PendingSync.created_at.asc(), PendingSync.id.asc())
            rows = list(session.exec(stmt))

        return [
            PendingOperation(
                id=row.id,
                endpoint=row.endpoint,
                payload=_decode_payload(row.payload),
                created_at=row.created_at,
                attempt_count=row.attempt_count,
                last_error=row.last_error,
                failed_at=row.failed_at,
            )
            for row in rows
        ]

    def remove(self, op_id: int) -> None:
        with self._session_factory() as session:
            record = session.get(PendingSync, op_id)
            if record:
                session.delete(record)
                session.commit()

    def record_failure(self, op_id: int, error: str) -> None:
        """Count one more failed attempt and keep its error."""
        stmt = (
            update(PendingSync)
            .where(PendingSync.id == op_id)
            .values(
                attempt_count=PendingSync.attempt_count + 1,
                last_error=(error or "unknown error")[:MAX_ERROR_LENGTH],
                failed_at=utc_now(),
            )
        )
        with self._session_factory() as session:
            session.exec(stmt)
            session.commit()

    def count(self) -> int:
        with self._session_factory() as session:
            return int(session.exec(select(func.count()).select_from(PendingSync)).one())

    def last_error(self) -> Optional[str]:
        """Error of the most recent failure among queued entries."""
        with self._session_factory() as session:
            stmt = (
                select(PendingSync.last_error)
                .where(PendingSync.last_error.is_not(None))
                .order_by(PendingSync.failed_at.desc(), PendingSync.id.desc())
                .limit(1)
            )
            return session.exec(stmt).first()

    def purge(
        self,
        *,
        max_attempts: Optional[int] = None,
        older_than: Optional[datetime] = None,
    ) -> int:
        """Drop entries past an attempt or age threshold.

        This is a maintenance policy; sync runs never call it.
        """
        conditions = []
        if max_attempts is not None:
            conditions.append(PendingSync.attempt_count >= max_attempts)
        if older_than is not None:
            conditions.append(PendingSync.created_at < older_than)
        if not conditions:
            return 0
        with self._session_factory() as session:
            rows = session.exec(select(PendingSync).where(or_(*conditions))).all()
            for row in rows:
                session.delete(row)
            session.commit()
            return len(rows)


__all__ = ["PendingOpsQueue", "PendingOperation", "VALID_ENDPOINTS"]
