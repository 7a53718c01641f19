from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Dict, Optional

from core.settings import SYNC
from datetime_utils import parse_iso_date, utc_now
from models.pending_op import Endpoint
from services.patients_api import ApiResult, PatientsApi
from services.pending_ops_queue import PendingOperation, PendingOpsQueue
from services.records import PatientRecords
from storage.config import load_config, record_sync_finished


SYNC_LOG_PATH = SYNC.log_path


def _ensure_logger() -> logging.Logger:
    logger = logging.getLogger("patients.sync")
    if not logger.handlers:
        Path(SYNC_LOG_PATH).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(SYNC_LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def read_sync_log(lines: int = 100) -> str:
    try:
        with open(SYNC_LOG_PATH, "r", encoding="utf-8") as fh:
            content = fh.readlines()
    except FileNotFoundError:
        return "Sync log has not been created yet."
    return "\n".join(line.rstrip("\n") for line in content[-lines:])


class SyncState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"


@dataclass
class SyncRunResult:
    state: SyncState
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    pending: int = 0
    errors: Dict[int, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is SyncState.SUCCEEDED


class SyncService:
    """Drains the pending-operation queue against the API.

    A run works on a snapshot of the queue taken when it starts, in FIFO
    order. Each entry is either removed (acknowledged) or has its failure
    recorded; one failing entry never stops the rest of the run.
    """

    def __init__(
        self,
        api: PatientsApi,
        records: Optional[PatientRecords] = None,
        queue: Optional[PendingOpsQueue] = None,
        *,
        config_path: Optional[Path] = None,
    ) -> None:
        self.api = api
        self.records = records or PatientRecords()
        self.queue = queue or PendingOpsQueue()
        self.config_path = config_path
        self.logger = _ensure_logger()
        self._run_lock = threading.Lock()
        self._cancelled = threading.Event()
        self._state = SyncState.IDLE
        self._listeners: set[Callable[[SyncState], None]] = set()

    # ------------------------------------------------------------------
    # Run state
    @property
    def state(self) -> SyncState:
        return self._state

    def subscribe(self, callback: Callable[[SyncState], None]) -> None:
        self._listeners.add(callback)

    def unsubscribe(self, callback: Callable[[SyncState], None]) -> None:
        self._listeners.discard(callback)

    def _set_state(self, state: SyncState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                self.logger.exception("Sync state listener failed")

    # ------------------------------------------------------------------
    # Public API
    def run(self) -> SyncRunResult:
        with self._run_lock:
            try:
                return self._drain()
            finally:
                # a cancel requested while this run was queued applies to it
                self._cancelled.clear()

    def _drain(self) -> SyncRunResult:
        self._set_state(SyncState.DRAINING)
        result = SyncRunResult(state=SyncState.DRAINING)
        try:
            snapshot = self.queue.list_all()
        except Exception as exc:
            self.logger.exception("Could not read the pending queue")
            snapshot = []
            result.error = str(exc) or exc.__class__.__name__
        result.attempted = len(snapshot)
        self.logger.info("Sync run started with %s queued operation(s)", len(snapshot))

        for entry in snapshot:
            if self._cancelled.is_set():
                result.error = "cancelled"
                self.logger.info(
                    "Sync run cancelled, %s operation(s) left for the next run",
                    result.attempted - result.synced - result.failed,
                )
                break
            error = self._process(entry)
            if error is None:
                result.synced += 1
            else:
                result.failed += 1
                result.errors[entry.id] = error

        result.pending = self._safe_count()
        clean = result.failed == 0 and result.error is None
        result.state = SyncState.SUCCEEDED if clean else SyncState.PARTIALLY_FAILED
        self.logger.info(
            "Sync run finished: %s synced, %s failed, %s pending",
            result.synced,
            result.failed,
            result.pending,
        )
        self._remember_run(result)
        self._set_state(result.state)
        return result

    def request_sync_now(self) -> SyncRunResult:
        return self.run()

    def cancel(self) -> None:
        """Stop the current run after the entry being processed.

        A cancel issued while no run holds the lock stops the next run before
        its first entry.
        """
        self._cancelled.set()

    def pending_count(self) -> int:
        return self.queue.count()

    def status(self) -> dict:
        cfg = load_config(self.config_path)
        return {
            "state": self._state.value,
            "queueSize": self.queue.count(),
            "lastSyncAt": cfg.last_sync_time,
            "lastError": self.queue.last_error() or cfg.last_sync_error,
        }

    # ------------------------------------------------------------------
    def _process(self, entry: PendingOperation) -> Optional[str]:
        """Replay one entry; return ``None`` on success or the failure message."""
        try:
            if entry.payload is None:
                return self._fail(entry, "invalid payload")
            try:
                endpoint = Endpoint(entry.endpoint)
            except ValueError:
                return self._fail(entry, f"unknown endpoint {entry.endpoint}")

            if endpoint is Endpoint.ADD_VISIT and not entry.payload.get("vital_id"):
                self.logger.warning("Replaying visit %s without a vitals reference", entry.id)

            outcome = self.api.send(endpoint, entry.payload)
            if not outcome.ok:
                self.logger.warning(
                    "Replay of %s (id=%s, attempt %s) failed: %s",
                    entry.endpoint,
                    entry.id,
                    entry.attempt_count + 1,
                    outcome.message,
                )
                return self._fail(entry, outcome.message)

            if endpoint is Endpoint.ADD_VITALS:
                self._link_vitals(entry, outcome)
            # the vitals id is stored before the entry leaves the queue
            self.queue.remove(entry.id)
            self.logger.info("Synced and removed pending id=%s (%s)", entry.id, entry.endpoint)
            return None
        except Exception as exc:  # pragma: no cover - defensive
            self.logger.exception("Replay of pending id=%s crashed", entry.id)
            return self._fail(entry, str(exc) or exc.__class__.__name__)

    def _fail(self, entry: PendingOperation, message: str) -> str:
        try:
            self.queue.record_failure(entry.id, message)
        except Exception:
            self.logger.exception("Could not record failure for pending id=%s", entry.id)
        return message

    def _safe_count(self) -> int:
        try:
            return self.queue.count()
        except Exception:
            self.logger.exception("Could not count pending operations")
            return -1

    def _link_vitals(self, entry: PendingOperation, outcome: ApiResult) -> None:
        remote_id = outcome.remote_id
        if remote_id is None:
            return
        payload = entry.payload or {}
        visit_date = parse_iso_date(payload.get("visit_date"))
        patient_id = payload.get("patient_id")
        if not patient_id or visit_date is None:
            self.logger.warning("Vitals payload %s cannot be matched to a local record", entry.id)
            return
        linked = self.records.link_remote_vitals(str(patient_id), visit_date, remote_id)
        if linked is None:
            self.logger.warning(
                "No local vitals for patient %s on %s (remote id %s)", patient_id, visit_date, remote_id
            )

    def _remember_run(self, result: SyncRunResult) -> None:
        last_error = result.error or next(iter(result.errors.values()), None)
        try:
            record_sync_finished(utc_now(), last_error, self.config_path)
        except OSError as exc:
            self.logger.warning("Could not persist sync time: %s", exc)


__all__ = ["SyncService", "SyncRunResult", "SyncState", "SYNC_LOG_PATH", "read_sync_log"]
