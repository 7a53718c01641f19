"""HTTP client for the patient visits API.

Every call returns an :class:`ApiResult` instead of raising: ``OK`` only when
the HTTP status is 2xx *and* the body is ``{"success": true, "data": {...}}``;
``REJECTED`` when the server answered anything else; ``UNREACHABLE`` when the
request never completed (timeout, DNS, refused connection).
"""
from __future__ import annotations

import json
import logging
import socket
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

import requests

from core.settings import API
from datetime_utils import to_iso_date
from models.assessment import GeneralAssessment, OverweightAssessment
from models.patient import Patient
from models.pending_op import Endpoint
from models.vitals import Vitals


logger = logging.getLogger("patients.sync.api")


class ApiStatus(str, Enum):
    OK = "ok"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class ApiResult:
    status: ApiStatus
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ApiStatus.OK

    @property
    def remote_id(self) -> Optional[int]:
        value = self.data.get("id")
        if isinstance(value, bool) or value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def message(self) -> str:
        return self.error or self.status.value

    @classmethod
    def success(cls, data: Optional[Dict[str, Any]] = None) -> "ApiResult":
        return cls(ApiStatus.OK, dict(data or {}))

    @classmethod
    def rejected(cls, error: str) -> "ApiResult":
        return cls(ApiStatus.REJECTED, error=error)

    @classmethod
    def unreachable(cls, error: str) -> "ApiResult":
        return cls(ApiStatus.UNREACHABLE, error=error)


def _yes_no(value: Optional[bool]) -> str:
    if value is None:
        return ""
    return "Yes" if value else "No"


def _number(value: float) -> str:
    return f"{value:g}"


# ----------------------------------------------------------------------
# Request bodies (wire names follow the API)
@dataclass(frozen=True)
class RegisterPatientRequest:
    firstname: str
    lastname: str
    unique: str
    dob: str
    gender: str
    reg_date: str

    @classmethod
    def from_patient(cls, patient: Patient) -> "RegisterPatientRequest":
        return cls(
            firstname=patient.first_name,
            lastname=patient.last_name,
            unique=patient.patient_id,
            dob=to_iso_date(patient.dob),
            gender=patient.gender or "",
            reg_date=to_iso_date(patient.registration_date),
        )

    def to_payload(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class VitalsRequest:
    visit_date: str
    height: str
    weight: str
    bmi: str
    patient_id: str

    @classmethod
    def from_vitals(cls, vitals: Vitals, patient: Patient) -> "VitalsRequest":
        return cls(
            visit_date=to_iso_date(vitals.visit_date),
            height=_number(vitals.height_cm),
            weight=_number(vitals.weight_kg),
            bmi=_number(vitals.bmi),
            patient_id=patient.patient_id,
        )

    def to_payload(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class VisitRequest:
    general_health: str
    on_diet: str
    on_drugs: str
    comments: str
    visit_date: str
    patient_id: str
    vital_id: str

    @classmethod
    def from_general(
        cls, assessment: GeneralAssessment, patient: Patient, vital_id: Optional[int]
    ) -> "VisitRequest":
        # The general form never asks about drugs.
        return cls(
            general_health=assessment.general_health,
            on_diet=_yes_no(assessment.ever_on_diet),
            on_drugs="",
            comments=assessment.comments,
            visit_date=to_iso_date(assessment.visit_date),
            patient_id=patient.patient_id,
            vital_id="" if vital_id is None else str(vital_id),
        )

    @classmethod
    def from_overweight(
        cls, assessment: OverweightAssessment, patient: Patient, vital_id: Optional[int]
    ) -> "VisitRequest":
        return cls(
            general_health=assessment.general_health,
            on_diet="",
            on_drugs=_yes_no(assessment.using_drugs),
            comments=assessment.comments,
            visit_date=to_iso_date(assessment.visit_date),
            patient_id=patient.patient_id,
            vital_id="" if vital_id is None else str(vital_id),
        )

    def to_payload(self) -> Dict[str, str]:
        return asdict(self)


# ----------------------------------------------------------------------
def interpret_response(response: requests.Response) -> ApiResult:
    if not 200 <= response.status_code < 300:
        return ApiResult.rejected(f"HTTP {response.status_code}")
    try:
        body = response.json()
    except ValueError:
        return ApiResult.rejected("response body is not JSON")
    if not isinstance(body, dict):
        return ApiResult.rejected("unexpected response shape")
    if body.get("success") is not True:
        message = body.get("message") or "success flag is false"
        return ApiResult.rejected(str(message))
    data = body.get("data")
    if data is None:
        return ApiResult.success()
    if not isinstance(data, dict):
        return ApiResult.rejected("unexpected data shape")
    return ApiResult.success(data)


class PatientsApi:
    def __init__(
        self,
        base_url: str = API.base_url,
        *,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = API.timeout_sec,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token_provider = token_provider or (lambda: API.default_token)
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    # ------------------------------------------------------------------
    # Typed operations
    def register_patient(self, request: RegisterPatientRequest) -> ApiResult:
        return self.send(Endpoint.REGISTER_PATIENT, request.to_payload())

    def add_vitals(self, request: VitalsRequest) -> ApiResult:
        return self.send(Endpoint.ADD_VITALS, request.to_payload())

    def add_visit(self, request: VisitRequest) -> ApiResult:
        return self.send(Endpoint.ADD_VISIT, request.to_payload())

    # ------------------------------------------------------------------
    def send(self, endpoint: Endpoint | str, payload: Dict[str, Any]) -> ApiResult:
        """POST ``payload`` verbatim; used for first pushes and for replays."""
        path = endpoint.value if isinstance(endpoint, Endpoint) else str(endpoint)
        url = f"{self.base_url}/{path.strip('/')}"
        try:
            response = self.session.post(
                url,
                json=payload,
                headers=self._auth_headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.info("POST %s unreachable: %s", path, exc)
            return ApiResult.unreachable(str(exc) or exc.__class__.__name__)
        except (TypeError, ValueError) as exc:
            # payload could not be encoded
            logger.warning("POST %s not sent: %s", path, exc)
            return ApiResult.rejected(f"invalid payload: {exc}")

        result = interpret_response(response)
        if result.ok:
            logger.debug("POST %s ok", path)
        else:
            logger.info("POST %s rejected: %s", path, result.error)
        return result

    def is_reachable(self, timeout: float = 3.0) -> bool:
        parsed = urlparse(self.base_url)
        host = parsed.hostname
        if not host:
            return False
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False

    def _auth_headers(self) -> Dict[str, str]:
        try:
            token = self._token_provider()
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read API token: %s", exc)
            token = None
        if token and token.strip():
            return {"Authorization": f"Bearer {token.strip()}"}
        return {}


__all__ = [
    "ApiResult",
    "ApiStatus",
    "PatientsApi",
    "RegisterPatientRequest",
    "VisitRequest",
    "VitalsRequest",
    "interpret_response",
]
