"""Record-creation flows: commit locally, push once, queue on failure."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Optional

from core.bmi import assessment_for, calculate_bmi
from core.settings import SYNC
from models.assessment import GENERAL_HEALTH_CHOICES, GeneralAssessment, OverweightAssessment
from models.patient import Patient
from models.pending_op import Endpoint
from models.vitals import Vitals
from services.patients_api import (
    ApiResult,
    PatientsApi,
    RegisterPatientRequest,
    VisitRequest,
    VitalsRequest,
)
from services.pending_ops_queue import PendingOpsQueue
from services.records import PatientRecords


logger = logging.getLogger("patients.sync.writes")


class ValidationError(ValueError):
    """Input rejected before anything was written."""


@dataclass
class WriteResult:
    record: Any
    pushed: bool = False
    pending_id: Optional[int] = None
    error: Optional[str] = None
    next_assessment: Optional[str] = None

    @property
    def queued(self) -> bool:
        return self.pending_id is not None


def _required(**fields: Optional[str]) -> None:
    missing = [name for name, value in fields.items() if not value or not str(value).strip()]
    if missing:
        raise ValidationError(f"Please complete all required fields: {', '.join(missing)}")


class PatientService:
    """Entry point for register / vitals / assessment writes.

    The local commit is unconditional and happens first; a storage error
    there propagates to the caller. Everything after it (the push, the queue
    fallback, the vitals id update) only logs and reports through
    :class:`WriteResult`.
    """

    def __init__(
        self,
        records: Optional[PatientRecords] = None,
        queue: Optional[PendingOpsQueue] = None,
        api: Optional[PatientsApi] = None,
        *,
        push_on_save: bool = SYNC.push_on_save,
    ) -> None:
        self.records = records or PatientRecords()
        self.queue = queue or PendingOpsQueue()
        self.api = api or PatientsApi()
        self.push_on_save = push_on_save

    # ------------------------------------------------------------------
    def register_patient(
        self,
        patient_id: str,
        first_name: str,
        last_name: str,
        registration_date: date,
        dob: Optional[date] = None,
        gender: Optional[str] = None,
    ) -> WriteResult:
        _required(patient_id=patient_id, first_name=first_name, last_name=last_name)
        if registration_date is None:
            raise ValidationError("Registration date is required")
        if dob is not None and dob > registration_date:
            raise ValidationError("Date of birth cannot be after the registration date")
        patient_id = patient_id.strip()
        if self.records.count_by_patient_id(patient_id) > 0:
            raise ValidationError("Patient ID already exists")

        patient = self.records.insert_patient(
            Patient(
                patient_id=patient_id,
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                registration_date=registration_date,
                dob=dob,
                gender=(gender or "").strip() or None,
            )
        )
        logger.info("Patient %s registered locally (id=%s)", patient.patient_id, patient.id)

        request = RegisterPatientRequest.from_patient(patient)
        result = WriteResult(record=patient)
        self._deliver(result, Endpoint.REGISTER_PATIENT, request.to_payload(), lambda: self.api.register_patient(request))
        return result

    def save_vitals(
        self,
        patient_pk: int,
        visit_date: date,
        height_cm: float,
        weight_kg: float,
    ) -> WriteResult:
        if height_cm is None or weight_kg is None or height_cm <= 0 or weight_kg <= 0:
            raise ValidationError("Height and weight must be greater than zero")
        if visit_date is None:
            raise ValidationError("Visit date is required")
        patient = self._patient(patient_pk)
        if self.records.vitals_exist(patient.id, visit_date):
            raise ValidationError("Vitals for this date already exist")

        bmi = calculate_bmi(weight_kg, height_cm)
        vitals = self.records.insert_vitals(
            Vitals(
                patient_owner_id=patient.id,
                visit_date=visit_date,
                height_cm=height_cm,
                weight_kg=weight_kg,
                bmi=bmi,
            )
        )
        logger.info("Vitals saved locally for patient %s on %s (bmi=%s)", patient.patient_id, visit_date, bmi)

        request = VitalsRequest.from_vitals(vitals, patient)
        result = WriteResult(record=vitals, next_assessment=assessment_for(bmi))
        outcome = self._deliver(result, Endpoint.ADD_VITALS, request.to_payload(), lambda: self.api.add_vitals(request))
        if outcome is not None and outcome.ok and outcome.remote_id is not None:
            try:
                updated = self.records.update_remote_id(vitals.id, outcome.remote_id)
            except Exception:
                logger.exception("Could not store remote id %s for vitals %s", outcome.remote_id, vitals.id)
            else:
                if updated is not None:
                    result.record = updated
        return result

    def save_general_assessment(
        self,
        patient_pk: int,
        visit_date: date,
        general_health: str,
        ever_on_diet: bool,
        comments: str,
    ) -> WriteResult:
        self._check_assessment(visit_date, general_health, comments)
        patient = self._patient(patient_pk)
        if self.records.general_assessment_exists(patient.id, visit_date):
            raise ValidationError("An assessment for this date already exists")

        assessment = self.records.insert_general_assessment(
            GeneralAssessment(
                patient_owner_id=patient.id,
                visit_date=visit_date,
                general_health=general_health,
                ever_on_diet=bool(ever_on_diet),
                comments=comments.strip(),
            )
        )
        request = VisitRequest.from_general(assessment, patient, self._vitals_remote_id(patient.id, visit_date))
        return self._deliver_visit(assessment, request)

    def save_overweight_assessment(
        self,
        patient_pk: int,
        visit_date: date,
        general_health: str,
        using_drugs: bool,
        comments: str,
    ) -> WriteResult:
        self._check_assessment(visit_date, general_health, comments)
        patient = self._patient(patient_pk)
        if self.records.overweight_assessment_exists(patient.id, visit_date):
            raise ValidationError("An assessment for this date already exists")

        assessment = self.records.insert_overweight_assessment(
            OverweightAssessment(
                patient_owner_id=patient.id,
                visit_date=visit_date,
                general_health=general_health,
                using_drugs=bool(using_drugs),
                comments=comments.strip(),
            )
        )
        request = VisitRequest.from_overweight(assessment, patient, self._vitals_remote_id(patient.id, visit_date))
        return self._deliver_visit(assessment, request)

    # ------------------------------------------------------------------
    def _patient(self, patient_pk: int) -> Patient:
        patient = self.records.get_patient(patient_pk)
        if patient is None:
            raise ValidationError(f"Unknown patient {patient_pk}")
        return patient

    def _check_assessment(self, visit_date: date, general_health: str, comments: str) -> None:
        if visit_date is None:
            raise ValidationError("Visit date is required")
        _required(general_health=general_health, comments=comments)
        if general_health not in GENERAL_HEALTH_CHOICES:
            raise ValidationError(f"General health must be one of {', '.join(GENERAL_HEALTH_CHOICES)}")

    def _vitals_remote_id(self, patient_pk: int, visit_date: date) -> Optional[int]:
        vitals = self.records.find_vitals(patient_pk, visit_date)
        return vitals.remote_id if vitals else None

    def _deliver_visit(self, assessment, request: VisitRequest) -> WriteResult:
        if not request.vital_id:
            logger.warning(
                "Visit for patient %s on %s has no vitals reference yet",
                request.patient_id,
                request.visit_date,
            )
        result = WriteResult(record=assessment)
        self._deliver(result, Endpoint.ADD_VISIT, request.to_payload(), lambda: self.api.add_visit(request))
        return result

    def _deliver(
        self,
        result: WriteResult,
        endpoint: Endpoint,
        payload: Dict[str, Any],
        push: Callable[[], ApiResult],
    ) -> Optional[ApiResult]:
        outcome: Optional[ApiResult] = None
        if self.push_on_save:
            try:
                outcome = push()
            except Exception as exc:  # pragma: no cover - defensive
                logger.exception("Immediate push to %s crashed", endpoint.value)
                outcome = ApiResult.unreachable(str(exc) or exc.__class__.__name__)
            if outcome.ok:
                result.pushed = True
                logger.info("Pushed %s immediately", endpoint.value)
                return outcome
            result.error = outcome.message

        try:
            result.pending_id = self.queue.enqueue(endpoint, payload, last_error=result.error)
        except Exception:
            logger.exception("Could not queue %s for later sync", endpoint.value)
            result.error = result.error or "could not queue for sync"
        else:
            logger.info("Queued %s as pending id=%s (%s)", endpoint.value, result.pending_id, result.error or "push disabled")
        return outcome


__all__ = ["PatientService", "ValidationError", "WriteResult"]
