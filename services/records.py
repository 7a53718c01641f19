"""Local record store for patients, vitals and assessments."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import select

from models.assessment import GeneralAssessment, OverweightAssessment
from models.patient import Patient
from models.vitals import Vitals
from storage.db import get_session


logger = logging.getLogger("patients.sync.records")


@dataclass
class PatientListing:
    patient: Patient
    last_bmi: Optional[float]
    last_visit_date: Optional[date]


class PatientRecords:
    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Patients
    def insert_patient(self, patient: Patient) -> Patient:
        with self._session_factory() as session:
            session.add(patient)
            session.commit()
            session.refresh(patient)
            return patient

    def get_patient(self, patient_pk: int) -> Optional[Patient]:
        with self._session_factory() as session:
            return session.get(Patient, patient_pk)

    def get_patient_by_code(self, patient_id: str) -> Optional[Patient]:
        if not patient_id:
            return None
        with self._session_factory() as session:
            stmt = select(Patient).where(Patient.patient_id == patient_id)
            return session.exec(stmt).first()

    def count_by_patient_id(self, patient_id: str) -> int:
        with self._session_factory() as session:
            stmt = select(func.count()).select_from(Patient).where(Patient.patient_id == patient_id)
            return int(session.exec(stmt).one())

    def list_patients(self, visit_date: Optional[date] = None) -> List[PatientListing]:
        """Patients ordered by name with their latest vitals.

        With ``visit_date`` only patients seen that day are returned, paired
        with that day's vitals.
        """
        with self._session_factory() as session:
            if visit_date is not None:
                rows = session.exec(
                    select(Patient, Vitals)
                    .join(Vitals, Vitals.patient_owner_id == Patient.id)
                    .where(Vitals.visit_date == visit_date)
                    .order_by(Patient.last_name, Patient.first_name)
                ).all()
                return [PatientListing(p, v.bmi, v.visit_date) for p, v in rows]

            patients = session.exec(
                select(Patient).order_by(Patient.last_name, Patient.first_name)
            ).all()
            result: List[PatientListing] = []
            for patient in patients:
                latest = session.exec(
                    select(Vitals)
                    .where(Vitals.patient_owner_id == patient.id)
                    .order_by(Vitals.visit_date.desc())
                    .limit(1)
                ).first()
                result.append(
                    PatientListing(
                        patient,
                        latest.bmi if latest else None,
                        latest.visit_date if latest else None,
                    )
                )
            return result

    # ------------------------------------------------------------------
    # Vitals
    def insert_vitals(self, vitals: Vitals) -> Vitals:
        with self._session_factory() as session:
            session.add(vitals)
            session.commit()
            session.refresh(vitals)
            return vitals

    def get_vitals(self, vitals_id: int) -> Optional[Vitals]:
        with self._session_factory() as session:
            return session.get(Vitals, vitals_id)

    def find_vitals(self, patient_pk: int, visit_date: date) -> Optional[Vitals]:
        with self._session_factory() as session:
            stmt = select(Vitals).where(
                Vitals.patient_owner_id == patient_pk,
                Vitals.visit_date == visit_date,
            )
            return session.exec(stmt).first()

    def vitals_exist(self, patient_pk: int, visit_date: date) -> bool:
        return self.find_vitals(patient_pk, visit_date) is not None

    def update_remote_id(self, vitals_id: int, remote_id: int) -> Optional[Vitals]:
        """Store the server id; re-applying the same value changes nothing."""
        with self._session_factory() as session:
            obj = session.get(Vitals, vitals_id)
            if not obj:
                return None
            if obj.remote_id == remote_id:
                return obj
            if obj.remote_id is not None:
                logger.warning(
                    "Vitals %s remote id changes from %s to %s", vitals_id, obj.remote_id, remote_id
                )
            obj.remote_id = remote_id
            session.add(obj)
            session.commit()
            session.refresh(obj)
            return obj

    def link_remote_vitals(self, patient_id: str, visit_date: date, remote_id: int) -> Optional[Vitals]:
        """Resolve vitals by external patient id and visit date, then store ``remote_id``."""
        patient = self.get_patient_by_code(patient_id)
        if not patient:
            return None
        vitals = self.find_vitals(patient.id, visit_date)
        if not vitals:
            return None
        return self.update_remote_id(vitals.id, remote_id)

    # ------------------------------------------------------------------
    # Assessments
    def insert_general_assessment(self, assessment: GeneralAssessment) -> GeneralAssessment:
        with self._session_factory() as session:
            session.add(assessment)
            session.commit()
            session.refresh(assessment)
            return assessment

    def insert_overweight_assessment(self, assessment: OverweightAssessment) -> OverweightAssessment:
        with self._session_factory() as session:
            session.add(assessment)
            session.commit()
            session.refresh(assessment)
            return assessment

    def general_assessment_exists(self, patient_pk: int, visit_date: date) -> bool:
        with self._session_factory() as session:
            stmt = select(GeneralAssessment.id).where(
                GeneralAssessment.patient_owner_id == patient_pk,
                GeneralAssessment.visit_date == visit_date,
            )
            return session.exec(stmt).first() is not None

    def overweight_assessment_exists(self, patient_pk: int, visit_date: date) -> bool:
        with self._session_factory() as session:
            stmt = select(OverweightAssessment.id).where(
                OverweightAssessment.patient_owner_id == patient_pk,
                OverweightAssessment.visit_date == visit_date,
            )
            return session.exec(stmt).first() is not None


__all__ = ["PatientListing", "PatientRecords"]
