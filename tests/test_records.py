from datetime import date

import pytest

from models.patient import Patient
from models.vitals import Vitals
from services.records import PatientRecords


@pytest.fixture()
def records(session_factory):
    return PatientRecords(session_factory=session_factory)


def _patient(records, patient_id, last_name):
    return records.insert_patient(
        Patient(patient_id=patient_id, first_name="Ann", last_name=last_name, registration_date=date(2024, 1, 1))
    )


def _vitals(records, patient, visit_date, bmi):
    return records.insert_vitals(
        Vitals(patient_owner_id=patient.id, visit_date=visit_date, height_cm=170, weight_kg=65, bmi=bmi)
    )


def test_list_patients_pairs_each_patient_with_latest_vitals(records):
    smith = _patient(records, "P-2", "Smith")
    _patient(records, "P-1", "Brown")
    _vitals(records, smith, date(2024, 3, 1), 22.5)
    _vitals(records, smith, date(2024, 4, 1), 24.1)

    listing = records.list_patients()

    assert [row.patient.patient_id for row in listing] == ["P-1", "P-2"]
    assert (listing[0].last_bmi, listing[0].last_visit_date) == (None, None)
    assert (listing[1].last_bmi, listing[1].last_visit_date) == (24.1, date(2024, 4, 1))


def test_list_patients_for_a_visit_date(records):
    smith = _patient(records, "P-2", "Smith")
    brown = _patient(records, "P-1", "Brown")
    _vitals(records, smith, date(2024, 3, 1), 22.5)
    _vitals(records, brown, date(2024, 4, 1), 27.0)

    listing = records.list_patients(visit_date=date(2024, 3, 1))

    assert [(row.patient.patient_id, row.last_bmi) for row in listing] == [("P-2", 22.5)]
