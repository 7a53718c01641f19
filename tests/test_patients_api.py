from datetime import date

import pytest
import requests

from models.assessment import GeneralAssessment, OverweightAssessment
from models.patient import Patient
from models.pending_op import Endpoint
from models.vitals import Vitals
from services.patients_api import (
    ApiResult,
    ApiStatus,
    PatientsApi,
    RegisterPatientRequest,
    VisitRequest,
    VitalsRequest,
)


class FakeResponse:
    def __init__(self, status_code=200, body=None, raw=None):
        self.status_code = status_code
        self._body = body
        self._raw = raw

    def json(self):
        if self._raw is not None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.headers = {}
        self.response = response
        self.exc = exc
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers or {}, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response


def _api(response=None, exc=None, token=None):
    session = FakeSession(response, exc)
    api = PatientsApi("https://example.test/api/", token_provider=lambda: token, timeout=5, session=session)
    return api, session


def _patient():
    return Patient(
        id=1,
        patient_id="P-001",
        first_name="Jane",
        last_name="Doe",
        registration_date=date(2024, 3, 1),
        dob=date(1990, 5, 17),
        gender="Female",
    )


def test_success_with_data():
    api, session = _api(FakeResponse(200, {"success": True, "message": "ok", "data": {"id": 77}}))
    result = api.send(Endpoint.ADD_VITALS, {"patient_id": "P-001"})

    assert result.ok
    assert result.remote_id == 77
    assert session.posts[0]["url"] == "https://example.test/api/vital/add"
    assert session.posts[0]["json"] == {"patient_id": "P-001"}
    assert session.posts[0]["timeout"] == 5


def test_success_without_data_is_ok():
    api, _ = _api(FakeResponse(201, {"success": True, "data": None}))
    result = api.send(Endpoint.REGISTER_PATIENT, {})
    assert result.status is ApiStatus.OK
    assert result.data == {}
    assert result.remote_id is None


@pytest.mark.parametrize(
    "response, message",
    [
        (FakeResponse(500, {"success": True}), "HTTP 500"),
        (FakeResponse(401, None), "HTTP 401"),
        (FakeResponse(200, {"success": False, "message": "Duplicate patient"}), "Duplicate patient"),
        (FakeResponse(200, {"message": "no flag"}), "no flag"),
        (FakeResponse(200, ["not", "an", "object"]), "unexpected response shape"),
        (FakeResponse(200, raw="<html>"), "response body is not JSON"),
        (FakeResponse(200, {"success": True, "data": [1]}), "unexpected data shape"),
    ],
)
def test_rejections(response, message):
    api, _ = _api(response)
    result = api.send(Endpoint.ADD_VISIT, {})
    assert result.status is ApiStatus.REJECTED
    assert result.message == message


def test_success_flag_must_be_true_not_truthy():
    api, _ = _api(FakeResponse(200, {"success": "yes", "data": {}}))
    assert api.send(Endpoint.ADD_VISIT, {}).status is ApiStatus.REJECTED


@pytest.mark.parametrize(
    "exc",
    [
        requests.ConnectionError("refused"),
        requests.Timeout("timed out"),
    ],
)
def test_transport_errors_are_unreachable(exc):
    api, _ = _api(exc=exc)
    result = api.send(Endpoint.REGISTER_PATIENT, {})
    assert result.status is ApiStatus.UNREACHABLE
    assert not result.ok


def test_bearer_token_is_attached_when_present():
    api, session = _api(FakeResponse(200, {"success": True, "data": {}}), token=" abc ")
    api.send(Endpoint.ADD_VISIT, {})
    assert session.posts[0]["headers"] == {"Authorization": "Bearer abc"}

    api, session = _api(FakeResponse(200, {"success": True, "data": {}}), token=None)
    api.send(Endpoint.ADD_VISIT, {})
    assert "Authorization" not in session.posts[0]["headers"]


def test_remote_id_coercion():
    assert ApiResult.success({"id": "12"}).remote_id == 12
    assert ApiResult.success({"id": True}).remote_id is None
    assert ApiResult.success({"id": "abc"}).remote_id is None
    assert ApiResult.rejected("nope").remote_id is None


def test_register_request_wire_names():
    payload = RegisterPatientRequest.from_patient(_patient()).to_payload()
    assert payload == {
        "firstname": "Jane",
        "lastname": "Doe",
        "unique": "P-001",
        "dob": "1990-05-17",
        "gender": "Female",
        "reg_date": "2024-03-01",
    }


def test_register_request_blank_optional_fields():
    patient = _patient()
    patient.dob = None
    patient.gender = None
    payload = RegisterPatientRequest.from_patient(patient).to_payload()
    assert payload["dob"] == ""
    assert payload["gender"] == ""


def test_vitals_request():
    vitals = Vitals(id=3, patient_owner_id=1, visit_date=date(2024, 3, 2), height_cm=170.0, weight_kg=65.5, bmi=22.7)
    payload = VitalsRequest.from_vitals(vitals, _patient()).to_payload()
    assert payload == {
        "visit_date": "2024-03-02",
        "height": "170",
        "weight": "65.5",
        "bmi": "22.7",
        "patient_id": "P-001",
    }


def test_visit_requests_leave_the_unasked_question_blank():
    general = GeneralAssessment(
        patient_owner_id=1, visit_date=date(2024, 3, 2), general_health="Good", ever_on_diet=True, comments="fine"
    )
    overweight = OverweightAssessment(
        patient_owner_id=1, visit_date=date(2024, 3, 2), general_health="Poor", using_drugs=False, comments="watch"
    )

    g = VisitRequest.from_general(general, _patient(), 77).to_payload()
    o = VisitRequest.from_overweight(overweight, _patient(), None).to_payload()

    assert (g["on_diet"], g["on_drugs"], g["vital_id"]) == ("Yes", "", "77")
    assert (o["on_diet"], o["on_drugs"], o["vital_id"]) == ("", "No", "")
    assert o["general_health"] == "Poor"
    assert o["visit_date"] == "2024-03-02"
