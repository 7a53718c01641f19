from datetime import date

import pytest

from models.patient import Patient
from models.pending_op import Endpoint, PendingSync
from models.vitals import Vitals
from services.patients_api import ApiResult
from services.pending_ops_queue import PendingOpsQueue
from services.records import PatientRecords
from services.sync_service import SyncService, SyncState
from storage.config import load_config


@pytest.fixture()
def records(session_factory):
    return PatientRecords(session_factory=session_factory)


@pytest.fixture()
def queue(session_factory):
    return PendingOpsQueue(session_factory=session_factory)


@pytest.fixture()
def service(fake_api, records, queue, config_path):
    return SyncService(fake_api, records, queue, config_path=config_path)


def _seed_vitals(records, patient_id="P-001", visit_date=date(2024, 3, 2)):
    patient = records.insert_patient(
        Patient(patient_id=patient_id, first_name="Jane", last_name="Doe", registration_date=date(2024, 3, 1))
    )
    vitals = records.insert_vitals(
        Vitals(patient_owner_id=patient.id, visit_date=visit_date, height_cm=170, weight_kg=65, bmi=22.5)
    )
    return patient, vitals


def test_empty_queue_succeeds(service, fake_api, config_path):
    result = service.run()

    assert result.state is SyncState.SUCCEEDED
    assert result.attempted == 0
    assert fake_api.calls == []
    assert service.state is SyncState.SUCCEEDED
    assert load_config(config_path).last_sync_time is not None


def test_successful_vitals_replay_links_remote_id(service, fake_api, records, queue):
    _, vitals = _seed_vitals(records)
    queue.enqueue(Endpoint.ADD_VITALS, {"visit_date": "2024-03-02", "patient_id": "P-001"})
    fake_api.script(Endpoint.ADD_VITALS, ApiResult.success({"id": 77}))

    result = service.run()

    assert result.succeeded
    assert result.synced == 1
    assert queue.count() == 0
    assert records.get_vitals(vitals.id).remote_id == 77


def test_linking_uses_the_payload_patient_and_date(service, fake_api, records, queue):
    _, first = _seed_vitals(records, "P-001", date(2024, 3, 2))
    _, second = _seed_vitals(records, "P-002", date(2024, 3, 5))
    queue.enqueue(Endpoint.ADD_VITALS, {"visit_date": "2024-03-05", "patient_id": "P-002"})
    fake_api.script(Endpoint.ADD_VITALS, ApiResult.success({"id": 91}))

    service.run()

    assert records.get_vitals(first.id).remote_id is None
    assert records.get_vitals(second.id).remote_id == 91


def test_replay_without_matching_vitals_still_dequeues(service, fake_api, queue):
    queue.enqueue(Endpoint.ADD_VITALS, {"visit_date": "2024-03-02", "patient_id": "ghost"})
    fake_api.script(Endpoint.ADD_VITALS, ApiResult.success({"id": 5}))

    assert service.run().succeeded
    assert queue.count() == 0


def test_failures_are_recorded_and_retried_identically(service, fake_api, queue):
    payload = {"firstname": "Jane", "unique": "P-001"}
    op_id = queue.enqueue(Endpoint.REGISTER_PATIENT, payload)
    fake_api.script(Endpoint.REGISTER_PATIENT, ApiResult.rejected("HTTP 500"))

    first = service.run()
    second = service.run()

    assert first.state is SyncState.PARTIALLY_FAILED
    assert second.errors == {op_id: "HTTP 500"}
    (entry,) = queue.list_all()
    assert entry.attempt_count == 2
    assert entry.last_error == "HTTP 500"
    assert [p for _, p in fake_api.calls] == [payload, payload]


def test_one_failure_does_not_stop_the_run(service, fake_api, queue):
    a = queue.enqueue(Endpoint.REGISTER_PATIENT, {"unique": "A"})
    b = queue.enqueue(Endpoint.ADD_VITALS, {"patient_id": "B"})
    c = queue.enqueue(Endpoint.ADD_VISIT, {"patient_id": "C", "vital_id": "1"})
    fake_api.script(Endpoint.ADD_VITALS, ApiResult.unreachable("timeout"))

    d_holder = {}

    def enqueue_during_run(endpoint, payload):
        if payload.get("unique") == "A":
            d_holder["d"] = queue.enqueue(Endpoint.ADD_VISIT, {"patient_id": "D", "vital_id": "2"})

    fake_api.on_send = enqueue_during_run

    result = service.run()

    assert [p.get("patient_id", p.get("unique")) for _, p in fake_api.calls] == ["A", "B", "C"]
    assert result.synced == 2
    assert result.failed == 1
    assert result.state is SyncState.PARTIALLY_FAILED
    remaining = queue.list_all()
    assert [e.id for e in remaining] == [b, d_holder["d"]]
    assert remaining[0].attempt_count == 1
    assert remaining[1].attempt_count == 0
    assert a not in [e.id for e in remaining] and c not in [e.id for e in remaining]

    fake_api.script(Endpoint.ADD_VITALS, ApiResult.success({}))
    fake_api.on_send = None
    assert service.run().succeeded
    assert queue.count() == 0


def test_invalid_payload_fails_without_calling_the_api(service, fake_api, queue, session_factory):
    with session_factory() as session:
        session.add(PendingSync(endpoint="vital/add", payload="{broken"))
        session.commit()

    result = service.run()

    assert result.failed == 1
    assert fake_api.calls == []
    assert queue.list_all()[0].last_error == "invalid payload"


def test_visit_without_vital_id_is_replayed_unchanged(service, fake_api, queue):
    payload = {"patient_id": "P-001", "vital_id": "", "general_health": "Good"}
    queue.enqueue(Endpoint.ADD_VISIT, payload)

    assert service.run().succeeded
    assert fake_api.calls == [(Endpoint.ADD_VISIT, payload)]


def test_state_listeners_see_draining_then_outcome(service, fake_api, queue):
    seen = []
    service.subscribe(seen.append)
    queue.enqueue(Endpoint.ADD_VISIT, {"vital_id": "1"})
    fake_api.script(Endpoint.ADD_VISIT, ApiResult.unreachable("offline"))

    service.run()
    service.unsubscribe(seen.append)
    service.run()

    assert seen == [SyncState.DRAINING, SyncState.PARTIALLY_FAILED]


def test_broken_listener_does_not_break_the_run(service):
    def boom(state):
        raise RuntimeError("listener bug")

    service.subscribe(boom)
    assert service.run().succeeded


def test_cancel_leaves_the_rest_for_the_next_run(service, fake_api, queue):
    first = queue.enqueue(Endpoint.ADD_VISIT, {"n": 1})
    second = queue.enqueue(Endpoint.ADD_VISIT, {"n": 2})
    fake_api.on_send = lambda endpoint, payload: service.cancel()

    result = service.run()

    assert result.synced == 1
    assert result.state is SyncState.PARTIALLY_FAILED
    assert [e.id for e in queue.list_all()] == [second]
    assert first not in [e.id for e in queue.list_all()]

    fake_api.on_send = None
    assert service.run().succeeded


def test_status_reports_queue_and_last_error(service, fake_api, queue):
    queue.enqueue(Endpoint.ADD_VISIT, {"vital_id": "1"})
    fake_api.script(Endpoint.ADD_VISIT, ApiResult.rejected("HTTP 422"))
    service.run()

    status = service.status()
    assert status["queueSize"] == 1
    assert status["lastError"] == "HTTP 422"
    assert status["state"] == "partially_failed"
    assert status["lastSyncAt"] is not None


def test_cancel_before_a_waiting_run_still_stops_it(service, fake_api, queue):
    op_id = queue.enqueue(Endpoint.ADD_VISIT, {"n": 1})
    service.cancel()

    stopped = service.run()

    assert stopped.synced == 0
    assert stopped.error == "cancelled"
    assert stopped.state is SyncState.PARTIALLY_FAILED
    assert fake_api.calls == []
    assert [e.id for e in queue.list_all()] == [op_id]

    assert service.run().succeeded
    assert queue.count() == 0
