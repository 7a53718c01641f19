import os
import tempfile
from pathlib import Path

# Keep the import-time data dir (logs, default DB) out of the user's home.
os.environ.setdefault("PATIENTS_DATA_DIR", tempfile.mkdtemp(prefix="patients-tests-"))

import pytest
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
from models.pending_op import Endpoint
from services.patients_api import ApiResult
from storage import migrations


@pytest.fixture()
def engine(tmp_path: Path):
    engine = create_engine(
        f"sqlite:///{(tmp_path / 'test.db').as_posix()}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    migrations.run_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "config.json"


class FakeApi:
    """Scripted stand-in for :class:`services.patients_api.PatientsApi`.

    ``outcomes`` maps an endpoint to a list of results handed out in order;
    the last one repeats. Unscripted endpoints answer ``OK`` with no data.
    """

    def __init__(self, outcomes=None, reachable=True):
        self.outcomes = {Endpoint(k): list(v) for k, v in (outcomes or {}).items()}
        self.calls: list[tuple[Endpoint, dict]] = []
        self.reachable = reachable
        self.on_send = None

    def script(self, endpoint, *results):
        self.outcomes[Endpoint(endpoint)] = list(results)

    def send(self, endpoint, payload):
        endpoint = Endpoint(endpoint)
        self.calls.append((endpoint, dict(payload)))
        if self.on_send:
            self.on_send(endpoint, payload)
        queue = self.outcomes.get(endpoint)
        if not queue:
            return ApiResult.success()
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def register_patient(self, request):
        return self.send(Endpoint.REGISTER_PATIENT, request.to_payload())

    def add_vitals(self, request):
        return self.send(Endpoint.ADD_VITALS, request.to_payload())

    def add_visit(self, request):
        return self.send(Endpoint.ADD_VISIT, request.to_payload())

    def is_reachable(self, timeout=3.0):
        return self.reachable

    def endpoints_called(self):
        return [endpoint for endpoint, _ in self.calls]


@pytest.fixture()
def fake_api():
    return FakeApi()
