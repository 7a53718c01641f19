# patients/storage/db.py
from sqlmodel import SQLModel, create_engine, Session

from core.settings import DB_PATH

# Ensure SQLModel metadata is populated
import models.patient  # noqa: F401
import models.vitals  # noqa: F401
import models.assessment  # noqa: F401
import models.pending_op  # noqa: F401
from storage import migrations


# Sessions are opened from the sync worker pool as well as the UI thread.
_engine = create_engine(
    f"sqlite:///{DB_PATH.as_posix()}",
    echo=False,
    connect_args={"check_same_thread": False},
)


def init_db(engine=None):
    engine = engine or _engine
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)
    migrations.run_all(engine)


def get_session() -> Session:
    return Session(_engine)
