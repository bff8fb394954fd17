from datetime import date, datetime
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from models.records import SegmentRecord, TaskRecord
from services.events import EventBus
from services.persistence import LocalPersistence
from services.segments import SegmentService
from services.synchronizer import CrossViewSynchronizer
from services.tasks import TaskService
from storage import migrations
from storage.db import enable_foreign_keys
from storage.store import PlannerStore

DAY = date(2024, 3, 11)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def make_segment(
    segment_id: str,
    start: datetime,
    end: datetime,
    *,
    task_id: str = "t1",
    **fields,
) -> SegmentRecord:
    return SegmentRecord(
        id=segment_id,
        task_id=task_id,
        start_time=start,
        end_time=end,
        date=start.date(),
        duration=int((end - start).total_seconds() // 60),
        title=fields.pop("title", "Write report"),
        **fields,
    )


def make_task(task_id: str = "t1", **fields) -> TaskRecord:
    fields.setdefault("title", "Write report")
    fields.setdefault("planned_date", DAY)
    return TaskRecord(id=task_id, **fields)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    migrations.run_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return PlannerStore(session_factory=lambda: Session(engine, expire_on_commit=False))


@pytest.fixture
def port(store):
    return LocalPersistence(store)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def sync(bus, tmp_path):
    return CrossViewSynchronizer(bus, log_path=tmp_path / "sync.log")


@pytest.fixture
def segments(port, sync, bus):
    return SegmentService(port, sync, bus)


@pytest.fixture
def tasks(port, sync, bus):
    return TaskService(port, sync, bus)
