import json
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import JSON, Column, DateTime, Integer, MetaData, Table, Text, UniqueConstraint, create_engine
from sqlalchemy.pool import StaticPool

from queuewatch.ingest.models import Snapshot
from queuewatch.storage.local import LocalLogStore

FIXTURES = Path(__file__).parent / "fixtures" / "http"
TZ = "Asia/Shanghai"

metadata = MetaData()

snapshots = Table(
    "snapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("captured_at", DateTime, nullable=False),
    Column("store_id", Integer, nullable=False),
    Column("store_name", Text, nullable=False),
    Column("total_lineup", Integer, nullable=False),
    Column("queue_details", JSON, nullable=False),
    Column("raw_data", JSON),
    UniqueConstraint("store_id", "captured_at"),
)


def load_fixture(path: str) -> str:
    return (FIXTURES / path).read_text(encoding="utf-8")


def load_json_fixture(path: str):
    return json.loads(load_fixture(path))


def make_snapshot(timestamp: datetime, total: int = 10, **details: int) -> Snapshot:
    queue = {"type_a": 0, "type_b": 0, "type_c": 0, "type_f": 0, "type_t": 0}
    queue.update(details)
    return Snapshot(
        timestamp=timestamp,
        store_id=19,
        store_name="厦门火车站禹悦汇店",
        total_lineup=total,
        queue_details=queue,
        raw_data={"id": 19, "lineup": total},
    )


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def store(tmp_path):
    return LocalLogStore(tmp_path / "snapshots", timezone=TZ)


@pytest.fixture()
def provider_payload():
    return load_json_fixture("provider/stores.json")
