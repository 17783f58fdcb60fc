from datetime import date, datetime

import pendulum
import pytest

from queuewatch.errors import MalformedSourceData
from queuewatch.ingest.models import Snapshot, normalize
from queuewatch.utils.dates import local_date, to_local

CAPTURED = datetime(2026, 1, 12, 5, 30, 0)


def _store(provider_payload, store_id=19):
    return next(s for s in provider_payload["data"] if s["id"] == store_id)


def test_normalize_maps_categories(provider_payload):
    snapshot = normalize(_store(provider_payload), captured_at=CAPTURED)
    assert snapshot.timestamp == CAPTURED
    assert snapshot.store_id == 19
    assert snapshot.store_name == "厦门火车站禹悦汇店"
    assert snapshot.total_lineup == 37
    assert dict(snapshot.queue_details) == {"type_a": 5, "type_b": 10, "type_c": 2, "type_f": 0, "type_t": 17}
    assert snapshot.raw_data["address"] == "湖滨南路禹悦汇"


def test_normalize_defaults_missing_categories_to_zero(provider_payload):
    snapshot = normalize(_store(provider_payload, 18), captured_at=CAPTURED)
    assert dict(snapshot.queue_details) == {"type_a": 4, "type_b": 8, "type_c": 0, "type_f": 0, "type_t": 0}


def test_normalize_ignores_unknown_category_codes():
    record = {"id": "19", "title": "Store", "lineup": "3", "all_lineup": [{"type": "Z", "num": 9}, {"type": "a", "num": 3}]}
    snapshot = normalize(record, captured_at=CAPTURED)
    assert snapshot.store_id == 19
    assert snapshot.total_lineup == 3
    assert snapshot.queue_details["type_a"] == 3
    assert sum(snapshot.queue_details.values()) == 3


@pytest.mark.parametrize(
    "record",
    [
        {"title": "Store", "lineup": 1},
        {"id": 19, "lineup": 1},
        {"id": 19, "title": "Store"},
        {"id": 19, "title": "Store", "lineup": -1},
        {"id": 19, "title": "Store", "lineup": "many"},
        {"id": 19, "title": "Store", "lineup": 1, "all_lineup": {"type": "A"}},
        {"id": 19, "title": "Store", "lineup": 1, "all_lineup": [{"type": "A", "num": -2}]},
        ["not", "a", "record"],
    ],
)
def test_normalize_rejects_malformed_records(record):
    with pytest.raises(MalformedSourceData):
        normalize(record, captured_at=CAPTURED)


def test_snapshot_is_immutable(provider_payload):
    snapshot = normalize(_store(provider_payload), captured_at=CAPTURED)
    with pytest.raises(AttributeError):
        snapshot.total_lineup = 0  # type: ignore[misc]
    with pytest.raises(TypeError):
        snapshot.queue_details["type_a"] = 99  # type: ignore[index]


def test_snapshot_wire_form(provider_payload):
    snapshot = normalize(_store(provider_payload), captured_at=datetime(2026, 1, 12, 3, 4, 5, 123000))
    data = snapshot.to_dict()
    assert data["timestamp"] == "2026-01-12T03:04:05.123Z"
    assert set(data) == {"timestamp", "store_id", "store_name", "total_lineup", "queue_details", "raw_data"}
    assert "raw_data" not in snapshot.to_dict(include_raw=False)
    assert Snapshot.from_dict(data) == snapshot


def test_from_dict_converts_offsets_to_utc():
    snapshot = Snapshot.from_dict(
        {
            "timestamp": "2026-01-12T11:04:05+08:00",
            "store_id": 19,
            "store_name": "Store",
            "total_lineup": 1,
            "queue_details": {"type_a": 1},
        }
    )
    assert snapshot.timestamp == datetime(2026, 1, 12, 3, 4, 5)
    assert snapshot.queue_details["type_f"] == 0


def test_snapshot_rejects_negative_counts():
    with pytest.raises(ValueError):
        Snapshot(timestamp=CAPTURED, store_id=19, store_name="Store", total_lineup=-5, queue_details={})
    with pytest.raises(ValueError):
        Snapshot.from_dict(
            {
                "timestamp": "2026-01-12T03:04:05.000Z",
                "store_id": 19,
                "store_name": "Store",
                "total_lineup": 5,
                "queue_details": {"type_a": -2},
            }
        )


def test_timestamps_are_plain_utc_datetimes(provider_payload):
    collected = normalize(_store(provider_payload), captured_at=pendulum.datetime(2026, 1, 12, 12, 0, 0, tz="Asia/Shanghai"))
    replayed = Snapshot.from_dict(collected.to_dict())
    for snapshot in (collected, replayed):
        assert type(snapshot.timestamp) is datetime
        assert snapshot.timestamp == datetime(2026, 1, 12, 4, 0, 0)
        assert to_local(snapshot.timestamp, "Asia/Shanghai").strftime("%H:%M") == "12:00"
    assert local_date(pendulum.naive(2026, 1, 12, 16, 0, 1), "Asia/Shanghai") == date(2026, 1, 13)
