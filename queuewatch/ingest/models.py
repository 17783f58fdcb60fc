"""Snapshot model and provider normalization."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from queuewatch.errors import MalformedSourceData
from queuewatch.utils.dates import format_iso_datetime, naive_utc, parse_iso_datetime, utc_now

StoreRecord = Mapping[str, Any]

# Provider seat-category code -> snapshot key.
CATEGORY_CODES = {
    "A": "type_a",
    "B": "type_b",
    "C": "type_c",
    "F": "type_f",
    "T": "type_t",
}
QUEUE_CATEGORIES = tuple(CATEGORY_CODES.values())
SEAT_CATEGORIES = ("type_a", "type_b", "type_c", "type_f")
CATEGORY_LABELS = {
    "type_a": "1-2 seats",
    "type_b": "3-4 seats",
    "type_c": "5-6 seats",
    "type_f": "7-8 seats",
    "type_t": "provider total",
}


@dataclass(frozen=True, slots=True)
class Snapshot:
    timestamp: datetime
    store_id: int
    store_name: str
    total_lineup: int
    queue_details: Mapping[str, int]
    raw_data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.total_lineup < 0:
            raise ValueError(f"total_lineup is negative: {self.total_lineup}")
        details = {key: int(self.queue_details.get(key, 0)) for key in QUEUE_CATEGORIES}
        negative = sorted(key for key, count in details.items() if count < 0)
        if negative:
            raise ValueError(f"negative queue counts: {', '.join(negative)}")
        object.__setattr__(self, "timestamp", naive_utc(self.timestamp))
        object.__setattr__(self, "queue_details", MappingProxyType(details))

    def to_dict(self, *, include_raw: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": format_iso_datetime(self.timestamp),
            "store_id": self.store_id,
            "store_name": self.store_name,
            "total_lineup": self.total_lineup,
            "queue_details": dict(self.queue_details),
        }
        if include_raw:
            data["raw_data"] = dict(self.raw_data)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Snapshot":
        """Rebuild a snapshot from its JSON object form.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` for records that
        are missing fields, carry values of the wrong type or hold negative counts.
        """
        if not isinstance(data, Mapping):
            raise TypeError("snapshot record must be an object")
        details = data.get("queue_details") or {}
        if not isinstance(details, Mapping):
            raise TypeError("queue_details must be an object")
        raw = data.get("raw_data") or {}
        if not isinstance(raw, Mapping):
            raise TypeError("raw_data must be an object")
        return cls(
            timestamp=parse_iso_datetime(str(data["timestamp"])),
            store_id=int(data["store_id"]),
            store_name=str(data["store_name"]),
            total_lineup=int(data["total_lineup"]),
            queue_details={key: int(details.get(key, 0)) for key in QUEUE_CATEGORIES},
            raw_data=raw,
        )


def normalize(record: StoreRecord, *, captured_at: datetime | None = None) -> Snapshot:
    """Build a snapshot from one provider store record."""
    if not isinstance(record, Mapping):
        raise MalformedSourceData(f"Store record is not an object: {type(record).__name__}")
    for key in ("id", "title", "lineup"):
        if record.get(key) in (None, ""):
            raise MalformedSourceData(f"Store record missing {key!r}")

    store_id = _as_count(record["id"], "id")
    total = _as_count(record["lineup"], "lineup")

    details = {key: 0 for key in QUEUE_CATEGORIES}
    queues = record.get("all_lineup") or []
    if not isinstance(queues, list):
        raise MalformedSourceData("all_lineup is not a list")
    for queue in queues:
        if not isinstance(queue, Mapping):
            raise MalformedSourceData("all_lineup entry is not an object")
        key = CATEGORY_CODES.get(str(queue.get("type", "")).upper())
        if key is None:
            continue
        details[key] = _as_count(queue.get("num", 0), f"all_lineup[{queue.get('type')}]")

    return Snapshot(
        timestamp=captured_at or utc_now(),
        store_id=store_id,
        store_name=str(record["title"]),
        total_lineup=total,
        queue_details=details,
        raw_data=dict(record),
    )


def _as_count(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise MalformedSourceData(f"{name} is not a number: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedSourceData(f"{name} is not a number: {value!r}") from exc
    if number < 0:
        raise MalformedSourceData(f"{name} is negative: {number}")
    return number
