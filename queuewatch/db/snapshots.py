"""Snapshot persistence in the durable store."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import DateTime, bindparam
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql import text

from queuewatch.ingest.models import Snapshot

_INSERT_SQLITE = """
    INSERT INTO snapshots (captured_at, store_id, store_name, total_lineup, queue_details, raw_data)
    VALUES (:captured_at, :store_id, :store_name, :total_lineup, :queue_details, :raw_data)
    ON CONFLICT (store_id, captured_at) DO NOTHING
"""

_INSERT_POSTGRES = """
    INSERT INTO snapshots (captured_at, store_id, store_name, total_lineup, queue_details, raw_data)
    VALUES (:captured_at, :store_id, :store_name, :total_lineup,
            CAST(:queue_details AS JSONB), CAST(:raw_data AS JSONB))
    ON CONFLICT (store_id, captured_at) DO NOTHING
"""


def insert_snapshot(conn: Connection, snapshot: Snapshot) -> bool:
    """Insert unless a row for (store_id, captured_at) exists; True when inserted."""
    sql = _INSERT_SQLITE if conn.dialect.name == "sqlite" else _INSERT_POSTGRES
    stmt = text(sql).bindparams(bindparam("captured_at", type_=DateTime()))
    result = conn.execute(
        stmt,
        {
            "captured_at": snapshot.timestamp,
            "store_id": snapshot.store_id,
            "store_name": snapshot.store_name,
            "total_lineup": snapshot.total_lineup,
            "queue_details": json.dumps(dict(snapshot.queue_details)),
            "raw_data": json.dumps(dict(snapshot.raw_data), ensure_ascii=False),
        },
    )
    return result.rowcount == 1


def count_snapshots(engine: Engine) -> int:
    with engine.connect() as conn:
        return int(conn.execute(text("SELECT COUNT(*) FROM snapshots")).scalar_one())


def latest_snapshot(engine: Engine) -> Snapshot | None:
    query = text(
        """
        SELECT captured_at, store_id, store_name, total_lineup, queue_details, raw_data
        FROM snapshots
        ORDER BY captured_at DESC
        LIMIT 1
        """
    ).columns(captured_at=DateTime())
    with engine.connect() as conn:
        row = conn.execute(query).mappings().first()
    if row is None:
        return None
    return Snapshot(
        timestamp=row["captured_at"],
        store_id=row["store_id"],
        store_name=row["store_name"],
        total_lineup=row["total_lineup"],
        queue_details=_json_value(row["queue_details"]),
        raw_data=_json_value(row["raw_data"]) or {},
    )


def _json_value(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value
