"""FastAPI application for snapshot writes and day queries."""

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, NonNegativeInt
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from queuewatch.db.session import create_engine_from_env
from queuewatch.db.snapshots import insert_snapshot
from queuewatch.ingest.models import QUEUE_CATEGORIES, Snapshot
from queuewatch.logic.summary import downsample, summarize_day
from queuewatch.storage.local import LocalLogStore
from queuewatch.utils.dates import format_date, parse_iso_datetime, today_in_tz

logger = logging.getLogger(__name__)

app = FastAPI(title="Queuewatch API")


class SnapshotPayload(BaseModel):
    timestamp: str
    store_id: int = Field(ge=0)
    store_name: str = Field(min_length=1)
    total_lineup: int = Field(ge=0)
    queue_details: dict[str, NonNegativeInt] = Field(default_factory=dict)
    raw_data: dict[str, Any] | None = None

    def to_snapshot(self) -> Snapshot:
        return Snapshot(
            timestamp=parse_iso_datetime(self.timestamp),
            store_id=self.store_id,
            store_name=self.store_name,
            total_lineup=self.total_lineup,
            queue_details={key: self.queue_details.get(key, 0) for key in QUEUE_CATEGORIES},
            raw_data=self.raw_data or {},
        )


def get_engine() -> Engine:
    return create_engine_from_env()


def get_store() -> LocalLogStore:
    return LocalLogStore()


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    missing = [".".join(str(p) for p in err["loc"][1:]) for err in exc.errors() if err["type"] == "missing"]
    if missing:
        return JSONResponse({"error": "Missing required fields", "fields": missing}, status_code=400)
    return JSONResponse({"error": "Invalid request"}, status_code=400)


@app.post("/api/collect")
def collect(
    payload: SnapshotPayload,
    authorization: str | None = Header(default=None),
    engine: Engine = Depends(get_engine),
) -> JSONResponse:
    secret = os.environ.get("API_SECRET")
    if not secret or authorization != f"Bearer {secret}":
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    try:
        snapshot = payload.to_snapshot()
    except ValueError:
        return JSONResponse({"error": "Invalid timestamp"}, status_code=400)
    try:
        with engine.begin() as conn:
            inserted = insert_snapshot(conn, snapshot)
    except SQLAlchemyError:
        logger.exception("Failed to save snapshot")
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)
    if not inserted:
        logger.info("Snapshot %s already stored", payload.timestamp)
    return JSONResponse({"success": True})


@app.get("/api/queue-data")
def queue_data(
    day: date | None = Query(default=None, alias="date"),
    include_raw: bool = False,
    store: LocalLogStore = Depends(get_store),
) -> JSONResponse:
    target = day or today_in_tz(store.timezone)
    snapshots = _sorted_day(store, target)
    return JSONResponse(
        {
            "success": True,
            "date": format_date(target),
            "count": len(snapshots),
            "data": [s.to_dict(include_raw=include_raw) for s in snapshots],
        }
    )


@app.get("/api/queue-data/summary")
def queue_summary(
    day: date | None = Query(default=None, alias="date"),
    store: LocalLogStore = Depends(get_store),
) -> JSONResponse:
    target = day or today_in_tz(store.timezone)
    snapshots = _sorted_day(store, target)
    summary = summarize_day(snapshots)
    return JSONResponse(
        {
            "success": True,
            "date": format_date(target),
            "count": len(snapshots),
            "summary": summary.to_dict() if summary else None,
            "series": [point.to_dict() for point in downsample(snapshots, timezone=store.timezone)],
        }
    )


@app.get("/api/stats")
def stats(store: LocalLogStore = Depends(get_store)) -> JSONResponse:
    log_stats = store.stats()
    date_range = None
    if log_stats.date_range:
        start, end = log_stats.date_range
        date_range = {"start": format_date(start), "end": format_date(end)}
    return JSONResponse(
        {
            "success": True,
            "stats": {
                "total_records": store.count_records(),
                "total_files": log_stats.file_count,
                "total_size_kb": round(log_stats.total_bytes / 1024, 2),
                "date_range": date_range,
                "available_dates": [format_date(day) for day in store.list_days()],
            },
        }
    )


def _sorted_day(store: LocalLogStore, day: date) -> list[Snapshot]:
    # sorted() is stable, so equal timestamps keep append order
    return sorted(store.read_day(day), key=lambda s: s.timestamp)
