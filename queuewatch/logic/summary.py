"""Per-day summary statistics and chart series."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Sequence

import pandas as pd

from queuewatch.ingest.models import SEAT_CATEGORIES, Snapshot
from queuewatch.utils.dates import to_local

MAX_CHART_POINTS = 120


@dataclass(slots=True)
class DaySummary:
    count: int
    avg_total: float
    max_total: int
    min_total: int
    avg_by_category: dict[str, float]

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(slots=True)
class SeriesPoint:
    time: str
    full_time: str
    total: int
    type_a: int
    type_b: int
    type_c: int
    type_f: int

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def snapshot_frame(snapshots: Sequence[Snapshot]) -> pd.DataFrame:
    columns = ["timestamp", "total_lineup", *SEAT_CATEGORIES]
    if not snapshots:
        return pd.DataFrame(columns=columns)
    rows = [
        {
            "timestamp": s.timestamp,
            "total_lineup": s.total_lineup,
            **{key: s.queue_details[key] for key in SEAT_CATEGORIES},
        }
        for s in snapshots
    ]
    return pd.DataFrame(rows, columns=columns)


def summarize_day(snapshots: Sequence[Snapshot]) -> DaySummary | None:
    frame = snapshot_frame(snapshots)
    if frame.empty:
        return None
    totals = frame["total_lineup"]
    return DaySummary(
        count=len(frame),
        avg_total=round(float(totals.mean()), 1),
        max_total=int(totals.max()),
        min_total=int(totals.min()),
        avg_by_category={key: round(float(frame[key].mean()), 1) for key in SEAT_CATEGORIES},
    )


def downsample(
    snapshots: Sequence[Snapshot],
    *,
    max_points: int = MAX_CHART_POINTS,
    timezone: str | None = None,
) -> list[SeriesPoint]:
    """Keep every n-th snapshot so a 10s-cadence day fits roughly ``max_points``."""
    if not snapshots:
        return []
    rate = max(1, len(snapshots) // max_points)
    points = []
    for snapshot in snapshots[::rate]:
        local = to_local(snapshot.timestamp, timezone)
        details = snapshot.queue_details
        points.append(
            SeriesPoint(
                time=local.strftime("%H:%M"),
                full_time=local.strftime("%H:%M:%S"),
                total=snapshot.total_lineup,
                type_a=details["type_a"],
                type_b=details["type_b"],
                type_c=details["type_c"],
                type_f=details["type_f"],
            )
        )
    return points
