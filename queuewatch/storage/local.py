"""Append-only per-day JSONL log of snapshots."""

from __future__ import annotations

import json
import logging
import os
import pathlib
from dataclasses import dataclass
from datetime import date

from queuewatch.errors import PersistenceError
from queuewatch.ingest.models import Snapshot
from queuewatch.utils.dates import format_date, local_date, timezone_name

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "data/snapshots"
SUFFIX = ".jsonl"


@dataclass(slots=True)
class DayScan:
    snapshots: list[Snapshot]
    malformed: int


@dataclass(slots=True)
class LogStats:
    file_count: int
    total_bytes: int
    date_range: tuple[date, date] | None


class LocalLogStore:
    """One ``YYYY-MM-DD.jsonl`` file per local calendar day.

    The store assumes a single writer per process; each append is a single
    ``write`` of one newline-terminated JSON object.
    """

    def __init__(self, data_dir: str | os.PathLike | None = None, *, timezone: str | None = None) -> None:
        self.data_dir = pathlib.Path(data_dir or os.environ.get("DATA_DIR", DEFAULT_DATA_DIR))
        self.timezone = timezone or timezone_name()

    def path_for(self, day: date) -> pathlib.Path:
        return self.data_dir / f"{format_date(day)}{SUFFIX}"

    def append(self, snapshot: Snapshot) -> pathlib.Path:
        path = self.path_for(local_date(snapshot.timestamp, self.timezone))
        line = json.dumps(snapshot.to_dict(), ensure_ascii=False) + "\n"
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        except OSError as exc:
            raise PersistenceError(f"Cannot append to {path}: {exc}") from exc
        logger.debug("Appended snapshot %s to %s", snapshot.to_dict()["timestamp"], path.name)
        return path

    def read_day(self, day: date) -> list[Snapshot]:
        return self.scan_day(day).snapshots

    def scan_day(self, day: date) -> DayScan:
        path = self.path_for(day)
        if not path.exists():
            return DayScan(snapshots=[], malformed=0)
        snapshots: list[Snapshot] = []
        malformed = 0
        # Lines are decoded one at a time so a corrupt byte only costs its own record.
        with path.open("rb") as handle:
            for lineno, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    snapshots.append(Snapshot.from_dict(json.loads(line.decode("utf-8"))))
                except (KeyError, TypeError, ValueError, OverflowError) as exc:
                    malformed += 1
                    logger.warning("Skipping malformed record %s:%s (%s)", path.name, lineno, exc)
        return DayScan(snapshots=snapshots, malformed=malformed)

    def list_days(self) -> list[date]:
        if not self.data_dir.is_dir():
            return []
        days = []
        for path in self.data_dir.glob(f"*{SUFFIX}"):
            try:
                days.append(date.fromisoformat(path.stem))
            except ValueError:
                logger.debug("Ignoring non-log file %s", path.name)
        return sorted(days)

    def stats(self) -> LogStats:
        days = self.list_days()
        if not days:
            return LogStats(file_count=0, total_bytes=0, date_range=None)
        total = sum(self.path_for(day).stat().st_size for day in days)
        return LogStats(file_count=len(days), total_bytes=total, date_range=(days[0], days[-1]))

    def count_records(self) -> int:
        return sum(len(self.read_day(day)) for day in self.list_days())
