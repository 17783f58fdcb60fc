"""Load the local snapshot log into the durable store."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from queuewatch.db.session import create_engine_from_env
from queuewatch.db.snapshots import insert_snapshot
from queuewatch.ingest.models import Snapshot
from queuewatch.storage.local import LocalLogStore
from queuewatch.utils.dates import format_date

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


@dataclass(slots=True)
class BackfillReport:
    days: int = 0
    read: int = 0
    inserted: int = 0
    duplicates: int = 0
    malformed: int = 0
    failed: int = 0
    unreadable: int = 0


def backfill(engine: Engine, store: LocalLogStore, *, batch_size: int = BATCH_SIZE) -> BackfillReport:
    """Insert every logged snapshot that the store does not already hold.

    Rows are keyed on (store_id, captured_at), so reruns and a concurrently
    running collector never produce duplicates.
    """
    report = BackfillReport()
    days = store.list_days()
    logger.info("Found %s log files to migrate", len(days))
    for day in days:
        report.days += 1
        try:
            scan = store.scan_day(day)
        except OSError as exc:
            report.unreadable += 1
            logger.error("Cannot read log for %s: %s", format_date(day), exc)
            continue
        report.read += len(scan.snapshots)
        report.malformed += scan.malformed
        for batch in _batched(scan.snapshots, batch_size):
            try:
                inserted = _insert_batch(engine, batch)
            except SQLAlchemyError as exc:
                report.failed += len(batch)
                logger.error("Batch of %s from %s failed: %s", len(batch), format_date(day), exc)
                continue
            report.inserted += inserted
            report.duplicates += len(batch) - inserted
        logger.info("Finished %s (%s records, %s malformed)", format_date(day), len(scan.snapshots), scan.malformed)
    return report


def _insert_batch(engine: Engine, batch: Sequence[Snapshot]) -> int:
    with engine.begin() as conn:
        return sum(1 for snapshot in batch if insert_snapshot(conn, snapshot))


def _batched(items: Sequence[Snapshot], size: int) -> Iterator[Sequence[Snapshot]]:
    if size < 1:
        raise ValueError("batch size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _format_report(report: BackfillReport) -> Iterable[str]:
    yield f"days={report.days} read={report.read} inserted={report.inserted}"
    yield f"duplicates={report.duplicates} malformed={report.malformed} failed={report.failed} unreadable={report.unreadable}"


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    engine = create_engine_from_env()
    try:
        report = backfill(engine, LocalLogStore(), batch_size=int(os.environ.get("BACKFILL_BATCH_SIZE", BATCH_SIZE)))
    except SQLAlchemyError as exc:
        print(f"Backfill failed: {exc}", file=sys.stderr)
        sys.exit(2)
    for line in _format_report(report):
        logger.info(line)
    if report.failed or report.unreadable:
        sys.exit(1)


if __name__ == "__main__":
    main()
