"""Report the durable store's snapshot count and latest timestamp."""

from __future__ import annotations

import sys

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from queuewatch.db.session import create_engine_from_env
from queuewatch.db.snapshots import count_snapshots, latest_snapshot
from queuewatch.utils.dates import format_iso_datetime


def main() -> None:
    load_dotenv()
    engine = create_engine_from_env()
    try:
        total = count_snapshots(engine)
        latest = latest_snapshot(engine)
    except SQLAlchemyError as exc:
        print(f"DB check failed: {exc}", file=sys.stderr)
        sys.exit(2)
    print("Total snapshots in DB:", total)
    print("Latest snapshot timestamp:", format_iso_datetime(latest.timestamp) if latest else "-")


if __name__ == "__main__":
    main()
