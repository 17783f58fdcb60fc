"""Print the local log stats and one day's records."""

from __future__ import annotations

import sys

from dotenv import load_dotenv

from queuewatch.ingest.models import CATEGORY_LABELS
from queuewatch.logic.summary import summarize_day
from queuewatch.storage.local import LocalLogStore
from queuewatch.utils.dates import format_date, parse_iso_date, to_local, today_in_tz

RECENT = 10


def main() -> None:
    load_dotenv()
    store = LocalLogStore()
    stats = store.stats()
    print("Local log stats")
    print("-" * 50)
    print(f"Files: {stats.file_count}")
    print(f"Size: {stats.total_bytes / 1024:.2f} KB")
    if stats.date_range:
        print(f"Range: {format_date(stats.date_range[0])} ~ {format_date(stats.date_range[1])}")
    print()

    target = parse_iso_date(sys.argv[1]) if len(sys.argv) > 1 else today_in_tz(store.timezone)
    print(f"Date: {format_date(target)}")
    print("-" * 50)
    snapshots = store.read_day(target)
    if not snapshots:
        print(f"No data for {format_date(target)}")
        print("\nAvailable dates:")
        for day in store.list_days():
            print(f"  - {format_date(day)}")
        return

    print(f"Records: {len(snapshots)}\n")
    print(f"{'time':<12}{'total':<8}{'1-2':<8}{'3-4':<8}{'5-6':<8}{'7-8':<8}")
    for snapshot in snapshots[-RECENT:]:
        details = snapshot.queue_details
        local = to_local(snapshot.timestamp, store.timezone)
        print(
            f"{local.strftime('%H:%M:%S'):<12}{snapshot.total_lineup:<8}"
            f"{details['type_a']:<8}{details['type_b']:<8}{details['type_c']:<8}{details['type_f']:<8}"
        )

    summary = summarize_day(snapshots)
    if summary:
        print("\nSummary")
        print("-" * 50)
        print(f"Average total: {summary.avg_total}")
        print(f"Max total: {summary.max_total}")
        print(f"Min total: {summary.min_total}")
        for key, value in summary.avg_by_category.items():
            print(f"  {CATEGORY_LABELS[key]}: {value}")


if __name__ == "__main__":
    main()
