"""Periodic queue collection with dual persistence."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, time as dtime
from enum import Enum

from dotenv import load_dotenv

from queuewatch.errors import PersistenceError
from queuewatch.ingest.models import Snapshot
from queuewatch.ingest.provider import ProviderClient, QueueCollector
from queuewatch.storage.local import LocalLogStore
from queuewatch.storage.remote import RemoteSink
from queuewatch.utils.dates import format_date, now_in_tz

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    TICKING = "ticking"
    STOPPED = "stopped"


class StopReason(str, Enum):
    WINDOW_CLOSED = "window_closed"
    MAX_RUNTIME = "max_runtime"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True, slots=True)
class OperatingWindow:
    """Local wall-clock interval ``[start, end)``; wraps midnight when start > end."""

    start: dtime
    end: dtime

    @classmethod
    def parse(cls, start: str, end: str) -> "OperatingWindow":
        return cls(dtime.fromisoformat(start), dtime.fromisoformat(end))

    def contains(self, moment: datetime) -> bool:
        current = moment.time().replace(tzinfo=None)
        if self.start <= self.end:
            return self.start <= current < self.end
        return current >= self.start or current < self.end

    def __str__(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


DEFAULT_WINDOW = OperatingWindow(dtime(11, 0), dtime(22, 0))


@dataclass(slots=True)
class RunSummary:
    reason: StopReason | None = None
    ticks: int = 0
    snapshots: int = 0
    empty_ticks: int = 0
    local_failures: int = 0
    remote_failures: int = 0
    skipped_fires: int = 0
    elapsed_seconds: float = 0.0


class CollectorScheduler:
    """Runs serialized collection ticks on a fixed grid until a stop condition."""

    def __init__(
        self,
        collector: QueueCollector,
        local_store: LocalLogStore,
        remote_sink: RemoteSink,
        *,
        interval: float = 10.0,
        window: OperatingWindow = DEFAULT_WINDOW,
        max_runtime_hours: float = 0.0,
        grace_period: float = 5.0,
        clock: Callable[[], datetime] = now_in_tz,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.collector = collector
        self.local_store = local_store
        self.remote_sink = remote_sink
        self.interval = interval
        self.window = window
        self.max_runtime_hours = max_runtime_hours
        self.grace_period = grace_period
        self._clock = clock
        self._monotonic = monotonic
        self._stop = asyncio.Event()
        self.state = SchedulerState.IDLE
        self.summary = RunSummary()

    @classmethod
    def from_env(
        cls, collector: QueueCollector, local_store: LocalLogStore, remote_sink: RemoteSink
    ) -> "CollectorScheduler":
        return cls(
            collector,
            local_store,
            remote_sink,
            interval=float(os.environ.get("COLLECT_INTERVAL_SECONDS", "10")),
            window=OperatingWindow.parse(
                os.environ.get("WINDOW_START", "11:00"), os.environ.get("WINDOW_END", "22:00")
            ),
            max_runtime_hours=float(os.environ.get("MAX_RUNTIME_HOURS") or 0),
            grace_period=float(os.environ.get("SHUTDOWN_GRACE_SECONDS", "5")),
        )

    def stop(self) -> None:
        """Request shutdown; safe to call from a signal handler on the loop."""
        if not self._stop.is_set():
            logger.info("Stop requested; shutting down collector")
        self._stop.set()

    async def run(self) -> RunSummary:
        started = self._monotonic()
        next_fire = started
        logger.info(
            "Collector started: every %ss, window %s, max runtime %s",
            self.interval,
            self.window,
            f"{self.max_runtime_hours}h" if self.max_runtime_hours > 0 else "unbounded",
        )
        while True:
            reason = self._stop_reason(started)
            if reason:
                break
            self.state = SchedulerState.TICKING
            interrupted = await self._run_tick()
            self.state = SchedulerState.IDLE
            if interrupted:
                reason = StopReason.INTERRUPTED
                break
            reason = self._stop_reason(started)
            if reason:
                break
            next_fire = self._advance(next_fire)
            if await self._wait(next_fire - self._monotonic()):
                reason = StopReason.INTERRUPTED
                break
        self.state = SchedulerState.STOPPED
        self.summary.reason = reason
        self.summary.elapsed_seconds = self._monotonic() - started
        self._log_summary()
        return self.summary

    def _stop_reason(self, started: float) -> StopReason | None:
        if self._stop.is_set():
            return StopReason.INTERRUPTED
        now = self._clock()
        if not self.window.contains(now):
            logger.info("Local time %s is outside the operating window %s", now.strftime("%H:%M:%S"), self.window)
            return StopReason.WINDOW_CLOSED
        if self.max_runtime_hours > 0:
            hours = (self._monotonic() - started) / 3600
            if hours >= self.max_runtime_hours:
                logger.info("Ran %.2f hours; reached max runtime", hours)
                return StopReason.MAX_RUNTIME
        return None

    def _advance(self, next_fire: float) -> float:
        next_fire += self.interval
        now = self._monotonic()
        if next_fire <= now:
            missed = int((now - next_fire) // self.interval) + 1
            self.summary.skipped_fires += missed
            logger.warning("Tick overran the interval; skipping %s fire(s)", missed)
            next_fire += missed * self.interval
        return next_fire

    async def _wait(self, delay: float) -> bool:
        """Sleep until the next fire; True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=max(0.0, delay))
        except asyncio.TimeoutError:
            return False
        return True

    async def _run_tick(self) -> bool:
        """Run one tick; True if it was interrupted by a stop request."""
        tick = asyncio.create_task(self._tick())
        stopper = asyncio.create_task(self._stop.wait())
        await asyncio.wait({tick, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if tick.done():
            stopper.cancel()
            if tick.exception() is not None:
                logger.error("Collection tick failed", exc_info=tick.exception())
            return False
        done, _ = await asyncio.wait({tick}, timeout=self.grace_period)
        if not done:
            logger.warning("Abandoning in-flight tick after %.1fs grace period", self.grace_period)
            tick.cancel()
            await asyncio.wait({tick})
        elif tick.exception() is not None:
            logger.error("Collection tick failed", exc_info=tick.exception())
        return True

    async def _tick(self) -> None:
        self.summary.ticks += 1
        snapshot = await self.collector.collect()
        if snapshot is None:
            self.summary.empty_ticks += 1
            logger.warning("No usable data this tick")
            return
        self.summary.snapshots += 1
        local_result, remote_result = await asyncio.gather(
            self._write_local(snapshot), self._write_remote(snapshot), return_exceptions=True
        )
        if local_result is not True:
            self.summary.local_failures += 1
            if isinstance(local_result, BaseException):
                logger.error("Local write crashed", exc_info=local_result)
        if remote_result is not True:
            self.summary.remote_failures += 1
            if isinstance(remote_result, BaseException):
                logger.error("Remote write crashed", exc_info=remote_result)

    async def _write_local(self, snapshot: Snapshot) -> bool:
        loop = asyncio.get_running_loop()
        try:
            path = await loop.run_in_executor(None, self.local_store.append, snapshot)
        except PersistenceError as exc:
            logger.error("Local save failed: %s", exc)
            return False
        logger.info("Local save ok: %s", path.name)
        return True

    async def _write_remote(self, snapshot: Snapshot) -> bool:
        result = await self.remote_sink.send(snapshot)
        return result.ok

    def _log_summary(self) -> None:
        s = self.summary
        logger.info(
            "Collector stopped (%s) after %.0fs: %s ticks, %s snapshots, %s empty, "
            "%s local failures, %s remote failures, %s skipped fires",
            s.reason.value if s.reason else "unknown",
            s.elapsed_seconds,
            s.ticks,
            s.snapshots,
            s.empty_ticks,
            s.local_failures,
            s.remote_failures,
            s.skipped_fires,
        )
        log_store_stats(self.local_store)


def log_store_stats(store: LocalLogStore) -> None:
    stats = store.stats()
    logger.info("Local log: %s files, %.2f KB", stats.file_count, stats.total_bytes / 1024)
    if stats.date_range:
        start, end = stats.date_range
        logger.info("Local log date range: %s ~ %s", format_date(start), format_date(end))


async def run_collector() -> RunSummary:
    load_dotenv()
    store = LocalLogStore()
    client = ProviderClient.from_env()
    remote = RemoteSink.from_env()
    scheduler = CollectorScheduler.from_env(QueueCollector(client), store, remote)
    log_store_stats(store)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, scheduler.stop)
    try:
        return await scheduler.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await client.close()
        await remote.close()


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_collector())


if __name__ == "__main__":
    main()
