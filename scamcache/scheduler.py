"""
Background scheduling for the cache service.

Two kinds of loops run on the service's event loop:

- `RefreshLoop`: spawn the snapshot producer, reconcile its message, then wait
  `interval` measured from the producer's exit before the next cycle.
  States: IDLE -> PRODUCING -> RECONCILING -> WAITING -> IDLE.
  Any failure inside a cycle only costs that cycle; the next one is still
  scheduled.
- `PeriodicTask`: fixed-rate timer over an async action (pull requests, auto
  pull, price lookup). Every tick is isolated: an exception is logged and the
  next tick still fires.

All waiting goes through a `Clock` so cycle timing can be driven by tests
without real delays. Cycles are never retried early and the producer has no
timeout; only `ServiceScheduler.stop()` terminates one that is still running.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from scamcache.domain.models import SnapshotRecord
from scamcache.reconciler import ReconcileResult
from scamcache.utils.logging import get_logger
from scamcache.utils.profiler import profile_block

log = get_logger(__name__)


@runtime_checkable
class Clock(Protocol):
    def monotonic(self) -> float:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Wall-clock implementation backed by `time.monotonic` and `asyncio.sleep`."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class Handle(Protocol):
    async def receive(self) -> Optional[List[SnapshotRecord]]:
        ...

    async def wait_exit(self) -> Optional[int]:
        ...

    def terminate(self) -> None:
        ...


class Launcher(Protocol):
    async def launch(self) -> Handle:
        ...


class Applier(Protocol):
    async def apply(self, snapshot: Sequence[SnapshotRecord]) -> ReconcileResult:
        ...


class CycleState(str, Enum):
    IDLE = "idle"
    PRODUCING = "producing"
    RECONCILING = "reconciling"
    WAITING = "waiting"


@dataclass
class CycleReport:
    """
    Outcome of one refresh cycle.

    `exit_at` is the clock reading when the producer exited (or when launching
    it failed); the next cycle is scheduled relative to it.
    """

    cycle: int
    started_at: float
    exit_at: Optional[float] = None
    delivered: bool = False
    exit_code: Optional[int] = None
    result: Optional[ReconcileResult] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0
    peak_rss_bytes: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RefreshLoop:
    """
    Producer -> reconciler -> delay, forever.
    """

    def __init__(
        self,
        producer: Launcher,
        reconciler: Applier,
        interval_seconds: float,
        clock: Optional[Clock] = None,
    ) -> None:
        self._producer = producer
        self._reconciler = reconciler
        self.interval_seconds = interval_seconds
        self._clock = clock or SystemClock()
        self.state = CycleState.IDLE
        self.cycles = 0
        self.last_report: Optional[CycleReport] = None

    async def run_cycle(self) -> CycleReport:
        self.cycles += 1
        report = CycleReport(cycle=self.cycles, started_at=self._clock.monotonic())
        log.info(f"[CYCLE START] #{report.cycle}", extra={"cycle": report.cycle})

        with profile_block(f"refresh-cycle-{report.cycle}") as stats:
            await self._produce_and_reconcile(report)

        report.duration_seconds = round(stats.duration_seconds, 3)
        report.peak_rss_bytes = stats.peak_rss_bytes
        self.last_report = report
        log.info(
            f"[CYCLE COMPLETE] #{report.cycle}",
            extra={
                "cycle": report.cycle,
                "delivered": report.delivered,
                "exit_code": report.exit_code,
                "error": report.error,
                "duration": report.duration_seconds,
            },
        )
        return report

    async def _produce_and_reconcile(self, report: CycleReport) -> None:
        self.state = CycleState.PRODUCING
        try:
            handle = await self._producer.launch()
        except Exception as exc:  # noqa: BLE001 - a failed launch only skips this cycle
            log.exception(f"[CYCLE FAILED] #{report.cycle} producer did not start")
            report.error = str(exc)
            report.exit_at = self._clock.monotonic()
            return

        exit_task = asyncio.create_task(self._await_exit(handle, report))
        try:
            try:
                snapshot = await handle.receive()
                if snapshot is None:
                    log.warning(
                        f"[CYCLE MISSED] #{report.cycle} producer exited without a snapshot",
                        extra={"cycle": report.cycle},
                    )
                else:
                    report.delivered = True
                    self.state = CycleState.RECONCILING
                    report.result = await self._reconciler.apply(snapshot)
            except Exception as exc:  # noqa: BLE001 - the cycle is dropped, the loop goes on
                log.exception(f"[CYCLE FAILED] #{report.cycle}", extra={"cycle": report.cycle})
                report.error = str(exc)
            await exit_task
        except asyncio.CancelledError:
            # Shutdown: a running producer must not outlive the service.
            exit_task.cancel()
            handle.terminate()
            raise

    async def _await_exit(self, handle: Handle, report: CycleReport) -> None:
        report.exit_code = await handle.wait_exit()
        report.exit_at = self._clock.monotonic()
        log.info(
            f"Producer exited - next run is in {self.interval_seconds:g} seconds.",
            extra={"cycle": report.cycle, "exit_code": report.exit_code},
        )

    async def wait_for_next(self, report: CycleReport) -> None:
        self.state = CycleState.WAITING
        now = self._clock.monotonic()
        exit_at = report.exit_at if report.exit_at is not None else now
        await self._clock.sleep(max(0.0, exit_at + self.interval_seconds - now))
        self.state = CycleState.IDLE

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        completed = 0
        while True:
            report = await self.run_cycle()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                self.state = CycleState.IDLE
                return
            await self.wait_for_next(report)


class PeriodicTask:
    """
    Fixed-rate timer that invokes `action` every `interval_seconds`.

    With `run_immediately` the first tick fires at start, otherwise after one
    interval.
    """

    def __init__(
        self,
        name: str,
        action: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        clock: Optional[Clock] = None,
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self._action = action
        self.interval_seconds = interval_seconds
        self._clock = clock or SystemClock()
        self.run_immediately = run_immediately
        self.ticks = 0
        self.failures = 0
        self.last_error: Optional[str] = None

    async def tick(self) -> bool:
        """Run the action once. Returns False if it raised."""
        self.ticks += 1
        try:
            await self._action()
        except Exception as exc:  # noqa: BLE001 - one failed tick must not stop the timer
            self.failures += 1
            self.last_error = str(exc)
            log.exception(f"[{self.name.upper()} FAILED]", extra={"task": self.name})
            return False
        return True

    async def run_forever(self, max_ticks: Optional[int] = None) -> None:
        next_at = self._clock.monotonic()
        if not self.run_immediately:
            next_at += self.interval_seconds
        done = 0
        while max_ticks is None or done < max_ticks:
            await self._clock.sleep(max(0.0, next_at - self._clock.monotonic()))
            await self.tick()
            done += 1
            next_at += self.interval_seconds

    def status(self) -> Dict[str, Any]:
        return {
            "interval_seconds": self.interval_seconds,
            "ticks": self.ticks,
            "failures": self.failures,
            "last_error": self.last_error,
        }


class ServiceScheduler:
    """
    Owns the background tasks of a running service.

    Everything starts after `startup_delay_seconds` so the HTTP front is up first.
    """

    def __init__(
        self,
        refresh: RefreshLoop,
        periodic: Sequence[PeriodicTask] = (),
        startup_delay_seconds: float = 0.1,
        clock: Optional[Clock] = None,
    ) -> None:
        self.refresh = refresh
        self.periodic = list(periodic)
        self.startup_delay_seconds = startup_delay_seconds
        self._clock = clock or SystemClock()
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks.append(
            asyncio.create_task(self._delayed("refresh", self.refresh.run_forever), name="refresh")
        )
        for task in self.periodic:
            self._tasks.append(
                asyncio.create_task(self._delayed(task.name, task.run_forever), name=task.name)
            )
        log.info(
            "Background tasks scheduled",
            extra={"tasks": [t.get_name() for t in self._tasks], "delay": self.startup_delay_seconds},
        )

    async def _delayed(self, name: str, run: Callable[[], Awaitable[None]]) -> None:
        await self._clock.sleep(self.startup_delay_seconds)
        try:
            await run()
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception(f"[{name.upper()} CRASHED] background task stopped", extra={"task": name})
            raise

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("Background tasks stopped")

    def status(self) -> Dict[str, Any]:
        last = self.refresh.last_report
        return {
            "running": self.running,
            "refresh": {
                "state": self.refresh.state.value,
                "cycles": self.refresh.cycles,
                "interval_seconds": self.refresh.interval_seconds,
                "last_cycle": last.as_dict() if last else None,
            },
            "tasks": {task.name: task.status() for task in self.periodic},
        }


__all__ = [
    "Clock",
    "CycleReport",
    "CycleState",
    "PeriodicTask",
    "RefreshLoop",
    "ServiceScheduler",
    "SystemClock",
]
