"""
Launch the snapshot producer in a separate process and receive its one message.

The producer is isolated in its own OS process so slow or crashing network
probes cannot take the service down. The parent keeps only the reading end of
a one-way pipe; once the child exits, the pipe reaches end-of-stream, which is
how "exited without a message" is told apart from a delivered snapshot.

A local spawn context is used so the global multiprocessing start method is
never changed.
"""

from __future__ import annotations

import asyncio
import multiprocessing as mp
from multiprocessing.connection import Connection
from multiprocessing.process import BaseProcess
from typing import Any, List, Optional

from pydantic import TypeAdapter

from scamcache.config import Settings
from scamcache.domain.models import SnapshotRecord
from scamcache.infrastructure.store import CacheStore
from scamcache.producer.worker import run_producer
from scamcache.utils.logging import get_logger

log = get_logger(__name__)

_SNAPSHOT = TypeAdapter(List[SnapshotRecord])

TERMINATE_TIMEOUT_SECONDS = 5.0


def parse_snapshot(payload: Any) -> List[SnapshotRecord]:
    """Validate a producer message into snapshot records."""
    return _SNAPSHOT.validate_python(payload)


class ProducerHandle:
    """
    Parent-side view of one running producer.
    """

    def __init__(self, process: BaseProcess, receiver: Connection) -> None:
        self._process = process
        self._receiver = receiver
        self._reading = False

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid

    def _recv(self) -> Any:
        # Closed by the reading thread itself, never while a recv is pending.
        try:
            return self._receiver.recv()
        finally:
            self._receiver.close()

    async def receive(self) -> Optional[List[SnapshotRecord]]:
        """
        Wait for the snapshot message.

        Returns None when the producer ended without sending one. Raises
        `pydantic.ValidationError` for a malformed message.
        """
        self._reading = True
        try:
            payload = await asyncio.to_thread(self._recv)
        except EOFError:
            return None
        return parse_snapshot(payload)

    async def wait_exit(self) -> Optional[int]:
        """Wait for the process to exit and return its exit code."""
        await asyncio.to_thread(self._process.join)
        return self._process.exitcode

    def terminate(self, timeout: float = TERMINATE_TIMEOUT_SECONDS) -> None:
        """
        Stop the producer if it is still running.

        Used on service shutdown. Once the child is gone the pipe reaches
        end-of-stream, which releases any thread blocked in `receive` or
        `wait_exit`.
        """
        if self._process.is_alive():
            log.warning("Terminating snapshot producer", extra={"pid": self._process.pid})
            self._process.terminate()
            self._process.join(timeout)
            if self._process.is_alive():
                self._process.kill()
                self._process.join(timeout)
        if not self._reading:
            self._receiver.close()


class SnapshotProducer:
    """
    Starts one producer process per refresh cycle.
    """

    def __init__(
        self,
        store: CacheStore,
        probe_timeout: float = 10.0,
        probe_concurrency: int = 20,
        log_level: str = "INFO",
        json_logs: bool = False,
        start_method: str = "spawn",
    ) -> None:
        self._store = store
        self.probe_timeout = probe_timeout
        self.probe_concurrency = probe_concurrency
        self.log_level = log_level
        self.json_logs = json_logs
        self.start_method = start_method

    @classmethod
    def from_settings(cls, store: CacheStore, settings: Settings) -> "SnapshotProducer":
        return cls(
            store,
            probe_timeout=settings.probe_timeout_seconds,
            probe_concurrency=settings.probe_concurrency,
            log_level=settings.log_level,
            json_logs=settings.log_json,
        )

    async def launch(self) -> ProducerHandle:
        targets = await self._store.list_targets()
        ctx = mp.get_context(self.start_method)
        receiver, sender = ctx.Pipe(duplex=False)
        process = ctx.Process(
            target=run_producer,
            args=(
                sender,
                targets,
                self.probe_timeout,
                self.probe_concurrency,
                self.log_level,
                self.json_logs,
            ),
            name="snapshot-producer",
            daemon=True,
        )
        try:
            process.start()
        except BaseException:
            receiver.close()
            raise
        finally:
            # Only the child may hold the writing end, or EOF never arrives.
            sender.close()
        log.info(
            "Spawned snapshot producer",
            extra={"pid": process.pid, "targets": len(targets)},
        )
        return ProducerHandle(process, receiver)


__all__ = ["ProducerHandle", "SnapshotProducer", "parse_snapshot"]
