# Shared fakes for the engine, store, and API tests.
# They stand in for the ping tool, the database, and live sockets so tests
# stay deterministic and never touch the network.

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from pingmon.errors import StorageError, TransportError
from pingmon.models.probe import HistoryRecord, ProbeOutcome
from pingmon.parser import PlatformFamily
from pingmon.prober import RawProbeResult

LINUX_REPLY = (
    "PING 10.0.0.1 (10.0.0.1) 32(60) bytes of data.\n"
    "40 bytes from 10.0.0.1: icmp_seq=1 ttl=117 time=23.4 ms\n"
)


class FakeClock:
    """Monotonic clock that only moves when `sleep` is awaited."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += max(seconds, 0.0)
        await asyncio.sleep(0)


class FakeProber:
    platform = PlatformFamily.POSIX

    def __init__(
        self,
        result: Optional[RawProbeResult] = None,
        *,
        delay: float = 0.0,
        error: Optional[BaseException] = None,
        on_call: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.result = result or RawProbeResult(stdout=LINUX_REPLY, stderr="", success=True, returncode=0)
        self.delay = delay
        self.error = error
        self.on_call = on_call
        self.calls: List[Dict[str, Any]] = []

    async def probe(self, host: str, timeout_ms: int, packet_size_bytes: int) -> RawProbeResult:
        self.calls.append({"host": host, "timeout_ms": timeout_ms, "packet_size_bytes": packet_size_bytes})
        if self.on_call is not None:
            self.on_call(len(self.calls))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeStore:
    def __init__(self, *, fail_writes: bool = False, fail_reads: bool = False) -> None:
        self.fail_writes = fail_writes
        self.fail_reads = fail_reads
        self.outcomes: List[ProbeOutcome] = []
        self.write_attempts = 0

    def append(self, outcome: ProbeOutcome) -> None:
        self.write_attempts += 1
        if self.fail_writes:
            raise StorageError("disk I/O error")
        self.outcomes.append(outcome)

    def query_recent(self, limit: int = 1000) -> List[HistoryRecord]:
        if self.fail_reads:
            raise StorageError("database is locked")
        ordered = sorted(self.outcomes, key=lambda o: o.timestamp, reverse=True)[:limit]
        return [
            HistoryRecord(
                timestamp=o.timestamp,
                host=o.host,
                response_time=o.response_time_ms,
                packet_size=o.packet_size_bytes,
                timeout=o.timeout_ms,
                success=o.success,
            )
            for o in ordered
        ]


class FakeSubscriber:
    def __init__(self, name: str = "viewer", *, fail: bool = False) -> None:
        self.id = name
        self.fail = fail
        self.closed = False
        self.messages: List[Dict[str, Any]] = []
        self._callbacks: List[Callable[[], None]] = []

    async def send(self, message: Dict[str, Any]) -> None:
        if self.fail or self.closed:
            raise TransportError(f"{self.id} is gone")
        self.messages.append(message)

    def on_close(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def discard_close_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def close(self) -> None:
        self.closed = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    @property
    def types(self) -> List[str]:
        return [message.get("type") for message in self.messages]

    @property
    def finished_count(self) -> int:
        return sum(1 for m in self.messages if m == {"type": "info", "message": "Monitoring finished"})
