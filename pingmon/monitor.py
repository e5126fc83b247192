"""
Monitoring session engine.

Each accepted probe request becomes a MonitorSession that ticks once per
second from its start. Every tick spawns its own probe -> parse -> persist ->
notify pipeline without waiting on earlier ticks, so a slow ping never delays
the schedule. Once the request's duration has elapsed the session stops
ticking, lets in-flight pipelines drain for a bounded window, and sends a
single "Monitoring finished" event.

Subscribers that disconnect are dropped from fan-out, but the session keeps
probing and persisting until its duration runs out so the history stays
complete even with nobody watching.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from pingmon.config import TICK_INTERVAL_S
from pingmon.errors import ProbeInvocationError, StorageError
from pingmon.models.probe import ProbeOutcome, ProbeRequest, isoformat_utc, utcnow
from pingmon.parser import PlatformFamily, parse_ping_output
from pingmon.prober import Prober
from pingmon.store import ResultStore
from pingmon.ws.subscribers import SubscriberRegistry

log = logging.getLogger(__name__)

FINISHED_MESSAGE = "Monitoring finished"
DRAIN_GRACE_S = 1.0  # added to the request timeout when waiting for in-flight ticks


class MonitorSession:
    """State of one monitoring run. Owned and mutated only by SessionEngine."""

    def __init__(self, request: ProbeRequest, subscribers: Iterable[Any], started_at: float):
        self.id = uuid.uuid4().hex[:12]
        self.request = request
        self.started_at = started_at
        self.started_at_wall = utcnow()
        self.subscribers: Set[Any] = set(subscribers)
        self.ticks_issued = 0
        self.closing = False
        self.finished = False
        self.timer: Optional[asyncio.Task] = None
        self.pipelines: Set[asyncio.Task] = set()
        self.close_callbacks: Dict[Any, Callable[[], None]] = {}

    @property
    def duration_s(self) -> float:
        return self.request.duration_ms / 1000

    def summary(self) -> Dict[str, Any]:
        return {
            "sessionId": self.id,
            "host": self.request.host,
            "startedAt": isoformat_utc(self.started_at_wall),
            "durationMs": self.request.duration_ms,
            "subscribers": len(self.subscribers),
            "ticks": self.ticks_issued,
            "closing": self.closing,
        }

    def __repr__(self) -> str:
        return f"MonitorSession(id={self.id!r}, host={self.request.host!r}, ticks={self.ticks_issued})"


class SessionEngine:
    def __init__(
        self,
        store: ResultStore,
        prober: Prober,
        registry: SubscriberRegistry,
        tick_interval: float = TICK_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        platform: Optional[PlatformFamily] = None,
        drain_grace: float = DRAIN_GRACE_S,
    ):
        self.store = store
        self.prober = prober
        self.registry = registry
        self.tick_interval = tick_interval
        self.clock = clock
        self.sleep = sleep
        self.platform = platform or getattr(prober, "platform", None) or PlatformFamily.current()
        self.drain_grace = drain_grace
        self._sessions: Dict[str, MonitorSession] = {}

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(self, request: ProbeRequest, subscribers: Optional[Iterable[Any]] = None) -> MonitorSession:
        """
        Schedule monitoring for `request` and return at once.

        Must be called from the event loop. When `subscribers` is omitted,
        every subscriber connected right now receives the session's events.
        """
        if subscribers is None:
            subscribers = self.registry.snapshot()
        session = MonitorSession(request, subscribers, started_at=self.clock())
        for subscriber in list(session.subscribers):
            self._watch(session, subscriber)
        self._sessions[session.id] = session
        session.timer = asyncio.get_running_loop().create_task(self._run(session))
        log.info(
            "Session %s started: host=%s timeout=%sms size=%sB duration=%sms subscribers=%d",
            session.id,
            request.host,
            request.timeout_ms,
            request.packet_size_bytes,
            request.duration_ms,
            len(session.subscribers),
        )
        return session

    def get(self, session_id: str) -> Optional[MonitorSession]:
        return self._sessions.get(session_id)

    def active_sessions(self) -> List[MonitorSession]:
        return list(self._sessions.values())

    async def finish(self, session: MonitorSession) -> bool:
        """Send the terminal event and release the session. Safe to call repeatedly."""
        if session.finished:
            return False
        # flag flips before any await so racing callers bail out above
        session.finished = True
        session.closing = True
        if session.timer is not None and session.timer is not asyncio.current_task():
            session.timer.cancel()
        await self._fan_out(session, {"type": "info", "message": FINISHED_MESSAGE}, terminal=True)
        self._release(session)
        log.info("Session %s for %s finished after %d ticks", session.id, session.request.host, session.ticks_issued)
        return True

    async def stop_session(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        log.info("Stopping session %s early", session_id)
        return await self.finish(session)

    async def shutdown(self) -> None:
        """Cancel every session without notifying subscribers (their sockets are going away)."""
        tasks: List[asyncio.Task] = []
        for session in list(self._sessions.values()):
            session.finished = True
            session.closing = True
            if session.timer is not None:
                session.timer.cancel()
                tasks.append(session.timer)
            for pipeline in list(session.pipelines):
                pipeline.cancel()
                tasks.append(pipeline)
            self._release(session)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log.info("Session engine shut down (%d tasks cancelled)", len(tasks))

    def _release(self, session: MonitorSession) -> None:
        session.finished = True
        self._sessions.pop(session.id, None)
        while session.close_callbacks:
            subscriber, callback = session.close_callbacks.popitem()
            subscriber.discard_close_callback(callback)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def _watch(self, session: MonitorSession, subscriber: Any) -> None:
        def _on_close():
            self._drop_subscriber(session, subscriber, "disconnected")

        session.close_callbacks[subscriber] = _on_close
        subscriber.on_close(_on_close)

    def _drop_subscriber(self, session: MonitorSession, subscriber: Any, reason: str) -> None:
        if subscriber not in session.subscribers:
            return
        session.subscribers.discard(subscriber)
        callback = session.close_callbacks.pop(subscriber, None)
        if callback is not None:
            subscriber.discard_close_callback(callback)
        log.info(
            "Subscriber %s left session %s (%s), %d remaining",
            getattr(subscriber, "id", subscriber),
            session.id,
            reason,
            len(session.subscribers),
        )
        if not session.subscribers and not session.finished:
            log.info("Session %s has no viewers left; results are still being recorded", session.id)

    async def _fan_out(self, session: MonitorSession, message: Dict[str, Any], terminal: bool = False) -> None:
        if session.finished and not terminal:
            log.debug("Session %s already finished, dropping %s event", session.id, message.get("type"))
            return
        targets = list(session.subscribers)
        if not targets:
            return
        results = await asyncio.gather(*(subscriber.send(message) for subscriber in targets), return_exceptions=True)
        for subscriber, result in zip(targets, results):
            if isinstance(result, Exception):
                log.warning("Send to subscriber %s failed: %s", getattr(subscriber, "id", subscriber), result)
                self._drop_subscriber(session, subscriber, "send failed")

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    async def _run(self, session: MonitorSession) -> None:
        request = session.request
        try:
            if not session.subscribers:
                log.warning("No live subscribers for %s; session %s not started", request.host, session.id)
                self._release(session)
                return

            await self._fan_out(session, {"type": "info", "message": f"Started monitoring {request.host}"})

            while not session.closing:
                due = session.started_at + (session.ticks_issued + 1) * self.tick_interval
                await self.sleep(max(0.0, due - self.clock()))
                if session.closing:
                    break
                self._issue_tick(session)
                if self.clock() - session.started_at >= session.duration_s:
                    session.closing = True

            await self._drain(session)
            await self.finish(session)
        except asyncio.CancelledError:
            self._release(session)
            raise

    def _issue_tick(self, session: MonitorSession) -> None:
        session.ticks_issued += 1
        task = asyncio.get_running_loop().create_task(self._pipeline(session, session.ticks_issued))
        session.pipelines.add(task)
        task.add_done_callback(session.pipelines.discard)

    async def _drain(self, session: MonitorSession) -> None:
        pending = set(session.pipelines)
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=session.request.timeout_ms / 1000 + self.drain_grace)
        if still_running:
            log.warning(
                "Session %s finishing with %d tick(s) still running; their updates will not be sent",
                session.id,
                len(still_running),
            )

    async def _pipeline(self, session: MonitorSession, tick: int) -> None:
        try:
            outcome = await self._probe(session.request)
            try:
                await asyncio.to_thread(self.store.append, outcome)
            except StorageError as e:
                log.error("Session %s tick %d: %s", session.id, tick, e)
            await self._fan_out(session, outcome.to_event())
        except Exception as e:
            log.exception("Session %s tick %d failed", session.id, tick)
            await self._fan_out(session, {"type": "error", "message": str(e)})

    async def _probe(self, request: ProbeRequest) -> ProbeOutcome:
        try:
            raw = await self.prober.probe(request.host, request.timeout_ms, request.packet_size_bytes)
        except ProbeInvocationError as e:
            log.error("Ping of %s could not run: %s", request.host, e)
            return ProbeOutcome(
                host=request.host,
                packet_size_bytes=request.packet_size_bytes,
                timeout_ms=request.timeout_ms,
                success=False,
                error_detail=str(e),
            )

        latency = None
        if raw.success:
            latency = raw.latency_ms if raw.latency_ms is not None else parse_ping_output(raw.stdout, self.platform)
        return ProbeOutcome(
            host=request.host,
            response_time_ms=latency,
            packet_size_bytes=request.packet_size_bytes,
            timeout_ms=request.timeout_ms,
            success=raw.success,
            error_detail=raw.error_detail,
        )
