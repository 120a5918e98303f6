"""
Real-time delivery layer.

Bridges an external push source (WebSocket-style event stream) and an
optional state fetcher (polling fallback) to in-process subscribers.

Usage:
    service = RealTimeSyncService(source=stream, fetch_state=fetch, config=cfg.sync)
    unsubscribe = service.on_event(pipeline.handle_event)
    await service.start()
    ...
    await service.stop()   # drains queued events before returning

Every inbound event goes through a bounded asyncio.Queue and a single
consumer task, so events are dispatched in arrival order. An event counts
towards ``queue_size`` until all handlers have run. Handler exceptions are
logged and counted in ``error_count``; they never reach the source.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from stratyx.analysis.statistics import classify_freshness
from stratyx.core.config import SyncConfig
from stratyx.core.constants import Freshness
from stratyx.core.errors import HandlerFailure
from stratyx.core.events import parse_timestamp
from stratyx.realtime.monitor import PerformanceMonitor

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]
StateFetcher = Callable[[], Awaitable[Mapping[str, Any] | None]]


class EventSource(Protocol):
    """Push subscription supplied by the match-data provider client."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    def stream(self) -> AsyncIterator[Mapping[str, Any]]: ...


class ConnectionState(Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DEGRADED = "degraded"  # push stream down, polling only
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class SyncStatus:
    is_connected: bool
    state: ConnectionState
    last_update: datetime
    latency_ms: float
    data_freshness: Freshness
    queue_size: int
    error_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "isConnected": self.is_connected,
            "state": self.state.value,
            "lastUpdate": self.last_update.isoformat(),
            "latencyMs": round(self.latency_ms, 2),
            "dataFreshness": self.data_freshness.value,
            "queueSize": self.queue_size,
            "errorCount": self.error_count,
        }


class RealTimeSyncService:
    """Queue, dispatch and health-check inbound match events."""

    def __init__(
        self,
        source: EventSource | None = None,
        fetch_state: StateFetcher | None = None,
        config: SyncConfig | None = None,
        monitor: PerformanceMonitor | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or SyncConfig()
        self.monitor = monitor or PerformanceMonitor(slow_threshold_ms=self.config.degraded_threshold_ms)
        self._source = source
        self._fetch_state = fetch_state
        self._clock = clock

        self._event_handlers: list[Handler] = []
        self._state_handlers: list[Handler] = []
        self._queue: asyncio.Queue[Any] | None = None
        self._in_flight = 0

        self._consumer_task: asyncio.Task | None = None
        self._stream_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None

        self.state = ConnectionState.DISCONNECTED
        self.state_history: list[ConnectionState] = []
        self.last_update = clock()
        self.latency_ms = 0.0
        self.error_count = 0
        self.events_received = 0
        self._stream_failures = 0
        self._running = False

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_event(self, handler: Handler) -> Callable[[], None]:
        """Register an event handler; returns a callable that unsubscribes it."""
        self._event_handlers.append(handler)
        return lambda: self._remove(self._event_handlers, handler)

    def on_state_update(self, handler: Handler) -> Callable[[], None]:
        self._state_handlers.append(handler)
        return lambda: self._remove(self._state_handlers, handler)

    @staticmethod
    def _remove(handlers: list[Handler], handler: Handler) -> None:
        with contextlib.suppress(ValueError):
            handlers.remove(handler)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.info(f"Sync state {self.state.value} -> {state.value}")
            self.state = state
            self.state_history.append(state)

    async def start(self) -> None:
        """Start the consumer, stream, poll and heartbeat tasks."""
        if self._running:
            logger.warning("Sync service already running")
            return

        self._running = True
        self._queue = asyncio.Queue(maxsize=self.config.queue_capacity)
        self.last_update = self._clock()
        self._set_state(ConnectionState.CONNECTING)
        self._consumer_task = asyncio.create_task(self._consume())

        if self._source is not None:
            self._stream_task = asyncio.create_task(self._run_stream())
        else:
            # Push-only mode: events arrive through publish()
            self._set_state(ConnectionState.CONNECTED)

        if self._fetch_state is not None:
            self._poll_task = asyncio.create_task(self._poll_loop())
        if self.config.enable_heartbeat:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        logger.info(
            f"Real-time sync started (poll={self.config.poll_interval_ms:.0f}ms, "
            f"heartbeat={self.config.heartbeat_interval_ms:.0f}ms)"
        )

    async def stop(self) -> None:
        """Cancel timers and the subscription, then drain queued events."""
        if not self._running:
            return
        self._running = False

        for task in (self._stream_task, self._poll_task, self._heartbeat_task):
            await self._cancel(task)
        self._stream_task = self._poll_task = self._heartbeat_task = None

        if self._source is not None:
            await self._disconnect_source()

        if self._queue is not None:
            await self._queue.join()
        await self._cancel(self._consumer_task)
        self._consumer_task = None

        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Real-time sync stopped")

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _disconnect_source(self) -> None:
        try:
            await self._source.disconnect()
        except Exception as e:
            logger.warning(f"Error disconnecting event source: {e}")

    # ------------------------------------------------------------------
    # Inbound path
    # ------------------------------------------------------------------

    async def publish(self, raw: Mapping[str, Any]) -> None:
        """
        Accept one inbound event.

        Waits when the bounded queue is full, which is the backpressure
        signal for producers.
        """
        if self._queue is None or not self._running:
            raise RuntimeError("Sync service is not running")

        now = self._clock()
        ts = parse_timestamp(raw.get("timestamp")) if isinstance(raw, Mapping) else None
        if ts is not None:
            self.latency_ms = (now - ts.timestamp()) * 1000
            if self.latency_ms > self.config.max_latency_ms:
                logger.warning(f"High latency detected: {self.latency_ms:.0f}ms")

        self.last_update = now
        self.events_received += 1
        await self._queue.put(raw)

    async def _consume(self) -> None:
        while True:
            raw = await self._queue.get()
            self._in_flight += 1
            try:
                with self.monitor.time_operation("process_event"):
                    await self._dispatch(self._event_handlers, raw)
            finally:
                self._in_flight -= 1
                self._queue.task_done()

    async def _dispatch(self, handlers: list[Handler], payload: Any) -> None:
        for handler in list(handlers):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.error_count += 1
                logger.error(str(HandlerFailure(handler, e)), exc_info=True)

    async def _run_stream(self) -> None:
        """Supervised subscription loop with a fixed reconnect delay."""
        while self._running:
            try:
                await self._source.connect()
                self._stream_failures = 0
                self._set_state(ConnectionState.CONNECTED)
                async for raw in self._source.stream():
                    await self.publish(raw)
                logger.warning("Event stream ended")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.error_count += 1
                logger.warning(f"Event stream failed: {e}")

            if not self._running:
                break
            self._stream_failures += 1
            self._set_state(
                ConnectionState.RECONNECTING
                if self._stream_failures == 1 or self._fetch_state is None
                else ConnectionState.DEGRADED
            )
            await self._disconnect_source()
            await asyncio.sleep(self.config.reconnect_interval_ms / 1000)

    async def reconnect(self) -> None:
        """Tear down the subscription and start a new one after the backoff delay."""
        if self._source is None:
            return
        logger.info("Reconnecting event stream")
        self._set_state(ConnectionState.RECONNECTING)
        await self._cancel(self._stream_task)
        await self._disconnect_source()
        await asyncio.sleep(self.config.reconnect_interval_ms / 1000)
        if self._running:
            self._stream_task = asyncio.create_task(self._run_stream())

    # ------------------------------------------------------------------
    # Polling fallback and heartbeat
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.poll_interval_ms / 1000)
            await self.force_sync()

    async def force_sync(self) -> Mapping[str, Any] | None:
        """Fetch authoritative state now and notify state handlers."""
        if self._fetch_state is None:
            return None

        start = time.perf_counter()
        try:
            state = await self._fetch_state()
        except Exception as e:
            self.error_count += 1
            logger.warning(f"State poll failed: {e}")
            return None

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.monitor.track("state_poll", elapsed_ms)
        if state:
            logger.debug(f"State poll completed in {elapsed_ms:.0f}ms")
            self.last_update = self._clock()
            await self._dispatch(self._state_handlers, state)
        return state

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval_ms / 1000)
            await self.check_health()

    async def check_health(self) -> SyncStatus:
        """One heartbeat: reconnect on stale data and warn on queue backlog."""
        status = self.get_status()

        if status.data_freshness == Freshness.STALE:
            logger.warning("Stale data detected, attempting reconnect")
            await self.reconnect()

        if status.queue_size > self.config.queue_warning_size:
            logger.warning(f"Event queue backlog: {status.queue_size}")

        logger.debug(
            f"Health check: state={status.state.value}, freshness={status.data_freshness}, "
            f"latency={status.latency_ms:.0f}ms, errors={status.error_count}, queue={status.queue_size}"
        )
        return status

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def queue_size(self) -> int:
        queued = self._queue.qsize() if self._queue is not None else 0
        return queued + self._in_flight

    async def drain(self) -> None:
        """Wait until every queued event has been dispatched."""
        if self._queue is not None:
            await self._queue.join()

    def get_status(self) -> SyncStatus:
        age_ms = (self._clock() - self.last_update) * 1000
        return SyncStatus(
            is_connected=self.state == ConnectionState.CONNECTED,
            state=self.state,
            last_update=datetime.fromtimestamp(self.last_update, tz=UTC),
            latency_ms=self.latency_ms,
            data_freshness=classify_freshness(age_ms),
            queue_size=self.queue_size,
            error_count=self.error_count,
        )

    def reset_error_count(self) -> None:
        self.error_count = 0
