"""
Development-mode ASGI middlewares.

``BuildMonitor`` consumes a compiler's watch stream in a background task and
shares the result with two middlewares, attached in this order:

1. ``RebuildMiddleware``: holds requests for bundles until the current build
   finishes, then serves them from the output directory. It also answers the
   dashboard path with the build status.
2. ``HotUpdateMiddleware``: streams build notifications to the injected
   hot client as server-sent events.

A failed rebuild is reported and the previous bundle on disk keeps being
served.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Set

from starlette.responses import FileResponse, JSONResponse, StreamingResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from assetflow.build.compiler import CompileStats, Compiler, WatchEvent
from assetflow.exceptions import RuntimeRebuildError
from assetflow.observability import get_logger

logger = get_logger(__name__)


class BuildMonitor:
    """
    Tracks the state of a watching compiler.

    States: ``idle`` → ``building`` → ``valid`` | ``errored``; ``failed`` if
    the watcher itself dies. Requests never block on ``errored``/``failed``.
    """

    def __init__(self, compiler: Compiler) -> None:
        self.compiler = compiler
        self.state = "idle"
        self.last_stats: Optional[CompileStats] = None
        self._settled = asyncio.Event()
        self._subscribers: Set[asyncio.Queue[Dict[str, Any]]] = set()
        self._task: Optional[asyncio.Task[None]] = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start watching in the background; returns immediately."""
        if self._task is not None:
            return
        self.handle(WatchEvent(kind="building"))
        self._task = asyncio.get_running_loop().create_task(
            self._consume(), name="assetflow-build-monitor"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _consume(self) -> None:
        try:
            async for event in self.compiler.watch():
                self.handle(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.state = "failed"
            self._settled.set()
            logger.error("build_watcher_failed", error=str(exc), exc_info=True)

    # ── Event handling ───────────────────────────────────────────────────

    def handle(self, event: WatchEvent) -> None:
        """Apply a watcher event and fan it out to stream subscribers."""
        if event.kind == "building":
            self.state = "building"
            self._settled.clear()
            self._publish({"action": "building"})
            return

        stats = event.stats or CompileStats()
        self.last_stats = stats
        if stats.has_errors():
            self.state = "errored"
            failure = RuntimeRebuildError(stats.errors)
            logger.error("rebuild_failed", error=str(failure), errors=stats.errors)
        else:
            self.state = "valid"
            logger.info(
                "rebuild_complete",
                duration_ms=round(stats.duration_ms),
                warnings=len(stats.warnings),
            )
        self._settled.set()
        self._publish({"action": "built", **stats.to_dict()})

    async def wait_until_settled(self) -> None:
        """Wait until the in-flight build (if any) has finished."""
        await self._settled.wait()

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "last_build": self.last_stats.to_dict() if self.last_stats else None,
            "clients": len(self._subscribers),
        }

    def sync_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": "sync", "state": self.state}
        if self.last_stats is not None:
            payload.update(self.last_stats.to_dict())
        return payload

    # ── Subscribers ──────────────────────────────────────────────────────

    def subscribe(self) -> asyncio.Queue[Dict[str, Any]]:
        queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    def _publish(self, payload: Dict[str, Any]) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(payload)


def _under_prefix(path: str, prefix: str) -> bool:
    return prefix == "" or path == prefix or path.startswith(prefix + "/")


class RebuildMiddleware:
    """Serves freshly built bundles from disk once the build has settled."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        monitor: BuildMonitor,
        public_path: str,
        output_path: Path,
        dashboard_path: Optional[str] = None,
    ) -> None:
        self.app = app
        self.monitor = monitor
        self.prefix = public_path.rstrip("/")
        self.output_path = Path(output_path).resolve()
        self.dashboard_path = dashboard_path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        if self.dashboard_path and path == self.dashboard_path:
            await JSONResponse(self.monitor.status())(scope, receive, send)
            return

        if _under_prefix(path, self.prefix):
            await self.monitor.wait_until_settled()
            target = self.resolve(path)
            if target is not None:
                await FileResponse(target)(scope, receive, send)
                return

        await self.app(scope, receive, send)

    def resolve(self, path: str) -> Optional[Path]:
        """Map a request path to a built file, refusing to leave the output dir."""
        relative = path[len(self.prefix):].lstrip("/")
        if not relative:
            return None
        candidate = (self.output_path / relative).resolve()
        if self.output_path not in candidate.parents:
            return None
        return candidate if candidate.is_file() else None


def format_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class HotUpdateMiddleware:
    """Server-sent event stream of build notifications."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        monitor: BuildMonitor,
        path: str = "/__hmr",
        heartbeat: float = 0.5,
    ) -> None:
        self.app = app
        self.monitor = monitor
        self.path = path
        self.heartbeat = heartbeat

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] == self.path:
            response = StreamingResponse(
                self.stream(),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            )
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)

    async def stream(self) -> AsyncIterator[str]:
        queue = self.monitor.subscribe()
        try:
            yield format_event(self.monitor.sync_payload())
            while True:
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=self.heartbeat)
                except asyncio.TimeoutError:
                    yield ": heartbeat\n\n"
                    continue
                yield format_event(payload)
        finally:
            self.monitor.unsubscribe(queue)


__all__ = [
    "BuildMonitor",
    "HotUpdateMiddleware",
    "RebuildMiddleware",
    "format_event",
]
