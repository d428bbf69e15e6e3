"""
Activity audit pipeline.

Handlers wrapped with ``log_activity`` produce exactly one activity entry
per request, whatever the outcome. Entries are queued and written by a
background task so the response never waits on the store. When the queue
is full an entry is written by its own overflow task instead of being
dropped. At shutdown the queue and any overflow writes are drained for up
to ``drain_timeout`` seconds.

A failed write is reported on the audit diagnostic channel and never
affects the request that produced it.
"""

import asyncio
import contextlib
import functools
from typing import Callable, Optional, Set

from aiohttp import web
from loguru import logger

from ..auth.database import CredentialStore, utcnow
from ..auth.models import ActivityLogEntry, ActivityOutcome
from ..log import audit_diagnostics
from .keys import AUDIT_ACTOR_KEY, AUDIT_KEY
from .middleware import Handler, current_staff, render_exception


class AuditPipeline:
    """
    Bounded queue of activity entries consumed by one background writer.

    Args:
        store: Store exposing ``append_activity_log``
        queue_size: Entries buffered before writes spill into overflow tasks
        drain_timeout: Seconds ``stop`` waits for pending entries
    """

    def __init__(self, store: CredentialStore, queue_size: int = 1000, drain_timeout: float = 10.0):
        self.store = store
        self.drain_timeout = drain_timeout
        self._queue: "asyncio.Queue[ActivityLogEntry]" = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None
        self._overflow: Set[asyncio.Task] = set()
        self._accepting = True
        self.written = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize() + len(self._overflow)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if self.running:
            return
        self._accepting = True
        self._worker = asyncio.create_task(self._run(), name="audit-writer")
        logger.info("Audit pipeline started")

    def submit(self, entry: ActivityLogEntry) -> bool:
        """
        Hand an entry to the writer without waiting.

        Must be called from the event loop.

        Returns:
            True if the entry will be written; False only once the pipeline
            has been stopped (reported on the diagnostic channel)
        """
        if not self._accepting:
            audit_diagnostics.error(
                f"Audit entry dropped after shutdown: action={entry.action} staff={entry.staff_id}"
            )
            return False

        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            audit_diagnostics.warning(
                f"Audit queue full ({self._queue.maxsize}), writing directly: "
                f"action={entry.action} staff={entry.staff_id}"
            )
            task = asyncio.create_task(self._write(entry), name="audit-overflow")
            self._overflow.add(task)
            task.add_done_callback(self._overflow.discard)
        return True

    async def _write(self, entry: ActivityLogEntry) -> None:
        try:
            await asyncio.to_thread(self.store.append_activity_log, entry)
            self.written += 1
        except Exception as e:
            self.failed += 1
            audit_diagnostics.opt(exception=e).error(
                f"Failed to write audit entry: action={entry.action} "
                f"staff={entry.staff_id} status={entry.outcome.value}"
            )

    async def _run(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._write(entry)
            finally:
                self._queue.task_done()

    async def _drain(self) -> None:
        await self._queue.join()
        while self._overflow:
            await asyncio.gather(*self._overflow)

    async def flush(self) -> None:
        """Wait until every queued and overflow entry has been processed."""
        await self._drain()

    async def stop(self) -> None:
        """
        Stop accepting entries, drain the queue and overflow writes, then
        stop the writer.

        Entries still pending after ``drain_timeout`` are reported on the
        diagnostic channel.
        """
        self._accepting = False
        running = self.running

        if running or self._overflow:
            # Without a worker only the overflow writes can finish
            drain = self._drain() if running else asyncio.gather(*self._overflow)
            try:
                await asyncio.wait_for(drain, timeout=self.drain_timeout)
            except asyncio.TimeoutError:
                audit_diagnostics.error(
                    f"Audit drain timed out after {self.drain_timeout}s, "
                    f"{self.pending} entries not written"
                )

        if running:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
        elif self._queue.qsize():
            audit_diagnostics.error(
                f"Audit pipeline stopped with {self._queue.qsize()} entries never started"
            )

        logger.info(f"Audit pipeline stopped (written={self.written}, failed={self.failed})")


def log_activity(action: str, resource_type: Optional[str] = None) -> Callable[[Handler], Handler]:
    """
    Record one activity entry per call of the wrapped handler.

    Apply outermost so that authentication and permission failures raised
    by inner decorators are recorded too. Exceptions are rendered into
    responses here so the outcome matches the status the client receives.

    Args:
        action: Action name, e.g. "staff.update"
        resource_type: Resource type; the id is taken from the ``id`` path segment
    """
    def record(
        request: web.Request,
        status: int,
        actor_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        staff = current_staff(request)
        if staff is not None:
            actor_id = staff.staff_id
        elif actor_id is None:
            actor_id = request.get(AUDIT_ACTOR_KEY)

        entry = ActivityLogEntry(
            action=action,
            outcome=ActivityOutcome.from_status(status),
            timestamp=utcnow(),
            staff_id=actor_id,
            resource_type=resource_type,
            resource_id=request.match_info.get("id"),
            details={
                "method": request.method,
                "path": request.path,
                "query": dict(request.query),
            },
            ip_address=request.remote,
            user_agent=request.headers.get("User-Agent"),
            error_message=error_message,
        )
        request.app[AUDIT_KEY].submit(entry)

    def decorator(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapper(request: web.Request) -> web.StreamResponse:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                record(request, e.status, error_message=e.reason if e.status >= 400 else None)
                raise
            except Exception as e:
                response = render_exception(request, e)
                record(
                    request,
                    response.status,
                    actor_id=getattr(e, "staff_id", None),
                    error_message=getattr(e, "message", None) or "Internal server error",
                )
                return response

            record(request, response.status)
            return response
        return wrapper
    return decorator
