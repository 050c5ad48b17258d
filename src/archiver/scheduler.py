"""
Pass scheduling: runs the sync pass once, or repeatedly on an interval.

Periodic mode keeps a single busy flag.  A tick starts a pass only when no
pass is in flight, and the next tick is scheduled a fixed delay after the
current pass has finished (fixed-delay, not fixed-rate).  Skipped ticks are
not queued.  The flag is set and cleared by :meth:`PassScheduler._busy_guard`
so success and failure release it the same way.

A failing pass is logged and audited; it never stops the periodic loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Optional

from shared.audit import AuditLogger

logger = logging.getLogger("archiver.scheduler")

PassFn = Callable[[], Awaitable[int]]

# ---------------------------------------------------------------------------
# Graceful shutdown
# ---------------------------------------------------------------------------

shutdown_event: threading.Event = threading.Event()


async def sleep_with_shutdown(seconds: float) -> bool:
    """Sleep for up to ``seconds`` while remaining responsive to shutdown.

    Returns:
        ``True`` if shutdown was requested.
    """
    if shutdown_event.is_set():
        return True

    remaining = max(0.0, seconds)
    while remaining > 0:
        if shutdown_event.is_set():
            return True
        tick = min(0.5, remaining)
        await asyncio.sleep(tick)
        remaining -= tick
    return shutdown_event.is_set()


def handle_signal(sig: int, frame: Any) -> None:
    """Signal handler: sets the shutdown event so the loop exits cleanly."""
    logger.info("Received signal %s, initiating graceful shutdown...", sig)
    shutdown_event.set()


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class PassScheduler:
    """Runs ``run_pass`` without ever overlapping two passes.

    Args:
        run_pass: Coroutine function performing one full sync pass and
            returning the number of messages written.
        audit: Audit logger for pass results.
        interval_seconds: Delay between the end of one pass and the next
            tick.  ``None`` means one-shot mode.
    """

    def __init__(
        self,
        run_pass: PassFn,
        audit: AuditLogger,
        interval_seconds: Optional[float] = None,
    ) -> None:
        self._run_pass = run_pass
        self._audit = audit
        self._interval = interval_seconds
        self._busy = False
        self.pass_number = 0
        self.failed_passes = 0

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def periodic(self) -> bool:
        return self._interval is not None

    @contextmanager
    def _busy_guard(self) -> Iterator[None]:
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    async def tick(self) -> Optional[bool]:
        """Start one pass unless another is still running.

        Returns:
            ``None`` if the tick was skipped, otherwise whether the pass
            succeeded.
        """
        if self._busy:
            logger.info("Previous sync pass still running; skipping tick.")
            return None

        with self._busy_guard():
            self.pass_number += 1
            pass_number = self.pass_number
            try:
                count = await self._run_pass()
            except Exception:
                self.failed_passes += 1
                logger.exception("Error during sync pass #%d", pass_number)
                await self._audit.log(
                    "archiver",
                    "sync_pass",
                    {"pass_number": pass_number, "error": "see logs"},
                    success=False,
                )
                return False

            logger.info(
                "Sync pass #%d complete: %d messages written", pass_number, count
            )
            await self._audit.log(
                "archiver",
                "sync_pass",
                {"pass_number": pass_number, "messages": count},
                success=True,
            )
            return True

    async def run_once(self) -> bool:
        """One-shot mode: run a single pass and report success."""
        return bool(await self.tick())

    async def run_forever(self) -> None:
        """Periodic mode: tick, wait ``interval`` after the pass, repeat."""
        if self._interval is None:
            raise ValueError("run_forever() requires an interval")

        while not shutdown_event.is_set():
            await self.tick()
            if await sleep_with_shutdown(self._interval):
                break

        logger.info("Scheduler stopped after %d passes.", self.pass_number)

    async def run(self) -> bool:
        """Dispatch on the configured mode.

        Returns:
            In one-shot mode, whether the pass succeeded; periodic mode
            always returns ``True`` once shut down.
        """
        if self.periodic:
            await self.run_forever()
            return True
        return await self.run_once()
