"""Drives every monitor concurrently, forever, isolating their failures."""
import asyncio
import logging

from .backoff import backoff_delay
from .errors import MonitorError

logger = logging.getLogger(__name__)


class MonitorSupervisor:
    """Keeps exactly one unit of work in flight per monitor.

    Whenever a unit of work finishes the supervisor settles the outcome on the
    monitor (reset or bump its retry counter) and immediately schedules the
    next one. After a failure the next unit of work starts with a backoff
    sleep, so the wait never holds up the other monitors.
    """

    def __init__(self, monitors, delay=backoff_delay, sleep=asyncio.sleep):
        if not monitors:
            raise ValueError("MonitorSupervisor needs at least one monitor")
        self.monitors = list(monitors)
        self._delay = delay
        self._sleep = sleep

    async def run(self):
        """Run all monitors until the process is terminated."""
        logger.info("Starting monitors: %s", ", ".join(m.name for m in self.monitors))
        pending = {self._submit(monitor): monitor for monitor in self.monitors}
        try:
            while True:
                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    monitor = pending.pop(task)
                    delay = self._settle(monitor, task)
                    pending[self._submit(monitor, delay)] = monitor
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def _submit(self, monitor, delay=0.0):
        return asyncio.ensure_future(self._unit_of_work(monitor, delay))

    async def _unit_of_work(self, monitor, delay):
        if delay > 0:
            await self._sleep(delay)
        await monitor.advance()

    def _settle(self, monitor, task):
        """Record the outcome of a finished unit of work; return the next delay."""
        exc = None
        if task.cancelled():
            kind, error = "crash", "unit of work was cancelled"
        else:
            exc = task.exception()
            if exc is None:
                if monitor.retry_attempt:
                    logger.info("monitor=%s recovered after %d failed attempt(s)",
                                monitor.name, monitor.retry_attempt)
                monitor.retry_attempt = 0
                return 0.0
            kind = "error" if isinstance(exc, MonitorError) else "crash"
            error = str(exc) or type(exc).__name__

        delay = self._delay(monitor.retry_attempt)
        monitor.retry_attempt += 1
        monitor.last_error = error
        monitor.last_failure_kind = kind

        if kind == "error":
            logger.error("monitor=%s attempt=%d error: %s; retrying in %.1fs",
                         monitor.name, monitor.retry_attempt, error, delay)
        else:
            logger.critical("monitor=%s attempt=%d crashed: %s; retrying in %.1fs",
                            monitor.name, monitor.retry_attempt, error, delay,
                            exc_info=exc)
        return delay


async def run_forever(monitors):
    """Entry point: drive ``monitors`` until the process is terminated.

    A fault in the scheduling loop itself propagates to the caller; the
    process is expected to exit and be restarted by its service manager.
    """
    await MonitorSupervisor(monitors).run()
