"""Generic connection state machine driven one unit of work at a time."""
import asyncio
import logging
from dataclasses import dataclass, field

from .errors import ConnectError, DriverExitedError, KeepaliveError, MonitorError, ProtocolError

logger = logging.getLogger(__name__)


def _reported(error, error_cls, name):
    """Wrap an adapter failure in the monitor error type for this transition."""
    if isinstance(error, MonitorError):
        return error
    wrapped = error_cls(f"{name}: {error}")
    wrapped.__cause__ = error
    return wrapped


class Disconnected:
    """No session is open; the only way forward is a connect attempt."""

    name = "disconnected"

    def __repr__(self):
        return "Disconnected()"


DISCONNECTED = Disconnected()


class KeepaliveTimer:
    """Deadline based periodic timer; a missed tick fires on the next wait."""

    def __init__(self, interval, loop=None):
        self.interval = interval
        self._loop = loop or asyncio.get_running_loop()
        self.deadline = self._loop.time() + interval

    async def wait(self):
        """Sleep until the next keep-alive is due."""
        delay = self.deadline - self._loop.time()
        if delay > 0:
            await asyncio.sleep(delay)

    def mark_fired(self):
        """Schedule the next tick one interval from now."""
        self.deadline = self._loop.time() + self.interval


@dataclass
class Connected:
    """An established session plus its keep-alive schedule and driver task."""

    session: object
    keepalive_timer: object = None
    background_driver: object = None
    # next_event() call still waiting from a previous advance()
    pending_event: object = field(default=None, repr=False)

    name = "connected"


class ConnectionStateMachine:
    """Keeps one adapter's session alive and feeds its events to a handler.

    Each ``advance()`` call does exactly one thing: attempt a connect while
    disconnected, or handle whichever of keep-alive tick, incoming event or
    background driver exit becomes ready first while connected.
    """

    def __init__(self, name, adapter, handler, guard):
        self.name = name
        self.adapter = adapter
        self.handler = handler
        self.guard = guard
        self.state = DISCONNECTED
        # retry_attempt of the owning monitor, for log lines
        self.attempt = 0

    @property
    def is_connected(self):
        """True while a session is open."""
        return isinstance(self.state, Connected)

    async def advance(self, context, attempt=0):
        """Perform one unit of work; raise ``MonitorError`` on failure."""
        self.attempt = attempt
        if not self.is_connected:
            await self._connect()
            return

        if self.guard.should_preempt():
            logger.warning("monitor=%s attempt=%d resource guard vetoed session, reconnecting",
                           self.name, self.attempt)
            await self._disconnect()
            return

        state = self.state
        self.guard.log_usage(f"{self.name} before select")
        kind, future = await self._next_ready(state)
        self.guard.log_usage(f"{self.name} after select")

        if kind == "driver":
            await self._on_driver_exit(future)
        elif kind == "keepalive":
            await self._on_keepalive(state)
        else:
            await self._on_event(state, future, context)

    async def _connect(self):
        """Open a session through the adapter and enter ``Connected``."""
        logger.info("monitor=%s attempt=%d connecting to %s",
                    self.name, self.attempt, self.adapter.name)
        try:
            session = await self.adapter.connect()
        except self.adapter.transient_errors as e:
            logger.error("monitor=%s attempt=%d connection error: %s", self.name, self.attempt, e)
            raise _reported(e, ConnectError, self.name)

        try:
            timer = None
            if session.keepalive_interval:
                timer = KeepaliveTimer(session.keepalive_interval)

            driver = session.background_driver()
            if driver is not None:
                driver = asyncio.ensure_future(driver)
        except BaseException:
            await session.close()
            raise

        self.state = Connected(session=session, keepalive_timer=timer, background_driver=driver)
        logger.info("monitor=%s attempt=%d connected", self.name, self.attempt)

    async def _next_ready(self, state):
        """Race keep-alive, next event and driver exit; return the winner."""
        if state.pending_event is None:
            state.pending_event = asyncio.ensure_future(state.session.next_event())

        waiters = {state.pending_event: "event"}
        tick = None
        if state.keepalive_timer is not None:
            tick = asyncio.ensure_future(state.keepalive_timer.wait())
            waiters[tick] = "keepalive"
        if state.background_driver is not None:
            waiters[state.background_driver] = "driver"

        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if tick is not None and not tick.done():
                tick.cancel()

        future = next(iter(done))
        return waiters[future], future

    async def _on_driver_exit(self, driver):
        """Report a background driver that stopped while connected."""
        reason = "finished"
        if driver.cancelled():
            reason = "cancelled"
        elif driver.exception() is not None:
            reason = repr(driver.exception())
        logger.error("monitor=%s attempt=%d background driver exited unexpectedly (%s), reconnecting",
                     self.name, self.attempt, reason)
        await self._disconnect()
        raise DriverExitedError(f"{self.name}: background driver {reason}")

    async def _on_keepalive(self, state):
        """Send the keep-alive that came due."""
        state.keepalive_timer.mark_fired()
        try:
            await state.session.send_keepalive()
        except self.adapter.transient_errors as e:
            logger.error("monitor=%s attempt=%d failed to send keep-alive: %s, reconnecting",
                         self.name, self.attempt, e)
            await self._disconnect()
            raise _reported(e, KeepaliveError, self.name)
        logger.debug("monitor=%s keep-alive sent", self.name)

    async def _on_event(self, state, future, context):
        """Hand a received event to the handler, or disconnect on a receive error."""
        state.pending_event = None
        error = future.exception()
        if error is not None:
            await self._disconnect()
            if isinstance(error, self.adapter.transient_errors):
                logger.error("monitor=%s attempt=%d error getting next event: %s, reconnecting",
                             self.name, self.attempt, error)
                raise _reported(error, ProtocolError, self.name)
            raise error

        try:
            await self.handler.handle_event(future.result(), context)
        except Exception:
            logger.exception("monitor=%s error handling event", self.name)

    async def _disconnect(self):
        """Tear down the current session and return to ``Disconnected``."""
        state = self.state
        self.state = DISCONNECTED
        if not isinstance(state, Connected):
            return

        leftovers = [f for f in (state.pending_event, state.background_driver) if f is not None]
        for future in leftovers:
            if not future.done():
                future.cancel()
        # collect results so cancelled or failed futures are not reported as unretrieved
        await asyncio.gather(*leftovers, return_exceptions=True)

        try:
            await state.session.close()
        except Exception as e:
            logger.warning("monitor=%s error closing session: %s", self.name, e)
        logger.info("monitor=%s attempt=%d disconnected", self.name, self.attempt)
