"""Shared fakes for monitor tests."""

import asyncio
from types import SimpleNamespace

import pytest

from dm_monitor.adapters.base import Adapter, Session
from dm_monitor.connection import DISCONNECTED
from dm_monitor.resource_guard import ResourceGuard, StackBaseline, StackSample


class FakeSession(Session):
    """Session fed from a queue; exceptions in the queue are raised."""

    def __init__(self, events=(), keepalive_interval=None, driver=None, keepalive_error=None):
        self.events = asyncio.Queue()
        for event in events:
            self.events.put_nowait(event)
        self.keepalive_interval = keepalive_interval
        self.driver = driver
        self.keepalive_error = keepalive_error
        self.next_event_calls = 0
        self.keepalives = 0
        self.closed = False

    async def next_event(self):
        self.next_event_calls += 1
        item = await self.events.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def send_keepalive(self):
        self.keepalives += 1
        if self.keepalive_error is not None:
            raise self.keepalive_error

    def background_driver(self):
        return self.driver

    async def close(self):
        self.closed = True


class FakeAdapter(Adapter):
    """Adapter returning (or raising) scripted connect outcomes in order."""

    name = "fake"

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.connect_calls = 0

    async def connect(self):
        self.connect_calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingHandler:
    """Business-layer stand-in that records events and can be told to fail."""

    def __init__(self, error=None):
        self.events = []
        self.error = error

    async def handle_event(self, event, context):
        self.events.append(event)
        if self.error is not None:
            raise self.error


class FakeStack:
    """Adjustable stack sample for a ResourceGuard."""

    def __init__(self, used=0, budget=1000):
        self.used = used
        self.budget = budget

    def __call__(self):
        return StackSample(bytes_used=self.used, bytes_budget=self.budget)


class ScriptedConnection:
    """Connection whose advance() follows a script, then blocks forever.

    Script entries: None for success, an exception instance to raise.
    ``forever`` repeats the last entry instead of blocking.
    """

    def __init__(self, script, forever=False):
        self.script = list(script)
        self.forever = forever
        self.calls = 0
        self.cancelled = False
        self.attempts = []
        self.state = DISCONNECTED

    async def advance(self, context, attempt=0):
        self.calls += 1
        self.attempts.append(attempt)
        if not self.script:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        outcome = self.script[0] if self.forever else self.script.pop(0)
        await asyncio.sleep(0)
        if outcome is not None:
            raise outcome


@pytest.fixture
def fake_stack():
    return FakeStack()


@pytest.fixture
def guard(fake_stack):
    return ResourceGuard(StackBaseline.capture(), budget_bytes=fake_stack.budget,
                         preempt_ratio=0.75, sampler=fake_stack)


@pytest.fixture
def handler_config():
    return SimpleNamespace(
        DISCORD_MY_USERNAME="quietfox",
        DISCORD_MONITORED_USERS=["friend"],
        TELEGRAM_MONITORED_USERS=["friend"],
        MONITORED_USER_COOLDOWN_MINUTES=15,
    )


async def wait_until(condition, timeout=2.0):
    """Poll ``condition`` on the running loop until it holds."""

    async def poll():
        while not condition():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)
