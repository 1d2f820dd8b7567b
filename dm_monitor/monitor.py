"""Monitors pairing one protocol connection with its event handling."""
import logging
import os

from . import config as default_config
from .adapters.discord import DiscordAdapter
from .adapters.telegram import TelegramAdapter
from .connection import ConnectionStateMachine
from .handlers import DiscordEventHandler, TelegramEventHandler
from .resource_guard import ResourceGuard
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class MonitorContext:
    """Per-monitor bookkeeping owned and mutated only by that monitor."""

    def __init__(self, name):
        self.name = name
        # chat/channel id -> time of the last message seen there
        self.last_message_times = {}
        # messages seen since the last keep-alive acknowledgement
        self.message_counter = 0


class Monitor:
    """One long-lived session and the handler for the events it produces."""

    def __init__(self, name, connection):
        """Initialize the monitor around an existing connection state machine."""
        self.name = name
        self.connection = connection
        self.context = MonitorContext(name)
        self.retry_attempt = 0
        self.last_error = None
        self.last_failure_kind = None

    @property
    def state(self):
        """Current connection state."""
        return self.connection.state

    async def advance(self):
        """Do one unit of work: a connect attempt or one multiplexed event."""
        await self.connection.advance(self.context, self.retry_attempt)

    def snapshot(self):
        """Return a read-only summary for health reporting."""
        return {
            "name": self.name,
            "state": self.connection.state.name,
            "retry_attempt": self.retry_attempt,
            "last_error": self.last_error,
            "last_failure_kind": self.last_failure_kind,
        }

    def __repr__(self):
        return f"Monitor({self.name!r}, state={self.state!r}, retry_attempt={self.retry_attempt})"


def create_monitors(config, notifier, baseline):
    """Build a monitor for every source that has credentials configured."""
    monitors = []

    if default_config.discord_configured(config):
        store = SessionStore(os.path.join(config.SESSION_DIR, "discord_gateway.session"))
        adapter = DiscordAdapter(config.DISCORD_USER_TOKEN, store,
                                 gateway_url=config.DISCORD_GATEWAY_URL)
        handler = DiscordEventHandler(config, notifier)
        monitors.append(_build_monitor("discord", adapter, handler, config, baseline))
    else:
        logger.warning("DISCORD_USER_TOKEN is not set - Discord monitor disabled")

    if default_config.telegram_configured(config):
        session_path = os.path.join(config.SESSION_DIR, f"{config.TELEGRAM_USERNAME}_dm.session")
        adapter = TelegramAdapter(
            api_id=config.TELEGRAM_API_ID,
            api_hash=config.TELEGRAM_API_HASH,
            phone=config.TELEGRAM_PHONE,
            session_path=session_path,
        )
        handler = TelegramEventHandler(config, notifier)
        monitors.append(_build_monitor("telegram", adapter, handler, config, baseline))
    else:
        logger.warning("Telegram user credentials are not set - Telegram monitor disabled")

    return monitors


def _build_monitor(name, adapter, handler, config, baseline):
    """Wire an adapter and handler into a guarded monitor."""
    guard = ResourceGuard(baseline, budget_bytes=config.STACK_BUDGET_BYTES,
                          preempt_ratio=config.STACK_PREEMPT_RATIO)
    connection = ConnectionStateMachine(name, adapter, handler, guard)
    logger.info("Created %s monitor", name)
    return Monitor(name, connection)
