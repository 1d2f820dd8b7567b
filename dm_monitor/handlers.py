"""Rules deciding which incoming messages are worth a notification."""
import json
import logging
from datetime import datetime, timedelta, timezone

from .adapters.discord import OP_DISPATCH, OP_HEARTBEAT_ACK

logger = logging.getLogger(__name__)

PING_COMMAND = "/ping"


def _utcnow():
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


class CooldownMixin:
    """Per-chat quiet period before a monitored user's message notifies again."""

    def _cooled_down(self, context, chat_id, now):
        """True when the chat has been quiet for the whole cooldown."""
        last_time = context.last_message_times.get(chat_id)
        return last_time is None or now - last_time >= self.cooldown


class DiscordEventHandler(CooldownMixin):
    """Reacts to Discord gateway payloads."""

    platform = "Discord"

    def __init__(self, config, notifier, clock=_utcnow):
        """Initialize the rules with configuration and a notifier."""
        self.notifier = notifier
        self.my_username = config.DISCORD_MY_USERNAME
        self.monitored_users = set(config.DISCORD_MONITORED_USERS)
        self.cooldown = timedelta(minutes=config.MONITORED_USER_COOLDOWN_MINUTES)
        self._clock = clock

    async def handle_event(self, event, context):
        """Count gateway traffic and route new messages to the rules."""
        if event.op == OP_HEARTBEAT_ACK:
            logger.info("Heartbeat received. Since last heartbeat processed: %d messages",
                        context.message_counter)
            context.message_counter = 0
            return

        context.message_counter += 1
        if event.op == OP_DISPATCH and event.t == "MESSAGE_CREATE" and isinstance(event.d, dict):
            await self.handle_message(event.d, context)

    async def handle_message(self, data, context):
        """Apply the ping and monitored-user rules to one message."""
        author = (data.get("author") or {}).get("username")
        content = data.get("content")
        channel_id = data.get("channel_id")
        if author is None or content is None or channel_id is None:
            return

        is_dm = data.get("guild_id") is None
        now = self._clock()
        has_ping = PING_COMMAND in content
        is_my_message = author == self.my_username

        if has_ping and not is_my_message:
            if is_dm or self._mentions_me(data):
                logger.info("Discord ping from %s", author)
                await self.notifier.send_ping_notification(author, self.platform)
                logger.info("Successfully sent ping notification for user: %s", author)
            return

        if author in self.monitored_users and is_dm and not has_ping:
            if self._cooled_down(context, channel_id, now):
                logger.info("Discord message from monitored user %s", author)
                await self.notifier.send_monitored_user_message(author, self.platform)
                logger.info("Successfully sent monitored user notification for: %s", author)

        context.last_message_times[channel_id] = now

    def _mentions_me(self, data):
        """True when the message mentions or replies to our account."""
        if not self.my_username:
            return False
        if self.my_username in json.dumps(data):
            return True
        replied_to = ((data.get("referenced_message") or {}).get("author") or {}).get("username")
        return replied_to == self.my_username


class TelegramEventHandler(CooldownMixin):
    """Reacts to incoming Telegram direct messages."""

    platform = "Telegram"

    def __init__(self, config, notifier, clock=_utcnow):
        """Initialize the rules with configuration and a notifier."""
        self.notifier = notifier
        self.monitored_users = set(config.TELEGRAM_MONITORED_USERS)
        self.cooldown = timedelta(minutes=config.MONITORED_USER_COOLDOWN_MINUTES)
        self._clock = clock

    async def handle_event(self, message, context):
        """Apply the ping and monitored-user rules to one direct message."""
        if message.outgoing or not message.is_private:
            return

        username = message.sender_username or "unknown"
        now = self._clock()

        if PING_COMMAND in message.text:
            try:
                await self.notifier.send_ping_notification(username, self.platform)
                logger.info("Successfully sent ping notification for user: %s", username)
            except Exception as e:
                logger.error("Error sending ping notification: %s", e)
        elif username in self.monitored_users:
            if self._cooled_down(context, message.chat_id, now):
                logger.info("Telegram message from monitored user %s", username)
                try:
                    await self.notifier.send_monitored_user_message(username, self.platform)
                    logger.info("Successfully sent monitored user notification for: %s", username)
                except Exception as e:
                    logger.error("Error sending monitored user notification: %s", e)
            context.last_message_times[message.chat_id] = now
