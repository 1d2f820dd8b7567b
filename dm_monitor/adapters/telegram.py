"""Telegram user-account adapter over MTProto (Telethon)."""
import asyncio
import getpass
import logging
from dataclasses import dataclass
from typing import Optional

from telethon import TelegramClient, events
from telethon.errors import RPCError, SessionPasswordNeededError

from ..errors import AuthenticationError, MonitorError
from ..session_store import repair_session_file
from .base import Adapter, Session

logger = logging.getLogger(__name__)


@dataclass
class TelegramMessage:
    """An incoming message reduced to what the business rules look at."""

    chat_id: int
    sender_username: Optional[str]
    text: str
    is_private: bool
    outgoing: bool = False


async def _read_line(prompt):
    """Read a line from the terminal without blocking the loop."""
    return await asyncio.to_thread(input, prompt)


async def _read_secret(prompt):
    """Read a password from the terminal without echo."""
    return await asyncio.to_thread(getpass.getpass, prompt)


class TelegramSession(Session):
    """A connected client whose new-message updates are queued for pulling."""

    def __init__(self, client, queue, callback):
        """Wrap a connected client and the queue its handler fills."""
        self.client = client
        self.queue = queue
        self._callback = callback

    async def next_event(self):
        """Return the next queued incoming message."""
        return await self.queue.get()

    def background_driver(self):
        """Return a waiter that finishes when Telethon drops the connection."""
        return self._wait_disconnected()

    async def _wait_disconnected(self):
        """Finish once the client has dropped its connection."""
        await asyncio.shield(self.client.disconnected)

    async def close(self):
        """Detach the update handler and disconnect the client."""
        self.client.remove_event_handler(self._callback)
        await self.client.disconnect()


class TelegramAdapter(Adapter):
    """Logs in as a Telegram user and streams incoming messages."""

    name = "telegram"
    transient_errors = (MonitorError, OSError, asyncio.TimeoutError, RPCError)

    def __init__(self, api_id, api_hash, phone, session_path,
                 read_line=_read_line, read_secret=_read_secret):
        """Initialize the adapter with API credentials and the session file path."""
        self.api_id = api_id
        self.api_hash = api_hash
        self.phone = phone
        self.session_path = session_path
        self._read_line = read_line
        self._read_secret = read_secret

    def _create_client(self):
        """Create the Telethon client for this account."""
        return TelegramClient(self.session_path, self.api_id, self.api_hash)

    async def connect(self):
        """Log in, warm the peer cache and start queueing new messages."""
        logger.info("Using session file: %s", self.session_path)
        repair_session_file(self.session_path)

        logger.info("Connecting to Telegram with api_id: %s", self.api_id)
        client = self._create_client()
        try:
            await client.connect()
            if not await client.is_user_authorized():
                await self._authenticate(client)

            # Warm the entity cache so updates from known chats resolve
            logger.info("Pre-fetching dialogs to warm peer cache...")
            dialog_count = 0
            async for dialog in client.iter_dialogs():
                dialog_count += 1
                logger.debug("Cached dialog: %s (%s)", dialog.name, dialog.id)
            logger.info("Cached %d dialogs", dialog_count)

            queue = asyncio.Queue()

            async def on_new_message(event):
                """Queue an incoming message for the state machine."""
                try:
                    sender = await event.get_sender()
                except RPCError as e:
                    logger.error("Skipping message with unresolved sender: %s", e)
                    return
                if sender is None:
                    logger.debug("Skipping message without a sender in chat %s", event.chat_id)
                    return
                queue.put_nowait(TelegramMessage(
                    chat_id=event.chat_id,
                    sender_username=getattr(sender, "username", None),
                    text=event.raw_text or "",
                    is_private=event.is_private,
                    outgoing=event.out,
                ))

            client.add_event_handler(on_new_message, events.NewMessage(incoming=True))
        except BaseException:
            await client.disconnect()
            raise

        logger.info("Connected to Telegram")
        return TelegramSession(client, queue, on_new_message)

    async def _authenticate(self, client):
        """Interactive login: one-time code, then the 2FA password if enabled."""
        logger.info("Not authorized, requesting login code for %s", self.phone)
        await client.send_code_request(self.phone)
        logger.info("Login code requested successfully, check your Telegram app")

        code = (await self._read_line("Enter the code you received: ")).strip()
        logger.info("Received code from user (length: %d)", len(code))

        try:
            await client.sign_in(phone=self.phone, code=code)
        except SessionPasswordNeededError:
            logger.info("2FA password required")
            password = (await self._read_secret("Enter your 2FA password: ")).strip()
            try:
                await client.sign_in(password=password)
            except RPCError as e:
                logger.error("2FA check failed: %s", e)
                raise AuthenticationError(f"2FA check failed: {e}") from e
        except RPCError as e:
            logger.error("Sign in failed with error: %s", e)
            raise AuthenticationError(f"Sign in failed: {e}") from e

        logger.info("Sign in successful, session saved to %s", self.session_path)
