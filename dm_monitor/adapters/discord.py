"""Discord gateway adapter over a plain websocket connection."""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import websockets
from websockets.exceptions import WebSocketException

from ..errors import ConnectError, MonitorError, ProtocolError
from .base import Adapter, Session

logger = logging.getLogger(__name__)

# Gateway opcodes
OP_DISPATCH = 0
OP_HEARTBEAT = 1
OP_IDENTIFY = 2
OP_RESUME = 6
OP_RECONNECT = 7
OP_INVALID_SESSION = 9
OP_HELLO = 10
OP_HEARTBEAT_ACK = 11


@dataclass
class DiscordEvent:
    """One gateway payload."""

    op: int
    d: Any = None
    s: Optional[int] = None
    t: Optional[str] = None

    @classmethod
    def parse(cls, text):
        """Decode one JSON text frame."""
        try:
            payload = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise ProtocolError(f"Undecodable gateway payload: {e}") from e
        if not isinstance(payload, dict) or "op" not in payload:
            raise ProtocolError(f"Unexpected gateway payload: {text[:200]!r}")
        return cls(op=payload["op"], d=payload.get("d"), s=payload.get("s"), t=payload.get("t"))


class DiscordSession(Session):
    """An identified (or resumed) gateway connection."""

    def __init__(self, websocket, store, heartbeat_interval, session_id=None, seq=None):
        """Wrap an open websocket that has already identified or resumed."""
        self.websocket = websocket
        self.store = store
        self.keepalive_interval = heartbeat_interval
        self.session_id = session_id
        self.seq = seq

    async def next_event(self):
        """Receive the next gateway payload and apply its session bookkeeping."""
        while True:
            message = await self.websocket.recv()
            if isinstance(message, str):
                break
            # Non-text frames carry nothing for us

        event = DiscordEvent.parse(message)
        if event.s is not None:
            self.seq = event.s

        if event.op == OP_DISPATCH and event.t == "READY" and isinstance(event.d, dict):
            self.session_id = event.d.get("session_id")
            self.store.update({
                "session_id": self.session_id,
                "resume_gateway_url": event.d.get("resume_gateway_url", ""),
                "seq": self.seq if self.seq is not None else 0,
            })
            logger.info("Discord session %s ready", self.session_id)
        elif event.op == OP_HEARTBEAT:
            await self.send_keepalive()
        elif event.op == OP_RECONNECT:
            raise ProtocolError("Gateway requested a reconnect")
        elif event.op == OP_INVALID_SESSION:
            if not event.d:
                self.session_id = None
                self.store.clear()
            raise ProtocolError("Gateway invalidated the session")

        return event

    async def send_keepalive(self):
        """Send a heartbeat carrying the last sequence number."""
        await self.websocket.send(json.dumps({"op": OP_HEARTBEAT, "d": self.seq}))

    async def close(self):
        """Persist the sequence number and close the websocket."""
        if self.session_id and self.seq is not None:
            self.store.set("seq", self.seq)
        await self.websocket.close()


class DiscordAdapter(Adapter):
    """Connects a user account to the Discord gateway."""

    name = "discord"
    transient_errors = (
        MonitorError,
        OSError,
        asyncio.TimeoutError,
        WebSocketException,
    )

    def __init__(self, token, store, gateway_url):
        """Initialize the adapter with the account token and session store."""
        self.token = token
        self.store = store
        self.gateway_url = gateway_url

    async def connect(self):
        """Open the gateway and identify, or resume the stored session."""
        self.store.reload()
        session_id = self.store.get("session_id")
        seq = self.store.get("seq")
        url = self.gateway_url
        if session_id:
            url = self.store.get("resume_gateway_url") or self.gateway_url
            if "?" not in url and "?" in self.gateway_url:
                url = f"{url.rstrip('/')}/?{self.gateway_url.split('?', 1)[1]}"

        websocket = await websockets.connect(url, max_size=None)
        try:
            hello = DiscordEvent.parse(await websocket.recv())
            if hello.op != OP_HELLO or not isinstance(hello.d, dict) \
                    or "heartbeat_interval" not in hello.d:
                raise ConnectError(f"Expected HELLO from gateway, got op {hello.op}")
            heartbeat_interval = hello.d["heartbeat_interval"] / 1000

            if session_id:
                seq = int(seq) if seq is not None else None
                logger.info("Resuming Discord session %s at seq %s", session_id, seq)
                await websocket.send(json.dumps({
                    "op": OP_RESUME,
                    "d": {"token": self.token, "session_id": session_id, "seq": seq},
                }))
            else:
                seq = None
                await websocket.send(json.dumps({
                    "op": OP_IDENTIFY,
                    "d": {
                        "token": self.token,
                        "properties": {"$os": "linux", "$browser": "python", "$device": "pc"},
                    },
                }))
        except BaseException:
            await websocket.close()
            raise

        logger.info("Connected to Discord gateway (heartbeat every %.1fs)", heartbeat_interval)
        return DiscordSession(websocket, self.store, heartbeat_interval,
                              session_id=session_id or None, seq=seq)
