"""Interface every protocol adapter provides to the connection state machine."""
from abc import ABC, abstractmethod

from ..errors import MonitorError


class Session(ABC):
    """An authenticated, stateful connection to one protocol endpoint."""

    # Seconds between keep-alive signals, or None when the peer needs none
    keepalive_interval = None

    @abstractmethod
    async def next_event(self):
        """Wait for and return the next protocol event.

        Raises when the session fails or the stream ends.
        """

    async def send_keepalive(self):
        """Send one keep-alive signal to the peer."""
        raise NotImplementedError(f"{type(self).__name__} has no keep-alive")

    def background_driver(self):
        """Return an awaitable that must keep running for the session to work.

        Its completion, for any reason, means the session is dead. ``None``
        when the adapter has nothing to drive.
        """
        return None

    @abstractmethod
    async def close(self):
        """Release the transport. Must be safe to call on a broken session."""


class Adapter(ABC):
    """Opens sessions against one external network source."""

    name = "adapter"

    # Exception types that mean "the network or the peer failed" for this
    # adapter. Anything else escaping the adapter is treated as a crash.
    transient_errors = (MonitorError, OSError)

    @abstractmethod
    async def connect(self):
        """Open, authenticate and return a new ``Session``."""
