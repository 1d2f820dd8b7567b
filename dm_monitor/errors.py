"""Exception types raised by monitors and their collaborators."""


class MonitorError(Exception):
    """A transient, reported failure of a monitor's unit of work.

    The supervisor answers these with backoff and a reconnect. Any other
    exception escaping ``Monitor.advance()`` is treated as a crash.
    """


class ConnectError(MonitorError):
    """Opening or authenticating a session failed."""


class ProtocolError(MonitorError):
    """The session failed or ended while waiting for the next event."""


class KeepaliveError(MonitorError):
    """Sending a keep-alive signal failed."""


class DriverExitedError(MonitorError):
    """The session's background driver stopped while the session was in use."""


class AuthenticationError(ConnectError):
    """The interactive login flow did not produce an authorized session."""


class NotificationError(Exception):
    """No notification channel accepted the message."""
