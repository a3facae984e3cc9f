"""Exception types shared across the service."""
from typing import Optional


class PushRelayError(Exception):
    """Base class for errors raised by PushRelay."""


class ConfigurationError(PushRelayError):
    """Missing or invalid configuration; fatal at startup."""


class StoreError(PushRelayError):
    """A store query failed and the current processing cycle was aborted."""


class ChannelError(PushRelayError):
    """Raised by a channel sender when a delivery attempt fails.

    ``permanent`` means the credential itself is no longer usable and must be
    cleared from the device; anything else may succeed on a later cycle.
    """

    permanent = False

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


class PermanentChannelError(ChannelError):
    """The push gateway rejected the credential (410 Gone, unregistered token)."""

    permanent = True


class TransientChannelError(ChannelError):
    """Network error, timeout, rate limit or any other retryable failure."""
