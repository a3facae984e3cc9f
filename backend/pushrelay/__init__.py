"""PushRelay - device registry and push notification delivery."""

__version__ = "1.0.0"
