"""Exception types raised by player discovery.

Each error also derives from the builtin exception callers would
naturally catch for that failure (OSError, ValueError, RuntimeError).
"""


class DiscoveryError(Exception):
    """Base class for all player discovery errors."""


class DiscoveryUnavailable(DiscoveryError, OSError):
    """The multicast listening socket could not be set up."""


class MalformedAnnouncement(DiscoveryError, ValueError):
    """An announcement string did not match the player template."""

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Player string not recognised ({reason}): {raw!r}")


class EngineClosed(DiscoveryError, RuntimeError):
    """The discovery engine was used after it was closed."""


class ProxyUnavailable(DiscoveryError, RuntimeError):
    """The USB proxy executable is missing or failed to start."""
