"""Discovery of attachable players on the local network."""

from .announcement import PeerDescriptor, format_announcement, parse_announcement
from .config import DiscoveryConfig, ProxyConfig, load_config
from .discovery import DiscoveryEngine, LivenessRegistry, PollResult
from .errors import (
    DiscoveryError,
    DiscoveryUnavailable,
    EngineClosed,
    MalformedAnnouncement,
    ProxyUnavailable,
)
from .proxy import ProxyLauncher

__version__ = "0.1.0"

__all__ = [
    "PeerDescriptor",
    "format_announcement",
    "parse_announcement",
    "DiscoveryConfig",
    "ProxyConfig",
    "load_config",
    "DiscoveryEngine",
    "LivenessRegistry",
    "PollResult",
    "DiscoveryError",
    "DiscoveryUnavailable",
    "EngineClosed",
    "MalformedAnnouncement",
    "ProxyUnavailable",
    "ProxyLauncher",
]
