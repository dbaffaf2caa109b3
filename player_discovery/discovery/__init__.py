"""Discovery module - UDP multicast player discovery."""

from .engine import DiscoveryEngine, PollResult
from .registry import LivenessRegistry

__all__ = [
    "DiscoveryEngine",
    "PollResult",
    "LivenessRegistry",
]
