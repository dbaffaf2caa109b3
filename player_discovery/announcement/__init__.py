"""Announcement module - player announcement parsing."""

from .schema import PeerDescriptor
from .codec import ANNOUNCEMENT_PATTERN, format_announcement, parse_announcement

__all__ = [
    "PeerDescriptor",
    "ANNOUNCEMENT_PATTERN",
    "format_announcement",
    "parse_announcement",
]
