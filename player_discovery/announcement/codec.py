"""Player announcement codec.

Players announce themselves with a single line of tagged fields:

    [IP] <ip> [Port] <port> [Flags] <flags> [Guid] <guid>
    [EditorId] <editorid> [Version] <version> [Id] <id> [Debug] <0|1>

The Id value is free text and may contain spaces; it runs up to the
[Debug] tag.
"""

import ipaddress
import logging
import re

from ..errors import MalformedAnnouncement
from .schema import PeerDescriptor

logger = logging.getLogger(__name__)

ANNOUNCEMENT_PATTERN = re.compile(
    r"\[IP\] (?P<ip>.*) \[Port\] (?P<port>.*) \[Flags\] (?P<flags>.*)"
    r" \[Guid\] (?P<guid>.*) \[EditorId\] (?P<editorid>.*)"
    r" \[Version\] (?P<version>.*) \[Id\] (?P<id>.*) \[Debug\] (?P<debug>.*)"
)

_INTEGER = re.compile(r"[+-]?[0-9]+")

UINT16_MAX = 0xFFFF
UINT32_MAX = 0xFFFFFFFF
INT32_MIN = -0x80000000
INT32_MAX = 0x7FFFFFFF

# Players write C strings into fixed-size buffers
_PADDING = "\x00\r\n"


def parse_announcement(raw: str) -> PeerDescriptor:
    """Parse a player announcement into a PeerDescriptor.

    Args:
        raw: Announcement text as received from the network.

    Returns:
        Parsed PeerDescriptor.

    Raises:
        MalformedAnnouncement: If the text doesn't match the template
            exactly once, or a field can't be parsed.
    """
    matches = list(ANNOUNCEMENT_PATTERN.finditer(raw.rstrip(_PADDING)))

    if len(matches) != 1:
        raise MalformedAnnouncement(raw, f"expected one announcement, found {len(matches)}")

    fields = matches[0]

    try:
        host = str(ipaddress.ip_address(fields["ip"]))
    except ValueError as e:
        raise MalformedAnnouncement(raw, f"invalid IP {fields['ip']!r}") from e

    # EditorId is taken from the Guid field, not from [EditorId].
    descriptor = PeerDescriptor(
        host=host,
        port=_parse_int(raw, "Port", fields["port"], 0, UINT16_MAX),
        flags=_parse_int(raw, "Flags", fields["flags"], 0, UINT32_MAX),
        guid=_parse_int(raw, "Guid", fields["guid"], 0, UINT32_MAX),
        editor_id=_parse_int(raw, "Guid", fields["guid"], 0, UINT32_MAX),
        version=_parse_int(raw, "Version", fields["version"], INT32_MIN, INT32_MAX),
        player_id=fields["id"],
        allow_debugging=_parse_int(raw, "Debug", fields["debug"], INT32_MIN, INT32_MAX) != 0,
    )

    logger.debug("%s", descriptor)
    return descriptor


def format_announcement(descriptor: PeerDescriptor) -> str:
    """Render a PeerDescriptor in the announcement wire format."""
    return (
        f"[IP] {descriptor.host} [Port] {descriptor.port} [Flags] {descriptor.flags}"
        f" [Guid] {descriptor.guid} [EditorId] {descriptor.editor_id}"
        f" [Version] {descriptor.version} [Id] {descriptor.player_id}"
        f" [Debug] {1 if descriptor.allow_debugging else 0}"
    )


def _parse_int(raw: str, tag: str, text: str, low: int, high: int) -> int:
    """Parse a decimal field and check it fits its declared width."""
    if not _INTEGER.fullmatch(text):
        raise MalformedAnnouncement(raw, f"[{tag}] is not an integer: {text!r}")

    value = int(text)
    if not low <= value <= high:
        raise MalformedAnnouncement(raw, f"[{tag}] out of range: {value}")
    return value
