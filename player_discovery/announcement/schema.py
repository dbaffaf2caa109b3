"""Player descriptor data model.

A PeerDescriptor is the structured form of one player announcement.
"""

from dataclasses import asdict, dataclass
from typing import Any, Tuple


@dataclass(frozen=True)
class PeerDescriptor:
    """A player advertising itself on the local network."""
    host: str
    port: int
    flags: int
    guid: int
    editor_id: int
    version: int
    player_id: str
    allow_debugging: bool

    @property
    def endpoint(self) -> Tuple[str, int]:
        """(host, port) pair suitable for socket.connect()."""
        return self.host, self.port

    @property
    def address(self) -> str:
        """host:port string, with IPv6 hosts in brackets."""
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def to_dict(self) -> dict[str, Any]:
        """Convert descriptor to dictionary for JSON output."""
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"PlayerInfo {self.host} {self.port} {self.flags} {self.guid} "
            f"{self.editor_id} {self.version} {self.player_id} "
            f"{1 if self.allow_debugging else 0}"
        )
