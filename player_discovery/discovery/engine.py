"""Multicast discovery engine for players on the local network.

Players periodically send an announcement to a well-known multicast
group. The engine joins that group and, on each call to poll(), ages
the players it knows about and drains whatever announcements have
arrived since the last call. poll() never blocks, so it can be driven
from a UI timer or a simple sleep loop.
"""

import logging
import socket
import struct
import threading
from dataclasses import dataclass, field
from typing import Iterator, Optional

from ..announcement.codec import parse_announcement
from ..announcement.schema import PeerDescriptor
from ..config import DiscoveryConfig
from ..errors import DiscoveryUnavailable, EngineClosed, MalformedAnnouncement
from .registry import LivenessRegistry

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    """Outcome of a single poll cycle."""
    received: int = 0
    added: list[str] = field(default_factory=list)
    registered: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    rejected: list[MalformedAnnouncement] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Whether players appeared or disappeared this cycle."""
        return bool(self.added or self.expired)


class DiscoveryEngine:
    """Listens for player announcements and tracks which players are live.

    Usage:
        with DiscoveryEngine() as engine:
            while running:
                engine.poll()
                show(engine.available_players())
                time.sleep(1.0)
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        sock: Optional[socket.socket] = None,
    ):
        """Initialize engine and start listening.

        Args:
            config: Discovery settings. Default: well-known port and group.
            sock: Already bound datagram socket to read from instead of
                creating one. The engine takes ownership and closes it.

        Raises:
            DiscoveryUnavailable: If the socket can't be created, bound,
                or joined to the multicast group.
        """
        self.config = config or DiscoveryConfig()
        self._registry = LivenessRegistry(self.config.max_lifetime_cycles)
        self._lock = threading.RLock()
        self._membership: Optional[bytes] = None

        if sock is not None:
            self._sock: Optional[socket.socket] = sock
        else:
            self._sock = self._create_socket()
        self._sock.setblocking(False)

    def _create_socket(self) -> socket.socket:
        """Create the UDP socket and join the multicast group."""
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        except OSError as e:
            raise DiscoveryUnavailable(f"Cannot create UDP socket: {e}") from e

        try:
            self._enable_reuse(sock)
            sock.bind(("", self.config.port))

            self._membership = struct.pack(
                "4sL", socket.inet_aton(self.config.group), socket.INADDR_ANY
            )
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._membership)
        except OSError as e:
            sock.close()
            self._membership = None
            raise DiscoveryUnavailable(
                f"Cannot listen for players on {self.config.group}:{self.config.port}: {e}"
            ) from e

        logger.info(
            "Listening for players on %s:%d", self.config.group, sock.getsockname()[1]
        )
        return sock

    @staticmethod
    def _enable_reuse(sock: socket.socket) -> None:
        """Allow other tools on this host to share the discovery port."""
        options = [socket.SO_REUSEADDR]
        if hasattr(socket, "SO_REUSEPORT"):
            options.append(socket.SO_REUSEPORT)

        for option in options:
            try:
                sock.setsockopt(socket.SOL_SOCKET, option, 1)
            except OSError as e:
                # Not supported on some platforms
                logger.debug("Address reuse option %s unavailable: %s", option, e)

    @property
    def closed(self) -> bool:
        return self._sock is None

    def _require_open(self) -> socket.socket:
        if self._sock is None:
            raise EngineClosed("Discovery engine is closed")
        return self._sock

    def poll(self) -> PollResult:
        """Advance discovery by one cycle.

        Ages every known player, then registers each announcement that
        is already waiting on the socket. Returns without waiting when
        nothing is pending.

        Returns:
            PollResult describing what happened this cycle.

        Raises:
            EngineClosed: If the engine has been closed.
        """
        with self._lock:
            sock = self._require_open()
            result = PollResult()

            result.expired = self._registry.decay()

            for message in self._drain(sock):
                result.received += 1
                self._register_player(message, result)

            # Expired by decay and re-announced in the same cycle
            revived = set(result.expired) & set(result.added)
            if revived:
                result.expired = [k for k in result.expired if k not in revived]
                result.added = [k for k in result.added if k not in revived]

            if result.changed:
                logger.debug(
                    "Poll: %d received, %d added, %d expired, %d rejected",
                    result.received,
                    len(result.added),
                    len(result.expired),
                    len(result.rejected),
                )
            return result

    def _drain(self, sock: socket.socket) -> Iterator[str]:
        """Yield datagrams until the non-blocking socket has none left."""
        while True:
            try:
                data = sock.recv(self.config.buffer_size)
            except (BlockingIOError, InterruptedError):
                return
            except OSError as e:
                logger.warning("Receive failed, retrying next poll: %s", e)
                return

            yield data.decode("utf-8", errors="replace")

    def _register_player(self, message: str, result: PollResult) -> None:
        try:
            parse_announcement(message)
        except MalformedAnnouncement as e:
            result.rejected.append(e)
            if not self.config.register_malformed:
                logger.warning("Dropping announcement: %s", e)
                return
            logger.debug("Registering unparsed announcement: %s", e)

        if self._registry.register(message):
            result.added.append(message)
        result.registered.append(message)

    def available_players(self) -> Iterator[str]:
        """Lazily yield announcement strings of players that are still live.

        Raises:
            EngineClosed: If the engine has been closed.
        """
        with self._lock:
            self._require_open()
            return self._registry.available()

    def available_descriptors(self) -> list[PeerDescriptor]:
        """Parsed descriptors for the live players.

        Entries that don't parse (only registered when
        register_malformed is set) are left out.
        """
        descriptors = []
        for player in self.available_players():
            try:
                descriptors.append(parse_announcement(player))
            except MalformedAnnouncement:
                continue
        return descriptors

    def close(self) -> None:
        """Leave the multicast group and close the socket."""
        with self._lock:
            sock = self._sock
            if sock is None:
                return
            self._sock = None

            if self._membership is not None:
                try:
                    sock.setsockopt(
                        socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._membership
                    )
                except OSError as e:
                    logger.debug("Leaving multicast group failed: %s", e)
                self._membership = None

            sock.close()
            self._registry.clear()
            logger.info("Stopped listening for players")

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
