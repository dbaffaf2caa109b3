"""Shared fixtures for player discovery tests."""

from __future__ import annotations

import socket

import pytest

from player_discovery.config import DiscoveryConfig
from player_discovery.discovery.engine import DiscoveryEngine


def make_announcement(
    ip: str = "10.0.0.5",
    port: int = 54998,
    flags: int = 0,
    guid: int = 42,
    editor_id: int = 7,
    version: int = 1,
    player_id: str = "MyPlayer",
    debug: int = 1,
) -> str:
    return (
        f"[IP] {ip} [Port] {port} [Flags] {flags} [Guid] {guid} "
        f"[EditorId] {editor_id} [Version] {version} [Id] {player_id} [Debug] {debug}"
    )


@pytest.fixture
def sock_pair():
    """Connected datagram sockets: (engine side, sender side)."""
    engine_side, sender_side = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
    yield engine_side, sender_side
    sender_side.close()
    engine_side.close()


@pytest.fixture
def engine(sock_pair):
    """Engine reading from one end of a socket pair."""
    e = DiscoveryEngine(DiscoveryConfig(), sock=sock_pair[0])
    yield e
    e.close()


@pytest.fixture
def send(sock_pair):
    """Send an announcement to the engine."""
    def _send(message: str | bytes) -> None:
        if isinstance(message, str):
            message = message.encode("utf-8")
        sock_pair[1].send(message)
    return _send
