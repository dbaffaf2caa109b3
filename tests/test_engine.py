"""Tests for player_discovery.discovery.engine.DiscoveryEngine."""

from __future__ import annotations

import logging
import os
import socket
import time

import pytest

from conftest import make_announcement
from player_discovery.config import DiscoveryConfig
from player_discovery.discovery import engine as engine_module
from player_discovery.discovery.engine import DiscoveryEngine
from player_discovery.errors import (
    DiscoveryUnavailable,
    EngineClosed,
    MalformedAnnouncement,
)


# ── Helpers ──────────────────────────────────────────────────────

# Above the FD_SETSIZE limit of select()
HIGH_FD = 2000


class FailingSocket:
    """Stand-in socket whose setup fails at a chosen step."""

    instances: list["FailingSocket"] = []

    def __init__(self, *args, fail_on: str = "bind", **kwargs):
        self.fail_on = fail_on
        self.closed = False
        FailingSocket.instances.append(self)

    def setsockopt(self, level, option, value):
        if self.fail_on == "reuse" and level == socket.SOL_SOCKET:
            raise OSError("reuse not supported")
        if self.fail_on == "join" and option == socket.IP_ADD_MEMBERSHIP:
            raise OSError("no multicast route")

    def setblocking(self, flag):
        pass

    def bind(self, address):
        if self.fail_on == "bind":
            raise OSError("address in use")

    def getsockname(self):
        return ("0.0.0.0", 54997)

    def close(self):
        self.closed = True


@pytest.fixture
def failing_socket(monkeypatch):
    FailingSocket.instances = []

    def install(fail_on: str):
        monkeypatch.setattr(
            engine_module.socket, "socket",
            lambda *a, **kw: FailingSocket(*a, fail_on=fail_on, **kw),
        )
    return install


# ── Poll cycle ───────────────────────────────────────────────────

class TestPoll:
    def test_empty_polls(self, engine):
        for _ in range(3):
            result = engine.poll()
            assert result.received == 0
        assert list(engine.available_players()) == []

    def test_announcement_registered(self, engine, send):
        raw = make_announcement()
        send(raw)
        result = engine.poll()
        assert result.received == 1
        assert result.registered == [raw]
        assert list(engine.available_players()) == [raw]

    def test_drains_all_pending(self, engine, send):
        for i in range(5):
            send(make_announcement(ip=f"10.0.0.{i + 1}"))
        result = engine.poll()
        assert result.received == 5
        assert len(list(engine.available_players())) == 5

    def test_poll_returns_when_nothing_pending(self, engine, send):
        send(make_announcement())
        engine.poll()
        result = engine.poll()
        assert result.received == 0

    def test_same_announcement_twice_is_one_player(self, engine, send):
        send(make_announcement())
        send(make_announcement())
        engine.poll()
        assert len(list(engine.available_players())) == 1

    def test_different_text_is_different_player(self, engine, send):
        send(make_announcement(version=1))
        send(make_announcement(version=2))
        engine.poll()
        assert len(list(engine.available_players())) == 2

    def test_oversized_datagram_truncated(self, sock_pair):
        config = DiscoveryConfig(buffer_size=16)
        e = DiscoveryEngine(config, sock=sock_pair[0])
        sock_pair[1].send(make_announcement().encode())
        result = e.poll()
        assert result.received == 1
        assert len(result.rejected) == 1
        e.close()

    def test_invalid_utf8_is_rejected_not_fatal(self, engine, send):
        send(b"\xff\xfe garbage")
        result = engine.poll()
        assert result.received == 1
        assert len(result.rejected) == 1

    def test_high_numbered_descriptor(self, sock_pair):
        try:
            os.dup2(sock_pair[0].fileno(), HIGH_FD)
        except OSError as exc:
            pytest.skip(f"cannot open descriptor {HIGH_FD}: {exc}")
        high = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM, fileno=HIGH_FD)

        with DiscoveryEngine(sock=high) as e:
            sock_pair[1].send(make_announcement().encode())
            result = e.poll()
            assert result.received == 1
            assert list(e.available_players()) == [make_announcement()]


# ── Change tracking ──────────────────────────────────────────────

class TestChanges:
    def test_new_player_is_a_change(self, engine, send):
        send(make_announcement())
        result = engine.poll()
        assert result.added == [make_announcement()]
        assert result.changed

    def test_reannounce_is_not_a_change(self, engine, send):
        send(make_announcement())
        engine.poll()
        for _ in range(4):
            send(make_announcement())
            result = engine.poll()
            assert result.registered == [make_announcement()]
            assert result.added == []
            assert not result.changed

    def test_expiry_is_a_change(self, engine, send):
        send(make_announcement())
        for _ in range(engine.config.max_lifetime_cycles):
            engine.poll()
        result = engine.poll()
        assert result.expired == [make_announcement()]
        assert result.changed

    def test_reannounce_in_expiring_cycle_is_not_a_change(self, engine, send):
        raw = make_announcement()
        send(raw)
        for _ in range(engine.config.max_lifetime_cycles):
            engine.poll()
        send(raw)
        result = engine.poll()
        assert result.expired == []
        assert result.added == []
        assert not result.changed
        assert raw in engine.available_players()

    def test_rejected_datagram_is_not_a_change(self, engine, send):
        send("junk")
        assert not engine.poll().changed


# ── Liveness ─────────────────────────────────────────────────────

class TestLiveness:
    def test_visible_for_max_lifetime_cycles(self, engine, send):
        raw = make_announcement()
        send(raw)
        engine.poll()
        visible = 1
        while raw in engine.available_players():
            engine.poll()
            if raw in engine.available_players():
                visible += 1
        assert visible == engine.config.max_lifetime_cycles

    def test_absent_when_counter_reaches_zero(self, engine, send):
        raw = make_announcement()
        send(raw)
        engine.poll()
        engine.poll()
        engine.poll()
        assert raw in engine.available_players()
        result = engine.poll()
        assert result.expired == [raw]
        assert raw not in engine.available_players()

    def test_reannounce_extends_lifetime(self, engine, send):
        raw = make_announcement()
        send(raw)
        engine.poll()          # cycle 0, counter 3
        engine.poll()
        engine.poll()          # counter 1
        send(raw)
        engine.poll()          # counter reset
        for _ in range(engine.config.max_lifetime_cycles - 1):
            engine.poll()
        assert raw in engine.available_players()

    def test_custom_lifetime(self, sock_pair):
        e = DiscoveryEngine(DiscoveryConfig(max_lifetime_cycles=1), sock=sock_pair[0])
        sock_pair[1].send(make_announcement().encode())
        e.poll()
        assert len(list(e.available_players())) == 1
        e.poll()
        assert list(e.available_players()) == []
        e.close()


# ── Malformed announcements ──────────────────────────────────────

class TestMalformed:
    def test_plain_text_dropped(self, engine, send):
        send("hello, is anyone there?")
        result = engine.poll()
        assert len(result.rejected) == 1
        assert isinstance(result.rejected[0], MalformedAnnouncement)
        assert result.rejected[0].raw == "hello, is anyone there?"
        assert list(engine.available_players()) == []

    def test_bad_datagram_does_not_block_later_ones(self, engine, send):
        send("junk")
        send(make_announcement())
        result = engine.poll()
        assert result.received == 2
        assert len(result.rejected) == 1
        assert list(engine.available_players()) == [make_announcement()]

    def test_rejection_is_logged(self, engine, send, caplog):
        send("junk")
        with caplog.at_level(logging.WARNING, logger="player_discovery.discovery.engine"):
            engine.poll()
        assert "Dropping announcement" in caplog.text

    def test_register_malformed_keeps_legacy_behaviour(self, sock_pair):
        e = DiscoveryEngine(DiscoveryConfig(register_malformed=True), sock=sock_pair[0])
        sock_pair[1].send(b"junk")
        result = e.poll()
        assert len(result.rejected) == 1
        assert list(e.available_players()) == ["junk"]
        assert e.available_descriptors() == []
        e.close()


# ── Descriptors ──────────────────────────────────────────────────

class TestDescriptors:
    def test_available_descriptors(self, engine, send):
        send(make_announcement(player_id="Android Player"))
        engine.poll()
        [d] = engine.available_descriptors()
        assert d.player_id == "Android Player"
        assert d.endpoint == ("10.0.0.5", 54998)


# ── Lifecycle ────────────────────────────────────────────────────

class TestLifecycle:
    def test_poll_after_close(self, engine):
        engine.close()
        with pytest.raises(EngineClosed):
            engine.poll()

    def test_query_after_close(self, engine):
        engine.close()
        with pytest.raises(EngineClosed):
            engine.available_players()
        with pytest.raises(EngineClosed):
            engine.available_descriptors()

    def test_close_is_idempotent(self, engine):
        engine.close()
        engine.close()
        assert engine.closed

    def test_context_manager_closes(self, sock_pair):
        with DiscoveryEngine(sock=sock_pair[0]) as e:
            assert not e.closed
        assert e.closed
        assert sock_pair[0].fileno() == -1


# ── Socket setup ─────────────────────────────────────────────────

class TestSetup:
    def test_bind_failure_closes_socket(self, failing_socket):
        failing_socket("bind")
        with pytest.raises(DiscoveryUnavailable):
            DiscoveryEngine()
        assert FailingSocket.instances[0].closed

    def test_join_failure_closes_socket(self, failing_socket):
        failing_socket("join")
        with pytest.raises(DiscoveryUnavailable) as exc:
            DiscoveryEngine()
        assert FailingSocket.instances[0].closed
        assert isinstance(exc.value, OSError)

    def test_reuse_failure_is_not_fatal(self, failing_socket):
        failing_socket("reuse")
        e = DiscoveryEngine()
        assert not e.closed
        e.close()
        assert FailingSocket.instances[0].closed

    def test_socket_creation_failure(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise OSError("no network stack")
        monkeypatch.setattr(engine_module.socket, "socket", refuse)
        with pytest.raises(DiscoveryUnavailable):
            DiscoveryEngine()


class TestMulticast:
    def test_receives_on_real_socket(self):
        try:
            e = DiscoveryEngine(DiscoveryConfig(port=0))
        except DiscoveryUnavailable as exc:
            pytest.skip(f"multicast unavailable: {exc}")

        with e:
            port = e._sock.getsockname()[1]
            sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sender.sendto(make_announcement().encode(), ("127.0.0.1", port))
            finally:
                sender.close()

            for _ in range(50):
                if e.poll().received:
                    break
                time.sleep(0.01)
            assert make_announcement() in e.available_players()
