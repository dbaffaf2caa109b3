"""USB proxy launcher for players attached over USB.

Devices connected by cable aren't reachable through multicast, so their
player port is forwarded to localhost by the external iproxy tool:

    iproxy <local port> <device port>

The launcher finds iproxy, starts it, and forwards its output to the
logging system line by line.
"""

import logging
import os
import shutil
import subprocess
import threading
from pathlib import Path
from typing import IO, Optional, Protocol

from ..errors import ProxyUnavailable

logger = logging.getLogger(__name__)

IPROXY_ENV_VAR = "PLAYER_DISCOVERY_IPROXY"
IPROXY_COMMAND = "iproxy"


class ProxyCapability(Protocol):
    """Anything that can forward a device port to localhost."""

    @property
    def is_supported(self) -> bool:
        ...

    def start(self, port: int) -> "ProxyHandle":
        ...


def find_iproxy() -> Optional[str]:
    """Find the iproxy executable.

    Searches in order:
    1. PLAYER_DISCOVERY_IPROXY environment variable
    2. iproxy on PATH

    Returns:
        Path to the executable, or None if not found.
    """
    env_path = os.environ.get(IPROXY_ENV_VAR)
    if env_path:
        return env_path
    return shutil.which(IPROXY_COMMAND)


class ProxyHandle:
    """A running proxy process."""

    def __init__(self, port: int, process: subprocess.Popen):
        self.port = port
        self._process = process
        self._readers = [
            _start_reader(process.stdout, logging.INFO, port),
            _start_reader(process.stderr, logging.WARNING, port),
        ]

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def is_running(self) -> bool:
        return self._process.poll() is None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll()

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for the proxy to exit and return its exit code."""
        code = self._process.wait(timeout=timeout)
        for reader in self._readers:
            reader.join(timeout=1.0)
        return code

    def stop(self, timeout: float = 5.0) -> None:
        """Terminate the proxy, killing it if it doesn't exit in time."""
        if self.is_running:
            logger.info("Stopping proxy on port %d", self.port)
            self._process.terminate()
            try:
                self._process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()

        for reader in self._readers:
            reader.join(timeout=1.0)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.stop()


class ProxyLauncher:
    """Starts iproxy processes that forward a player port over USB."""

    def __init__(self, executable: Optional[str] = None):
        """Initialize launcher.

        Args:
            executable: Path to iproxy. Default: environment variable or PATH.
        """
        self.executable = executable or find_iproxy()
        logger.debug("iproxy %s usb proxy supported %s", self.executable, self.is_supported)

    @property
    def is_supported(self) -> bool:
        """Whether an iproxy executable is available."""
        return self.executable is not None and Path(self.executable).is_file()

    def command(self, port: int) -> list[str]:
        """Command line used to proxy the given port."""
        return [str(self.executable), str(port), str(port)]

    def start(self, port: int) -> ProxyHandle:
        """Start forwarding a device port to the same local port.

        Args:
            port: Player port on the device.

        Returns:
            ProxyHandle for the running process.

        Raises:
            ValueError: If the port is out of range.
            ProxyUnavailable: If iproxy is missing or fails to start.
        """
        if not 1 <= port <= 65535:
            raise ValueError(f"Port must be in 1..65535, got {port}")

        if not self.is_supported:
            raise ProxyUnavailable(
                f"iproxy not found (looked at {self.executable or 'PATH'}). "
                f"Set {IPROXY_ENV_VAR} to the iproxy executable."
            )

        try:
            process = subprocess.Popen(
                self.command(port),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise ProxyUnavailable(f"Failed to start iproxy: {e}") from e

        logger.info("Started proxy on port %d (pid %d)", port, process.pid)
        return ProxyHandle(port, process)


def _start_reader(stream: Optional[IO[str]], level: int, port: int) -> threading.Thread:
    """Forward a process output stream to the log, one line at a time."""

    def forward() -> None:
        if stream is None:
            return
        with stream:
            for line in stream:
                line = line.rstrip("\n")
                if line:
                    logger.log(level, "[iproxy %d] %s", port, line)

    thread = threading.Thread(target=forward, name=f"iproxy-{port}", daemon=True)
    thread.start()
    return thread
