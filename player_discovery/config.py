"""Configuration for player discovery.

Defaults match the fixed constants players broadcast with. A YAML file
can override them:

    port: 54997
    group: 225.0.0.222
    maxLifetimeCycles: 3
    bufferSize: 1024
    registerMalformed: false
    proxy:
      executable: /usr/local/bin/iproxy
"""

import ipaddress
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import yaml


# Multicast endpoint players announce themselves on
PLAYER_MULTICAST_PORT = 54997
PLAYER_MULTICAST_GROUP = "225.0.0.222"

# Poll cycles a player stays listed without re-announcing
MAX_LAST_SEEN_ITERATIONS = 3

# Receive buffer per datagram; longer announcements are truncated
DEFAULT_BUFFER_SIZE = 1024

# YAML key -> DiscoveryConfig field
_DISCOVERY_KEYS = {
    "port": "port",
    "group": "group",
    "maxLifetimeCycles": "max_lifetime_cycles",
    "bufferSize": "buffer_size",
    "registerMalformed": "register_malformed",
}

_PROXY_KEYS = {
    "executable": "executable",
}


@dataclass
class DiscoveryConfig:
    """Settings for the discovery engine."""
    port: int = PLAYER_MULTICAST_PORT
    group: str = PLAYER_MULTICAST_GROUP
    max_lifetime_cycles: int = MAX_LAST_SEEN_ITERATIONS
    buffer_size: int = DEFAULT_BUFFER_SIZE
    register_malformed: bool = False

    def __post_init__(self):
        if not isinstance(self.port, int) or not 0 <= self.port <= 65535:
            raise ValueError(f"port must be an integer in 0..65535, got {self.port!r}")

        try:
            group = ipaddress.IPv4Address(self.group)
        except (ipaddress.AddressValueError, TypeError) as e:
            raise ValueError(f"group must be an IPv4 address, got {self.group!r}") from e
        if not group.is_multicast:
            raise ValueError(f"group must be a multicast address, got {self.group}")

        if not isinstance(self.max_lifetime_cycles, int) or self.max_lifetime_cycles < 1:
            raise ValueError(
                f"max_lifetime_cycles must be a positive integer, got {self.max_lifetime_cycles!r}"
            )
        if not isinstance(self.buffer_size, int) or self.buffer_size < 1:
            raise ValueError(f"buffer_size must be a positive integer, got {self.buffer_size!r}")


@dataclass
class ProxyConfig:
    """Settings for the USB proxy launcher."""
    executable: Optional[str] = None


def load_config(file_path: Union[str, Path]) -> Tuple[DiscoveryConfig, ProxyConfig]:
    """Load discovery and proxy settings from a YAML file.

    Args:
        file_path: Path to the YAML configuration file.

    Returns:
        Tuple of (DiscoveryConfig, ProxyConfig).

    Raises:
        FileNotFoundError: If the configuration file doesn't exist.
        ValueError: If the YAML is malformed or holds unknown or invalid options.
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {file_path}: {e}") from e

    return config_from_data(data or {}, source=str(file_path))


def config_from_data(
    data: dict, source: str = "<inline>"
) -> Tuple[DiscoveryConfig, ProxyConfig]:
    """Build configuration objects from an already loaded mapping."""
    if not isinstance(data, dict):
        raise ValueError(f"Config must be a YAML mapping, got {type(data).__name__}")

    proxy_data = data.get("proxy") or {}
    if not isinstance(proxy_data, dict):
        raise ValueError(f"'proxy' must be a mapping in {source}")

    discovery_data = {k: v for k, v in data.items() if k != "proxy"}
    discovery_kwargs = _rename_keys(discovery_data, _DISCOVERY_KEYS, "", source)
    proxy_kwargs = _rename_keys(proxy_data, _PROXY_KEYS, "proxy.", source)

    try:
        discovery = DiscoveryConfig(**discovery_kwargs)
    except ValueError as e:
        raise ValueError(f"Invalid config in {source}: {e}") from e

    executable = proxy_kwargs.get("executable")
    if executable is not None and not isinstance(executable, str):
        raise ValueError(f"'proxy.executable' must be a string in {source}")

    return discovery, ProxyConfig(**proxy_kwargs)


def _rename_keys(
    data: dict, known: dict[str, str], context: str, source: str
) -> dict[str, Any]:
    """Map YAML option names onto dataclass field names."""
    unknown = [k for k in data if k not in known]
    if unknown:
        raise ValueError(
            f"Unknown option '{context}{unknown[0]}' in {source}"
        )
    return {known[k]: v for k, v in data.items()}
