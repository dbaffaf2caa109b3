"""Proxy module - USB port forwarding for tethered players."""

from .launcher import ProxyCapability, ProxyHandle, ProxyLauncher, find_iproxy

__all__ = [
    "ProxyCapability",
    "ProxyHandle",
    "ProxyLauncher",
    "find_iproxy",
]
