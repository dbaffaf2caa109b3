"""CLI entry point for player discovery.

Usage:
    player-discovery listen [--interval 1.0] [--json]
    player-discovery parse "<announcement>"
    player-discovery proxy <port>
"""

import json
import logging
import sys
import time
from typing import Optional

import click

from .announcement.codec import parse_announcement
from .config import DiscoveryConfig, ProxyConfig, load_config
from .discovery.engine import DiscoveryEngine
from .errors import DiscoveryUnavailable, MalformedAnnouncement, ProxyUnavailable
from .proxy.launcher import ProxyLauncher

DEFAULT_POLL_INTERVAL = 1.0


def _load(config_path: Optional[str]) -> tuple[DiscoveryConfig, ProxyConfig]:
    if not config_path:
        return DiscoveryConfig(), ProxyConfig()
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.version_option(package_name="player-discovery")
def main(verbose: bool) -> None:
    """Find players announcing themselves on the local network."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML config file.")
@click.option("--interval", type=click.FloatRange(min=0.0), default=DEFAULT_POLL_INTERVAL,
              show_default=True, help="Seconds between polls.")
@click.option("--cycles", type=click.IntRange(min=1), default=None,
              help="Stop after this many polls (default: run until interrupted).")
@click.option("--json", "as_json", is_flag=True, help="Print JSON lines instead of text.")
def listen(config_path: Optional[str], interval: float, cycles: Optional[int], as_json: bool) -> None:
    """Poll for players and print the list whenever it changes."""
    config, _ = _load(config_path)

    try:
        engine = DiscoveryEngine(config)
    except DiscoveryUnavailable as e:
        raise click.ClickException(str(e)) from e

    if not as_json:
        click.echo(f"Listening for players on {config.group}:{config.port}...")

    count = 0
    try:
        with engine:
            while cycles is None or count < cycles:
                result = engine.poll()
                count += 1
                if result.changed:
                    _print_players(engine, as_json)
                if cycles is None or count < cycles:
                    time.sleep(interval)
    except KeyboardInterrupt:
        sys.exit(130)


def _print_players(engine: DiscoveryEngine, as_json: bool) -> None:
    descriptors = sorted(engine.available_descriptors(), key=lambda d: (d.host, d.port))

    if as_json:
        output = {"players": [d.to_dict() for d in descriptors]}
        click.echo(json.dumps(output, ensure_ascii=False))
        return

    click.echo(f"\nPlayers: {len(descriptors)}")
    for d in descriptors:
        debug = "debuggable" if d.allow_debugging else "no debugging"
        click.echo(f"  {d.player_id} at {d.address} (v{d.version}, {debug})")


@main.command()
@click.argument("announcement")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text.")
def parse(announcement: str, as_json: bool) -> None:
    """Parse a single announcement string."""
    try:
        descriptor = parse_announcement(announcement)
    except MalformedAnnouncement as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(json.dumps(descriptor.to_dict(), ensure_ascii=False))
    else:
        click.echo(str(descriptor))


@main.command()
@click.argument("port", type=click.IntRange(1, 65535))
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML config file.")
@click.option("--executable", type=click.Path(dir_okay=False), help="Path to iproxy.")
def proxy(port: int, config_path: Optional[str], executable: Optional[str]) -> None:
    """Forward a USB-attached player's port to localhost."""
    _, proxy_config = _load(config_path)
    logging.getLogger("player_discovery.proxy").setLevel(logging.INFO)
    launcher = ProxyLauncher(executable or proxy_config.executable)

    try:
        handle = launcher.start(port)
    except ProxyUnavailable as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Proxying port {port} (pid {handle.pid}), Ctrl-C to stop")
    try:
        code = handle.wait()
    except KeyboardInterrupt:
        handle.stop()
        sys.exit(130)

    if code != 0:
        raise click.ClickException(f"iproxy exited with code {code}")


if __name__ == "__main__":
    main()
