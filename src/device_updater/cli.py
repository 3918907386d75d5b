"""CLI for device updater.

Provides command-line interface for probing devices and pushing updates.
"""

import logging
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Optional, Tuple

import click

from device_updater.config import UpdaterConfig, load_config
from device_updater.errors import UpdateHandlerNotImplemented, UpdaterError
from device_updater.probe import probe_remote_scheme
from device_updater.session import UpdateSession, connect
from device_updater.transport import DEFAULT_TIMEOUT
from device_updater.trust import SELF_SIGNED

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

IMAGE_PATH = click.Path(exists=True, dir_okay=False, path_type=Path)


def open_session(config: UpdaterConfig, host: str) -> UpdateSession:
    """Decide the scheme, resolve trust and open a session.

    Without a TLS mode the device is spoken to over plain HTTP. Otherwise the
    device is probed first so no credentials go out before the scheme is known.

    Args:
        config: Effective configuration
        host: Device host

    Returns:
        Open session, owned by the caller
    """
    timeout = config.request_timeout_sec or DEFAULT_TIMEOUT
    session, matched = connect(
        f"http://{host}/",
        config.tls,
        auth=config.auth,
        config_dir_resolver=config.host_config_dir,
        timeout=timeout,
        probe=bool(config.tls)
    )

    if config.tls and not session.base_url.startswith("https://"):
        logger.warning(f"{host} redirects to {session.base_url}, not https")

    if config.tls == SELF_SIGNED and not matched:
        logger.warning(
            f"No stored certificate for {host} in {config.host_config_dir(host)}, "
            f"relying on the system trust store"
        )

    return session


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML configuration file"
)
@click.option(
    "--tls",
    default=None,
    help="TLS mode: 'self-signed' or a comma-separated list of certificate files"
)
@click.pass_context
def cli(ctx, config_path, tls):
    """Device updater CLI."""
    ctx.obj = load_config(config_path, tls=tls)


@cli.command()
@click.argument("host")
def probe(host):
    """Print the scheme HOST redirects plain HTTP requests to."""
    try:
        scheme = probe_remote_scheme(host)
    except UpdaterError as e:
        logger.error(f"Probe failed: {e}")
        sys.exit(1)

    click.echo(scheme)


@cli.command()
@click.argument("host")
@click.argument("feature")
@click.pass_obj
def supports(config, host, feature):
    """Exit 0 if HOST advertises FEATURE, 1 otherwise."""
    try:
        with open_session(config, host) as session:
            supported = session.target_supports(feature)
    except UpdaterError as e:
        logger.error(f"Feature query failed: {e}")
        sys.exit(2)

    if supported:
        click.echo(f"✓ {host} supports {feature}")
        sys.exit(0)

    click.echo(f"✗ {host} does not support {feature}")
    sys.exit(1)


@cli.command()
@click.argument("host")
@click.option("--root", "root_path", type=IMAGE_PATH, help="Root file system image")
@click.option("--boot", "boot_path", type=IMAGE_PATH, help="Boot file system image")
@click.option("--mbr", "mbr_path", type=IMAGE_PATH, help="Master boot record")
@click.option(
    "--require-feature",
    "required_features",
    multiple=True,
    help="Abort unless the device advertises this feature (repeatable)"
)
@click.option(
    "--no-switch",
    is_flag=True,
    help="Upload only; do not switch partitions or reboot"
)
@click.option(
    "--no-reboot",
    is_flag=True,
    help="Do not reboot after switching partitions"
)
@click.pass_obj
def update(
    config: UpdaterConfig,
    host: str,
    root_path: Optional[Path],
    boot_path: Optional[Path],
    mbr_path: Optional[Path],
    required_features: Tuple[str, ...],
    no_switch: bool,
    no_reboot: bool
):
    """Push images to HOST and activate them."""
    if not (root_path or boot_path or mbr_path):
        logger.error("Nothing to do: pass at least one of --root, --boot, --mbr")
        sys.exit(1)

    try:
        with open_session(config, host) as session, ExitStack() as stack:
            for feature in required_features:
                if not session.target_supports(feature):
                    click.echo(f"✗ {host} does not support {feature}")
                    sys.exit(1)

            streams = {
                name: stack.enter_context(open(path, "rb")) if path else None
                for name, path in (
                    ("root", root_path),
                    ("boot", boot_path),
                    ("mbr", mbr_path),
                )
            }

            results = session.perform_update(
                **streams,
                switch=not no_switch,
                reboot=config.reboot and not no_reboot
            )

    except UpdateHandlerNotImplemented:
        click.echo(f"✗ {host} does not support updates")
        sys.exit(1)

    except UpdaterError as e:
        logger.error(f"Update failed: {e}")
        click.echo("✗ Update failed")
        sys.exit(1)

    for name, result in results.items():
        click.echo(
            f"✓ {name}: {result.bytes_transferred} bytes, "
            f"sha256 {result.local_digest.hex()}"
        )

    if no_switch:
        click.echo("✓ Images uploaded; partitions not switched")
    elif config.reboot and not no_reboot:
        click.echo("✓ Update completed, device is rebooting")
    else:
        click.echo("✓ Update completed, reboot the device to activate it")


if __name__ == "__main__":
    cli()
