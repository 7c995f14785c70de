#!/usr/bin/env python3
"""
Packforge Build CLI

This CLI builds the configured packs once or keeps watching them for changes.
"""

import asyncio
import dataclasses
import logging
import shutil
import signal
import sys
from pathlib import Path
from typing import List, Optional

import click

from ..build.build_system import BuildSystem
from ..config.config_loader import ConfigLoader, DEFAULT_CONFIG_FILE, LOG_LEVELS
from ..core.exceptions import ConfigurationError, PackforgeError
from ..core.models import BuildConfig


def clean_outputs(config: BuildConfig) -> List[Path]:
    """
    Delete every configured target directory and archive file.

    Returns:
        Paths that were removed
    """
    removed = []
    for pack in config.packs:
        for target in pack.target_roots:
            if target.is_dir():
                shutil.rmtree(target)
                removed.append(target)

    for archive in config.archives:
        if archive.out_file.is_file():
            archive.out_file.unlink()
            removed.append(archive.out_file)

    return removed


class BuildCLI:
    """Command-line interface for running builds"""

    def __init__(self, log_level: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.log_level = log_level

    def load_config(self, config_path: str) -> BuildConfig:
        """Load the build configuration, exiting on error"""
        try:
            config = ConfigLoader.load_from_yaml(config_path)
        except ConfigurationError as e:
            self.logger.error(f"Invalid configuration: {e}")
            sys.exit(1)

        # An explicit --log-level wins over the config file
        if self.log_level is None:
            logging.getLogger().setLevel(LOG_LEVELS[config.log_level])

        return config

    async def build(self, config: BuildConfig) -> bool:
        """Run a build, watching afterwards when enabled. Returns False on failure."""
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Signal handlers are unavailable on this platform
                pass

        system = BuildSystem.from_config(config)
        stopper = asyncio.ensure_future(self._close_on(stop_event, system))

        try:
            await system.run_and_close(stop_event=stop_event)
        except PackforgeError as e:
            self.logger.error(f"Build failed: {e}")
            return False
        finally:
            stopper.cancel()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except NotImplementedError:
                    pass

        if stop_event.is_set():
            self.logger.info("Stopped")
        else:
            self.logger.info("Build complete")
        return True

    async def _close_on(self, stop_event: asyncio.Event, system: BuildSystem):
        await stop_event.wait()
        self.logger.info("Stop requested, shutting down")
        await system.close()


@click.group()
@click.option('--log-level', default=None,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'SILENT'], case_sensitive=False),
              help='Set the logging level (overrides log_level in the config file)')
@click.pass_context
def cli(ctx, log_level):
    """Packforge - Build behavior and resource packs"""
    # Setup logging
    logging.basicConfig(
        level=LOG_LEVELS[log_level.lower()] if log_level else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    ctx.ensure_object(dict)
    ctx.obj['cli'] = BuildCLI(log_level)


@cli.command()
@click.option('--config', 'config_path', default=DEFAULT_CONFIG_FILE, show_default=True,
              help='Path to the build config YAML')
@click.option('--watch/--no-watch', default=None, help='Keep watching for changes after the build')
@click.pass_context
def build(ctx, config_path, watch):
    """Build the configured packs"""
    cli_instance = ctx.obj['cli']
    config = cli_instance.load_config(config_path)
    if watch is not None:
        config = dataclasses.replace(config, watch=watch)
    if not asyncio.run(cli_instance.build(config)):
        sys.exit(1)


@cli.command()
@click.option('--config', 'config_path', default=DEFAULT_CONFIG_FILE, show_default=True,
              help='Path to the build config YAML')
@click.pass_context
def watch(ctx, config_path):
    """Build the configured packs and rebuild on every change"""
    cli_instance = ctx.obj['cli']
    config = dataclasses.replace(cli_instance.load_config(config_path), watch=True)
    if not asyncio.run(cli_instance.build(config)):
        sys.exit(1)


@cli.command()
@click.option('--config', 'config_path', default=DEFAULT_CONFIG_FILE, show_default=True,
              help='Path to the build config YAML')
@click.pass_context
def clean(ctx, config_path):
    """Remove target directories and archive files"""
    cli_instance = ctx.obj['cli']
    config = cli_instance.load_config(config_path)
    try:
        removed = clean_outputs(config)
    except OSError as e:
        cli_instance.logger.error(f"Clean failed: {e}")
        sys.exit(1)

    for path in removed:
        click.echo(f"Removed {path}")
    if not removed:
        click.echo("Nothing to clean")


if __name__ == "__main__":
    cli()
