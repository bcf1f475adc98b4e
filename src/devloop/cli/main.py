#!/usr/bin/env python3
"""
devloop CLI - local development loop for serverless apps

Usage:
    devloop run [--config FILE] [--local|--remote] [--skip-actions] [--skip-serve]
                [--logs] [--port PORT] [--https-key KEY --https-cert CERT]
                [--debug-config] [--verbose]
    devloop config show [--config FILE]

Examples:
    devloop run
    devloop run --remote --logs
    devloop run --port 8080 --https-key key.pem --https-cert cert.pem
"""

import asyncio
import os
import sys
import traceback
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.markup import escape

from .. import __version__
from ..core.config import AppConfig
from ..dev.coordinator import DevCoordinator, RunOptions
from ..utils.logging import setup_logging

console = Console()

DEFAULT_CONFIG_FILE = "devloop.yaml"


def load_config(path: Optional[str]) -> AppConfig:
    config_file = path or os.getenv("DEVLOOP_CONFIG", DEFAULT_CONFIG_FILE)
    if not os.path.exists(config_file):
        raise click.ClickException(f"configuration file '{config_file}' not found")
    return AppConfig.from_yaml(config_file)


async def run_session(config: AppConfig, options: RunOptions, coordinator: DevCoordinator) -> int:
    """Run a session until it is interrupted; returns the process exit code"""
    try:
        url = await coordinator.run(config, options)
        if url:
            console.print(f"\nyour app is running at [bold blue]{url}[/bold blue]")
        return await coordinator.ledger.wait()
    finally:
        await coordinator.runtime.close()


@click.group()
@click.version_option(version=__version__)
def cli():
    """devloop - build, deploy, watch and serve your app while you code"""


@cli.command()
@click.option("--config", "-c", "config_file", type=click.Path(dir_okay=False), help="Path to the app configuration file")
@click.option("--local/--remote", default=True, help="Run actions on a local emulator or on the remote runtime")
@click.option("--skip-actions", is_flag=True, help="Skip building, deploying and watching actions")
@click.option("--skip-serve", is_flag=True, help="Skip bundling and serving the frontend")
@click.option("--logs", "fetch_logs", is_flag=True, help="Fetch action logs while running")
@click.option("--port", "-p", type=int, default=None, help="Port for the frontend server (default: $PORT or 9080)")
@click.option("--https-key", type=click.Path(exists=True, dir_okay=False), help="TLS private key")
@click.option("--https-cert", type=click.Path(exists=True, dir_okay=False), help="TLS certificate")
@click.option("--debug-config", is_flag=True, help="Write a .vscode/launch.json for the session")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(config_file, local, skip_actions, skip_serve, fetch_logs, port, https_key, https_cert, debug_config, verbose):
    """Run the app in development mode"""

    if bool(https_key) != bool(https_cert):
        raise click.UsageError("--https-key and --https-cert must be given together")

    setup_logging(level="DEBUG" if verbose else "INFO")

    options = RunOptions(
        dev_remote=not local,
        skip_actions=skip_actions,
        skip_serve=skip_serve,
        fetch_logs=fetch_logs,
        verbose=verbose,
        https_key=https_key,
        https_cert=https_cert,
        debug_config=debug_config
    )
    if port is not None:
        options.port = port

    try:
        app_config = load_config(config_file)
        exit_code = asyncio.run(run_session(app_config, options, DevCoordinator()))
    except click.ClickException:
        raise
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        if verbose:
            console.print(f"[red]{escape(traceback.format_exc())}[/red]")
        sys.exit(1)

    sys.exit(exit_code)


@cli.group()
def config():
    """Configuration commands"""


@config.command("show")
@click.option("--config", "-c", "config_file", type=click.Path(dir_okay=False), help="Path to the app configuration file")
def show_config(config_file):
    """Show the resolved app configuration"""
    data = load_config(config_file).to_dict()
    if data["runtime"].get("auth"):
        data["runtime"]["auth"] = "********"
    console.print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))


def main():
    """Main CLI entry point"""
    cli()


if __name__ == "__main__":
    main()
