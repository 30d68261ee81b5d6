"""
Command Line Interface for the coaster fleet service
"""
import asyncio
import json
import logging
import sys

import click
from pydantic import ValidationError

from coaster_fleet.app import CoasterFleetService
from coaster_fleet.core.config import Config
from coaster_fleet.core.errors import StoreError
from coaster_fleet.monitoring.reporter import StatusReporter, format_report
from coaster_fleet.storage.store import RecordStore
from coaster_fleet.utils.logger import setup_logging


def _load_config(config_file) -> Config:
    try:
        if config_file:
            return Config.load_from_file(config_file)
        return Config.from_env()
    except (OSError, ValueError, ValidationError) as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(2)


@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config, verbose):
    """Coaster fleet capacity planner CLI"""
    ctx.ensure_object(dict)
    ctx.obj['config'] = _load_config(config)
    ctx.obj['verbose'] = verbose


@cli.command()
@click.option('--host', help='Host to bind the HTTP API to')
@click.option('--port', type=int, help='Port for the HTTP API')
@click.option('--redis-host', help='Broker host')
@click.option('--redis-port', type=int, help='Broker port')
@click.option('--data-dir', help='Directory for record files')
@click.option('--env', 'environment', type=click.Choice(['development', 'production']),
              help='Runtime environment')
@click.option('--atomic-election', is_flag=True, default=None,
              help='Use set-if-absent when claiming the master role')
@click.pass_context
def serve(ctx, host, port, redis_host, redis_port, data_dir, environment, atomic_election):
    """Start a node: HTTP API, cluster coordination and console monitor"""
    config: Config = ctx.obj['config']
    try:
        if environment:
            config.environment = environment
        if host:
            config.server.host = host
        if port:
            config.server.port = port
        if redis_host:
            config.broker.host = redis_host
        if redis_port:
            config.broker.port = redis_port
        if data_dir:
            config.storage.data_dir = data_dir
        if atomic_election:
            config.broker.atomic_election = True
        config = Config.model_validate(config.model_dump())
    except ValidationError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(2)

    level = 'DEBUG' if ctx.obj['verbose'] else config.logging.level
    setup_logging(level, config.logging.log_dir, config.is_dev)

    try:
        service = CoasterFleetService(config)
    except StoreError as e:
        click.echo(f"Cannot open record store: {e}", err=True)
        sys.exit(1)

    click.echo(f"Starting node {service.coordinator.node_id} on port {config.http_port}")
    click.echo(f"Developer mode: {'ENABLED' if config.is_dev else 'DISABLED'}")

    exit_code = asyncio.run(service.run())
    sys.exit(exit_code)


@cli.command()
@click.option('--data-dir', help='Directory for record files')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@click.pass_context
def status(ctx, data_dir, as_json):
    """Print a one-shot status report from the local record store"""
    config: Config = ctx.obj['config']
    if data_dir:
        config.storage.data_dir = data_dir
    logging.basicConfig(level=logging.DEBUG if ctx.obj['verbose'] else logging.WARNING)

    try:
        report = StatusReporter(RecordStore(config.data_directory)).report()
    except StoreError as e:
        click.echo(f"Status error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(format_report(report))


@cli.command()
@click.option('--output', '-o', default='coaster_fleet.json', help='Output configuration file')
def init_config(output):
    """Initialize a configuration file with default settings"""
    config = Config()
    config.save_to_file(output)
    click.echo(f"Configuration file created: {output}")
    click.echo("Edit the file to customize settings, then use:")
    click.echo(f"  coaster-fleet --config {output} serve")


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
