#!/usr/bin/env python3
"""
CLI for the metrics history service
"""
import json
import signal
import threading

import click
from loguru import logger

from rrd.errors import RrdError
from utils.config import ConfigManager
from utils.logger import configure_logging

from .handler import MetricsHistoryHandler


def _handler(config_path: str) -> MetricsHistoryHandler:
    configure_logging(config_path)
    return MetricsHistoryHandler(ConfigManager(config_path))


def _echo(result):
    click.echo(json.dumps(result, indent=2, default=str))


@click.group()
@click.option('--config', default='config/config.yaml', help='Path to config file')
@click.pass_context
def cli(ctx, config: str):
    """Metrics History - round-robin metrics collection and queries"""
    ctx.obj = {'config': config}


@cli.command()
@click.pass_context
def run(ctx):
    """Collect metrics until interrupted"""
    handler = _handler(ctx.obj['config'])
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    handler.start()
    logger.info("Metrics history running, press Ctrl+C to stop")
    try:
        stop.wait()
    finally:
        handler.close()


@cli.command(name='list')
@click.option('--rows', type=int, default=None, help='Maximum number of names')
@click.pass_context
def list_series(ctx, rows):
    """List stored series"""
    handler = _handler(ctx.obj['config'])
    try:
        _echo(handler.handle_request('list', rows=rows))
    finally:
        handler.store.close()


@cli.command()
@click.argument('name')
@click.pass_context
def status(ctx, name: str):
    """Show status of a series"""
    handler = _handler(ctx.obj['config'])
    try:
        _echo(handler.handle_request('status', name=name))
    finally:
        handler.store.close()


@cli.command()
@click.argument('name')
@click.option('--ds', multiple=True, help='Datasource name (repeatable)')
@click.option('--format', 'fmt', default='list', help='list, string or graph')
@click.option('--start', type=int, default=None, help='Range start (epoch seconds)')
@click.option('--end', type=int, default=None, help='Range end (epoch seconds)')
@click.pass_context
def get(ctx, name: str, ds, fmt: str, start, end):
    """Fetch archive data of a series"""
    handler = _handler(ctx.obj['config'])
    wanted_range = (start, end) if start is not None and end is not None else None
    try:
        _echo(handler.handle_request('get', name=name, ds=list(ds), format=fmt, range=wanted_range))
    except RrdError as e:
        raise click.ClickException(str(e))
    finally:
        handler.store.close()


@cli.command()
@click.argument('name')
@click.pass_context
def delete(ctx, name: str):
    """Delete a series ('all' deletes every series)"""
    handler = _handler(ctx.obj['config'])
    try:
        _echo(handler.handle_request('delete', name=name))
    finally:
        handler.store.close()


if __name__ == '__main__':
    cli()
