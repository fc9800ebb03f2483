#!/usr/bin/env python3
"""Command line entry point for yields-fun."""
import logging
import time

import click

from yields_fun.config import configure_logging, validate_config
from yields_fun.errors import ConfigError
from yields_fun.plugin import yields_fun_plugin
from yields_fun.runtime import EnvRuntime, Message, SessionState
from yields_fun.services.monitor.pool_monitor import STATE_KEY, build_pool_monitor

logger = logging.getLogger("yields_fun")

REPORT_PROVIDERS = ('yield', 'raydium', 'orca', 'meteora', 'marinade', 'lido', 'jpool', 'lulo', 'agentWallet')


def _require_valid_config(runtime):
    try:
        validate_config(runtime.get_setting)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL for this run.')
@click.pass_context
def cli(ctx, log_level):
    """Solana yield discovery, pair evaluation and pool monitoring."""
    configure_logging(log_level)
    ctx.obj = EnvRuntime()


@cli.command()
@click.option('--protocol', type=click.Choice(REPORT_PROVIDERS), default='yield', show_default=True,
              help='Provider report to print.')
@click.pass_obj
def report(runtime, protocol):
    """Print a provider's opportunity report."""
    entry = yields_fun_plugin.get(protocol)
    click.echo(entry.get(runtime, Message(), SessionState()))


@cli.command()
@click.argument('base')
@click.argument('quote')
@click.pass_obj
def evaluate(runtime, base, quote):
    """Evaluate the trust and venue profile of BASE/QUOTE."""
    entry = yields_fun_plugin.get('tokenPair')
    message = Message({'baseTokenAddress': base, 'quoteTokenAddress': quote})
    click.echo(entry.evaluate(runtime, message, SessionState()))


@cli.command()
@click.argument('base')
@click.argument('quote')
@click.option('--once', is_flag=True, help='Run a single check and exit.')
@click.pass_obj
def monitor(runtime, base, quote, once):
    """Monitor BASE/QUOTE and rebalance Raydium liquidity on changes."""
    state = SessionState()
    if once:
        entry = yields_fun_plugin.get('POOL_MONITOR')
        message = Message({'baseTokenAddress': base, 'quoteTokenAddress': quote})
        click.echo(entry.run(runtime, message, state))
        click.echo(f"Monitoring {len(state.get(STATE_KEY) or {})} pool(s)")
        return

    _require_valid_config(runtime)
    job = build_pool_monitor(runtime, state)
    job.add_pool_to_monitor(base, quote)
    job.start()
    click.echo(f"Monitoring {base}/{quote} every {job.check_interval}s (Ctrl+C to stop)")
    try:
        while job.is_running():
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
    finally:
        job.stop()


@cli.command(name='check-config')
@click.pass_obj
def check_config(runtime):
    """Validate the wallet and RPC settings used by the actions."""
    _require_valid_config(runtime)
    click.echo("Configuration OK")


def main():
    cli()


if __name__ == '__main__':
    main()
