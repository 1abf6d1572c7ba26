"""Cron expression helpers."""

import sys

import click

from orchestrator.errors import InvalidExpressionError
from orchestrator.scheduler.cron import next_runs, parse_cron


@click.group()
def cron():
    """Check cron expressions before scheduling them."""
    pass


@cron.command()
@click.argument('expression')
def validate(expression: str):
    """Validate a cron expression (five fields or an @alias)."""
    try:
        parsed = parse_cron(expression)
    except InvalidExpressionError as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)

    click.echo(f"✅ Valid: {parsed}")


@cron.command()
@click.argument('expression')
@click.option('--count', '-n', default=5, show_default=True, help='Number of fire times')
def next(expression: str, count: int):
    """Show the next fire times of a cron expression."""
    try:
        times = next_runs(expression, n=count)
    except InvalidExpressionError as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)

    for when in times:
        click.echo(when.isoformat())
