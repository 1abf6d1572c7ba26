# cli/main.py
"""Main CLI entry point for the Agent Orchestrator."""

from pathlib import Path
from typing import Optional

import click

from orchestrator.config import get_settings
from orchestrator.monitoring.logging import configure_logging


DEMO_AGENTS = ("echo", "summarizer")


@click.group()
@click.version_option(version='1.0.0')
@click.option('--log-level', default=None, help='Override the configured log level')
@click.option('--json-logs', is_flag=True, help='Render logs as JSON')
def cli(log_level: Optional[str], json_logs: bool):
    """Agent Orchestrator CLI - dispatch agent tasks, cron schedules and workflows."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_logs=json_logs or settings.json_logs
    )


@cli.command()
@click.option('--host', default=None, help='Bind address')
@click.option('--port', type=int, default=None, help='Bind port')
@click.option('--demo', is_flag=True, help='Register echo agents for trying the API')
@click.option('--workflows', 'workflows_file', type=click.Path(exists=True, path_type=Path),
              help='YAML file of workflows to register at startup')
def serve(host: Optional[str], port: Optional[int], demo: bool, workflows_file: Optional[Path]):
    """Run the REST API."""
    import uvicorn

    from orchestrator.agent.echo import EchoAgent
    from orchestrator.api.rest.app import create_app
    from orchestrator.errors import WorkflowDefinitionError
    from orchestrator.runtime import Services
    from orchestrator.workflow import loader

    settings = get_settings()
    services = Services(settings)

    if demo:
        for name in DEMO_AGENTS:
            services.registry.register(name, EchoAgent(name))
        click.echo(f"🤖 Registered demo agents: {', '.join(DEMO_AGENTS)}")

    if workflows_file:
        try:
            workflow_ids = loader.register_file(services.workflow_engine, workflows_file)
        except WorkflowDefinitionError as e:
            raise click.ClickException(e.message)
        click.echo(f"📋 Registered workflows: {', '.join(workflow_ids)}")

    uvicorn.run(
        create_app(services),
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_config=None
    )


def register_commands():
    """Register all CLI command groups."""
    from cli.commands.cron import cron
    cli.add_command(cron)

    from cli.commands.workflow import workflow
    cli.add_command(workflow)


register_commands()


if __name__ == '__main__':
    cli()
