"""Workflow definition commands."""

import sys
from pathlib import Path

import click

from orchestrator.errors import WorkflowDefinitionError
from orchestrator.workflow.loader import load_file
from orchestrator.workflow.step import WorkflowStep


@click.group()
def workflow():
    """Inspect and validate YAML workflow definitions."""
    pass


@workflow.command()
@click.argument('workflow_file', type=click.Path(exists=True, path_type=Path))
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def validate(workflow_file: Path, verbose: bool):
    """Validate a YAML workflow file."""
    click.echo(f"🔍 Validating workflows: {workflow_file}")

    try:
        configs = load_file(workflow_file)
        for config in configs:
            steps = [WorkflowStep.from_config(step) for step in config["steps"]]
            step_ids = [step.id for step in steps]
            if len(set(step_ids)) != len(step_ids):
                raise WorkflowDefinitionError(
                    f"Duplicate step ids in workflow {config['id'] or config['name']}"
                )

            if verbose:
                click.echo(f"   Workflow: {config['name'] or config['id']}")
                for index, step in enumerate(steps, 1):
                    click.echo(f"     {index}. {step.id}: {step.agent_id}.{step.action}")
    except WorkflowDefinitionError as e:
        click.echo(f"❌ Workflow validation failed: {e.message}", err=True)
        sys.exit(1)

    click.echo(f"✅ {len(configs)} workflow(s) valid")


@workflow.command()
@click.argument('workflow_file', type=click.Path(exists=True, path_type=Path))
def info(workflow_file: Path):
    """Show the workflows and steps in a YAML file."""
    try:
        configs = load_file(workflow_file)
    except WorkflowDefinitionError as e:
        click.echo(f"❌ Error reading workflows: {e.message}", err=True)
        sys.exit(1)

    for config in configs:
        click.echo(f"📋 {config['name'] or config['id'] or 'unnamed'}")
        if config["description"]:
            click.echo(f"   {config['description']}")
        for index, step in enumerate(config["steps"], 1):
            gate = " (conditional)" if "condition" in step else ""
            click.echo(f"   {index}. {step['id']}: {step['agent_id']}.{step['action']}{gate}")
