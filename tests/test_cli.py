"""
Tests for the orchestrator CLI.
"""

from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

import cli.main
from cli.main import cli as orchestrator_cli


WORKFLOWS_YAML = """
id: nightly
name: Nightly report
steps:
  - id: gather
    agent: echo
    action: summarize
    continue_if: echo_summary
  - id: publish
    agent: summarizer
    action: summarize
"""


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep the CLI from reconfiguring logging onto the runner's streams."""
    monkeypatch.setattr(cli.main, "configure_logging", Mock())


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workflows_file(tmp_path):
    path = tmp_path / "workflows.yaml"
    path.write_text(WORKFLOWS_YAML)
    return path


class TestCronCommands:

    def test_validate_valid(self, runner):
        result = runner.invoke(orchestrator_cli, ["cron", "validate", "*/15 * * * *"])

        assert result.exit_code == 0
        assert "Valid: */15 * * * *" in result.output

    def test_validate_alias(self, runner):
        result = runner.invoke(orchestrator_cli, ["cron", "validate", "@weekly"])

        assert result.exit_code == 0
        assert "0 0 * * 0" in result.output

    def test_validate_invalid(self, runner):
        result = runner.invoke(orchestrator_cli, ["cron", "validate", "0 25 * * *"])

        assert result.exit_code == 1

    def test_next(self, runner):
        result = runner.invoke(orchestrator_cli, ["cron", "next", "@hourly", "-n", "3"])

        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert len(lines) == 3
        assert all(":00:00" in line for line in lines)


class TestWorkflowCommands:

    def test_validate(self, runner, workflows_file):
        result = runner.invoke(
            orchestrator_cli, ["workflow", "validate", str(workflows_file), "-v"]
        )

        assert result.exit_code == 0
        assert "1 workflow(s) valid" in result.output
        assert "gather: echo.summarize" in result.output

    def test_validate_rejects_bad_file(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("id: bad\nsteps:\n  - {id: s, agent: echo}\n")

        result = runner.invoke(orchestrator_cli, ["workflow", "validate", str(path)])

        assert result.exit_code == 1

    def test_info(self, runner, workflows_file):
        result = runner.invoke(orchestrator_cli, ["workflow", "info", str(workflows_file)])

        assert result.exit_code == 0
        assert "Nightly report" in result.output
        assert "gather: echo.summarize (conditional)" in result.output
        assert "publish: summarizer.summarize" in result.output


class TestServe:

    def test_serve_with_demo_agents_and_workflows(self, runner, workflows_file):
        with patch("uvicorn.run") as run:
            result = runner.invoke(
                orchestrator_cli,
                ["serve", "--demo", "--workflows", str(workflows_file), "--port", "9000"]
            )

        assert result.exit_code == 0, result.output
        assert "echo, summarizer" in result.output
        assert "Registered workflows: nightly" in result.output

        app = run.call_args.args[0]
        services = app.state.services
        assert services.registry.names() == ["echo", "summarizer"]
        assert services.workflow_engine.get_workflow("nightly").name == "Nightly report"
        assert run.call_args.kwargs["port"] == 9000
