"""
Tests for YAML workflow definitions in orchestrator.workflow.loader.
"""

import pytest

from orchestrator.errors import WorkflowDefinitionError
from orchestrator.workflow import loader
from orchestrator.workflow.engine import WorkflowEngine
from orchestrator.workflow.step import StepOutcome


REVIEW_YAML = """
id: review
name: Code review
description: Summarise then report
metadata:
  owner: qa
steps:
  - id: gather
    agent: echo
    action: summarize
    params:
      scope: src
    timeout: 5
    continue_if: has_changes
  - id: report
    agent: echo
    action: summarize
"""


class TestParsing:

    def test_parse_single_document(self):
        [config] = loader.parse_string(REVIEW_YAML)

        assert config["id"] == "review"
        assert config["name"] == "Code review"
        assert config["metadata"] == {"owner": "qa"}

        gather, report = config["steps"]
        assert gather["agent_id"] == "echo"
        assert gather["params"] == {"scope": "src"}
        assert gather["timeout"] == 5
        assert "timeout" not in report
        assert "condition" not in report

    def test_continue_if_checks_context_key(self):
        [config] = loader.parse_string(REVIEW_YAML)
        condition = config["steps"][0]["condition"]
        outcome = StepOutcome(data=None)

        assert condition(outcome, {"has_changes": ["a.py"]}) is True
        assert condition(outcome, {"has_changes": []}) is False
        assert condition(outcome, {}) is False

    def test_multiple_documents(self):
        text = REVIEW_YAML + "\n---\nid: other\nsteps:\n  - {id: s, agent: echo, action: run}\n"

        configs = loader.parse_string(text)

        assert [c["id"] for c in configs] == ["review", "other"]

    @pytest.mark.parametrize("text", [
        "",
        "- just\n- a list\n",
        "id: empty\nsteps: []\n",
        "id: bad\nsteps:\n  - not a mapping\n",
        "id: bad\nsteps:\n  - {id: s, agent: a, action: b, retries: 3}\n",
        "id: bad\nsteps:\n  - {id: s, agent: a, action: b, params: [1, 2]}\n",
        "id: bad\nsteps:\n  - {id: s, agent: a, action: b, continue_if: 3}\n",
        "id: bad\nschedule: daily\nsteps:\n  - {id: s, agent: a, action: b}\n",
        "id: [unclosed\n",
    ])
    def test_malformed_documents(self, text):
        with pytest.raises(WorkflowDefinitionError):
            loader.parse_string(text)


class TestFiles:

    def test_load_file_records_source(self, tmp_path):
        path = tmp_path / "review.yaml"
        path.write_text(REVIEW_YAML)

        [config] = loader.load_file(path)

        assert config["source"] == str(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(WorkflowDefinitionError):
            loader.load_file(tmp_path / "missing.yaml")

    def test_register_file(self, tmp_path, registry, settings):
        path = tmp_path / "review.yaml"
        path.write_text(REVIEW_YAML)
        engine = WorkflowEngine(registry, settings=settings)

        assert loader.register_file(engine, path) == ["review"]

        workflow = engine.get_workflow("review")
        assert workflow.steps[0].timeout == 5.0
        assert workflow.steps[0].condition is not None
        assert workflow.steps[1].timeout == settings.step_timeout

    def test_step_missing_action_is_rejected_on_register(self, registry, settings):
        [config] = loader.parse_string("id: wf\nsteps:\n  - {id: s, agent: echo}\n")
        engine = WorkflowEngine(registry, settings=settings)

        with pytest.raises(WorkflowDefinitionError):
            engine.register_workflow(config)

    def test_non_numeric_timeout_is_rejected_on_register(self, registry, settings):
        [config] = loader.parse_string(
            "id: wf\nsteps:\n  - {id: s, agent: echo, action: run, timeout: soon}\n"
        )
        engine = WorkflowEngine(registry, settings=settings)

        with pytest.raises(WorkflowDefinitionError, match="must be a number"):
            engine.register_workflow(config)
