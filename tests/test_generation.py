import json
from unittest.mock import Mock

import pytest

from phase_orchestrator.adapters.llm_base import LLMResponse
from phase_orchestrator.adapters.mock_adapter import MockAdapter
from phase_orchestrator.engine.errors import GenerationError, MalformedResponseError
from phase_orchestrator.engine.models import DevelopmentMode, PhaseKind, Sprint
from phase_orchestrator.engine.settings import AutomationSettings
from phase_orchestrator.utils.retry import with_retry

from conftest import FailingAdapter, make_client, make_phase, make_project


class TestWithRetry:
    def test_retries_once_then_succeeds(self):
        fn = Mock(side_effect=[TimeoutError("slow"), "ok"])
        sleep = Mock()
        assert with_retry(fn, retries=1, delay=1.0, sleep=sleep) == "ok"
        assert fn.call_count == 2
        sleep.assert_called_once_with(1.0)

    def test_reraises_after_budget(self):
        fn = Mock(side_effect=ConnectionError("down"))
        with pytest.raises(ConnectionError):
            with_retry(fn, retries=1, delay=0, sleep=Mock())
        assert fn.call_count == 2

    def test_zero_retries_is_single_attempt(self):
        fn = Mock(side_effect=ValueError("bad"))
        sleep = Mock()
        with pytest.raises(ValueError):
            with_retry(fn, retries=0, sleep=sleep)
        assert fn.call_count == 1
        sleep.assert_not_called()


class TestGenerationClientRetry:
    def test_transient_failure_is_retried(self):
        adapter = FailingAdapter(failures={"Launch": 1})
        client = make_client(adapter)
        project = make_project([make_phase("p1", "Launch")])

        output = client.generate_phase_output(project, project.phases[0])

        assert output == "# Launch\n\nMock content for Launch."
        assert adapter.calls == ["Launch", "Launch"]

    def test_exhausted_retry_raises_generation_error(self):
        adapter = FailingAdapter(fail_targets={"Launch"})
        client = make_client(adapter)
        project = make_project([make_phase("p1", "Launch")])

        with pytest.raises(GenerationError) as exc_info:
            client.generate_phase_output(project, project.phases[0])

        assert exc_info.value.attempts == 2
        assert exc_info.value.step == "standard_phase"
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert adapter.calls == ["Launch", "Launch"]

    def test_retry_budget_comes_from_settings(self):
        adapter = FailingAdapter(fail_targets={"Launch"})
        client = make_client(adapter, retries=3)
        project = make_project([make_phase("p1", "Launch")])

        with pytest.raises(GenerationError):
            client.generate_phase_output(project, project.phases[0])
        assert len(adapter.calls) == 4


class TestStructuredResponses:
    def _decompositional(self):
        phase = make_phase("cd", "Critical Design", PhaseKind.DECOMPOSITIONAL)
        return make_project([phase]), phase

    def test_malformed_json_is_not_retried(self):
        adapter = FailingAdapter(raw_overrides={"Critical Design": "I cannot comply."})
        client = make_client(adapter)
        project, phase = self._decompositional()

        with pytest.raises(MalformedResponseError) as exc_info:
            client.propose_sprints(project, phase)

        assert exc_info.value.schema_name == "sprint_proposal.schema.json"
        assert adapter.calls == ["Critical Design"]

    def test_schema_violation_is_malformed(self):
        raw = json.dumps({"preliminarySpec": "spec", "sprints": [{"description": "no name"}]})
        adapter = FailingAdapter(raw_overrides={"Critical Design": raw})
        client = make_client(adapter)
        project, phase = self._decompositional()

        with pytest.raises(MalformedResponseError, match="name"):
            client.propose_sprints(project, phase)

    def test_proposal_is_parsed(self):
        client = make_client(MockAdapter())
        project, phase = self._decompositional()

        proposal = client.propose_sprints(project, phase)

        assert proposal.preliminary_spec.startswith("# Critical Design Preliminary Specification")
        assert [item.name for item in proposal.sprints][0] == "Detailed Component Design"
        assert proposal.sprints[1].dependencies == ["Detailed Component Design"]

    def test_empty_checklist_is_malformed(self):
        adapter = FailingAdapter(raw_overrides={"Design": '{"checklist": []}'})
        client = make_client(adapter)
        project = make_project([make_phase("p1", "Design", output="DESIGN")])

        with pytest.raises(MalformedResponseError):
            client.generate_review_checklist(project, project.phases[0])

    def test_blank_checklist_items_are_dropped(self):
        raw = '{"checklist": ["  ", " Trace every requirement "]}'
        adapter = FailingAdapter(raw_overrides={"Design": raw})
        client = make_client(adapter)
        project = make_project([make_phase("p1", "Design", output="DESIGN")])

        assert client.generate_review_checklist(project, project.phases[0]) == [
            "Trace every requirement"
        ]

    def test_all_blank_checklist_is_malformed(self):
        adapter = FailingAdapter(raw_overrides={"Design": '{"checklist": [" ", "\\n"]}'})
        client = make_client(adapter)
        project = make_project([make_phase("p1", "Design", output="DESIGN")])

        with pytest.raises(MalformedResponseError, match="non-blank"):
            client.generate_review_checklist(project, project.phases[0])

    def test_generate_uses_json_mode_for_structured_calls(self):
        adapter = Mock()
        adapter.complete.return_value = LLMResponse(raw_text='{"checklist": ["one"]}')
        client = make_client(adapter)
        project = make_project([make_phase("p1", "Design", output="DESIGN")])

        assert client.generate_review_checklist(project, project.phases[0]) == ["one"]
        _, kwargs = adapter.complete.call_args
        assert kwargs["json_mode"] is True


class TestPrompts:
    def test_document_instruction_from_yaml(self):
        client = make_client(MockAdapter())
        phase = make_phase("p1", "Requirements", PhaseKind.DOCUMENT_SERIES, documents=["Project Scope"])
        instruction = client.document_instruction(phase, phase.sprints[0])
        assert "'Introduction'" in instruction
        assert "'Project Objectives'" in instruction

    def test_document_instruction_fallback(self):
        client = make_client(MockAdapter())
        phase = make_phase("p1", "Requirements", PhaseKind.DOCUMENT_SERIES, documents=["Risk Register"])
        instruction = client.document_instruction(phase, phase.sprints[0])
        assert instruction == (
            'Generate the document titled "Risk Register" with the following objective: '
            "Risk Register document"
        )

    def test_sprint_roles(self):
        client = make_client(MockAdapter())
        project = make_project([make_phase("cd", "Critical Design")])
        fmea = Sprint(id="s1", name="Failure Modes and Effects Analysis (FMEA)")
        dfma = Sprint(id="s2", name="DFMA Review")
        other = Sprint(id="s3", name="Harness Layout")
        assert "reliability engineer" in client.sprint_role(project, fmea)
        assert "manufacturing engineer" in client.sprint_role(project, dfma)
        assert "detailed technical specification" in client.sprint_role(project, other)

    def test_rendered_prompt_substitutes_placeholders(self):
        adapter = MockAdapter()
        client = make_client(adapter)
        project = make_project([make_phase("p1", "Launch")])
        project.development_mode = DevelopmentMode.RAPID

        client.generate_phase_output(project, project.phases[0])

        prompt = adapter.prompts[-1]
        assert "{{" not in prompt
        assert '"Launch" project phase' in prompt
        assert "concise technical language" in prompt
        assert '{"depth": 80}' in prompt
        assert "\n\nINPUT:\n" in prompt

    def test_sprint_specification_includes_completed_sprints(self):
        adapter = MockAdapter()
        client = make_client(adapter)
        phase = make_phase("cd", "Critical Design", PhaseKind.DECOMPOSITIONAL, output="PRELIM")
        project = make_project([phase])
        done = Sprint(id="cd-1", name="A", output="A SPEC")
        target = Sprint(id="cd-2", name="FMEA Sheet", dependencies=["cd-1"])

        result = client.generate_sprint_specification(project, phase, target, [done])

        prompt = adapter.prompts[-1]
        assert "PRELIM" in prompt
        assert "### Completed Sprint: A\n\nA SPEC" in prompt
        assert "reliability engineer" in prompt
        assert result.technical_spec.startswith("# FMEA Sheet Technical Specification")
        assert result.deliverables == ["FMEA Sheet design package", "FMEA Sheet verification notes"]

    def test_compaction_prompt(self):
        adapter = MockAdapter()
        client = make_client(adapter)
        project = make_project([make_phase("p1", "Requirements", output="LONG REQUIREMENTS")])

        compacted = client.compact_context(project, project.phases[0])

        assert compacted == "COMPACT[Requirements]:reqs=ok;constraints=ok"
        assert "LONG REQUIREMENTS" in adapter.prompts[-1]


class TestSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ORCH_GENERATION_RETRIES", "2")
        monkeypatch.setenv("ORCH_RETRY_DELAY_SECONDS", "0.5")
        monkeypatch.setenv("ORCH_STEP_DELAY_SECONDS", "")
        monkeypatch.setenv("ORCH_COMPACT_CONTEXT", "true")
        settings = AutomationSettings.from_env()
        assert settings == AutomationSettings(
            retries=2, retry_delay_seconds=0.5, step_delay_seconds=0.0, compact_context=True
        )

    def test_defaults(self, monkeypatch):
        for key in (
            "ORCH_GENERATION_RETRIES",
            "ORCH_RETRY_DELAY_SECONDS",
            "ORCH_STEP_DELAY_SECONDS",
            "ORCH_COMPACT_CONTEXT",
        ):
            monkeypatch.delenv(key, raising=False)
        assert AutomationSettings.from_env() == AutomationSettings()
