from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from phase_orchestrator.adapters.llm_base import LLMResponse
from phase_orchestrator.adapters.mock_adapter import MockAdapter
from phase_orchestrator.engine.generation import GenerationClient
from phase_orchestrator.engine.models import (
    DesignReview,
    Phase,
    PhaseKind,
    Project,
    Sprint,
)
from phase_orchestrator.engine.runtime import CancellationToken, ExecutionEnvironment
from phase_orchestrator.engine.settings import AutomationSettings

_TARGET_RE = re.compile(r"^## Target: (.+)$", flags=re.MULTILINE)


def target_of(prompt: str) -> str:
    return _TARGET_RE.findall(prompt)[-1].strip()


@dataclass
class GraphAdapter(MockAdapter):
    """MockAdapter whose sprint proposal is supplied by the test."""

    graph: List[Dict] = field(default_factory=list)
    preliminary_spec: str = "PRELIMINARY SPEC"

    def _proposal(self, target: str) -> Dict:
        return {"preliminarySpec": self.preliminary_spec, "sprints": self.graph}


@dataclass
class FailingAdapter(MockAdapter):
    """Raises for chosen targets; `failures` counts down per target when set."""

    fail_targets: Set[str] = field(default_factory=set)
    failures: Dict[str, int] = field(default_factory=dict)
    raw_overrides: Dict[str, str] = field(default_factory=dict)
    calls: List[str] = field(default_factory=list)

    def complete(self, prompt: str, json_mode: bool = False) -> LLMResponse:
        target = target_of(prompt)
        self.calls.append(target)
        if target in self.fail_targets:
            raise ConnectionError(f"backend unavailable for {target}")
        if self.failures.get(target, 0) > 0:
            self.failures[target] -= 1
            raise TimeoutError(f"timeout for {target}")
        if target in self.raw_overrides:
            self.prompts.append(prompt)
            return LLMResponse(raw_text=self.raw_overrides[target])
        return super().complete(prompt, json_mode)


class RecordingListener:
    def __init__(self) -> None:
        self.events: List[Tuple[str, str]] = []

    def phase_started(self, phase_id: str) -> None:
        self.events.append(("started", phase_id))

    def phase_completed(self, phase_id: str) -> None:
        self.events.append(("completed", phase_id))

    def phase_failed(self, phase_id: str, error: BaseException) -> None:
        self.events.append(("failed", phase_id))

    def message(self, text: str) -> None:
        self.events.append(("message", text))

    @property
    def messages(self) -> List[str]:
        return [text for kind, text in self.events if kind == "message"]


class RecordingPersister:
    """Keeps a deep copy of the project at every persist call."""

    def __init__(self, on_persist=None) -> None:
        self.snapshots: List[Project] = []
        self.on_persist = on_persist

    def persist(self, project: Project) -> None:
        self.snapshots.append(copy.deepcopy(project))
        if self.on_persist is not None:
            self.on_persist(project)


def make_phase(
    phase_id: str,
    name: str,
    kind: PhaseKind = PhaseKind.DIRECT,
    documents: Sequence[str] = (),
    review: bool = False,
    output: str = "",
) -> Phase:
    return Phase(
        id=phase_id,
        name=name,
        description=f"{name} phase",
        kind=kind,
        sprints=[
            Sprint(id=f"{phase_id}-doc-{index}", name=doc, description=f"{doc} document")
            for index, doc in enumerate(documents, start=1)
        ],
        tuning_settings={"depth": 80},
        design_review=DesignReview(required=review),
        output=output,
    )


def make_project(phases: Sequence[Phase], compacted_context: str = "") -> Project:
    return Project(
        id="project-1",
        name="CubeSat Comms",
        description="Small satellite",
        disciplines=["Aerospace Engineering", "Electrical Engineering"],
        requirements="Provide S-band downlink at 2 Mbps.",
        constraints="Total mass under 10 kg.",
        phases=list(phases),
        compacted_context=compacted_context,
    )


def make_client(adapter, **settings) -> GenerationClient:
    values = {"retries": 1, "retry_delay_seconds": 0.0}
    values.update(settings)
    return GenerationClient(adapter, settings=AutomationSettings(**values), sleep=lambda _: None)


def make_env(
    persister: Optional[RecordingPersister] = None,
    listener: Optional[RecordingListener] = None,
    token: Optional[CancellationToken] = None,
) -> ExecutionEnvironment:
    return ExecutionEnvironment(
        persister=persister or RecordingPersister(),
        listener=listener or RecordingListener(),
        token=token or CancellationToken(),
    )


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def persister() -> RecordingPersister:
    return RecordingPersister()
