from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Set

from phase_orchestrator.engine.context import SECTION_SEPARATOR
from phase_orchestrator.engine.generation import GenerationClient
from phase_orchestrator.engine.models import (
    Phase,
    PhaseKind,
    PhaseStatus,
    Project,
    Sprint,
    SprintStatus,
)
from phase_orchestrator.engine.runtime import ExecutionEnvironment
from phase_orchestrator.engine.scheduler import next_ready_batch, resolve_proposed_sprints

logger = logging.getLogger(__name__)


def merge_documents(sprints: List[Sprint]) -> str:
    return SECTION_SEPARATOR.join(
        f"## {sprint.name}\n\n{sprint.output or 'Not generated.'}" for sprint in sprints
    )


def completed_in_order(sprints: List[Sprint]) -> List[Sprint]:
    """Completed sprints sorted by when they finished.

    Sprints without a recorded position keep their list order, after the rest.
    """
    completed = [sprint for sprint in sprints if sprint.is_completed]
    return sorted(
        completed, key=lambda sprint: (sprint.completed_order is None, sprint.completed_order or 0)
    )


def append_sprint_output(cumulative: str, sprint: Sprint) -> str:
    labelled = f"### Completed Sprint: {sprint.name}\n\n{sprint.output}"
    if not cumulative:
        return labelled
    return f"{cumulative}{SECTION_SEPARATOR}{labelled}"


class PhaseStrategy:
    """Produces a phase's output and leaves the phase `in-progress`.

    Completion belongs to the review gate. Strategies persist after every
    mutation and check for cancellation before every generation call they
    start, so a pause never loses finished work.
    """

    kind: PhaseKind

    def __init__(
        self,
        client: GenerationClient,
        step_delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.step_delay_seconds = step_delay_seconds
        self._sleep = sleep

    def execute(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        raise NotImplementedError

    def _begin(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        if phase.status == PhaseStatus.NOT_STARTED:
            phase.status = PhaseStatus.IN_PROGRESS
            env.persist(project)

    def _pace(self) -> None:
        if self.step_delay_seconds > 0:
            self._sleep(self.step_delay_seconds)


class DirectStrategy(PhaseStrategy):
    kind = PhaseKind.DIRECT

    def execute(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        if phase.status == PhaseStatus.IN_PROGRESS and phase.output:
            # Produced by an earlier run that stopped before the review gate.
            return
        self._begin(project, phase, env)
        env.listener.message(f"Generating documentation for {phase.name}...")
        phase.output = self.client.generate_phase_output(project, phase)
        phase.status = PhaseStatus.IN_PROGRESS
        env.persist(project)


class DocumentSeriesStrategy(PhaseStrategy):
    kind = PhaseKind.DOCUMENT_SERIES

    def execute(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        self._begin(project, phase, env)
        for sprint in phase.sprints:
            if sprint.is_completed:
                continue
            env.checkpoint()
            env.listener.message(f"Generating document: {sprint.name}...")
            sprint.status = SprintStatus.IN_PROGRESS
            env.persist(project)

            sprint.output = self.client.generate_document(project, phase, sprint)
            sprint.status = SprintStatus.COMPLETED
            env.persist(project)
            self._pace()

        phase.output = merge_documents(phase.sprints)
        phase.status = PhaseStatus.IN_PROGRESS
        env.persist(project)


class DecompositionalStrategy(PhaseStrategy):
    kind = PhaseKind.DECOMPOSITIONAL

    def execute(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        self._begin(project, phase, env)
        if not phase.sprints:
            self._propose(project, phase, env)

        completed = completed_in_order(phase.sprints)
        completed_ids: Set[str] = {sprint.id for sprint in completed}

        while len(completed_ids) < len(phase.sprints):
            batch = next_ready_batch(phase.name, phase.sprints, completed_ids)
            logger.debug(
                "Phase %s ready batch: %s", phase.name, [sprint.name for sprint in batch]
            )
            for sprint in batch:
                env.checkpoint()
                env.listener.message(f"Generating sprint: {sprint.name}...")
                sprint.status = SprintStatus.IN_PROGRESS
                env.persist(project)

                result = self.client.generate_sprint_specification(project, phase, sprint, completed)
                sprint.output = result.technical_spec
                sprint.deliverables = result.deliverables
                sprint.completed_order = len(completed) + 1
                sprint.status = SprintStatus.COMPLETED
                phase.output = append_sprint_output(phase.output, sprint)
                env.persist(project)

                completed.append(sprint)
                completed_ids.add(sprint.id)
                self._pace()

        phase.status = PhaseStatus.IN_PROGRESS
        env.persist(project)

    def _propose(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        env.checkpoint()
        env.listener.message(f"Generating initial design spec & sprints for {phase.name}...")
        proposal = self.client.propose_sprints(project, phase)
        phase.output = proposal.preliminary_spec
        phase.sprints = resolve_proposed_sprints(phase.id, proposal.sprints)
        env.persist(project)
        env.listener.message(f"{phase.name}: {len(phase.sprints)} sprint(s) proposed.")


def build_strategies(
    client: GenerationClient,
    step_delay_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[PhaseKind, PhaseStrategy]:
    return {
        strategy_cls.kind: strategy_cls(client, step_delay_seconds, sleep)
        for strategy_cls in (DirectStrategy, DocumentSeriesStrategy, DecompositionalStrategy)
    }
