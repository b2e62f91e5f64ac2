from __future__ import annotations

from typing import List, Protocol

from phase_orchestrator.engine.generation import GenerationClient
from phase_orchestrator.engine.models import (
    ChecklistItem,
    MetaDocument,
    Phase,
    PhaseStatus,
    Project,
)
from phase_orchestrator.engine.runtime import ExecutionEnvironment


class ReviewGate(Protocol):
    """Finalizes a phase after execution. The only writer of `in-review`."""

    def apply(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        ...


def checklist_markdown(phase: Phase) -> str:
    lines = [f"# Design Review Checklist: {phase.name}", ""]
    lines.extend(f"- [ ] {item.text}" for item in phase.design_review.checklist)
    return "\n".join(lines) + "\n"


class AutoAdvanceReviewGate:
    """Generates the checklist, records `in-review`, then completes the phase.

    Review is informational in automated runs. A blocking human-approval gate
    would stop after the `in-review` write instead of advancing.
    """

    def __init__(self, client: GenerationClient) -> None:
        self.client = client

    def apply(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        if phase.design_review.required and phase.output.strip():
            env.checkpoint()
            env.listener.message(f"Generating design review checklist for {phase.name}...")
            texts = self.client.generate_review_checklist(project, phase)
            phase.design_review.checklist = self._checklist(phase, texts)
            phase.status = PhaseStatus.IN_REVIEW
            project.add_meta_document(
                MetaDocument(
                    id=f"meta-checklist-{phase.id}-{len(project.meta_documents) + 1}",
                    name=f"{phase.name} Design Review Checklist",
                    content=checklist_markdown(phase),
                    type="checklist",
                )
            )
            env.persist(project)
            env.listener.message("Design review generated. Auto-completing...")

        phase.status = PhaseStatus.COMPLETED
        env.persist(project)

    def _checklist(self, phase: Phase, texts: List[str]) -> List[ChecklistItem]:
        return [
            ChecklistItem(id=f"{phase.id}-check-{index}", text=text)
            for index, text in enumerate(texts, start=1)
        ]
