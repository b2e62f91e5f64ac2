from __future__ import annotations

from typing import List

from phase_orchestrator.engine.models import Phase, Project, Sprint

SECTION_SEPARATOR = "\n\n---\n\n"
COMPACTED_HEADER = "## COMPACTED PROJECT CONTEXT (from Requirements Phase):"


def build_base_context(project: Project) -> str:
    disciplines = ", ".join(project.disciplines) if project.disciplines else "unspecified"
    return (
        f"## Project: {project.name}\n"
        f"### Development Mode: {project.development_mode.value}\n"
        f"### Disciplines: {disciplines}\n"
        f"### Requirements:\n{project.requirements}\n"
        f"### Constraints:\n{project.constraints}"
    )


def _contributes(phase: Phase) -> bool:
    return phase.is_completed and bool(phase.output.strip())


def build_prior_phase_context(project: Project, up_to_phase_id: str) -> str:
    """Context carried over from the phases before up_to_phase_id.

    A compacted context stands in for the first phase's raw output. Phases that
    are not completed, or have no output, never contribute.
    """
    target_index = project.phase_index(up_to_phase_id)
    if target_index < 1:
        return ""

    sections: List[str] = []
    start = 0
    if project.compacted_context:
        sections.append(f"{COMPACTED_HEADER}\n{project.compacted_context}")
        start = 1

    for phase in project.phases[start:target_index]:
        if _contributes(phase):
            sections.append(f"## Context from Previous Phase ({phase.name}):\n{phase.output}")

    return SECTION_SEPARATOR.join(sections)


def build_context(project: Project, up_to_phase_id: str) -> str:
    base = build_base_context(project)
    prior = build_prior_phase_context(project, up_to_phase_id)
    if not prior:
        return base
    return f"{base}{SECTION_SEPARATOR}{prior}"


def build_document_context(phase: Phase, sprint: Sprint) -> str:
    """Outputs of the documents declared before sprint, in declared order."""
    sections: List[str] = []
    for previous in phase.sprints:
        if previous.id == sprint.id:
            break
        if previous.output:
            sections.append(f"## Context from Previous Document ({previous.name}):\n{previous.output}")
    return SECTION_SEPARATOR.join(sections)


def build_sprint_context(cumulative_output: str, completed: List[Sprint]) -> str:
    """Cumulative phase output followed by completed sprints in completion order."""
    parts = [cumulative_output]
    parts.extend(f"### Completed Sprint: {sprint.name}\n\n{sprint.output}" for sprint in completed)
    return SECTION_SEPARATOR.join(part for part in parts if part)
