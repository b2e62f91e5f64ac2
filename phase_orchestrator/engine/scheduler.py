from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Set

from phase_orchestrator.engine.errors import DependencyGraphError
from phase_orchestrator.engine.models import Sprint, SprintStatus

logger = logging.getLogger(__name__)


@dataclass
class ProposedSprint:
    name: str
    description: str = ""
    dependencies: List[str] = field(default_factory=list)


def resolve_proposed_sprints(phase_id: str, proposals: Sequence[ProposedSprint]) -> List[Sprint]:
    """Give proposed sprints stable ids and turn dependency names into ids.

    Ids are assigned in proposal order as ``<phase_id>-<n>``. Names that do not
    match any proposed sprint are dropped with a warning.
    """
    name_to_id: Dict[str, str] = {}
    sprints: List[Sprint] = []
    for index, proposal in enumerate(proposals, start=1):
        sprint_id = f"{phase_id}-{index}"
        name_to_id.setdefault(proposal.name, sprint_id)
        sprints.append(
            Sprint(
                id=sprint_id,
                name=proposal.name,
                description=proposal.description,
                status=SprintStatus.NOT_STARTED,
            )
        )

    for sprint, proposal in zip(sprints, proposals):
        resolved: List[str] = []
        for dep_name in proposal.dependencies:
            dep_id = name_to_id.get(dep_name)
            if dep_id is None:
                logger.warning(
                    "Dropping unresolved dependency %r of sprint %r", dep_name, sprint.name
                )
                continue
            if dep_id not in resolved:
                resolved.append(dep_id)
        sprint.dependencies = resolved
    return sprints


def ready_sprints(sprints: Iterable[Sprint], completed_ids: Set[str]) -> List[Sprint]:
    """Incomplete sprints whose dependencies are all completed, in list order."""
    return [
        sprint
        for sprint in sprints
        if not sprint.is_completed and all(dep in completed_ids for dep in sprint.dependencies)
    ]


def next_ready_batch(phase_name: str, sprints: Sequence[Sprint], completed_ids: Set[str]) -> List[Sprint]:
    batch = ready_sprints(sprints, completed_ids)
    if not batch:
        blocked = [sprint.name for sprint in sprints if not sprint.is_completed]
        raise DependencyGraphError(phase_name, blocked)
    return batch


def execution_batches(phase_name: str, sprints: Sequence[Sprint]) -> List[List[str]]:
    """Dry run of the schedule: sprint ids grouped by ready set.

    Sprints already completed are treated as done. Raises DependencyGraphError
    exactly where a real run would stall.
    """
    completed: Set[str] = {sprint.id for sprint in sprints if sprint.is_completed}
    pending = [sprint for sprint in sprints if not sprint.is_completed]
    batches: List[List[str]] = []
    while pending:
        batch = [
            sprint for sprint in pending if all(dep in completed for dep in sprint.dependencies)
        ]
        if not batch:
            raise DependencyGraphError(phase_name, [sprint.name for sprint in pending])
        batches.append([sprint.id for sprint in batch])
        completed.update(sprint.id for sprint in batch)
        pending = [sprint for sprint in pending if sprint.id not in completed]
    return batches
