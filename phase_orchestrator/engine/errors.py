from __future__ import annotations

from typing import Sequence


class PhaseFatalError(Exception):
    """Ends processing of one phase for the current run."""


class GenerationError(PhaseFatalError):
    """The backend kept failing after the bounded retry was spent."""

    def __init__(self, step: str, attempts: int, cause: BaseException) -> None:
        super().__init__(f"{step} failed after {attempts} attempt(s): {cause}")
        self.step = step
        self.attempts = attempts
        self.cause = cause


class MalformedResponseError(PhaseFatalError):
    """A structured response could not be parsed into its expected shape."""

    def __init__(self, schema_name: str, detail: str) -> None:
        super().__init__(f"Malformed {schema_name} response: {detail}")
        self.schema_name = schema_name
        self.detail = detail


class DependencyGraphError(PhaseFatalError):
    """No sprint is ready while incomplete sprints remain."""

    def __init__(self, phase_name: str, blocked: Sequence[str]) -> None:
        names = ", ".join(blocked)
        super().__init__(
            f"Cycle or missing dependency in phase {phase_name!r}; cannot schedule: {names}"
        )
        self.phase_name = phase_name
        self.blocked = list(blocked)


class AutomationCancelled(Exception):
    """Raised at a checkpoint after cancellation was requested."""
