from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from phase_orchestrator.engine.errors import AutomationCancelled
from phase_orchestrator.engine.generation import GenerationClient
from phase_orchestrator.engine.models import Phase, PhaseKind, Project
from phase_orchestrator.engine.review import AutoAdvanceReviewGate, ReviewGate
from phase_orchestrator.engine.runtime import (
    AutomationRun,
    AutomationStatus,
    CancellationToken,
    ExecutionEnvironment,
    LoggingProgressListener,
    NullPersister,
    Persister,
    ProgressListener,
)
from phase_orchestrator.engine.settings import AutomationSettings
from phase_orchestrator.engine.strategies import PhaseStrategy, build_strategies

logger = logging.getLogger(__name__)


class PhaseAutomationOrchestrator:
    """Drives every incomplete phase of a project through generation and review.

    The phase to work on is re-derived from project state on every iteration,
    so a paused or crashed run resumes at the first incomplete phase. A phase
    that raises is skipped for the rest of the run and left incomplete; it is
    attempted again by the next run.
    """

    def __init__(
        self,
        client: GenerationClient,
        persister: Optional[Persister] = None,
        listener: Optional[ProgressListener] = None,
        review_gate: Optional[ReviewGate] = None,
        settings: Optional[AutomationSettings] = None,
        strategies: Optional[Dict[PhaseKind, PhaseStrategy]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.settings = settings or client.settings
        self.persister = persister or NullPersister()
        self.listener = listener or LoggingProgressListener()
        self.review_gate = review_gate or AutoAdvanceReviewGate(client)
        self.strategies = strategies or build_strategies(
            client, self.settings.step_delay_seconds, sleep
        )
        self.current_run: Optional[AutomationRun] = None
        self._lock = threading.Lock()
        self._cancel_pending = False

    def request_cancellation(self) -> None:
        """Pause the active run, or the next one when no run is active."""
        with self._lock:
            if self.current_run is not None:
                self.current_run.token.request_cancellation()
            else:
                self._cancel_pending = True

    def run_automation(
        self, project: Project, token: Optional[CancellationToken] = None
    ) -> AutomationStatus:
        run = AutomationRun(token=token or CancellationToken())
        with self._lock:
            self.current_run = run
            if self._cancel_pending:
                run.token.request_cancellation()
                self._cancel_pending = False
        env = ExecutionEnvironment(persister=self.persister, listener=self.listener, token=run.token)
        self.listener.message(f"Project automation started for {project.name}.")
        try:
            run.status = self._loop(project, run, env)
        finally:
            run.currently_automating_phase_id = None
            with self._lock:
                self.current_run = None
        self._report_summary(run)
        return run.status

    def _loop(
        self, project: Project, run: AutomationRun, env: ExecutionEnvironment
    ) -> AutomationStatus:
        while True:
            phase = self._next_phase(project, run)
            if phase is None:
                return AutomationStatus.ERROR if run.failed_phase_ids else AutomationStatus.COMPLETE
            if run.cancellation_requested:
                return AutomationStatus.PAUSED

            run.currently_automating_phase_id = phase.id
            self.listener.phase_started(phase.id)
            self.listener.message(f"Automating phase: {phase.name}...")
            try:
                self.execute_phase(project, phase, env)
                self.review_gate.apply(project, phase, env)
            except AutomationCancelled:
                return AutomationStatus.PAUSED
            except Exception as exc:
                logger.exception("Automation failed on phase %s", phase.name)
                run.failed_phase_ids.add(phase.id)
                self.listener.phase_failed(phase.id, exc)
                self.listener.message(
                    f'Skipping phase "{phase.name}" due to an error. It can be completed manually.'
                )
                continue
            self.listener.phase_completed(phase.id)

    def _next_phase(self, project: Project, run: AutomationRun) -> Optional[Phase]:
        for phase in project.phases:
            if not phase.is_completed and phase.id not in run.failed_phase_ids:
                return phase
        return None

    def execute_phase(self, project: Project, phase: Phase, env: ExecutionEnvironment) -> None:
        strategy = self.strategies[phase.kind]
        strategy.execute(project, phase, env)
        if self._should_compact(project, phase):
            env.checkpoint()
            env.listener.message(f"Compacting {phase.name} output into project context...")
            project.compacted_context = self.client.compact_context(project, phase)
            env.persist(project)

    def _should_compact(self, project: Project, phase: Phase) -> bool:
        return (
            self.settings.compact_context
            and not project.compacted_context
            and bool(phase.output.strip())
            and project.phases[0].id == phase.id
        )

    def _report_summary(self, run: AutomationRun) -> None:
        if run.status == AutomationStatus.PAUSED:
            self.listener.message("Automation paused by user.")
        elif run.status == AutomationStatus.ERROR:
            self.listener.message(
                f"Completed with {len(run.failed_phase_ids)} phase(s) skipped due to errors."
            )
        else:
            self.listener.message("All phases complete.")
