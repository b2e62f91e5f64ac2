from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, Set

from phase_orchestrator.engine.errors import AutomationCancelled
from phase_orchestrator.engine.models import Project

logger = logging.getLogger(__name__)


class AutomationStatus(str, Enum):
    COMPLETE = "complete"
    PAUSED = "paused"
    ERROR = "error"


class CancellationToken:
    """Cooperative cancellation flag, safe to set from another thread or a signal handler."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def request_cancellation(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AutomationCancelled()


class Persister(Protocol):
    def persist(self, project: Project) -> None:
        ...


class NullPersister:
    def persist(self, project: Project) -> None:
        return None


class ProgressListener(Protocol):
    def phase_started(self, phase_id: str) -> None:
        ...

    def phase_completed(self, phase_id: str) -> None:
        ...

    def phase_failed(self, phase_id: str, error: BaseException) -> None:
        ...

    def message(self, text: str) -> None:
        ...


class LoggingProgressListener:
    def phase_started(self, phase_id: str) -> None:
        logger.info("[automation] phase started: %s", phase_id)

    def phase_completed(self, phase_id: str) -> None:
        logger.info("[automation] phase completed: %s", phase_id)

    def phase_failed(self, phase_id: str, error: BaseException) -> None:
        logger.error("[automation] phase failed: %s: %s", phase_id, error)

    def message(self, text: str) -> None:
        logger.info("[automation] %s", text)


@dataclass
class AutomationRun:
    token: CancellationToken = field(default_factory=CancellationToken)
    failed_phase_ids: Set[str] = field(default_factory=set)
    currently_automating_phase_id: Optional[str] = None
    status: Optional[AutomationStatus] = None

    @property
    def cancellation_requested(self) -> bool:
        return self.token.cancelled


@dataclass
class ExecutionEnvironment:
    """Collaborators shared by the strategies and the review gate during one run."""

    persister: Persister
    listener: ProgressListener
    token: CancellationToken

    def persist(self, project: Project) -> None:
        self.persister.persist(project)

    def checkpoint(self) -> None:
        self.token.raise_if_cancelled()
