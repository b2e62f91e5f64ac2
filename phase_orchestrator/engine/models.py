from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from phase_orchestrator.utils.time import parse_utc, utc_isoformat, utc_now


class PhaseStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    IN_REVIEW = "in-review"
    COMPLETED = "completed"


class SprintStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class PhaseKind(str, Enum):
    """How a phase's output is produced; fixed by the lifecycle template."""

    DIRECT = "direct"
    DOCUMENT_SERIES = "document-series"
    DECOMPOSITIONAL = "decompositional"


class DevelopmentMode(str, Enum):
    FULL = "full"
    RAPID = "rapid"


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ChecklistItem:
    id: str
    text: str
    checked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "checked": self.checked}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistItem":
        return cls(id=data["id"], text=data["text"], checked=bool(data.get("checked", False)))


@dataclass
class DesignReview:
    required: bool = False
    checklist: List[ChecklistItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "required": self.required,
            "checklist": [item.to_dict() for item in self.checklist],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DesignReview":
        data = data or {}
        return cls(
            required=bool(data.get("required", False)),
            checklist=[ChecklistItem.from_dict(item) for item in data.get("checklist", [])],
        )


@dataclass
class Sprint:
    id: str
    name: str
    description: str = ""
    status: SprintStatus = SprintStatus.NOT_STARTED
    dependencies: List[str] = field(default_factory=list)
    output: str = ""
    deliverables: List[str] = field(default_factory=list)
    # 1-based completion position within a decompositional phase.
    completed_order: Optional[int] = None

    @property
    def is_completed(self) -> bool:
        return self.status == SprintStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "dependencies": list(self.dependencies),
            "output": self.output,
            "deliverables": list(self.deliverables),
            "completedOrder": self.completed_order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sprint":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            status=SprintStatus(data.get("status", SprintStatus.NOT_STARTED.value)),
            dependencies=list(data.get("dependencies", [])),
            output=data.get("output") or "",
            deliverables=list(data.get("deliverables", [])),
            completed_order=data.get("completedOrder"),
        )


@dataclass
class Phase:
    id: str
    name: str
    description: str = ""
    kind: PhaseKind = PhaseKind.DIRECT
    status: PhaseStatus = PhaseStatus.NOT_STARTED
    sprints: List[Sprint] = field(default_factory=list)
    tuning_settings: Dict[str, Any] = field(default_factory=dict)
    design_review: DesignReview = field(default_factory=DesignReview)
    output: str = ""

    @property
    def is_completed(self) -> bool:
        return self.status == PhaseStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind.value,
            "status": self.status.value,
            "sprints": [sprint.to_dict() for sprint in self.sprints],
            "tuningSettings": dict(self.tuning_settings),
            "designReview": self.design_review.to_dict(),
            "output": self.output,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Phase":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            kind=PhaseKind(data.get("kind", PhaseKind.DIRECT.value)),
            status=PhaseStatus(data.get("status", PhaseStatus.NOT_STARTED.value)),
            sprints=[Sprint.from_dict(item) for item in data.get("sprints", [])],
            tuning_settings=dict(data.get("tuningSettings", {})),
            design_review=DesignReview.from_dict(data.get("designReview")),
            output=data.get("output") or "",
        )


@dataclass
class MetaDocument:
    id: str
    name: str
    content: str
    type: str
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "type": self.type,
            "createdAt": utc_isoformat(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetaDocument":
        return cls(
            id=data["id"],
            name=data["name"],
            content=data.get("content", ""),
            type=data.get("type", "document"),
            created_at=parse_utc(data.get("createdAt")),
        )


@dataclass
class Project:
    id: str
    name: str
    phases: List[Phase]
    description: str = ""
    disciplines: List[str] = field(default_factory=list)
    requirements: str = ""
    constraints: str = ""
    development_mode: DevelopmentMode = DevelopmentMode.FULL
    compacted_context: str = ""
    meta_documents: List[MetaDocument] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)

    def phase(self, phase_id: str) -> Phase:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        raise KeyError(f"Project {self.name!r} has no phase {phase_id!r}")

    def phase_index(self, phase_id: str) -> int:
        for index, phase in enumerate(self.phases):
            if phase.id == phase_id:
                return index
        raise KeyError(f"Project {self.name!r} has no phase {phase_id!r}")

    @property
    def active_phase(self) -> Optional[Phase]:
        """First phase in order that is not completed."""
        return next((phase for phase in self.phases if not phase.is_completed), None)

    @property
    def is_complete(self) -> bool:
        return all(phase.is_completed for phase in self.phases)

    def add_meta_document(self, document: MetaDocument) -> None:
        self.meta_documents.append(document)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "disciplines": list(self.disciplines),
            "requirements": self.requirements,
            "constraints": self.constraints,
            "developmentMode": self.development_mode.value,
            "compactedContext": self.compacted_context,
            "metaDocuments": [doc.to_dict() for doc in self.meta_documents],
            "createdAt": utc_isoformat(self.created_at),
            "phases": [phase.to_dict() for phase in self.phases],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            disciplines=list(data.get("disciplines", [])),
            requirements=data.get("requirements", ""),
            constraints=data.get("constraints", ""),
            development_mode=DevelopmentMode(data.get("developmentMode", DevelopmentMode.FULL.value)),
            compacted_context=data.get("compactedContext") or "",
            meta_documents=[MetaDocument.from_dict(doc) for doc in data.get("metaDocuments", [])],
            created_at=parse_utc(data.get("createdAt")),
            phases=[Phase.from_dict(item) for item in data.get("phases", [])],
        )
