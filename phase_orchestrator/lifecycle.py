from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from phase_orchestrator.engine.models import (
    DesignReview,
    DevelopmentMode,
    Phase,
    PhaseKind,
    Project,
    Sprint,
    new_id,
)
from phase_orchestrator.utils.io import read_text

DEFAULT_TEMPLATE = Path(__file__).resolve().parent / "configs" / "lifecycle.yaml"


@dataclass
class DocumentTemplate:
    name: str
    description: str = ""


@dataclass
class PhaseTemplate:
    name: str
    description: str
    kind: PhaseKind
    tuning: Dict[str, Any] = field(default_factory=dict)
    review_required: bool = False
    documents: List[DocumentTemplate] = field(default_factory=list)


def load_lifecycle(path: Optional[Path] = None) -> List[PhaseTemplate]:
    raw = yaml.safe_load(read_text(path or DEFAULT_TEMPLATE)) or {}
    entries = raw.get("phases")
    if not isinstance(entries, list) or not entries:
        raise ValueError("Lifecycle template must define a non-empty 'phases' list.")

    templates: List[PhaseTemplate] = []
    seen = set()
    for entry in entries:
        name = str(entry.get("name", "")).strip()
        if not name:
            raise ValueError("Every lifecycle phase needs a name.")
        if name in seen:
            raise ValueError(f"Duplicate lifecycle phase: {name}")
        seen.add(name)
        kind = PhaseKind(entry.get("kind", PhaseKind.DIRECT.value))
        documents = [
            DocumentTemplate(name=str(doc["name"]), description=str(doc.get("description", "")))
            for doc in entry.get("documents") or []
        ]
        if kind == PhaseKind.DOCUMENT_SERIES and not documents:
            raise ValueError(f"Document-series phase {name!r} lists no documents.")
        if kind != PhaseKind.DOCUMENT_SERIES and documents:
            raise ValueError(f"Only document-series phases may list documents ({name!r}).")
        templates.append(
            PhaseTemplate(
                name=name,
                description=str(entry.get("description", "")),
                kind=kind,
                tuning=dict(entry.get("tuning") or {}),
                review_required=bool(entry.get("review_required", False)),
                documents=documents,
            )
        )
    return templates


def create_project(
    name: str,
    requirements: str = "",
    constraints: str = "",
    disciplines: Sequence[str] = (),
    description: str = "",
    development_mode: DevelopmentMode = DevelopmentMode.FULL,
    templates: Optional[Sequence[PhaseTemplate]] = None,
) -> Project:
    """New project with every phase and template document `not-started`."""
    phase_templates = list(templates) if templates is not None else load_lifecycle()
    phases = [
        Phase(
            id=new_id(),
            name=template.name,
            description=template.description,
            kind=template.kind,
            tuning_settings=dict(template.tuning),
            design_review=DesignReview(required=template.review_required),
            sprints=[
                Sprint(id=new_id(), name=doc.name, description=doc.description)
                for doc in template.documents
            ],
        )
        for template in phase_templates
    ]
    return Project(
        id=new_id(),
        name=name,
        description=description,
        disciplines=list(disciplines),
        requirements=requirements,
        constraints=constraints,
        development_mode=development_mode,
        phases=phases,
    )
