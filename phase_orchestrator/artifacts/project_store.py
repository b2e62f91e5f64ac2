from __future__ import annotations

import os
from pathlib import Path

from phase_orchestrator.engine.models import Project
from phase_orchestrator.utils.io import read_json, write_json


class JsonProjectStore:
    """Persists a project as one JSON document; every write replaces the file atomically."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Project:
        return Project.from_dict(read_json(self.path))

    def persist(self, project: Project) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        write_json(tmp_path, project.to_dict())
        os.replace(tmp_path, self.path)
