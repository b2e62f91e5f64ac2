from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Dict, List

from .llm_base import LLMAdapter, LLMResponse

_TARGET_RE = re.compile(r"^## Target: (.+)$", flags=re.MULTILINE)


@dataclass
class MockAdapter(LLMAdapter):
    """Offline backend with deterministic replies keyed on the prompt kind."""

    scenario: str = "default"
    prompts: List[str] = field(default_factory=list)

    def complete(self, prompt: str, json_mode: bool = False) -> LLMResponse:
        self.prompts.append(prompt)
        target = self._target(prompt)
        if "(sprint_proposal)" in prompt:
            return self._json(self._proposal(target))
        if "(sprint_specification)" in prompt:
            return self._json(
                {
                    "technicalSpec": f"# {target} Technical Specification\n\nMock specification for {target}.",
                    "deliverables": [f"{target} design package", f"{target} verification notes"],
                }
            )
        if "(review_checklist)" in prompt:
            return self._json(
                {
                    "checklist": [
                        f"{target} output traces to every requirement",
                        f"{target} risks have owners",
                        f"{target} interfaces are fully specified",
                    ]
                }
            )
        if "context compression" in prompt:
            return LLMResponse(raw_text=f"COMPACT[{target}]:reqs=ok;constraints=ok", model="mock")
        return LLMResponse(raw_text=f"# {target}\n\nMock content for {target}.", model="mock")

    def _target(self, prompt: str) -> str:
        matches = _TARGET_RE.findall(prompt)
        return matches[-1].strip() if matches else "Document"

    def _json(self, payload: Dict) -> LLMResponse:
        return LLMResponse(raw_text=json.dumps(payload), model="mock")

    def _proposal(self, target: str) -> Dict:
        if self.scenario == "cycle":
            sprints = [
                {"name": "Thermal Design", "description": "Thermal model.", "dependencies": ["Structural Design"]},
                {"name": "Structural Design", "description": "Load paths.", "dependencies": ["Thermal Design"]},
            ]
        else:
            sprints = [
                {"name": "Detailed Component Design", "description": "Component-level design.", "dependencies": []},
                {
                    "name": "Design for Manufacturing and Assembly (DFMA)",
                    "description": "Manufacturability review.",
                    "dependencies": ["Detailed Component Design"],
                },
                {
                    "name": "Failure Modes and Effects Analysis (FMEA)",
                    "description": "Failure analysis.",
                    "dependencies": ["Detailed Component Design"],
                },
                {
                    "name": "Design Review Checklist",
                    "description": "Final review checklist.",
                    "dependencies": [
                        "Design for Manufacturing and Assembly (DFMA)",
                        "Failure Modes and Effects Analysis (FMEA)",
                    ],
                },
            ]
        return {
            "preliminarySpec": f"# {target} Preliminary Specification\n\nMock preliminary specification.",
            "sprints": sprints,
        }
