from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import yaml
from jsonschema import ValidationError, validate

from phase_orchestrator.adapters.llm_base import LLMAdapter, LLMResponse
from phase_orchestrator.engine.context import (
    SECTION_SEPARATOR,
    build_base_context,
    build_context,
    build_document_context,
    build_sprint_context,
)
from phase_orchestrator.engine.errors import GenerationError, MalformedResponseError
from phase_orchestrator.engine.models import DevelopmentMode, Phase, Project, Sprint
from phase_orchestrator.engine.scheduler import ProposedSprint
from phase_orchestrator.engine.settings import AutomationSettings
from phase_orchestrator.gates.parsers import extract_json_object
from phase_orchestrator.utils.io import read_text
from phase_orchestrator.utils.retry import with_retry

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parents[1]

MODE_INSTRUCTIONS = {
    DevelopmentMode.FULL: (
        "IMPORTANT: Your output must be exceptionally verbose, detailed, and comprehensive. "
        "Provide deep specifications and thorough explanations."
    ),
    DevelopmentMode.RAPID: (
        "IMPORTANT: Respond in a brief, accurate manner using concise technical language. "
        "Omit lengthy explanations."
    ),
}


@dataclass
class SprintProposal:
    preliminary_spec: str
    sprints: List[ProposedSprint]


@dataclass
class SprintSpecification:
    technical_spec: str
    deliverables: List[str]


class GenerationClient:
    """Turns project state into prompts and model replies into typed results.

    Every backend call gets one bounded retry; structured replies are checked
    against the JSON Schemas in ``schemas/`` and are never retried.
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        settings: Optional[AutomationSettings] = None,
        base_dir: Optional[Path] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.adapter = adapter
        self.settings = settings or AutomationSettings()
        self.base_dir = base_dir or PACKAGE_DIR
        self.prompts_dir = self.base_dir / "configs" / "prompts"
        self.schemas_dir = self.base_dir / "schemas"
        self._sleep = sleep
        self._schemas: Dict[str, Dict] = {}
        self._document_prompts: Optional[Dict[str, Dict[str, str]]] = None

    # -- generic contract -------------------------------------------------

    def generate(self, prompt_name: str, payload: str, replacements: Dict[str, str]) -> str:
        prompt = self._render_prompt(prompt_name, payload, replacements)
        response = self._complete(prompt_name, prompt, json_mode=False)
        return response.raw_text.strip()

    def generate_structured(
        self,
        prompt_name: str,
        payload: str,
        replacements: Dict[str, str],
        schema_name: str,
    ) -> Dict:
        prompt = self._render_prompt(prompt_name, payload, replacements)
        response = self._complete(prompt_name, prompt, json_mode=True)
        schema = self._load_schema(schema_name)
        try:
            parsed = extract_json_object(response.raw_text, schema.get("required", []))
            validate(instance=parsed, schema=schema)
        except ValidationError as exc:
            raise MalformedResponseError(schema_name, exc.message) from exc
        except ValueError as exc:
            raise MalformedResponseError(schema_name, str(exc)) from exc
        return parsed

    # -- phase and sprint generation -------------------------------------

    def generate_phase_output(self, project: Project, phase: Phase) -> str:
        payload = (
            f"{build_context(project, phase.id)}{SECTION_SEPARATOR}"
            f"## Target: {phase.name}\n"
            f"## Current Phase to Generate: {phase.name}\n"
            f"Description: {phase.description}\n\n"
            f"## Tuning Parameters:\n{json.dumps(phase.tuning_settings, sort_keys=True)}"
        )
        return self.generate("standard_phase", payload, self._replacements(project, phase))

    def generate_document(self, project: Project, phase: Phase, sprint: Sprint) -> str:
        sections = [build_context(project, phase.id)]
        previous = build_document_context(phase, sprint)
        if previous:
            sections.append(previous)
        sections.append(
            f"## Target: {sprint.name}\n"
            f"## Document to Generate: {sprint.name}\n"
            f"Description: {sprint.description}\n\n"
            f"## Tuning Parameters:\n{json.dumps(phase.tuning_settings, sort_keys=True)}"
        )
        replacements = self._replacements(project, phase, sprint)
        replacements["DOCUMENT_INSTRUCTION"] = self.document_instruction(phase, sprint)
        return self.generate("sub_document", SECTION_SEPARATOR.join(sections), replacements)

    def propose_sprints(self, project: Project, phase: Phase) -> SprintProposal:
        payload = (
            f"{build_context(project, phase.id)}{SECTION_SEPARATOR}"
            f"## Target: {phase.name}\n"
            f"Description: {phase.description}\n\n"
            f"## Tuning Parameters:\n{json.dumps(phase.tuning_settings, sort_keys=True)}"
        )
        parsed = self.generate_structured(
            "sprint_proposal",
            payload,
            self._replacements(project, phase),
            "sprint_proposal.schema.json",
        )
        proposals = [
            ProposedSprint(
                name=item["name"].strip(),
                description=item.get("description", ""),
                dependencies=[name.strip() for name in item.get("dependencies", [])],
            )
            for item in parsed["sprints"]
        ]
        return SprintProposal(preliminary_spec=parsed["preliminarySpec"], sprints=proposals)

    def generate_sprint_specification(
        self,
        project: Project,
        phase: Phase,
        sprint: Sprint,
        completed: Sequence[Sprint],
    ) -> SprintSpecification:
        payload = (
            f"## Context:\n{build_sprint_context(phase.output, list(completed))}"
            f"{SECTION_SEPARATOR}"
            f"## Target: {sprint.name}\n"
            f"## Current Sprint: {sprint.name}\n"
            f"Description: {sprint.description}\n\n"
            f"## Tuning Parameters:\n{json.dumps(phase.tuning_settings, sort_keys=True)}"
        )
        replacements = self._replacements(project, phase, sprint)
        replacements["ROLE_INSTRUCTION"] = self.sprint_role(project, sprint)
        parsed = self.generate_structured(
            "sprint_specification",
            payload,
            replacements,
            "sprint_specification.schema.json",
        )
        return SprintSpecification(
            technical_spec=parsed["technicalSpec"],
            deliverables=[item for item in parsed["deliverables"] if item.strip()],
        )

    def generate_review_checklist(self, project: Project, phase: Phase) -> List[str]:
        payload = (
            f"## Target: {phase.name}\n"
            f"## Engineering Document for Review:\n\n{phase.output}"
        )
        parsed = self.generate_structured(
            "review_checklist",
            payload,
            self._replacements(project, phase),
            "review_checklist.schema.json",
        )
        items = [item.strip() for item in parsed["checklist"] if item.strip()]
        if not items:
            raise MalformedResponseError(
                "review_checklist.schema.json", "checklist has no non-blank items"
            )
        return items

    def compact_context(self, project: Project, phase: Phase) -> str:
        payload = (
            f"{build_base_context(project)}{SECTION_SEPARATOR}"
            f"## Target: {phase.name}\n"
            f"## {phase.name} Phase Documentation:\n\n{phase.output}"
        )
        return self.generate("compact_context", payload, self._replacements(project, phase))

    # -- prompt helpers ---------------------------------------------------

    def document_instruction(self, phase: Phase, sprint: Sprint) -> str:
        if self._document_prompts is None:
            path = self.base_dir / "configs" / "document_prompts.yaml"
            self._document_prompts = yaml.safe_load(read_text(path)) or {}
        instruction = (self._document_prompts.get(phase.name) or {}).get(sprint.name)
        if instruction:
            return instruction.strip()
        return f'Generate the document titled "{sprint.name}" with the following objective: {sprint.description}'

    def sprint_role(self, project: Project, sprint: Sprint) -> str:
        disciplines = self._disciplines(project)
        lowered = sprint.name.lower()
        if "fmea" in lowered:
            return (
                f"You are an expert AI reliability engineer with deep expertise in {disciplines}. "
                "Your task is to generate a formal Failure Modes and Effects Analysis (FMEA)."
            )
        if "dfma" in lowered:
            return (
                f"You are an expert AI manufacturing engineer with deep expertise in {disciplines}. "
                "Your task is to generate a formal Design for Manufacturing and Assembly (DFMA) analysis."
            )
        return (
            f"You are an expert AI engineering assistant with deep expertise in {disciplines}. "
            "Your task is to generate a detailed technical specification."
        )

    def _replacements(
        self, project: Project, phase: Phase, sprint: Optional[Sprint] = None
    ) -> Dict[str, str]:
        return {
            "DISCIPLINES": self._disciplines(project),
            "PHASE_NAME": phase.name,
            "SPRINT_NAME": sprint.name if sprint else "",
            "MODE_INSTRUCTION": MODE_INSTRUCTIONS[project.development_mode],
        }

    def _disciplines(self, project: Project) -> str:
        return ", ".join(project.disciplines) if project.disciplines else "general engineering"

    def _render_prompt(self, prompt_name: str, payload: str, replacements: Dict[str, str]) -> str:
        template = read_text(self.prompts_dir / f"{prompt_name}.md")
        for key, value in replacements.items():
            template = template.replace("{{" + key + "}}", value)
        return f"{template.strip()}\n\nINPUT:\n{payload}\n"

    def _complete(self, step: str, prompt: str, json_mode: bool) -> LLMResponse:
        retries = self.settings.retries
        try:
            response = with_retry(
                lambda: self.adapter.complete(prompt, json_mode=json_mode),
                retries=retries,
                delay=self.settings.retry_delay_seconds,
                label=step,
                sleep=self._sleep,
            )
        except Exception as exc:
            raise GenerationError(step, retries + 1, exc) from exc
        if response.usage:
            logger.debug("%s usage=%s", step, response.usage)
        return response

    def _load_schema(self, name: str) -> Dict:
        if name not in self._schemas:
            self._schemas[name] = json.loads(read_text(self.schemas_dir / name))
        return self._schemas[name]
