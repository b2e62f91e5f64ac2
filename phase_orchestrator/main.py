from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from phase_orchestrator.adapters.gemini_adapter import GeminiAdapter
from phase_orchestrator.adapters.llm_base import LLMAdapter
from phase_orchestrator.adapters.mock_adapter import MockAdapter
from phase_orchestrator.adapters.openai_adapter import OpenAIAdapter
from phase_orchestrator.artifacts.project_store import JsonProjectStore
from phase_orchestrator.engine.errors import DependencyGraphError
from phase_orchestrator.engine.generation import GenerationClient
from phase_orchestrator.engine.models import DevelopmentMode, PhaseKind, Project
from phase_orchestrator.engine.orchestrator import PhaseAutomationOrchestrator
from phase_orchestrator.engine.runtime import AutomationStatus, CancellationToken
from phase_orchestrator.engine.scheduler import execution_batches
from phase_orchestrator.engine.settings import AutomationSettings
from phase_orchestrator.lifecycle import create_project, load_lifecycle

EXIT_CODES = {
    AutomationStatus.COMPLETE: 0,
    AutomationStatus.ERROR: 1,
    AutomationStatus.PAUSED: 2,
}

PROVIDER_KEYS = {"gemini": "GEMINI_API_KEY", "openai": "OPENAI_API_KEY"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Engineering lifecycle phase orchestrator")
    parser.add_argument("--mode", choices=["mock", "live"], required=True)
    parser.add_argument("--provider", choices=sorted(PROVIDER_KEYS), default="gemini")
    parser.add_argument("--project", required=True, help="Project JSON file (created if missing)")
    parser.add_argument("--name", help="Project name for a new project")
    parser.add_argument("--requirements", default="", help="Requirements text for a new project")
    parser.add_argument("--constraints", default="", help="Constraints text for a new project")
    parser.add_argument("--description", default="", help="Description for a new project")
    parser.add_argument("--discipline", action="append", default=[], help="Engineering discipline")
    parser.add_argument("--development-mode", choices=[m.value for m in DevelopmentMode], default="full")
    parser.add_argument("--template", help="Lifecycle YAML template for a new project")
    parser.add_argument("--compact-context", action="store_true", help="Compact the first phase's output")
    parser.add_argument("--status", action="store_true", help="Print project status and exit")
    parser.add_argument("--max-output-tokens", type=int, default=8192)
    parser.add_argument("--temperature", type=float, default=0.4)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _ensure_env(base_dir: Path, provider: str) -> None:
    load_dotenv(base_dir / ".env")
    key = PROVIDER_KEYS[provider]
    if not os.getenv(key):
        raise RuntimeError(
            f"Missing required API key: {key}. Create a .env file from .env.example and set the key."
        )


def _adapter(mode: str, provider: str) -> LLMAdapter:
    if mode == "mock":
        return MockAdapter()
    if provider == "gemini":
        return GeminiAdapter()
    return OpenAIAdapter()


def _load_or_create(store: JsonProjectStore, args: argparse.Namespace) -> Project:
    if store.exists():
        return store.load()
    if not args.name:
        raise SystemExit(f"{store.path} does not exist; pass --name to create a new project.")
    templates = load_lifecycle(Path(args.template)) if args.template else None
    project = create_project(
        name=args.name,
        requirements=args.requirements,
        constraints=args.constraints,
        description=args.description,
        disciplines=args.discipline,
        development_mode=DevelopmentMode(args.development_mode),
        templates=templates,
    )
    store.persist(project)
    print(f"Created project {project.name} at {store.path}")
    return project


def status_lines(project: Project) -> List[str]:
    lines = [f"Project: {project.name}"]
    for index, phase in enumerate(project.phases, start=1):
        lines.append(f"{index}. {phase.name} [{phase.kind.value}] {phase.status.value}")
        for sprint in phase.sprints:
            lines.append(f"     - {sprint.name}: {sprint.status.value}")
        if phase.kind == PhaseKind.DECOMPOSITIONAL and phase.sprints and not phase.is_completed:
            try:
                batches = execution_batches(phase.name, phase.sprints)
            except DependencyGraphError as exc:
                lines.append(f"     ! {exc}")
            else:
                lines.append(f"     remaining batches: {len(batches)}")
    if project.compacted_context:
        lines.append("Compacted context: present")
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    base_dir = Path.cwd()

    os.environ["ORCH_MAX_OUTPUT_TOKENS"] = str(args.max_output_tokens)
    os.environ["ORCH_TEMPERATURE"] = str(args.temperature)
    if args.mode == "live":
        _ensure_env(base_dir, args.provider)

    store = JsonProjectStore(Path(args.project))
    project = _load_or_create(store, args)
    if args.status:
        print("\n".join(status_lines(project)))
        return 0

    settings = AutomationSettings.from_env()
    if args.compact_context:
        settings.compact_context = True

    client = GenerationClient(_adapter(args.mode, args.provider), settings=settings)
    orchestrator = PhaseAutomationOrchestrator(client, persister=store, settings=settings)
    token = CancellationToken()

    def _on_sigint(signum, frame) -> None:
        print("Cancellation requested; pausing after the current step...")
        token.request_cancellation()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        status = orchestrator.run_automation(project, token)
    finally:
        signal.signal(signal.SIGINT, previous)

    print("\n".join(status_lines(project)))
    return EXIT_CODES[status]


if __name__ == "__main__":
    sys.exit(main())
