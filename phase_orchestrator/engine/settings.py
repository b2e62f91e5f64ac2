from __future__ import annotations

import os
from dataclasses import dataclass


def _env(key: str, default: str) -> str:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value


def _env_bool(key: str, default: bool) -> bool:
    return _env(key, "1" if default else "0").strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class AutomationSettings:
    retries: int = 1
    retry_delay_seconds: float = 1.0
    step_delay_seconds: float = 0.0
    compact_context: bool = False

    @classmethod
    def from_env(cls) -> "AutomationSettings":
        return cls(
            retries=max(0, int(_env("ORCH_GENERATION_RETRIES", "1"))),
            retry_delay_seconds=max(0.0, float(_env("ORCH_RETRY_DELAY_SECONDS", "1.0"))),
            step_delay_seconds=max(0.0, float(_env("ORCH_STEP_DELAY_SECONDS", "0"))),
            compact_context=_env_bool("ORCH_COMPACT_CONTEXT", False),
        )
