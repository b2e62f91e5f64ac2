from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol


@dataclass
class LLMResponse:
    raw_text: str
    model: Optional[str] = None
    usage: Optional[Dict[str, Optional[int]]] = field(default=None)


class LLMAdapter(Protocol):
    """Minimal contract every text-generation backend fulfils.

    json_mode asks the backend to constrain its reply to JSON when it
    supports that; callers still parse and validate the text themselves.
    """

    def complete(self, prompt: str, json_mode: bool = False) -> LLMResponse:
        raise NotImplementedError
