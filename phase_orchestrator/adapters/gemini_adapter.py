from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from google import genai

from .llm_base import LLMAdapter, LLMResponse

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-pro"


class GeminiAdapter(LLMAdapter):
    def __init__(self) -> None:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is not set.")

        self.client = genai.Client(api_key=api_key)

        primary = os.getenv("GEMINI_MODEL", DEFAULT_MODEL)
        fallbacks = [
            name.strip()
            for name in os.getenv("GEMINI_FALLBACK_MODELS", "").split(",")
            if name.strip()
        ]
        self.model_candidates: List[str] = [primary, *fallbacks]

    def _config(self, json_mode: bool) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "max_output_tokens": int(os.getenv("ORCH_MAX_OUTPUT_TOKENS", "8192")),
            "temperature": float(os.getenv("ORCH_TEMPERATURE", "0.4")),
        }
        if json_mode:
            config["response_mime_type"] = "application/json"
        return config

    def complete(self, prompt: str, json_mode: bool = False) -> LLMResponse:
        last_err: Exception | None = None

        for model in self.model_candidates:
            try:
                logger.info("[gemini] model=%s json_mode=%s", model, json_mode)
                response = self.client.models.generate_content(
                    model=model,
                    contents=prompt,
                    config=self._config(json_mode),
                )
                text = getattr(response, "text", None)
                if not text:
                    raise RuntimeError("Gemini returned empty content.")
                usage_meta = getattr(response, "usage_metadata", None)
                usage = None
                if usage_meta is not None:
                    usage = {
                        "prompt_tokens": getattr(usage_meta, "prompt_token_count", None),
                        "completion_tokens": getattr(usage_meta, "candidates_token_count", None),
                        "total_tokens": getattr(usage_meta, "total_token_count", None),
                    }
                return LLMResponse(raw_text=text, model=model, usage=usage)
            except Exception as exc:
                last_err = exc
                logger.warning("[gemini] model=%s failed: %s", model, exc)

        raise RuntimeError(
            "Gemini generate_content failed for all candidate models. "
            f"Last error: {last_err}"
        ) from last_err
