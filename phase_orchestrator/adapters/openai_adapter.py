from __future__ import annotations

import logging
import os

from openai import OpenAI, RateLimitError

from .llm_base import LLMAdapter, LLMResponse

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIAdapter(LLMAdapter):
    def __init__(self) -> None:
        self.api_key = os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is not set.")
        self.client = OpenAI(api_key=self.api_key)
        self.model = os.getenv("OPENAI_MODEL", DEFAULT_MODEL)

    def complete(self, prompt: str, json_mode: bool = False) -> LLMResponse:
        max_tokens = int(os.getenv("ORCH_MAX_OUTPUT_TOKENS", "8192"))
        temperature = float(os.getenv("ORCH_TEMPERATURE", "0.4"))
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
                **kwargs,
            )
        except RateLimitError as exc:
            error = getattr(exc, "error", None)
            code = getattr(error, "code", None)
            if code == "insufficient_quota":
                raise RuntimeError(
                    "OpenAI API quota exceeded. Please enable billing in your OpenAI account."
                ) from exc
            raise

        content = response.choices[0].message.content
        if content is None:
            raise RuntimeError("OpenAI returned empty content.")
        usage = getattr(response, "usage", None)
        usage_payload = None
        if usage:
            usage_payload = {
                "prompt_tokens": getattr(usage, "prompt_tokens", None),
                "completion_tokens": getattr(usage, "completion_tokens", None),
                "total_tokens": getattr(usage, "total_tokens", None),
            }
            logger.info(
                "[openai] model=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
                self.model,
                usage_payload["prompt_tokens"],
                usage_payload["completion_tokens"],
                usage_payload["total_tokens"],
            )
        else:
            logger.info("[openai] usage not provided by SDK")
        return LLMResponse(raw_text=content, model=self.model, usage=usage_payload)
