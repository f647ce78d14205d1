from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from openai import OpenAI

from applystorm.config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    model: str
    timeout_sec: float


@dataclass(slots=True)
class Completion:
    content: str
    api_path: str
    raw: dict[str, Any] = field(default_factory=dict)


class LLMProvider:
    def __init__(self, config: ProviderConfig):
        self.config = config
        self.client = OpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=float(config.timeout_sec),
            max_retries=0,
        )

    def complete_text(self, *, prompt: str, model: str | None = None) -> Completion:
        model = model or self.config.model
        try:
            return self._complete_via_chat_completions(model=model, prompt=prompt)
        except Exception as exc:
            if not self._is_unsupported_endpoint(exc):
                raise

            logger.warning(
                "chat.completions unavailable for provider=%s base_url=%s; "
                "falling back to responses (%s)",
                self.config.name,
                self.config.base_url,
                exc,
            )
            return self._complete_via_responses(model=model, prompt=prompt)

    def _complete_via_chat_completions(self, *, model: str, prompt: str) -> Completion:
        response = self.client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0,
        )
        raw = response.model_dump() if hasattr(response, "model_dump") else {}
        return Completion(content=self._extract_chat_text(response), api_path="chat_completions", raw=raw)

    def _complete_via_responses(self, *, model: str, prompt: str) -> Completion:
        response = self.client.responses.create(
            model=model,
            input=[{"role": "user", "content": [{"type": "input_text", "text": prompt}]}],
        )
        text = getattr(response, "output_text", "") or ""
        raw = response.model_dump() if hasattr(response, "model_dump") else {}
        return Completion(content=text, api_path="responses", raw=raw)

    @staticmethod
    def _extract_chat_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""

        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) if message is not None else None
        if content is None:
            return ""
        return content if isinstance(content, str) else str(content)

    @staticmethod
    def _is_unsupported_endpoint(exc: Exception) -> bool:
        if getattr(exc, "status_code", None) == 404:
            return True
        message = str(exc).strip().lower()
        return bool(message) and ("not found" in message or "404" in message)


class ProviderPool:
    """Lazily built providers; unconfigured ones are reported as None."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._openai: LLMProvider | None = None
        self._local: LLMProvider | None = None

    def openai(self) -> LLMProvider | None:
        if not self.settings.openai_api_key:
            return None
        if self._openai is None:
            self._openai = LLMProvider(
                ProviderConfig(
                    name="openai",
                    base_url=self.settings.openai_base_url,
                    api_key=self.settings.openai_api_key,
                    model=self.settings.openai_model,
                    timeout_sec=self.settings.openai_timeout_sec,
                )
            )
        return self._openai

    def local(self) -> LLMProvider | None:
        if not self.settings.local_llm_enabled:
            return None
        if self._local is None:
            self._local = LLMProvider(
                ProviderConfig(
                    name="local",
                    base_url=self.settings.local_llm_base_url,
                    api_key=self.settings.local_llm_api_key,
                    model=self.settings.local_llm_model,
                    timeout_sec=self.settings.local_llm_timeout_sec,
                )
            )
        return self._local

    def ordered(self) -> list[LLMProvider]:
        if self.settings.enhancement_provider == "local":
            candidates = [self.local(), self.openai()]
        else:
            candidates = [self.openai(), self.local()]
        return [provider for provider in candidates if provider is not None]
