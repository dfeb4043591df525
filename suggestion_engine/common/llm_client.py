"""
Provider-agnostic LLM client for the optional intent classifier.

Supports Anthropic, OpenAI, and Google Gemini behind one text-generation
call. The client never raises on construction: a missing key or package
leaves it unavailable and callers check ``is_available`` first.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Dict, Optional

from .config import LLMConfig

logger = logging.getLogger("suggestion_engine.common.llm_client")

SUPPORTED_PROVIDERS = ("anthropic", "openai", "google")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self._client = None
        self._google_models: Dict[str, object] = {}

        if self.provider not in SUPPORTED_PROVIDERS:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return
        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        try:
            self._client = self._connect(api_key)
        except ImportError:
            logger.warning("%s SDK not installed, LLM client unavailable", self.provider)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, llm_config: LLMConfig) -> "LLMClient":
        """Build a client for the configured provider.

        ``classifier_model`` overrides the provider's default model.
        """
        provider = (llm_config.provider or "anthropic").lower()
        keys = {
            "anthropic": (llm_config.anthropic_api_key, llm_config.anthropic_model),
            "openai": (llm_config.openai_api_key, llm_config.openai_model),
            "google": (llm_config.google_api_key, llm_config.google_model),
        }
        api_key, model = keys.get(provider, ("", ""))
        return cls(
            provider=provider,
            model=llm_config.classifier_model or model,
            api_key=api_key,
        )

    def _connect(self, api_key: str):
        if self.provider == "anthropic":
            import anthropic

            return anthropic.Anthropic(api_key=api_key)

        if self.provider == "openai":
            from openai import OpenAI

            return OpenAI(api_key=api_key)

        import google.generativeai as genai

        genai.configure(api_key=api_key)
        return genai  # the module; models are built per system prompt

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 256,
        timeout: float = 10.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system or "",
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=messages,
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        response = self._google_models[cache_key].generate_content(
            prompt,
            generation_config={"max_output_tokens": max_tokens},
            request_options={"timeout": timeout},
        )
        return response.text.strip()
