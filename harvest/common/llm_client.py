"""
Provider-agnostic LLM client for Harvest.

Supports Anthropic, OpenAI, and Google Gemini behind one JSON-oriented
text-generation call used by the knowledge extractor.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Dict, Optional

from .config import LLMConfig

logger = logging.getLogger("harvest.common.llm_client")

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
            if self.provider == "anthropic":
                import anthropic

                self._client = anthropic.Anthropic(api_key=api_key)
            elif self.provider == "openai":
                from openai import OpenAI

                self._client = OpenAI(api_key=api_key)
            else:
                import google.generativeai as genai

                genai.configure(api_key=api_key)
                self._client = genai  # module; models are built per system prompt
        except ImportError:
            logger.warning("SDK for provider %s is not installed", self.provider)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LLMClient":
        """Build a client for the provider selected in config"""
        provider = (config.provider or "anthropic").lower()
        keys = {
            "anthropic": (config.anthropic_api_key, config.anthropic_model),
            "openai": (config.openai_api_key, config.openai_model),
            "google": (config.google_api_key, config.google_model),
        }
        api_key, model = keys.get(provider, ("", ""))
        return cls(provider=provider, model=model, api_key=api_key)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 2048,
        timeout: float = 60.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
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
                response_format={"type": "json_object"},
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        model = self._google_models[cache_key]
        response = model.generate_content(
            prompt,
            generation_config={
                "max_output_tokens": max_tokens,
                "response_mime_type": "application/json",
            },
            request_options={"timeout": timeout},
        )
        return response.text.strip()
