from __future__ import annotations

"""Text generation backends used to answer grounded prompts."""

from dataclasses import dataclass, field
import asyncio
from typing import Protocol

import httpx

from contextrag.rag.errors import LLMError


class LLMConfigError(RuntimeError):
    """Raised when the generation provider is misconfigured."""
    pass


class Generator(Protocol):
    """Protocol for text generation services."""

    async def generate(self, prompt: str) -> str:
        """Return the completion for a single text prompt."""
        raise NotImplementedError


@dataclass(frozen=True)
class OllamaGenerator:
    """Generator backed by the Ollama generate API."""
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def generate(self, prompt: str) -> str:
        """Generate a completion using Ollama."""
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise LLMError(str(exc)) from exc
        content = data.get("response")
        if not isinstance(content, str):
            raise LLMError("Invalid Ollama response")
        return content


@dataclass(frozen=True)
class OpenAIGenerator:
    """Generator backed by OpenAI chat completions."""
    api_key: str
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def generate(self, prompt: str) -> str:
        """Generate a completion using OpenAI chat completions."""
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise LLMError(str(exc)) from exc

        choices = data.get("choices") or []
        if not choices:
            raise LLMError("Invalid OpenAI response")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMError("Invalid OpenAI response content")
        return content


@dataclass(frozen=True)
class GeminiGenerator:
    """Generator backed by Gemini generative models."""
    api_key: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float

    async def generate(self, prompt: str) -> str:
        """Generate a completion using Gemini."""
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise LLMError("google-generativeai is required for GeminiGenerator") from exc

        def _run() -> str:
            genai.configure(api_key=self.api_key)
            model = genai.GenerativeModel(self.model)
            response = model.generate_content(
                prompt,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_tokens,
                },
            )
            return getattr(response, "text", "") or ""

        try:
            return await asyncio.wait_for(asyncio.to_thread(_run), timeout=self.timeout)
        except Exception as exc:
            raise LLMError(str(exc) or type(exc).__name__) from exc


def build_generator(
    provider: str,
    *,
    model: str,
    api_key_openai: str | None,
    api_key_gemini: str | None,
    openai_base_url: str,
    ollama_base_url: str,
    temperature: float,
    max_tokens: int,
    timeout: float,
) -> Generator:
    """Factory for generators based on provider."""
    normalized = provider.strip().lower()
    if normalized in {"extractive", "none"}:
        from contextrag.rag.answerer import ExtractiveAnswerer

        return ExtractiveAnswerer()
    if not model:
        raise LLMConfigError("LLM_MODEL_NAME is required for LLM providers")
    if normalized == "openai":
        if not api_key_openai:
            raise LLMConfigError("OPENAI_API_KEY is required for OpenAI provider")
        return OpenAIGenerator(
            api_key=api_key_openai,
            base_url=openai_base_url.rstrip("/"),
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if normalized in {"gemini", "google"}:
        if not api_key_gemini:
            raise LLMConfigError("GEMINI_API_KEY is required for Gemini provider")
        return GeminiGenerator(
            api_key=api_key_gemini,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if normalized == "ollama":
        return OllamaGenerator(
            base_url=ollama_base_url.rstrip("/"),
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    raise LLMConfigError(f"Unsupported LLM provider: {provider}")
