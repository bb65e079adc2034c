"""Provider clients for question generation.

Security: credentials come from the pool only, never hardcoded or logged.
Provides a deterministic stub when no credentials are configured for testing.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Protocol

import openai
from openai import AsyncOpenAI

from backend.app.config import Settings
from backend.app.generation.credentials import Credential
from backend.app.generation.prompts import SYSTEM_INSTRUCTION

logger = logging.getLogger(__name__)

_AUTH_MARKERS = ("api key not valid", "invalid api key", "api_key_invalid", "unauthenticated")
_RATE_MARKERS = ("quota", "rate limit", "resource_exhausted", "too many requests")


class ProviderError(Exception):
    """Provider call failed (network, server error, bad request)."""

    pass


class ProviderAuthenticationError(ProviderError):
    """Credential rejected by the provider."""

    pass


class ProviderRateLimitError(ProviderError):
    """Provider refused the call due to rate or quota limits."""

    pass


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling parameters sent with every request."""

    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int | None = None
    max_output_tokens: int = 8192

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationConfig":
        return cls(
            temperature=settings.provider_temperature,
            top_p=settings.provider_top_p,
            top_k=settings.provider_top_k,
            max_output_tokens=settings.provider_max_output_tokens,
        )


class QuestionProvider(Protocol):
    """Protocol for generative provider implementations."""

    async def generate(
        self,
        credential: Credential,
        model: str,
        prompt: str,
        config: GenerationConfig,
    ) -> str:
        """Issue one generation call.

        Args:
            credential: Credential drawn from the pool
            model: Provider model name
            prompt: Full generation request
            config: Sampling parameters

        Returns:
            Raw response text

        Raises:
            ProviderAuthenticationError: Credential is invalid
            ProviderRateLimitError: Rate or quota limit hit
            ProviderError: Any other provider failure
        """
        ...


def translate_provider_error(exc: Exception) -> ProviderError:
    """Map an arbitrary provider exception onto the provider error taxonomy.

    SDK status errors are classified by HTTP status. Message phrases are only
    consulted for other statuses (Gemini reports bad keys as 400) and for
    errors that carry no status at all.
    """
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code in (401, 403):
            return ProviderAuthenticationError(str(exc))
        if exc.status_code == 429:
            return ProviderRateLimitError(str(exc))

    message = str(exc).lower()
    if any(marker in message for marker in _AUTH_MARKERS):
        return ProviderAuthenticationError(str(exc))
    if any(marker in message for marker in _RATE_MARKERS):
        return ProviderRateLimitError(str(exc))
    return ProviderError(f"{type(exc).__name__}: {exc}")


class DeterministicStubProvider:
    """Deterministic stub provider for testing (no API key required)."""

    _COUNT = re.compile(r"generate exactly (\d+)")
    _PART = re.compile(r"part (\d+) of (\d+)")

    async def generate(
        self,
        credential: Credential,
        model: str,
        prompt: str,
        config: GenerationConfig,
    ) -> str:
        """Return a well-formed JSON array sized to the requested count."""
        count_match = self._COUNT.search(prompt)
        count = int(count_match.group(1)) if count_match else 1
        part_match = self._PART.search(prompt)
        part = part_match.group(1) if part_match else "1"

        questions = [
            {
                "question": f"Stub question {i + 1} for part {part}?",
                "options": ["Alpha", "Beta", "Gamma", "Delta"],
                "correctAnswer": i % 4,
                "explanation": "This is a stub question generated without a provider.",
                "topic": "Stub",
            }
            for i in range(count)
        ]
        return json.dumps(questions)


class OpenAICompatibleProvider:
    """Provider backed by an OpenAI-compatible chat completions endpoint."""

    def __init__(self, base_url: str | None = None, timeout_seconds: float | None = None):
        """Initialize provider.

        Args:
            base_url: Endpoint base URL (None for api.openai.com)
            timeout_seconds: SDK-level request timeout
        """
        self._base_url = base_url
        self._timeout = timeout_seconds
        self._clients: dict[int, AsyncOpenAI] = {}

    def _client_for(self, credential: Credential) -> AsyncOpenAI:
        client = self._clients.get(credential.position)
        if client is None:
            # Retries are driven by credential rotation, not by the SDK
            client = AsyncOpenAI(
                api_key=credential.secret,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
            )
            self._clients[credential.position] = client
        return client

    async def generate(
        self,
        credential: Credential,
        model: str,
        prompt: str,
        config: GenerationConfig,
    ) -> str:
        """Generate questions using the chat completions API."""
        client = self._client_for(credential)
        extra_body = {"top_k": config.top_k} if config.top_k is not None else None

        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_INSTRUCTION},
                    {"role": "user", "content": prompt},
                ],
                temperature=config.temperature,
                top_p=config.top_p,
                max_tokens=config.max_output_tokens,
                extra_body=extra_body,
            )
        except Exception as e:
            raise translate_provider_error(e) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def get_question_provider(settings: Settings) -> QuestionProvider:
    """Factory function to get appropriate provider based on config.

    Returns:
        OpenAICompatibleProvider if credentials are configured,
        DeterministicStubProvider otherwise
    """
    if settings.credential_secrets():
        logger.info(f"Using provider model {settings.provider_model}")
        return OpenAICompatibleProvider(
            base_url=settings.provider_base_url,
            timeout_seconds=settings.provider_timeout_ms / 1000,
        )

    logger.warning("No provider credentials configured, using deterministic stub provider")
    return DeterministicStubProvider()
