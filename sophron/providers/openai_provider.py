"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
import os
import time

import openai
from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from sophron.models import ModelResponse
from sophron.providers.base import (
    AIProvider,
    BadRequestError,
    GatewayError,
    NotConfiguredError,
    RateLimitedError,
    UnauthorizedError,
    UnavailableError,
)

logger = logging.getLogger(__name__)


def _map_sdk_error(provider_name: str, exc: Exception) -> GatewayError:
    """Translate an openai SDK exception into the gateway error family."""
    if isinstance(exc, openai.AuthenticationError):
        return UnauthorizedError(provider_name, str(exc))
    if isinstance(exc, openai.RateLimitError):
        return RateLimitedError(provider_name, str(exc))
    if isinstance(exc, openai.BadRequestError):
        return BadRequestError(provider_name, str(exc))
    if isinstance(exc, openai.APIStatusError):
        error_cls = {401: UnauthorizedError, 429: RateLimitedError, 400: BadRequestError}.get(
            exc.status_code, UnavailableError
        )
        return error_cls(provider_name, str(exc))
    return UnavailableError(provider_name, f"API call failed: {exc}")


class OpenAIProvider(AIProvider):
    """OpenAI chat completions via openai SDK."""

    def __init__(self, config: ModelConfig, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        if client is None:
            api_key = os.environ.get(config.api_key_env, "").strip()
            if not api_key:
                raise NotConfiguredError(config.name, f"Missing API key: {config.api_key_env}")
            client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)
        self._client = client

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> ModelResponse:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise UnavailableError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s"
            ) from exc
        except Exception as exc:
            raise _map_sdk_error(self._config.name, exc) from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise UnavailableError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info("OpenAI completion: %.2fs, %s tokens", latency, token_count)

        return ModelResponse(
            provider=self._config.name,
            model=self._config.model,
            content=choice.message.content,
            latency_sec=latency,
            token_count=token_count,
        )
