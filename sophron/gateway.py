"""Completion gateway: provider construction and transcript -> completion relay."""

import logging
from collections.abc import Sequence

from config.config_loader import ModelConfig
from sophron.models import SENDER_USER, Message
from sophron.providers.base import AIProvider, GatewayError, NotConfiguredError
from sophron.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 1000

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
}


def configure_provider(config: ModelConfig) -> AIProvider | NotConfiguredError:
    """Build the completion provider once at startup.

    Never raises. Returns NotConfiguredError when the credential is missing
    or the configured provider name is unknown.
    """
    provider_cls = PROVIDER_CLASSES.get(config.name)
    if provider_cls is None:
        logger.warning("Provider '%s' unknown", config.name)
        return NotConfiguredError(config.name, f"Unknown provider: {config.name}")
    try:
        return provider_cls(config)
    except NotConfiguredError as exc:
        logger.warning("Provider %s not configured: %s", config.name, exc)
        return exc


def build_chat_messages(
    system_instruction: str,
    transcript: Sequence[Message],
) -> list[dict[str, str]]:
    """One system entry, then one entry per message in transcript order.

    Loading placeholders are UI-only and never replayed.
    """
    messages = [{"role": "system", "content": system_instruction}]
    for msg in transcript:
        if msg.is_loading:
            continue
        role = "user" if msg.sender == SENDER_USER else "assistant"
        messages.append({"role": role, "content": msg.text})
    return messages


async def complete(
    provider: AIProvider | GatewayError,
    system_instruction: str,
    transcript: Sequence[Message],
    *,
    temperature: float = CHAT_TEMPERATURE,
    max_tokens: int = CHAT_MAX_TOKENS,
) -> str:
    """Send the transcript under a system instruction and return the reply text.

    Raises:
        GatewayError: Unauthorized, RateLimited, BadRequest or Unavailable
            (NotConfigured when ``provider`` is the configure() failure).
    """
    if isinstance(provider, GatewayError):
        raise provider

    messages = build_chat_messages(system_instruction, transcript)
    logger.debug("Completion request: %d messages via %s", len(messages), provider.name())
    response = await provider.generate(messages, temperature=temperature, max_tokens=max_tokens)
    return response.content
