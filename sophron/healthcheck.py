"""Relay health report and an optional upstream ping before serving."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from sophron.providers.base import AIProvider, GatewayError

logger = logging.getLogger(__name__)

_PING_MESSAGES = [{"role": "user", "content": "Reply with the word OK only."}]
_TIMEOUT_SEC = 15.0


def health_payload(provider: AIProvider | GatewayError) -> dict[str, Any]:
    """Body of GET /api/health."""
    return {
        "status": "OK",
        "message": "sophron-bot server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "hasApiKey": not isinstance(provider, GatewayError),
    }


async def ping_provider(provider: AIProvider | GatewayError) -> tuple[bool, str]:
    """Send one tiny completion. Returns (ok, error_message); never raises."""
    if isinstance(provider, GatewayError):
        return False, provider.user_message
    try:
        await asyncio.wait_for(
            provider.generate(_PING_MESSAGES, temperature=0.0, max_tokens=5),
            timeout=_TIMEOUT_SEC,
        )
        return True, ""
    except Exception as exc:
        logger.debug("Ping to %s failed: %r", provider.name(), exc)
        return False, str(exc) or type(exc).__name__
