"""Abstract base for completion providers and the gateway error family."""

from abc import ABC, abstractmethod

from sophron.models import ModelResponse


class GatewayError(Exception):
    """Raised when a completion call fails.

    ``status`` is the HTTP status the relay answers with and ``user_message``
    the plain-language text shown to the user in the transcript.
    """

    status = 500
    user_message = "Failed to get response from AI. Please try again."

    def __init__(self, provider_name: str, message: str = "", user_message: str | None = None) -> None:
        self.provider_name = provider_name
        if user_message:
            self.user_message = user_message
        super().__init__(f"[{provider_name}] {message or self.user_message}")


class UnauthorizedError(GatewayError):
    status = 401
    user_message = "Invalid OpenAI API key"


class RateLimitedError(GatewayError):
    status = 429
    user_message = "Rate limit exceeded. Please try again later."


class BadRequestError(GatewayError):
    status = 400
    user_message = "Bad request to OpenAI API"


class UnavailableError(GatewayError):
    status = 500


class NotConfiguredError(UnavailableError):
    user_message = (
        "OpenAI API key not configured. Please add OPENAI_API_KEY to your .env file "
        "and restart the server."
    )


# Relay status -> error class, used when re-raising errors received over HTTP
ERRORS_BY_STATUS: dict[int, type[GatewayError]] = {
    401: UnauthorizedError,
    429: RateLimitedError,
    400: BadRequestError,
}


class AIProvider(ABC):
    """Abstract base for completion providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> ModelResponse:
        """Generate a completion for a role-tagged message list.

        Args:
            messages: ``{"role", "content"}`` dicts, system entry first.
            temperature: Sampling temperature for this call site.
            max_tokens: Output token budget for this call site.

        Returns:
            ModelResponse dataclass with content and metadata.

        Raises:
            GatewayError: One of its subclasses, depending on the upstream failure.
        """
        ...
