"""Conversation backends: what the orchestrator calls to get replies and findings."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from sophron.analyzers import analyze_chat, analyze_fallacies, analyze_for_strengthening
from sophron.gateway import complete
from sophron.models import ChatAnalysis, ConversationMode, FallacyReport, ImprovementReport, Message
from sophron.prompts import compose_system_instruction
from sophron.providers.base import AIProvider, GatewayError


class ConversationBackend(ABC):
    """Reply and analysis calls for one conversation turn.

    Every method raises GatewayError (or a subclass) on failure.
    """

    @abstractmethod
    async def chat(self, transcript: Sequence[Message], mode: ConversationMode) -> str:
        ...

    @abstractmethod
    async def detect_fallacies(self, utterance: str) -> FallacyReport:
        ...

    @abstractmethod
    async def steel_man(self, utterance: str) -> ImprovementReport:
        ...

    @abstractmethod
    async def analyze_chat(self, transcript: Sequence[Message]) -> ChatAnalysis:
        ...


class LocalBackend(ConversationBackend):
    """Calls the completion provider in-process, without the HTTP relay."""

    def __init__(self, provider: AIProvider | GatewayError) -> None:
        self._provider = provider

    async def chat(self, transcript: Sequence[Message], mode: ConversationMode) -> str:
        return await complete(self._provider, compose_system_instruction(mode), transcript)

    async def detect_fallacies(self, utterance: str) -> FallacyReport:
        return await analyze_fallacies(self._provider, utterance)

    async def steel_man(self, utterance: str) -> ImprovementReport:
        return await analyze_for_strengthening(self._provider, utterance)

    async def analyze_chat(self, transcript: Sequence[Message]) -> ChatAnalysis:
        return await analyze_chat(self._provider, transcript)
