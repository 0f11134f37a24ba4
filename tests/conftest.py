"""Shared pytest fixtures."""

from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, ModelConfig, ReferencesConfig, ServerConfig, SessionConfig
from sophron.backends import ConversationBackend
from sophron.models import (
    ChatAnalysis,
    ConversationMode,
    FallacyReport,
    ImprovementReport,
    Message,
    ModelResponse,
    ReferenceRecord,
)
from sophron.providers.base import AIProvider
from sophron.references import ReferenceNotFound, ReferenceSource


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="openai",
        model="gpt-4o-mini-2024-07-18",
        api_key_env="TEST_OPENAI_KEY",
        timeout_sec=30,
    )


@pytest.fixture
def sample_references_config() -> ReferencesConfig:
    return ReferencesConfig(
        wikipedia_url="https://wiki.test/summary/",
        sep_url="https://sep.test/entries/",
        timeout_sec=5,
        user_agent="sophron-tests",
    )


@pytest.fixture
def sample_app_config(sample_model_config, sample_references_config) -> AppConfig:
    return AppConfig(
        server=ServerConfig(host="127.0.0.1", port=3001),
        model=sample_model_config,
        references=sample_references_config,
        session=SessionConfig(debate_mode=False),
        has_api_key=True,
    )


def make_response(content: str) -> ModelResponse:
    return ModelResponse(
        provider="mock",
        model="mock-model",
        content=content,
        latency_sec=0.1,
        token_count=10,
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(return_value=make_response(response_content))  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, messages, *, temperature, max_tokens) -> ModelResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return make_response(self._response_content)


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


class FakeBackend(ConversationBackend):
    """ConversationBackend whose calls are AsyncMocks."""

    def __init__(
        self,
        reply: str = "Bot reply",
        fallacies: FallacyReport | None = None,
        improvements: ImprovementReport | None = None,
        analysis: ChatAnalysis | None = None,
    ) -> None:
        self.chat = AsyncMock(return_value=reply)  # type: ignore[assignment]
        self.detect_fallacies = AsyncMock(return_value=fallacies or FallacyReport())  # type: ignore[assignment]
        self.steel_man = AsyncMock(return_value=improvements or ImprovementReport())  # type: ignore[assignment]
        self.analyze_chat = AsyncMock(return_value=analysis or ChatAnalysis())  # type: ignore[assignment]

    async def chat(self, transcript: list[Message], mode: ConversationMode) -> str:  # type: ignore[override]
        return ""

    async def detect_fallacies(self, utterance: str) -> FallacyReport:  # type: ignore[override]
        return FallacyReport()

    async def steel_man(self, utterance: str) -> ImprovementReport:  # type: ignore[override]
        return ImprovementReport()

    async def analyze_chat(self, transcript: list[Message]) -> ChatAnalysis:  # type: ignore[override]
        return ChatAnalysis()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


class StubSource(ReferenceSource):
    """Reference source answering only for the terms it was given."""

    def __init__(self, kind: str, answers: dict[str, ReferenceRecord] | None = None) -> None:
        self.kind = kind
        self.answers = answers or {}
        self.calls: list[str] = []

    async def fetch(self, term: str) -> ReferenceRecord:
        self.calls.append(term)
        if term not in self.answers:
            raise ReferenceNotFound(self.kind, term)
        return self.answers[term]
