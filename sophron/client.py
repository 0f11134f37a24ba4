"""HTTP client for the sophron relay, usable as a conversation backend and lookup source."""

import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import httpx

from sophron.backends import ConversationBackend
from sophron.models import (
    SOURCE_SEP,
    SOURCE_WIKIPEDIA,
    ChatAnalysis,
    ConversationMode,
    FallacyReport,
    ImprovementReport,
    Message,
    ReferenceRecord,
)
from sophron.providers.base import ERRORS_BY_STATUS, GatewayError, UnavailableError
from sophron.references import ReferenceLookupError, ReferenceNotFound, ReferenceSource
from sophron.wire import (
    chat_analysis_from_wire,
    fallacy_report_from_wire,
    improvement_report_from_wire,
    messages_to_wire,
    mode_to_wire,
    reference_record_from_wire,
)

logger = logging.getLogger(__name__)

_RELAY = "relay"
_CONNECT_ERROR = "Unable to connect to the server. Please make sure the server is running."


def _error_from_response(response: httpx.Response, fallback: str) -> GatewayError:
    try:
        data = response.json()
    except ValueError:
        data = None
    message = (data.get("error") if isinstance(data, dict) else None) or fallback
    error_cls = ERRORS_BY_STATUS.get(response.status_code, UnavailableError)
    # Relay messages are already user-facing
    return error_cls(_RELAY, message, user_message=message)


class RelayClient(ConversationBackend):
    """Talks to a running relay over HTTP."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _post(self, path: str, payload: dict[str, Any], fallback: str) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Error calling relay %s: %s", path, exc)
            raise UnavailableError(_RELAY, str(exc), user_message=_CONNECT_ERROR) from exc
        if response.status_code != 200:
            raise _error_from_response(response, fallback)
        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Relay %s answered with a non-JSON body: %s", path, exc)
            raise UnavailableError(_RELAY, f"Non-JSON reply from {path}", user_message=fallback) from exc
        if not isinstance(data, dict):
            raise UnavailableError(_RELAY, f"Unexpected reply from {path}", user_message=fallback)
        return data

    async def chat(self, transcript: Sequence[Message], mode: ConversationMode) -> str:
        payload = {"messages": messages_to_wire(list(transcript)), **mode_to_wire(mode)}
        data = await self._post("/api/chat", payload, "Failed to get response from AI")
        return str(data.get("message", ""))

    async def detect_fallacies(self, utterance: str) -> FallacyReport:
        data = await self._post(
            "/api/detect-fallacies", {"userMessage": utterance}, "Failed to detect fallacies"
        )
        return fallacy_report_from_wire(data)

    async def steel_man(self, utterance: str) -> ImprovementReport:
        data = await self._post(
            "/api/steel-man", {"userMessage": utterance}, "Failed to analyze argument"
        )
        return improvement_report_from_wire(data)

    async def analyze_chat(self, transcript: Sequence[Message]) -> ChatAnalysis:
        data = await self._post(
            "/api/analyze-chat",
            {"messages": messages_to_wire(list(transcript))},
            "Failed to analyze chat content",
        )
        return chat_analysis_from_wire(data)


class RelayReferenceSource(ReferenceSource):
    """Reads Wikipedia or SEP records through the relay's lookup routes."""

    _PATHS = {SOURCE_WIKIPEDIA: "/api/wikipedia/", SOURCE_SEP: "/api/sep/"}

    def __init__(self, client: httpx.AsyncClient, kind: str) -> None:
        if kind not in self._PATHS:
            raise ValueError(f"Unknown reference source: {kind}")
        self._client = client
        self.kind = kind

    async def fetch(self, term: str) -> ReferenceRecord:
        try:
            response = await self._client.get(self._PATHS[self.kind] + quote(term, safe=""))
        except httpx.HTTPError as exc:
            raise ReferenceLookupError(f"{self.kind} relay request failed: {exc}") from exc
        if response.status_code == 404:
            raise ReferenceNotFound(self.kind, term)
        if response.status_code != 200:
            raise ReferenceLookupError(f"{self.kind} relay error: {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise ReferenceLookupError(f"{self.kind} relay returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ReferenceLookupError(f"{self.kind} relay returned {type(data).__name__}, expected an object")
        return reference_record_from_wire(data, self.kind)


def relay_sources(client: httpx.AsyncClient) -> dict[str, ReferenceSource]:
    return {
        SOURCE_WIKIPEDIA: RelayReferenceSource(client, SOURCE_WIKIPEDIA),
        SOURCE_SEP: RelayReferenceSource(client, SOURCE_SEP),
    }
