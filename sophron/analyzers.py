"""Auxiliary analyzers: fallacy check, steel-man check and chat topic extraction.

Each analyzer sends one fixed instruction plus one user turn through the
completion gateway and parses the model's JSON reply. A reply that is not the
expected JSON shape is downgraded to an empty result and logged; gateway
errors propagate to the caller.
"""

import json
import logging
import re
import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sophron.gateway import complete
from sophron.models import (
    SENDER_USER,
    ChatAnalysis,
    Fallacy,
    FallacyFinding,
    FallacyReport,
    Improvement,
    ImprovementFinding,
    ImprovementReport,
    Message,
    TopicMention,
)
from sophron.prompts import (
    CHAT_ANALYSIS_PROMPT,
    FALLACY_DETECTION_PROMPT,
    FALLACY_USER_TEMPLATE,
    STEEL_MAN_PROMPT,
    STEEL_MAN_USER_TEMPLATE,
)
from sophron.providers.base import AIProvider, GatewayError

logger = logging.getLogger(__name__)

FALLACY_TEMPERATURE = 0.1
FALLACY_MAX_TOKENS = 500
STEEL_MAN_TEMPERATURE = 0.2
STEEL_MAN_MAX_TOKENS = 600
ANALYSIS_TEMPERATURE = 0.3
ANALYSIS_MAX_TOKENS = 1000

_DEFAULT_FALLACY_SUGGESTION = "Consider revising your argument to address this logical error."

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class MalformedAnalyzerOutput(ValueError):
    """The model's reply was not the JSON object the instruction asked for."""


def _parse_json_object(text: str) -> dict[str, Any]:
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise MalformedAnalyzerOutput(f"Reply is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedAnalyzerOutput(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _str_field(item: dict[str, Any], key: str, default: str = "") -> str:
    value = item.get(key)
    return str(value).strip() if value is not None else default


def _list_field(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedAnalyzerOutput(f"Expected {key} to be a list, got {type(value).__name__}")
    return value


def parse_fallacy_report(text: str) -> FallacyReport:
    """Parse ``{hasFallacies, fallacies:[{name, explanation, suggestion}]}``.

    Raises MalformedAnalyzerOutput if the reply is not a JSON object or a
    list field holds something other than a list.
    """
    data = _parse_json_object(text)
    fallacies = [
        Fallacy(
            name=_str_field(item, "name"),
            explanation=_str_field(item, "explanation"),
            suggestion=_str_field(item, "suggestion"),
        )
        for item in _list_field(data, "fallacies")
        if isinstance(item, dict) and _str_field(item, "name")
    ]
    return FallacyReport(
        has_fallacies=bool(data.get("hasFallacies")) and bool(fallacies),
        fallacies=fallacies,
    )


def parse_improvement_report(text: str) -> ImprovementReport:
    """Parse ``{hasImprovements, improvements:[{category, suggestion, reason, example}]}``.

    Raises MalformedAnalyzerOutput if the reply is not a JSON object or a
    list field holds something other than a list.
    """
    data = _parse_json_object(text)
    improvements = [
        Improvement(
            category=_str_field(item, "category"),
            suggestion=_str_field(item, "suggestion"),
            reason=_str_field(item, "reason"),
            example=_str_field(item, "example") or None,
        )
        for item in _list_field(data, "improvements")
        if isinstance(item, dict) and _str_field(item, "suggestion")
    ]
    return ImprovementReport(
        has_improvements=bool(data.get("hasImprovements")) and bool(improvements),
        improvements=improvements,
    )


def _parse_mentions(items: list[Any]) -> list[TopicMention]:
    mentions: list[TopicMention] = []
    for item in items:
        if not isinstance(item, dict) or not _str_field(item, "name"):
            continue
        try:
            count = int(item.get("mentions", 1))
            relevance = float(item.get("relevance", 0.0))
        except (TypeError, ValueError):
            continue
        if count < 1:
            continue
        mentions.append(
            TopicMention(
                id=_str_field(item, "id") or _str_field(item, "name").lower().replace(" ", "-"),
                name=_str_field(item, "name"),
                mentions=count,
                relevance=max(0.0, min(1.0, relevance)),
            )
        )
    return mentions


def parse_chat_analysis(text: str) -> ChatAnalysis:
    """Parse the four topic lists. Raises MalformedAnalyzerOutput on a malformed reply."""
    data = _parse_json_object(text)
    return ChatAnalysis(
        concepts=_parse_mentions(_list_field(data, "concepts")),
        philosophers=_parse_mentions(_list_field(data, "philosophers")),
        schools=_parse_mentions(_list_field(data, "schools")),
        fallacies=_parse_mentions(_list_field(data, "fallacies")),
    )


async def _single_turn(
    provider: AIProvider | GatewayError,
    instruction: str,
    user_text: str,
    temperature: float,
    max_tokens: int,
) -> str:
    return await complete(
        provider,
        instruction,
        [Message(text=user_text, sender=SENDER_USER)],
        temperature=temperature,
        max_tokens=max_tokens,
    )


async def analyze_fallacies(provider: AIProvider | GatewayError, utterance: str) -> FallacyReport:
    """Ask the model which fallacies the utterance commits.

    Raises:
        GatewayError: On network, auth or rate-limit failure.
    """
    reply = await _single_turn(
        provider,
        FALLACY_DETECTION_PROMPT,
        FALLACY_USER_TEMPLATE.format(utterance=utterance),
        FALLACY_TEMPERATURE,
        FALLACY_MAX_TOKENS,
    )
    try:
        return parse_fallacy_report(reply)
    except MalformedAnalyzerOutput as exc:
        logger.warning("Failed to parse fallacy detection result: %s", exc)
        return FallacyReport()


async def analyze_for_strengthening(
    provider: AIProvider | GatewayError,
    utterance: str,
) -> ImprovementReport:
    """Ask the model how the utterance could be argued more strongly.

    Raises:
        GatewayError: On network, auth or rate-limit failure.
    """
    reply = await _single_turn(
        provider,
        STEEL_MAN_PROMPT,
        STEEL_MAN_USER_TEMPLATE.format(utterance=utterance),
        STEEL_MAN_TEMPERATURE,
        STEEL_MAN_MAX_TOKENS,
    )
    try:
        return parse_improvement_report(reply)
    except MalformedAnalyzerOutput as exc:
        logger.warning("Failed to parse steel manning result: %s", exc)
        return ImprovementReport()


def format_conversation(transcript: Sequence[Message]) -> str:
    """Flatten the transcript into ``sender: text`` lines."""
    return "\n".join(f"{msg.sender}: {msg.text}" for msg in transcript if not msg.is_loading)


async def analyze_chat(
    provider: AIProvider | GatewayError,
    transcript: Sequence[Message],
) -> ChatAnalysis:
    """Extract concepts, philosophers, schools and fallacies from the conversation."""
    reply = await _single_turn(
        provider,
        CHAT_ANALYSIS_PROMPT,
        format_conversation(transcript),
        ANALYSIS_TEMPERATURE,
        ANALYSIS_MAX_TOKENS,
    )
    try:
        return parse_chat_analysis(reply)
    except MalformedAnalyzerOutput as exc:
        logger.warning("Failed to parse analysis result: %s", exc)
        return ChatAnalysis()


def fallacy_findings(report: FallacyReport, now: datetime | None = None) -> list[FallacyFinding]:
    """Turn a report into sidebar findings, one per detected fallacy."""
    detected_at = now or datetime.now()
    return [
        FallacyFinding(
            id=f"fallacy-{uuid.uuid4().hex[:12]}",
            name=f.name,
            detected_at=detected_at,
            explanation=f.explanation,
            suggestion=f.suggestion or _DEFAULT_FALLACY_SUGGESTION,
            context=f'Detected in your message: "{f.explanation}"',
        )
        for f in report.fallacies
    ]


def improvement_findings(
    report: ImprovementReport,
    now: datetime | None = None,
) -> list[ImprovementFinding]:
    """Turn a report into sidebar findings, one per suggested improvement."""
    detected_at = now or datetime.now()
    return [
        ImprovementFinding(
            id=f"improvement-{uuid.uuid4().hex[:12]}",
            category=imp.category or "General",
            detected_at=detected_at,
            reason=imp.reason,
            suggestion=imp.suggestion,
            example=imp.example,
        )
        for imp in report.improvements
    ]
