"""JSON shapes exchanged between the relay and its clients (camelCase on the wire)."""

from typing import Any

from sophron.models import (
    SENDER_BOT,
    SENDER_USER,
    ChatAnalysis,
    ConversationMode,
    Fallacy,
    FallacyReport,
    Improvement,
    ImprovementReport,
    Message,
    ReferenceRecord,
    TopicMention,
)


class WireFormatError(ValueError):
    """A request or response body does not have the expected shape."""


def _list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    return value if isinstance(value, list) else []


def messages_to_wire(transcript: list[Message]) -> list[dict[str, str]]:
    return [{"text": m.text, "sender": m.sender} for m in transcript if not m.is_loading]


def messages_from_wire(raw: Any) -> list[Message]:
    if not isinstance(raw, list):
        raise WireFormatError("Messages array is required")
    transcript: list[Message] = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("text"), str):
            raise WireFormatError("Each message needs a text field")
        sender = SENDER_USER if item.get("sender") == SENDER_USER else SENDER_BOT
        transcript.append(Message(text=item["text"], sender=sender))
    return transcript


def mode_to_wire(mode: ConversationMode) -> dict[str, Any]:
    return {
        "detectFallacies": mode.fallacy_detection_enabled,
        "steelManningMode": mode.steel_manning_enabled,
        "isStrengtheningPhase": mode.is_in_strengthening_phase,
        "selectedStyle": mode.debate_style,
        "isDebateMode": mode.is_debate_mode,
    }


def fallacy_report_to_wire(report: FallacyReport) -> dict[str, Any]:
    return {
        "hasFallacies": report.has_fallacies,
        "fallacies": [
            {"name": f.name, "explanation": f.explanation, "suggestion": f.suggestion}
            for f in report.fallacies
        ],
    }


def fallacy_report_from_wire(data: dict[str, Any]) -> FallacyReport:
    fallacies = [
        Fallacy(
            name=str(f.get("name", "")),
            explanation=str(f.get("explanation", "")),
            suggestion=str(f.get("suggestion", "")),
        )
        for f in _list(data, "fallacies")
        if isinstance(f, dict)
    ]
    return FallacyReport(has_fallacies=bool(data.get("hasFallacies")), fallacies=fallacies)


def improvement_report_to_wire(report: ImprovementReport) -> dict[str, Any]:
    improvements = []
    for imp in report.improvements:
        item = {"category": imp.category, "suggestion": imp.suggestion, "reason": imp.reason}
        if imp.example:
            item["example"] = imp.example
        improvements.append(item)
    return {"hasImprovements": report.has_improvements, "improvements": improvements}


def improvement_report_from_wire(data: dict[str, Any]) -> ImprovementReport:
    improvements = [
        Improvement(
            category=str(i.get("category", "")),
            suggestion=str(i.get("suggestion", "")),
            reason=str(i.get("reason", "")),
            example=i.get("example") or None,
        )
        for i in _list(data, "improvements")
        if isinstance(i, dict)
    ]
    return ImprovementReport(
        has_improvements=bool(data.get("hasImprovements")),
        improvements=improvements,
    )


def _mentions_to_wire(items: list[TopicMention]) -> list[dict[str, Any]]:
    return [
        {"id": t.id, "name": t.name, "mentions": t.mentions, "relevance": t.relevance}
        for t in items
    ]


def chat_analysis_to_wire(analysis: ChatAnalysis) -> dict[str, Any]:
    return {
        "concepts": _mentions_to_wire(analysis.concepts),
        "philosophers": _mentions_to_wire(analysis.philosophers),
        "schools": _mentions_to_wire(analysis.schools),
        "fallacies": _mentions_to_wire(analysis.fallacies),
    }


def _mentions_from_wire(items: list[Any]) -> list[TopicMention]:
    mentions = []
    for t in items:
        if not isinstance(t, dict) or not t.get("name"):
            continue
        name = str(t["name"])
        try:
            count = int(t.get("mentions") or 1)
            relevance = float(t.get("relevance") or 0.0)
        except (TypeError, ValueError):
            continue
        mentions.append(
            TopicMention(
                id=str(t.get("id") or name.lower().replace(" ", "-")),
                name=name,
                mentions=count,
                relevance=relevance,
            )
        )
    return mentions


def chat_analysis_from_wire(data: dict[str, Any]) -> ChatAnalysis:
    return ChatAnalysis(
        concepts=_mentions_from_wire(_list(data, "concepts")),
        philosophers=_mentions_from_wire(_list(data, "philosophers")),
        schools=_mentions_from_wire(_list(data, "schools")),
        fallacies=_mentions_from_wire(_list(data, "fallacies")),
    )


def wikipedia_record_to_wire(record: ReferenceRecord) -> dict[str, Any]:
    return {
        "title": record.title,
        "definition": record.definition,
        "url": record.source_url,
        "thumbnail": record.thumbnail,
        "relatedConcepts": record.related_concepts,
        "source": record.source_kind,
        "keyPoints": record.key_points,
    }


def sep_record_to_wire(record: ReferenceRecord) -> dict[str, Any]:
    return {
        "title": record.title,
        "definition": record.definition,
        "url": record.source_url,
        "relatedConcepts": record.related_concepts,
        "furtherReading": record.further_reading,
        "source": record.source_kind,
    }


def reference_record_from_wire(data: dict[str, Any], source_kind: str) -> ReferenceRecord:
    return ReferenceRecord(
        title=str(data.get("title", "")),
        definition=str(data.get("definition", "")),
        source_kind=str(data.get("source") or source_kind),
        related_concepts=[str(c) for c in _list(data, "relatedConcepts")],
        further_reading=[str(r) for r in _list(data, "furtherReading")],
        key_points=[str(p) for p in _list(data, "keyPoints")],
        source_url=data.get("url"),
        thumbnail=data.get("thumbnail"),
    )
