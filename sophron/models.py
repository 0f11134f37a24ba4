"""Pure dataclasses for the sophron debate client. No I/O, no deps."""

from dataclasses import dataclass, field
from datetime import datetime

SENDER_USER = "user"
SENDER_BOT = "bot"

STYLE_NONE = "none"
STYLE_SOCRATIC = "socratic"
STYLE_FORMAL = "formal"
STYLE_DEVILS_ADVOCATE = "devils-advocate"

DEBATE_STYLES = (STYLE_NONE, STYLE_SOCRATIC, STYLE_FORMAL, STYLE_DEVILS_ADVOCATE)

# Spellings the browser client has sent for the same styles
_STYLE_ALIASES = {
    "": STYLE_NONE,
    "devil": STYLE_DEVILS_ADVOCATE,
    "devils_advocate": STYLE_DEVILS_ADVOCATE,
}

SOURCE_WIKIPEDIA = "wikipedia"
SOURCE_SEP = "sep"
SOURCE_FALLBACK = "fallback"
SOURCE_CHAT = "chat"

TOPIC_CONCEPT = "concept"
TOPIC_PHILOSOPHER = "philosopher"
TOPIC_SCHOOL = "school"
TOPIC_FALLACY = "fallacy"


def normalize_style(style: str | None) -> str | None:
    """Map a client-supplied style name onto DEBATE_STYLES. Returns None if unknown."""
    if style is not None and not isinstance(style, str):
        return None
    key = (style or "").strip().lower()
    key = _STYLE_ALIASES.get(key, key)
    return key if key in DEBATE_STYLES else None


@dataclass
class Message:
    text: str
    sender: str                 # "user" or "bot"
    is_loading: bool = False    # placeholder shown while a reply is in flight
    id: str | None = None


@dataclass
class ConversationMode:
    debate_style: str = STYLE_NONE
    steel_manning_enabled: bool = False
    is_in_strengthening_phase: bool = False
    fallacy_detection_enabled: bool = False
    is_debate_mode: bool = False


@dataclass
class ModelResponse:
    provider: str
    model: str
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class Fallacy:
    name: str
    explanation: str
    suggestion: str


@dataclass
class FallacyReport:
    has_fallacies: bool = False
    fallacies: list[Fallacy] = field(default_factory=list)


@dataclass
class Improvement:
    category: str
    suggestion: str
    reason: str
    example: str | None = None


@dataclass
class ImprovementReport:
    has_improvements: bool = False
    improvements: list[Improvement] = field(default_factory=list)


@dataclass
class FallacyFinding:
    id: str
    name: str
    detected_at: datetime
    explanation: str
    suggestion: str
    context: str = ""


@dataclass
class ImprovementFinding:
    id: str
    category: str
    detected_at: datetime
    reason: str
    suggestion: str
    example: str | None = None


@dataclass
class TopicMention:
    id: str
    name: str
    mentions: int
    relevance: float


@dataclass
class ChatAnalysis:
    concepts: list[TopicMention] = field(default_factory=list)
    philosophers: list[TopicMention] = field(default_factory=list)
    schools: list[TopicMention] = field(default_factory=list)
    fallacies: list[TopicMention] = field(default_factory=list)


@dataclass
class ReferenceRecord:
    title: str
    definition: str
    source_kind: str            # "wikipedia", "sep", "fallback" or "chat"
    related_concepts: list[str] = field(default_factory=list)
    further_reading: list[str] = field(default_factory=list)
    related_philosophers: list[str] = field(default_factory=list)
    key_points: list[str] = field(default_factory=list)
    source_url: str | None = None
    thumbnail: str | None = None
    original_term: str | None = None


@dataclass
class DiscussedTopic:
    id: str
    name: str
    kind: str                   # "concept", "philosopher", "school" or "fallacy"
    mentions: int


@dataclass
class EnrichedAnalysis:
    """Chat analysis with a reference record per topic, keyed by topic id."""

    recently_discussed: list[DiscussedTopic] = field(default_factory=list)
    concepts: dict[str, ReferenceRecord] = field(default_factory=dict)
    philosophers: dict[str, ReferenceRecord] = field(default_factory=dict)
    schools: dict[str, ReferenceRecord] = field(default_factory=dict)
    fallacies: dict[str, ReferenceRecord] = field(default_factory=dict)
