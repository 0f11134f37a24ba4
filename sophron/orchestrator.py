"""Conversation orchestration: transcript, mode flags, per-turn analyzer fan-out."""

import asyncio
import enum
import logging
import uuid
from collections.abc import Callable

from sophron.analyzers import fallacy_findings, improvement_findings
from sophron.backends import ConversationBackend
from sophron.models import (
    SENDER_BOT,
    SENDER_USER,
    STYLE_NONE,
    ChatAnalysis,
    ConversationMode,
    FallacyFinding,
    ImprovementFinding,
    Message,
    normalize_style,
)
from sophron.prompts import PREDEFINED_TOPICS, opening_message
from sophron.providers.base import GatewayError

logger = logging.getLogger(__name__)

_STYLE_LABELS = {
    STYLE_NONE: "No specific debate style",
    "socratic": "Socratic method",
    "formal": "Formal logic",
    "devils-advocate": "Devil's advocate",
}


class ConversationState(enum.Enum):
    """Where the current turn is.

    AWAITING_COMPLETION starts when the primary completion call is launched.
    The analyzers run alongside it, so this state covers analyzer calls still
    in flight as well as the completion itself.
    """

    IDLE = "idle"
    AWAITING_ANALYSIS = "awaiting_analysis"
    AWAITING_COMPLETION = "awaiting_completion"


class Conversation:
    """Single-writer owner of the transcript and the two finding lists.

    All mutation happens on the event loop through the methods below; lists
    are replaced or appended to, never edited in place by callers.
    """

    def __init__(
        self,
        backend: ConversationBackend,
        *,
        debate_mode: bool = False,
        on_change: Callable[["Conversation"], None] | None = None,
    ) -> None:
        self._backend = backend
        self._on_change = on_change
        self.mode = ConversationMode(is_debate_mode=debate_mode)
        self.state = ConversationState.IDLE
        self.transcript: list[Message] = [
            Message(text=opening_message(debate_mode), sender=SENDER_BOT, id=self._new_id())
        ]
        self.fallacies: list[FallacyFinding] = []
        self.improvements: list[ImprovementFinding] = []
        self.last_analysis_error: GatewayError | None = None

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex[:12]

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self)

    def _append(self, message: Message) -> Message:
        if message.id is None:
            message.id = self._new_id()
        self.transcript = [*self.transcript, message]
        self._changed()
        return message

    def _replace(self, message_id: str, message: Message) -> None:
        message.id = message_id
        replaced = [message if m.id == message_id else m for m in self.transcript]
        if message not in replaced:
            replaced.append(message)
        self.transcript = replaced
        self._changed()

    def _notify(self, text: str) -> None:
        # Only mid-conversation; the opening message alone gets no notices
        if len(self.transcript) > 1:
            self._append(Message(text=text, sender=SENDER_BOT))

    # ---- Mode toggles -------------------------------------------------

    def select_style(self, style: str) -> None:
        normalized = normalize_style(style)
        if normalized is None:
            raise ValueError(f"Unknown debate style: {style!r}")
        if normalized == self.mode.debate_style:
            return
        self.mode.debate_style = normalized
        self._notify(f"Debate style set to: {_STYLE_LABELS[normalized]}.")
        self._changed()

    def set_fallacy_detection(self, enabled: bool) -> None:
        self.mode.fallacy_detection_enabled = enabled
        self._notify(
            "Fallacy detection is now enabled. I will point out logical fallacies in your arguments."
            if enabled
            else "Fallacy detection is now disabled. I will not point out logical fallacies."
        )
        self._changed()

    def set_steel_manning(self, enabled: bool) -> None:
        self.mode.steel_manning_enabled = enabled
        if not enabled:
            self.mode.is_in_strengthening_phase = False
        self._notify(
            "Steel-manning mode is now enabled. I will help strengthen your arguments before debating them."
            if enabled
            else "Steel-manning mode is now disabled. I will debate your arguments as-is."
        )
        self._changed()

    def set_debate_mode(self, enabled: bool) -> None:
        self.mode.is_debate_mode = enabled
        self._notify(
            "Debate mode is now enabled. I will take the opposite side of whatever you argue."
            if enabled
            else "Debate mode is now disabled. I will return to guiding you through your argument."
        )
        self._changed()

    def clear_findings(self) -> None:
        self.fallacies = []
        self.improvements = []
        self._changed()

    # ---- Turn handling --------------------------------------------------

    async def _run_fallacy_analysis(self, utterance: str) -> None:
        try:
            report = await self._backend.detect_fallacies(utterance)
        except GatewayError as exc:
            logger.warning("Fallacy detection failed: %s", exc)
            self.last_analysis_error = exc
            return
        if report.has_fallacies:
            self.fallacies = [*self.fallacies, *fallacy_findings(report)]
            self._changed()

    async def _run_improvement_analysis(self, utterance: str) -> None:
        try:
            report = await self._backend.steel_man(utterance)
        except GatewayError as exc:
            logger.warning("Steel-man analysis failed: %s", exc)
            self.last_analysis_error = exc
            return
        if report.has_improvements:
            self.improvements = [*self.improvements, *improvement_findings(report)]
            self._changed()

    async def _run_completion(self) -> None:
        self.state = ConversationState.AWAITING_COMPLETION
        snapshot = list(self.transcript)
        # Mode is read when the call starts; later toggles do not affect it
        mode = ConversationMode(**vars(self.mode))
        placeholder = self._append(Message(text="", sender=SENDER_BOT, is_loading=True))
        reply = GatewayError.user_message
        try:
            reply = await self._backend.chat(snapshot, mode)
        except GatewayError as exc:
            logger.error("Completion failed: %s", exc)
            reply = exc.user_message
        finally:
            # The placeholder never outlives the call, whatever escapes it
            self._replace(placeholder.id, Message(text=reply, sender=SENDER_BOT))

    def _has_user_messages(self) -> bool:
        return any(m.sender == SENDER_USER for m in self.transcript)

    async def submit(self, text: str) -> None:
        """Handle one user utterance end to end.

        The user message is appended immediately. With steel-manning on, the
        first claim of the session enters the strengthening phase. Enabled
        analyzers run concurrently; in the strengthening phase they are the
        whole turn and no bot reply is produced. Otherwise the primary
        completion runs alongside them and its reply (or error text) lands in the transcript.
        """
        utterance = text.strip()
        if not utterance:
            return
        if self.state is not ConversationState.IDLE:
            raise RuntimeError(f"Cannot submit while {self.state.value}")

        # Strengthening is one-shot: only the opening claim enters it here
        if (
            self.mode.steel_manning_enabled
            and not self.mode.is_in_strengthening_phase
            and not self._has_user_messages()
        ):
            self.mode.is_in_strengthening_phase = True

        self._append(Message(text=utterance, sender=SENDER_USER))
        self.state = ConversationState.AWAITING_ANALYSIS
        self.last_analysis_error = None

        analyses = []
        if self.mode.fallacy_detection_enabled:
            analyses.append(self._run_fallacy_analysis(utterance))
        if self.mode.steel_manning_enabled:
            analyses.append(self._run_improvement_analysis(utterance))

        try:
            if self.mode.steel_manning_enabled and self.mode.is_in_strengthening_phase:
                await asyncio.gather(*analyses)
                self.mode.is_in_strengthening_phase = False
            else:
                await asyncio.gather(*analyses, self._run_completion())
        finally:
            self.state = ConversationState.IDLE
            self._changed()

    async def select_topic(self, topic: str | int) -> str:
        """Submit a predefined claim, or a free-text one, as a new claim.

        A topic is always a new claim, so with steel-manning on it enters the
        strengthening phase even mid-conversation. Returns the submitted text.
        """
        if isinstance(topic, int):
            if not 1 <= topic <= len(PREDEFINED_TOPICS):
                raise ValueError(f"No topic number {topic}")
            topic = PREDEFINED_TOPICS[topic - 1]
        if not topic.strip():
            raise ValueError("Topic is empty")
        if self.state is not ConversationState.IDLE:
            raise RuntimeError(f"Cannot submit while {self.state.value}")
        if self.mode.steel_manning_enabled:
            self.mode.is_in_strengthening_phase = True
        await self.submit(topic)
        return topic

    async def analyze(self) -> ChatAnalysis:
        """Extract topics from the transcript so far.

        Raises:
            GatewayError: The analysis call failed.
        """
        return await self._backend.analyze_chat(list(self.transcript))
