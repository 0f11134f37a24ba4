"""Encyclopedia lookups: Wikipedia and SEP sources, term variants, local fallback."""

import html
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from urllib.parse import quote

import httpx

from config.config_loader import ReferencesConfig
from sophron.models import (
    SOURCE_CHAT,
    SOURCE_FALLBACK,
    SOURCE_SEP,
    SOURCE_WIKIPEDIA,
    TOPIC_CONCEPT,
    TOPIC_FALLACY,
    TOPIC_PHILOSOPHER,
    TOPIC_SCHOOL,
    ChatAnalysis,
    DiscussedTopic,
    EnrichedAnalysis,
    ReferenceRecord,
)

logger = logging.getLogger(__name__)


class ReferenceNotFound(LookupError):
    """The source has no entry for the term."""

    def __init__(self, source: str, term: str) -> None:
        self.source = source
        self.term = term
        super().__init__(f"[{source}] no entry for {term!r}")


class ReferenceLookupError(Exception):
    """The source could not be reached or answered with an error."""


class ReferenceSource(ABC):
    """A single encyclopedia backend keyed by search term."""

    kind: str

    @abstractmethod
    async def fetch(self, term: str) -> ReferenceRecord:
        """Return the record for ``term``.

        Raises:
            ReferenceNotFound: The source has no usable entry.
            ReferenceLookupError: Transport or upstream failure.
        """
        ...


def key_points(text: str, limit: int = 3) -> list[str]:
    """First few sentences of moderate length, used as bullet points."""
    sentences = [s.strip() for s in text.split(".")[:limit]]
    return [s for s in sentences if 20 < len(s) < 100][:limit]


def further_reading(term: str) -> list[str]:
    return [
        f"Stanford Encyclopedia of Philosophy: {term}",
        f"Internet Encyclopedia of Philosophy: {term}",
        "Routledge Companion to Philosophy",
    ]


class WikipediaSource(ReferenceSource):
    """Wikipedia REST page-summary endpoint."""

    kind = SOURCE_WIKIPEDIA

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/") + "/"

    async def fetch(self, term: str) -> ReferenceRecord:
        url = self._base_url + quote(term.strip().replace(" ", "_"), safe="")
        try:
            response = await self._client.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise ReferenceLookupError(f"Wikipedia request failed: {exc}") from exc

        if response.status_code == 404:
            raise ReferenceNotFound(self.kind, term)
        if response.status_code != 200:
            raise ReferenceLookupError(f"Wikipedia API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ReferenceLookupError(f"Wikipedia returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ReferenceLookupError(f"Wikipedia returned {type(data).__name__}, expected an object")
        extract = (data.get("extract") or "").strip()
        if not extract or data.get("type") == "disambiguation":
            raise ReferenceNotFound(self.kind, term)

        title = data.get("title") or term
        page_url = ((data.get("content_urls") or {}).get("desktop") or {}).get("page")
        thumbnail = (data.get("thumbnail") or {}).get("source")
        description = (data.get("description") or "").strip()
        return ReferenceRecord(
            title=title,
            definition=extract,
            source_kind=self.kind,
            related_concepts=[description] if description else [],
            further_reading=further_reading(title),
            key_points=key_points(extract),
            source_url=page_url,
            thumbnail=thumbnail,
        )


_TAG_RE = re.compile(r"<[^>]+>")
_H1_RE = re.compile(r"<h1[^>]*>(.*?)</h1>", re.DOTALL | re.IGNORECASE)
_PREAMBLE_RE = re.compile(r'<div id="preamble">(.*?)</div>', re.DOTALL | re.IGNORECASE)
_PARAGRAPH_RE = re.compile(r"<p[^>]*>(.*?)</p>", re.DOTALL | re.IGNORECASE)
_RELATED_RE = re.compile(r'<div id="related-entries">(.*?)</div>', re.DOTALL | re.IGNORECASE)
_ANCHOR_RE = re.compile(r"<a[^>]*>(.*?)</a>", re.DOTALL | re.IGNORECASE)


def _clean_html(fragment: str) -> str:
    text = html.unescape(_TAG_RE.sub("", fragment))
    return re.sub(r"\s+", " ", text).strip()


def sep_slug(term: str) -> str:
    """SEP entry slugs are lowercase, hyphen-separated ASCII."""
    slug = re.sub(r"[^a-z0-9\s-]", "", term.lower())
    return re.sub(r"[\s_]+", "-", slug).strip("-")


class SEPSource(ReferenceSource):
    """Stanford Encyclopedia of Philosophy entry pages."""

    kind = SOURCE_SEP

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/") + "/"

    async def fetch(self, term: str) -> ReferenceRecord:
        slug = sep_slug(term)
        if not slug:
            raise ReferenceNotFound(self.kind, term)
        url = f"{self._base_url}{slug}/"
        try:
            response = await self._client.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise ReferenceLookupError(f"SEP request failed: {exc}") from exc

        if response.status_code == 404:
            raise ReferenceNotFound(self.kind, term)
        if response.status_code != 200:
            raise ReferenceLookupError(f"SEP API error: {response.status_code}")

        page = response.text
        preamble = _PREAMBLE_RE.search(page)
        paragraph = _PARAGRAPH_RE.search(preamble.group(1)) if preamble else None
        definition = _clean_html(paragraph.group(1)) if paragraph else ""
        if not definition:
            raise ReferenceNotFound(self.kind, term)

        h1 = _H1_RE.search(page)
        title = _clean_html(h1.group(1)) if h1 else term
        related_block = _RELATED_RE.search(page)
        related = []
        if related_block:
            related = [_clean_html(a) for a in _ANCHOR_RE.findall(related_block.group(1))]
            related = [r for r in dict.fromkeys(related) if r][:8]

        return ReferenceRecord(
            title=title,
            definition=definition,
            source_kind=self.kind,
            related_concepts=related,
            further_reading=[f"Stanford Encyclopedia of Philosophy: {title}"] + further_reading(title)[1:],
            key_points=key_points(definition),
            source_url=str(response.url),
        )


def generate_search_variations(term: str) -> list[str]:
    """Ordered, deduplicated rewrites of ``term``; the term itself always first."""
    variations = [term]
    clean = term.lower().strip()

    if "god" in clean or "divine" in clean or "holy" in clean:
        if "loving" in clean:
            variations += ["God", "Attributes of God", "Omnibenevolence"]
        if "old testament" in clean:
            variations += ["God in the Hebrew Bible", "YHWH", "Theology"]
        if "wrath" in clean or "anger" in clean:
            variations += ["Divine command theory", "Problem of evil", "Theodicy"]

    if "-" in term:
        variations.append(term.replace("-", " "))
        variations.append(term.replace("-", ""))

    if "theodicy" in clean:
        variations += ["Theodicy", "Problem of evil"]

    if clean.endswith("ism"):
        variations.append(clean[:-3])

    if " " in term:
        variations.append(re.sub(r"\s+", "", term))

    return [v for v in dict.fromkeys(variations) if v.strip()]


_FALLBACK_CLASSES: list[tuple[tuple[str, ...], str, list[str], list[str], list[str]]] = [
    (
        ("god", "divine"),
        "A theological concept related to the nature, attributes, or actions of the divine. "
        "This term was discussed in the context of philosophical theology.",
        ["Aquinas", "Augustine", "Anselm", "Maimonides"],
        [
            "Stanford Encyclopedia: Philosophy of Religion",
            "Routledge Companion to Philosophy of Religion",
            "The Cambridge Companion to Religious Studies",
        ],
        ["Theodicy", "Divine Attributes", "Problem of Evil", "Natural Theology"],
    ),
    (
        ("theodicy",),
        "A concept in philosophical theology that addresses the problem of evil and suffering "
        "in relation to divine goodness and omnipotence.",
        ["Leibniz", "Augustine", "Hick", "Plantinga"],
        [
            "Leibniz: Theodicy",
            "John Hick: Evil and the God of Love",
            "Alvin Plantinga: God, Freedom, and Evil",
        ],
        ["Problem of Evil", "Divine Attributes", "Free Will Defense"],
    ),
    (
        ("fallacy",),
        "A logical fallacy or reasoning error that was identified in the philosophical discussion.",
        ["Aristotle", "Mill", "Peirce", "Toulmin"],
        [
            "Aristotle: Sophistical Refutations",
            "Mill: System of Logic",
            "Toulmin: The Uses of Argument",
        ],
        ["Logic", "Critical Thinking", "Argumentation", "Rhetoric"],
    ),
    (
        ("ethic", "moral"),
        "An ethical concept or principle discussed in the context of moral philosophy.",
        ["Aristotle", "Kant", "Mill", "Rawls"],
        [
            "Aristotle: Nicomachean Ethics",
            "Kant: Groundwork for the Metaphysics of Morals",
            "Mill: Utilitarianism",
        ],
        ["Virtue Ethics", "Deontology", "Consequentialism", "Moral Responsibility"],
    ),
    (
        ("consciousness", "mind"),
        "A concept in philosophy of mind concerning the nature of consciousness, mental states, "
        "or cognitive processes.",
        ["Descartes", "Chalmers", "Dennett", "Nagel"],
        [
            "Chalmers: The Conscious Mind",
            "Dennett: Consciousness Explained",
            "Nagel: What Is It Like to Be a Bat?",
        ],
        ["Hard Problem of Consciousness", "Qualia", "Mind-Body Problem", "Intentionality"],
    ),
]

_GENERIC_FALLBACK = (
    "A philosophical concept or term discussed in the conversation.",
    ["Plato", "Aristotle", "Kant", "Wittgenstein"],
    [
        "Stanford Encyclopedia of Philosophy",
        "Internet Encyclopedia of Philosophy",
        "Routledge Encyclopedia of Philosophy",
    ],
    ["Philosophy", "Critical Thinking", "Logic", "Argumentation"],
)


def create_fallback_content(term: str) -> ReferenceRecord:
    """Canned record for a term neither source knows, chosen by keyword class."""
    lower = term.lower()
    definition, philosophers, reading, concepts = _GENERIC_FALLBACK
    for keywords, cls_definition, cls_philosophers, cls_reading, cls_concepts in _FALLBACK_CLASSES:
        if any(k in lower for k in keywords):
            definition, philosophers, reading, concepts = (
                cls_definition, cls_philosophers, cls_reading, cls_concepts,
            )
            break
    return ReferenceRecord(
        title=term,
        definition=definition,
        source_kind=SOURCE_FALLBACK,
        related_concepts=list(concepts),
        further_reading=list(reading),
        related_philosophers=list(philosophers),
        source_url=None,
        original_term=term,
    )


async def lookup(
    term: str,
    sources: Mapping[str, ReferenceSource],
    preferred: str = SOURCE_WIKIPEDIA,
) -> ReferenceRecord:
    """Try every (source, variant) pair in order; never raises.

    The first non-empty record wins and keeps the caller's original term.
    When nothing answers, a locally synthesized record is returned.
    """
    order = [preferred] + [kind for kind in sources if kind != preferred]
    variations = generate_search_variations(term)

    for kind in order:
        source = sources.get(kind)
        if source is None:
            continue
        for variant in variations:
            try:
                record = await source.fetch(variant)
            except ReferenceNotFound:
                continue
            except ReferenceLookupError as exc:
                if variant == term:
                    logger.warning("Error fetching from %s for %r: %s", kind, term, exc)
                continue
            if not record.definition:
                continue
            if variant != term:
                logger.info("Found content for %r using variation %r", term, variant)
            record.original_term = term
            return record

    logger.debug("No source entry for %r, using fallback content", term)
    return create_fallback_content(term)


_FALLACY_READING = [
    "Aristotle: Sophistical Refutations",
    "Walton: Informal Logic",
    "van Eemeren: Argumentation Theory",
]


def _fallacy_record(name: str) -> ReferenceRecord:
    # Named fallacies rarely have encyclopedia entries of their own
    return ReferenceRecord(
        title=name,
        definition="A logical fallacy identified in the discussion.",
        source_kind=SOURCE_CHAT,
        further_reading=list(_FALLACY_READING),
        original_term=name,
    )


async def enrich_analysis(
    analysis: ChatAnalysis,
    sources: Mapping[str, ReferenceSource],
) -> EnrichedAnalysis:
    """Attach a reference record to every topic the chat analysis found.

    Concepts are looked up on Wikipedia first; philosophers and schools on the
    SEP first. Fallacies get a canned record. Every topic also lands in
    ``recently_discussed``, most-mentioned first. Never raises.
    """
    enriched = EnrichedAnalysis()
    groups = (
        (analysis.concepts, enriched.concepts, TOPIC_CONCEPT, SOURCE_WIKIPEDIA),
        (analysis.philosophers, enriched.philosophers, TOPIC_PHILOSOPHER, SOURCE_SEP),
        (analysis.schools, enriched.schools, TOPIC_SCHOOL, SOURCE_SEP),
    )
    for mentions, records, kind, preferred in groups:
        for topic in mentions:
            records[topic.id] = await lookup(topic.name, sources, preferred=preferred)
            enriched.recently_discussed.append(
                DiscussedTopic(id=topic.id, name=topic.name, kind=kind, mentions=topic.mentions)
            )

    for topic in analysis.fallacies:
        enriched.fallacies[topic.id] = _fallacy_record(topic.name)
        enriched.recently_discussed.append(
            DiscussedTopic(id=topic.id, name=topic.name, kind=TOPIC_FALLACY, mentions=topic.mentions)
        )

    enriched.recently_discussed.sort(key=lambda t: t.mentions, reverse=True)
    return enriched


def build_sources(
    client: httpx.AsyncClient,
    config: ReferencesConfig,
) -> dict[str, ReferenceSource]:
    """Default source set, Wikipedia first."""
    return {
        SOURCE_WIKIPEDIA: WikipediaSource(client, config.wikipedia_url),
        SOURCE_SEP: SEPSource(client, config.sep_url),
    }


def make_http_client(config: ReferencesConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=config.timeout_sec,
        headers={"User-Agent": config.user_agent, "Accept": "application/json, text/html"},
    )
