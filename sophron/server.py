"""aiohttp relay exposing chat, analyzer and reference routes to the browser client."""

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from aiohttp import web

from sophron.analyzers import analyze_chat, analyze_fallacies, analyze_for_strengthening
from sophron.gateway import complete
from sophron.healthcheck import health_payload
from sophron.models import SOURCE_SEP, SOURCE_WIKIPEDIA, ConversationMode, normalize_style
from sophron.prompts import compose_system_instruction
from sophron.providers.base import AIProvider, GatewayError
from sophron.references import ReferenceLookupError, ReferenceNotFound, ReferenceSource
from sophron.wire import (
    WireFormatError,
    chat_analysis_to_wire,
    fallacy_report_to_wire,
    improvement_report_to_wire,
    messages_from_wire,
    sep_record_to_wire,
    wikipedia_record_to_wire,
)

logger = logging.getLogger(__name__)

PROVIDER_KEY = web.AppKey("provider", object)
SOURCES_KEY = web.AppKey("sources", object)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class ValidationError(ValueError):
    """Malformed or missing request fields; answered with 400."""


def _json(payload: Any, status: int = 200) -> web.Response:
    return web.json_response(payload, status=status, headers=CORS_HEADERS)


def _error(message: str, status: int) -> web.Response:
    return _json({"error": message}, status=status)


async def _read_object(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise ValidationError("Expected JSON body.") from exc
    if not isinstance(body, dict):
        raise ValidationError("Body must be a JSON object.")
    return body


def _user_message(body: dict[str, Any]) -> str:
    text = body.get("userMessage")
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("User message is required")
    return text


_MODE_FLAGS = ("steelManningMode", "isStrengtheningPhase", "detectFallacies", "isDebateMode")


def _mode_from_body(body: dict[str, Any]) -> ConversationMode:
    raw_style = body.get("selectedStyle")
    if raw_style is not None and not isinstance(raw_style, str):
        raise ValidationError("selectedStyle must be a string")
    for flag in _MODE_FLAGS:
        if flag in body and not isinstance(body[flag], bool):
            raise ValidationError(f"{flag} must be a boolean")
    raw_style = raw_style or ""
    style = normalize_style(raw_style)
    if style is None:
        logger.warning("Unknown style selected: %r", raw_style)
        style = "none"
    steel_manning = bool(body.get("steelManningMode", False))
    return ConversationMode(
        debate_style=style,
        steel_manning_enabled=steel_manning,
        is_in_strengthening_phase=steel_manning and bool(body.get("isStrengtheningPhase", False)),
        fallacy_detection_enabled=bool(body.get("detectFallacies", False)),
        is_debate_mode=bool(body.get("isDebateMode", False)),
    )


def _relay(label: str, failure: str | None = None) -> Callable[[Handler], Handler]:
    """Wrap a model-backed handler with the shared error mapping.

    ``failure`` replaces the generic completion error text for routes that
    have their own wording.
    """

    def decorate(handler: Handler) -> Handler:
        async def wrapped(request: web.Request) -> web.StreamResponse:
            try:
                return await handler(request)
            except ValidationError as exc:
                return _error(str(exc), 400)
            except GatewayError as exc:
                logger.error("Error %s: %s", label, exc)
                message = exc.user_message
                if failure and message == GatewayError.user_message:
                    message = failure
                return _error(message, exc.status)

        return wrapped

    return decorate


@_relay("calling completion API")
async def handle_chat(request: web.Request) -> web.Response:
    body = await _read_object(request)
    try:
        transcript = messages_from_wire(body.get("messages"))
    except WireFormatError as exc:
        raise ValidationError(str(exc)) from exc

    mode = _mode_from_body(body)
    logger.info(
        "Chat request: %d messages, style=%s, debate=%s, strengthening=%s",
        len(transcript),
        mode.debate_style,
        mode.is_debate_mode,
        mode.is_in_strengthening_phase,
    )
    reply = await complete(
        request.app[PROVIDER_KEY], compose_system_instruction(mode), transcript
    )
    return _json({"message": reply})


@_relay("detecting fallacies", "Failed to detect fallacies. Please try again.")
async def handle_detect_fallacies(request: web.Request) -> web.Response:
    utterance = _user_message(await _read_object(request))
    report = await analyze_fallacies(request.app[PROVIDER_KEY], utterance)
    return _json(fallacy_report_to_wire(report))


@_relay("analyzing argument for steel manning", "Failed to analyze argument. Please try again.")
async def handle_steel_man(request: web.Request) -> web.Response:
    utterance = _user_message(await _read_object(request))
    report = await analyze_for_strengthening(request.app[PROVIDER_KEY], utterance)
    return _json(improvement_report_to_wire(report))


@_relay("analyzing chat content", "Failed to analyze chat content")
async def handle_analyze_chat(request: web.Request) -> web.Response:
    body = await _read_object(request)
    try:
        transcript = messages_from_wire(body.get("messages"))
    except WireFormatError as exc:
        raise ValidationError(str(exc)) from exc
    analysis = await analyze_chat(request.app[PROVIDER_KEY], transcript)
    return _json(chat_analysis_to_wire(analysis))


def _lookup_handler(kind: str, to_wire: Callable[..., dict[str, Any]], label: str) -> Handler:
    async def handle(request: web.Request) -> web.Response:
        term = request.match_info["term"].strip()
        sources: Mapping[str, ReferenceSource] = request.app[SOURCES_KEY]
        if not term:
            return _error("Search term is required", 400)
        try:
            record = await sources[kind].fetch(term)
        except ReferenceNotFound:
            return _error(f"{label} entry not found", 404)
        except ReferenceLookupError as exc:
            logger.error("Error fetching %s content for %r: %s", label, term, exc)
            return _error(f"Failed to fetch {label} content", 500)
        return _json(to_wire(record))

    return handle


async def handle_health(request: web.Request) -> web.Response:
    return _json(health_payload(request.app[PROVIDER_KEY]))


async def handle_root(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "message": "sophron-bot API Server",
            "endpoints": [
                "POST /api/chat - Send chat messages",
                "POST /api/detect-fallacies - Check a message for logical fallacies",
                "POST /api/steel-man - Suggest ways to strengthen an argument",
                "POST /api/analyze-chat - Extract topics from a conversation",
                "GET /api/wikipedia/{term} - Wikipedia summary",
                "GET /api/sep/{term} - Stanford Encyclopedia of Philosophy summary",
                "GET /api/health - Health check",
            ],
        }
    )


async def handle_options(request: web.Request) -> web.Response:
    return web.Response(status=204, headers=CORS_HEADERS)


@web.middleware
async def json_errors(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Answer routing failures with JSON bodies like every other error."""
    try:
        return await handler(request)
    except web.HTTPMethodNotAllowed:
        return _error("Method not allowed", 405)
    except web.HTTPNotFound:
        return web.json_response({"error": "Not found"}, status=404)


def create_app(
    provider_or_error: AIProvider | GatewayError,
    sources: Mapping[str, ReferenceSource],
) -> web.Application:
    """Build the relay app around an already-configured provider (or its error)."""
    app = web.Application(middlewares=[json_errors])
    app[PROVIDER_KEY] = provider_or_error
    app[SOURCES_KEY] = sources

    # ---- Route registrations (single place) ----
    app.router.add_get("/", handle_root)
    app.router.add_get("/api/health", handle_health)
    for path, handler in (
        ("/api/chat", handle_chat),
        ("/api/detect-fallacies", handle_detect_fallacies),
        ("/api/steel-man", handle_steel_man),
        ("/api/analyze-chat", handle_analyze_chat),
    ):
        app.router.add_post(path, handler)
        app.router.add_options(path, handle_options)
    app.router.add_get(
        "/api/wikipedia/{term}",
        _lookup_handler(SOURCE_WIKIPEDIA, wikipedia_record_to_wire, "Wikipedia"),
    )
    app.router.add_get(
        "/api/sep/{term}",
        _lookup_handler(SOURCE_SEP, sep_record_to_wire, "SEP"),
    )
    return app
