"""Load settings.yaml into typed dataclasses. Reports API key presence at startup."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ServerConfig:
    host: str
    port: int


@dataclass
class ModelConfig:
    name: str
    model: str
    api_key_env: str
    timeout_sec: int
    base_url: str | None = None


@dataclass
class ReferencesConfig:
    wikipedia_url: str
    sep_url: str
    timeout_sec: int
    user_agent: str


@dataclass
class SessionConfig:
    debate_mode: bool = False


@dataclass
class AppConfig:
    server: ServerConfig
    model: ModelConfig
    references: ReferencesConfig
    session: SessionConfig
    has_api_key: bool = False


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    A missing API key is logged but does not raise; the relay answers
    every model-backed endpoint with a "not configured" error instead.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    server_raw = raw["server"]
    server = ServerConfig(
        host=str(server_raw["host"]),
        port=int(server_raw["port"]),
    )

    model_raw = raw["model"]
    model = ModelConfig(
        name=str(model_raw["name"]),
        model=str(model_raw["model"]),
        api_key_env=str(model_raw["api_key_env"]),
        timeout_sec=int(model_raw["timeout_sec"]),
        base_url=model_raw.get("base_url"),
    )

    refs_raw = raw["references"]
    references = ReferencesConfig(
        wikipedia_url=str(refs_raw["wikipedia_url"]),
        sep_url=str(refs_raw["sep_url"]),
        timeout_sec=int(refs_raw["timeout_sec"]),
        user_agent=str(refs_raw["user_agent"]),
    )

    session_raw = raw.get("session") or {}
    session = SessionConfig(debate_mode=bool(session_raw.get("debate_mode", False)))

    has_api_key = bool(os.environ.get(model.api_key_env, "").strip())
    if has_api_key:
        logger.info("Completion provider configured: %s (%s)", model.name, model.model)
    else:
        logger.info(
            "Completion provider not configured, set %s in .env",
            model.api_key_env,
        )

    return AppConfig(
        server=server,
        model=model,
        references=references,
        session=session,
        has_api_key=has_api_key,
    )
