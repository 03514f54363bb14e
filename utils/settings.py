"""Environment-driven configuration for the visitor client and the server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-12-17"
DEFAULT_REALTIME_URL = "https://api.openai.com/v1/realtime"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} is not a number") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} is not an integer") from exc


@dataclass(frozen=True)
class VadSettings:
    """Server-side voice activity detection knobs.

    Attributes:
        enabled: Whether turn-taking is mediated by the server.
        threshold: Activation threshold between 0.0 and 1.0.
        prefix_padding_ms: Audio kept before detected speech.
        silence_duration_ms: Trailing silence that ends a turn.
    """

    enabled: bool = True
    threshold: float = 0.5
    prefix_padding_ms: int = 300
    silence_duration_ms: int = 500

    @classmethod
    def from_env(cls) -> "VadSettings":
        return cls(
            enabled=_env_bool("VAD_ENABLED", True),
            threshold=_env_float("VAD_THRESHOLD", 0.5),
            prefix_padding_ms=_env_int("VAD_PREFIX_PADDING_MS", 300),
            silence_duration_ms=_env_int("VAD_SILENCE_DURATION_MS", 500),
        )


@dataclass(frozen=True)
class RealtimeSettings:
    """Settings consumed by the session orchestrator and its HTTP collaborators."""

    api_base_url: str = "http://localhost:3000"
    realtime_url: str = DEFAULT_REALTIME_URL
    model: str = DEFAULT_REALTIME_MODEL
    voice: str = "alloy"
    modalities: Tuple[str, ...] = ("text", "audio")
    vad: VadSettings = field(default_factory=VadSettings)
    channel_label: str = "oai-events"
    connect_timeout: float = 20.0
    http_timeout: float = 15.0
    image_max_size: int = 1024
    greeting: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RealtimeSettings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            api_base_url=(os.getenv("ART_API_URL") or "http://localhost:3000").rstrip("/"),
            realtime_url=os.getenv("REALTIME_URL") or DEFAULT_REALTIME_URL,
            model=os.getenv("REALTIME_MODEL") or DEFAULT_REALTIME_MODEL,
            voice=os.getenv("REALTIME_VOICE") or "alloy",
            vad=VadSettings.from_env(),
            connect_timeout=_env_float("CONNECT_TIMEOUT", 20.0),
            http_timeout=_env_float("HTTP_TIMEOUT", 15.0),
            image_max_size=_env_int("IMAGE_MAX_SIZE", 1024),
            greeting=os.getenv("REALTIME_GREETING") or None,
        )


@dataclass(frozen=True)
class ServerSettings:
    """Settings for the credential broker and record API."""

    client_url: str = "http://localhost:5173"
    model: str = DEFAULT_REALTIME_MODEL
    voice: str = "verse"

    @classmethod
    def from_env(cls) -> "ServerSettings":
        client_url = os.getenv("CLIENT_URL") or "http://localhost:5173"
        if not client_url.startswith("http"):
            client_url = f"https://{client_url}"
        return cls(
            client_url=client_url.rstrip("/"),
            model=os.getenv("REALTIME_MODEL") or DEFAULT_REALTIME_MODEL,
            voice=os.getenv("REALTIME_VOICE") or "verse",
        )
