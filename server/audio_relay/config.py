"""Configuration helpers for the relay service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    The instructed variant (per-meeting persona instructions) is enabled by
    setting ``INSTRUCTIONS_BASE_URL``; without it every connection uses
    ``default_instructions`` and no ``meeting_id`` is required.
    """

    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    relay_host: str = os.getenv("RELAY_HOST", "0.0.0.0")
    relay_port: int = int(os.getenv("RELAY_PORT", "3000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Instruction store, e.g. https://example.vercel.app
    instructions_base_url: Optional[str] = os.getenv("INSTRUCTIONS_BASE_URL")
    instructions_fetch_timeout: float = float(os.getenv("INSTRUCTIONS_FETCH_TIMEOUT", "10"))

    agent_name: str = os.getenv("AGENT_NAME", "Atlas")
    default_instructions: str = os.getenv("DEFAULT_INSTRUCTIONS", "You are a helpful assistant.")
    upstream_connect_timeout: float = float(os.getenv("UPSTREAM_CONNECT_TIMEOUT", "15"))

    # "none" disables the turn detection block and leaves the backend default
    turn_detection: str = os.getenv("TURN_DETECTION", "server_vad")
    turn_detection_interrupt: bool = _env_bool("TURN_DETECTION_INTERRUPT", True)
    turn_detection_threshold: float = float(os.getenv("TURN_DETECTION_THRESHOLD", "0.5"))
    turn_detection_prefix_padding_ms: int = int(os.getenv("TURN_DETECTION_PREFIX_PADDING_MS", "500"))
    turn_detection_silence_ms: int = int(os.getenv("TURN_DETECTION_SILENCE_MS", "500"))

    @property
    def requires_meeting_id(self) -> bool:
        return bool(self.instructions_base_url)

    def require_api_key(self) -> str:
        """Return the backend credential or fail; the relay never serves without it."""

        if not self.openai_api_key:
            raise RuntimeError(
                'Environment variable "OPENAI_API_KEY" is required.\n'
                "Please set it in your .env file."
            )
        return self.openai_api_key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
