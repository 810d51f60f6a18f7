"""Pydantic models describing routing parameters and session configuration."""
from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class RoutingParameters(BaseModel):
    """Query parameters carried by the browser's WebSocket upgrade request."""

    meeting_id: Optional[str] = Field(default=None, description="Meeting whose persona drives the session")

    @field_validator("meeting_id")
    @classmethod
    def _blank_is_missing(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class MeetingInstructions(BaseModel):
    """Payload returned by the instruction store for one meeting."""

    instructions: str = Field(..., min_length=1, description="Free-text persona instructions")

    @field_validator("instructions")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("instructions must not be blank")
        return value


SERVER_VAD_ONLY_FIELDS = {"threshold", "prefix_padding_ms", "silence_duration_ms"}


class TurnDetectionConfig(BaseModel):
    """Voice activity detection knobs forwarded to the realtime backend."""

    type: Literal["server_vad", "semantic_vad"] = "server_vad"
    interrupt_response: bool = True
    threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    prefix_padding_ms: int = Field(default=500, ge=0)
    silence_duration_ms: int = Field(default=500, ge=0)

    def to_sdk_config(self) -> Dict[str, Any]:
        # threshold and padding/silence durations only apply to server_vad
        if self.type == "semantic_vad":
            return self.model_dump(exclude=SERVER_VAD_ONLY_FIELDS)
        return self.model_dump()


class SessionConfig(BaseModel):
    """Per-connection behaviour of the upstream realtime session."""

    agent_name: str = "Atlas"
    instructions: str
    turn_detection: Optional[TurnDetectionConfig] = None

    def to_model_settings(self) -> Dict[str, Any]:
        """Render the Agents SDK ``model_settings`` mapping for this session."""

        model_settings: Dict[str, Any] = {"instructions": self.instructions}
        if self.turn_detection is not None:
            model_settings["turn_detection"] = self.turn_detection.to_sdk_config()
        return model_settings
