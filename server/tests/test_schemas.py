from __future__ import annotations

from audio_relay.config import Settings
from audio_relay.services.relay import build_session_config


def test_server_vad_sends_energy_and_timing_parameters():
    config = build_session_config(Settings(openai_api_key="k", turn_detection="server_vad"), "x")

    assert config.to_model_settings()["turn_detection"] == {
        "type": "server_vad",
        "interrupt_response": True,
        "threshold": 0.5,
        "prefix_padding_ms": 500,
        "silence_duration_ms": 500,
    }


def test_semantic_vad_omits_server_vad_only_parameters():
    config = build_session_config(Settings(openai_api_key="k", turn_detection="semantic_vad"), "x")

    assert config.to_model_settings()["turn_detection"] == {
        "type": "semantic_vad",
        "interrupt_response": True,
    }


def test_turn_detection_none_leaves_backend_default():
    config = build_session_config(Settings(openai_api_key="k", turn_detection="none"), "x")

    assert config.to_model_settings() == {"instructions": "x"}
