from __future__ import annotations

import importlib

import pytest

import audio_relay.config as config


def test_settings_reads_relay_environment(monkeypatch):
    monkeypatch.setenv("RELAY_PORT", "3001")
    monkeypatch.setenv("INSTRUCTIONS_BASE_URL", "https://store.example.com")
    monkeypatch.setenv("TURN_DETECTION_INTERRUPT", "false")
    monkeypatch.setenv("TURN_DETECTION_THRESHOLD", "0.7")

    reloaded = importlib.reload(config)

    try:
        assert reloaded.settings.relay_port == 3001
        assert reloaded.settings.instructions_base_url == "https://store.example.com"
        assert reloaded.settings.requires_meeting_id is True
        assert reloaded.settings.turn_detection_interrupt is False
        assert reloaded.settings.turn_detection_threshold == 0.7
    finally:
        monkeypatch.undo()
        importlib.reload(config)


def test_settings_defaults_to_default_instructions_mode():
    settings = config.Settings(openai_api_key="sk-test", instructions_base_url=None)

    assert settings.requires_meeting_id is False
    assert settings.default_instructions
    assert settings.require_api_key() == "sk-test"


def test_require_api_key_refuses_missing_credential():
    settings = config.Settings(openai_api_key=None)

    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        settings.require_api_key()
