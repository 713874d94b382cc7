"""Tests for configuration loading and saving."""
from __future__ import annotations

import json
from unittest.mock import patch

from tamachi.config import DEFAULTS, Settings, load_settings, save_settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.tts_provider == "edge-tts"
        assert s.source_language == "ja"
        assert s.target_language == "en"

    def test_to_dict(self):
        d = Settings().to_dict()
        assert set(d) == set(DEFAULTS)
        assert isinstance(d["source_voices"], list)

    def test_api_key_not_serialized(self):
        s = Settings(elevenlabs_api_key="secret")
        assert "secret" not in json.dumps(s.to_dict())
        assert "secret" not in repr(s)

    def test_db_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TAMACHI_DB", str(tmp_path / "x.db"))
        assert Settings().db_full_path == tmp_path / "x.db"


class TestLoadSaveSettings:
    def test_load_from_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ELEVEN_LABS_API_KEY", raising=False)
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"tts_provider": "elevenlabs", "target_voices": ["Joanna"]}))

        with patch("tamachi.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.tts_provider == "elevenlabs"
        assert s.target_voices == ["Joanna"]
        assert s.source_language == "ja"
        assert s.elevenlabs_api_key == ""

    def test_load_missing_file(self, tmp_path):
        with patch("tamachi.config.CONFIG_PATH", tmp_path / "nonexistent.json"):
            s = load_settings()
        assert s.tts_provider == "edge-tts"

    def test_api_key_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ELEVEN_LABS_API_KEY", "k-123")
        with patch("tamachi.config.CONFIG_PATH", tmp_path / "nonexistent.json"):
            s = load_settings()
        assert s.elevenlabs_api_key == "k-123"

    def test_save_creates_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        with patch("tamachi.config.CONFIG_PATH", config_path):
            save_settings(Settings(tts_provider="piper"))
        data = json.loads(config_path.read_text())
        assert data["tts_provider"] == "piper"
        assert "elevenlabs_api_key" not in data

    def test_unknown_keys_ignored(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"tts_provider": "edge-tts", "unknown_key": "value"}))
        with patch("tamachi.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert not hasattr(s, "unknown_key")
