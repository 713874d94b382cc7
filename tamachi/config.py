from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "db_path": "tamachi.db",
    "tts_provider": "edge-tts",
    "source_language": "ja",
    "target_language": "en",
    "source_voices": ["ja-JP-NanamiNeural", "ja-JP-KeitaNeural"],
    "target_voices": ["en-US-GuyNeural"],
    "elevenlabs_model": "eleven_flash_v2_5",
    "stale_audio_minutes": 60,
}


@dataclass
class Settings:
    db_path: str = DEFAULTS["db_path"]
    tts_provider: str = DEFAULTS["tts_provider"]
    source_language: str = DEFAULTS["source_language"]
    target_language: str = DEFAULTS["target_language"]
    source_voices: list[str] = field(default_factory=lambda: list(DEFAULTS["source_voices"]))
    target_voices: list[str] = field(default_factory=lambda: list(DEFAULTS["target_voices"]))
    elevenlabs_model: str = DEFAULTS["elevenlabs_model"]
    stale_audio_minutes: int = DEFAULTS["stale_audio_minutes"]
    # Credentials come from the environment and are never written to config.json
    elevenlabs_api_key: str = field(default="", repr=False)

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def db_full_path(self) -> Path:
        override = os.environ.get("TAMACHI_DB")
        if override:
            return Path(override)
        return self.project_root / self.db_path

    def to_dict(self) -> dict:
        return {
            "db_path": self.db_path,
            "tts_provider": self.tts_provider,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "source_voices": self.source_voices,
            "target_voices": self.target_voices,
            "elevenlabs_model": self.elevenlabs_model,
            "stale_audio_minutes": self.stale_audio_minutes,
        }


def load_settings() -> Settings:
    raw = {}
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
    known = set(DEFAULTS)
    filtered = {k: v for k, v in raw.items() if k in known}
    return Settings(
        **filtered,
        elevenlabs_api_key=os.environ.get("ELEVEN_LABS_API_KEY", ""),
    )


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
