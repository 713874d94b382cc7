from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path

from tamachi.models import SpeechAudio
from tamachi.providers.base import TTSProvider


class PiperTTSProvider(TTSProvider):
    """Local synthesis; the voice is the path or name of a piper model."""

    def __init__(self):
        if not shutil.which("piper"):
            raise RuntimeError(
                "Piper not found. Install from https://github.com/rhasspy/piper"
            )

    async def synthesize(self, text: str, voice: str) -> SpeechAudio:
        with tempfile.TemporaryDirectory() as tmp:
            wav_path = Path(tmp) / "out.wav"
            proc = await asyncio.create_subprocess_exec(
                "piper",
                "--model", voice,
                "--output_file", str(wav_path),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            await proc.communicate(input=text.encode())
            if proc.returncode != 0:
                raise RuntimeError(f"Piper failed with code {proc.returncode}")
            return SpeechAudio(data=wav_path.read_bytes(), content_type="audio/wav")

    def name(self) -> str:
        return "piper"
