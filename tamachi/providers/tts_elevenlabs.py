from __future__ import annotations

import asyncio

from tamachi.models import SpeechAudio
from tamachi.providers.base import TTSProvider


class ElevenLabsProvider(TTSProvider):
    def __init__(self, api_key: str, model_id: str = "eleven_flash_v2_5"):
        from elevenlabs import ElevenLabs

        if not api_key:
            raise RuntimeError("ElevenLabs needs an API key (ELEVEN_LABS_API_KEY)")
        self.client = ElevenLabs(api_key=api_key)
        self.model_id = model_id

    async def synthesize(self, text: str, voice: str) -> SpeechAudio:
        from elevenlabs.types import VoiceSettings

        def _generate():
            audio = self.client.text_to_speech.convert(
                voice_id=voice,
                text=text,
                model_id=self.model_id,
                output_format="mp3_44100_128",
                voice_settings=VoiceSettings(
                    stability=0.5,
                    similarity_boost=0.75,
                    style=0.3,
                    speed=0.95,
                ),
            )
            # audio is a generator of bytes
            return b"".join(audio)

        data = await asyncio.get_running_loop().run_in_executor(None, _generate)
        return SpeechAudio(data=data, content_type="audio/mpeg")

    def name(self) -> str:
        return "elevenlabs"
