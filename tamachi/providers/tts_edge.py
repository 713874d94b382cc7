from __future__ import annotations

from tamachi.models import SpeechAudio
from tamachi.providers.base import TTSProvider


class EdgeTTSProvider(TTSProvider):
    async def synthesize(self, text: str, voice: str) -> SpeechAudio:
        import edge_tts

        communicate = edge_tts.Communicate(text, voice)
        chunks = []
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                chunks.append(chunk["data"])
        if not chunks:
            raise RuntimeError(f"edge-tts returned no audio for voice {voice}")
        return SpeechAudio(data=b"".join(chunks), content_type="audio/mpeg")

    def name(self) -> str:
        return "edge-tts"
