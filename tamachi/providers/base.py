from __future__ import annotations

from abc import ABC, abstractmethod

from tamachi.models import SpeechAudio


class TTSProvider(ABC):
    @abstractmethod
    async def synthesize(self, text: str, voice: str) -> SpeechAudio:
        ...

    @abstractmethod
    def name(self) -> str:
        ...
