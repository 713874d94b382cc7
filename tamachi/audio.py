"""Speech audio cache in front of a paid TTS provider.

Every (sentence, language, speaker) triple gets at most one audio row. A row
is reserved with an empty payload *before* the provider is called, so the
uniqueness constraint rather than application state decides who pays for
the call. Readers that find an empty payload should treat it as pending.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from tamachi.db import now_ms
from tamachi.models import AudioClip, AudioReport, Sentence, Voice

if TYPE_CHECKING:
    from tamachi.config import Settings
    from tamachi.db import Database
    from tamachi.providers.base import TTSProvider

log = logging.getLogger("tamachi.audio")


def tts_for(settings: Settings) -> TTSProvider:
    if settings.tts_provider == "edge-tts":
        from tamachi.providers.tts_edge import EdgeTTSProvider
        return EdgeTTSProvider()
    elif settings.tts_provider == "elevenlabs":
        from tamachi.providers.tts_elevenlabs import ElevenLabsProvider
        return ElevenLabsProvider(
            api_key=settings.elevenlabs_api_key, model_id=settings.elevenlabs_model
        )
    elif settings.tts_provider == "piper":
        from tamachi.providers.tts_piper import PiperTTSProvider
        return PiperTTSProvider()
    raise ValueError(f"Unknown TTS provider: {settings.tts_provider}")


def voices_for(settings: Settings, engine: str) -> list[Voice]:
    voices = [Voice(v, engine, settings.source_language) for v in settings.source_voices]
    voices += [Voice(v, engine, settings.target_language) for v in settings.target_voices]
    return voices


class AudioCache:
    def __init__(
        self,
        db: Database,
        provider: TTSProvider,
        voices: list[Voice],
        source_language: str,
    ):
        self.db = db
        self.provider = provider
        self.voices = voices
        self.source_language = source_language

    def _text_for(self, sentence: Sentence, voice: Voice) -> str:
        if voice.language == self.source_language:
            return sentence.plain
        return sentence.translation

    async def ensure_audio(self, sentence: Sentence) -> AudioReport:
        """Make sure every configured voice has an audio row for *sentence*."""
        report = AudioReport()
        for voice in self.voices:
            key = (sentence.id, voice.speaker)
            audio_id = self.db.reserve_audio(sentence.id, voice.language, voice.speaker)
            if audio_id is None:
                log.debug("Audio for sentence %d / %s already exists, skipping", *key)
                report.skipped.append(key)
                continue

            try:
                speech = await self.provider.synthesize(self._text_for(sentence, voice), voice.name)
            except Exception as e:
                # Give the triple back so a later call can try again.
                log.warning("TTS failed for sentence %d / %s: %s", sentence.id, voice.speaker, e)
                self.db.release_audio(audio_id)
                report.failed.append((sentence.id, voice.speaker, str(e)))
                continue

            if not self.db.fill_audio(audio_id, speech.to_payload()):
                # The reservation was removed (e.g. by repair_stale_audio) mid-call.
                log.warning(
                    "Reservation for sentence %d / %s vanished, audio discarded", *key
                )
                report.failed.append((sentence.id, voice.speaker, "reservation removed"))
                continue
            log.info("Generated audio for sentence %d / %s", *key)
            report.generated.append(key)
        return report

    async def ensure_audio_many(self, sentences: Iterable[Sentence]) -> AudioReport:
        report = AudioReport()
        for s in sentences:
            report.merge(await self.ensure_audio(s))
        return report


def audio_clips(db: Database, sentence_id: int) -> list[AudioClip]:
    """Every audio row for *sentence_id*, pending reservations included."""
    return [AudioClip(**row) for row in db.get_audio_for_sentence(sentence_id)]


def repair_stale_audio(db: Database, older_than_minutes: int) -> int:
    """Delete reservations still empty after *older_than_minutes*.

    These are left behind when the process died between reserving a row and
    filling it. Deleting them lets the next ``ensure_audio`` retry.
    """
    cutoff = now_ms() - older_than_minutes * 60_000
    removed = db.delete_stale_audio(cutoff)
    if removed:
        log.info("Removed %d stale audio reservation(s)", removed)
    return removed
