from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Ruby:
    display: str
    hint: str  # pronunciation, e.g. kana over kanji


Word = Union[str, Ruby]


@dataclass(frozen=True)
class Sentence:
    id: int
    words: tuple[Word, ...]
    plain: str  # flattened words, the TTS input for the source language
    translation: str


@dataclass(frozen=True)
class SentenceInput:
    words: tuple[Word, ...]
    translation: str


@dataclass(frozen=True)
class Story:
    id: int
    title: str
    sentences: tuple[Sentence, ...] = ()


@dataclass(frozen=True)
class Ordering:
    """Ordering keys of a story snapshot, one per sentence.

    Hand this back to ``splice`` unchanged together with the matching Story.
    """
    story_id: int
    keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class SpliceResult:
    story: Story
    ordering: Ordering
    needs_audio: tuple[Sentence, ...]


@dataclass(frozen=True)
class Voice:
    name: str
    engine: str
    language: str

    @property
    def speaker(self) -> str:
        return f"{self.name} {self.engine}"


@dataclass
class SpeechAudio:
    data: bytes
    content_type: str

    def to_payload(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


@dataclass
class AudioClip:
    id: int
    sentence_id: int
    language: str
    speaker: str
    payload: str
    created: int

    @property
    def pending(self) -> bool:
        """Reserved but not yet filled in (generation in flight or crashed)."""
        return self.payload == ""


@dataclass
class AudioReport:
    generated: list[tuple[int, str]] = field(default_factory=list)  # (sentence_id, speaker)
    skipped: list[tuple[int, str]] = field(default_factory=list)
    failed: list[tuple[int, str, str]] = field(default_factory=list)  # + error text

    def merge(self, other: AudioReport) -> None:
        self.generated.extend(other.generated)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)

    def to_dict(self) -> dict:
        return {
            "generated": [{"sentence_id": s, "speaker": v} for s, v in self.generated],
            "skipped": [{"sentence_id": s, "speaker": v} for s, v in self.skipped],
            "failed": [
                {"sentence_id": s, "speaker": v, "error": e} for s, v, e in self.failed
            ],
        }


@dataclass(frozen=True)
class MalformedRow:
    row: dict
    reason: str
