"""Shared test fixtures."""
from __future__ import annotations

import asyncio

import pytest

from tamachi.db import Database
from tamachi.models import Ruby, SentenceInput, SpeechAudio, Voice
from tamachi.stories import get_or_create_story, splice


class FakeTTS:
    """Counts provider calls per (text, voice); optionally fails or stalls."""

    def __init__(self, fail: Exception | None = None, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def synthesize(self, text: str, voice: str) -> SpeechAudio:
        self.calls.append((text, voice))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise self.fail
        return SpeechAudio(data=f"{voice}:{text}".encode(), content_type="audio/mpeg")

    def name(self) -> str:
        return "fake"


@pytest.fixture
def tmp_db(tmp_path):
    """Create a fresh temporary database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def fake_tts():
    return FakeTTS()


@pytest.fixture
def make_tts():
    """Factory for fakes that fail or stall."""
    return FakeTTS


@pytest.fixture
def voices():
    return [
        Voice("Mizuki", "fake", "ja"),
        Voice("Takumi", "fake", "ja"),
        Voice("Joanna", "fake", "en"),
    ]


@pytest.fixture
def nail_inputs():
    """The three sentences of the "Nail" story; the first and last are identical."""
    return [
        SentenceInput(words=("x",), translation="x"),
        SentenceInput(words=("z",), translation="z"),
        SentenceInput(words=("x",), translation="x"),
    ]


@pytest.fixture
def furigana_input():
    return SentenceInput(
        words=(Ruby("田中", "たなか"), "と", Ruby("鈴木", "すずき")),
        translation="Tanaka and Suzuki",
    )


@pytest.fixture
def nail_story(tmp_db, nail_inputs):
    """The "Nail" story with its three sentences spliced in."""
    story, ordering = get_or_create_story(tmp_db, "Nail")
    return splice(tmp_db, story, ordering, 0, 0, nail_inputs)
