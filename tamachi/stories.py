"""Stories as ordered sequences of sentences.

A story's order lives in its link rows: each link carries an ordering key
from ``tamachi.ordering`` and sorting a story's links by key reproduces the
sentence order. ``splice`` edits that order the way ``list`` slice
assignment would, allocating keys only for the inserted sentences.
"""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Iterable

from tamachi.errors import MalformedStoryError, OrderingMismatchError
from tamachi.models import (
    MalformedRow,
    Ordering,
    Ruby,
    Sentence,
    SentenceInput,
    SpliceResult,
    Story,
    Word,
)
from tamachi.ordering import allocate_keys

if TYPE_CHECKING:
    from tamachi.db import Database

log = logging.getLogger("tamachi.stories")


# ── Word encoding ─────────────────────────────────────────────────────────

def serialize_word(word: Word) -> str | list[str]:
    if isinstance(word, Ruby):
        return [word.display, word.hint]
    return word


def deserialize_word(value: str | list[str]) -> Word:
    if isinstance(value, str):
        return value
    return Ruby(value[0], value[1])


def serialize_words(words: Iterable[Word]) -> str:
    return json.dumps([serialize_word(w) for w in words], ensure_ascii=False)


def plain_text(words: Iterable[Word]) -> str:
    """Flatten words to the text a reader sees, dropping pronunciation hints."""
    return "".join(w.display if isinstance(w, Ruby) else w for w in words)


def _is_encoded_word(value) -> bool:
    if isinstance(value, str):
        return True
    return (
        isinstance(value, list)
        and len(value) == 2
        and all(isinstance(v, str) for v in value)
    )


def decode_link_row(row: dict) -> Sentence | MalformedRow:
    """Turn one link-sentence join row into a Sentence, or say why it can't."""
    for column, kind in (
        ("sentence_id", int), ("idx", str), ("words", str),
        ("plain", str), ("translation", str),
    ):
        if not isinstance(row.get(column), kind):
            return MalformedRow(row, f"column {column!r} is not {kind.__name__}")
    try:
        raw = json.loads(row["words"])
    except json.JSONDecodeError as e:
        return MalformedRow(row, f"words is not JSON: {e}")
    if not isinstance(raw, list) or not all(_is_encoded_word(v) for v in raw):
        return MalformedRow(row, "words is not a list of tokens and [display, hint] pairs")
    return Sentence(
        id=row["sentence_id"],
        words=tuple(deserialize_word(v) for v in raw),
        plain=row["plain"],
        translation=row["translation"],
    )


def load_sentence(db: Database, sentence_id: int) -> Sentence | None:
    row = db.get_sentence(sentence_id)
    if row is None:
        return None
    decoded = decode_link_row({
        "sentence_id": row["id"],
        "idx": "",
        "words": row["words"],
        "plain": row["plain"],
        "translation": row["translation"],
    })
    if isinstance(decoded, MalformedRow):
        raise ValueError(f"sentence {sentence_id} is malformed: {decoded.reason}")
    return decoded


# ── Store ─────────────────────────────────────────────────────────────────

def materialize_story(db: Database, title: str) -> tuple[Story, Ordering] | None:
    """Load a story and its ordering keys, or None if *title* is unknown."""
    story_row = db.get_story_row(title)
    if story_row is None:
        return None
    links = db.get_story_links(story_row["id"])
    sentences: list[Sentence] = []
    malformed: list[MalformedRow] = []
    for row in links:
        decoded = decode_link_row(row)
        if isinstance(decoded, MalformedRow):
            malformed.append(decoded)
        else:
            sentences.append(decoded)
    if malformed:
        for m in malformed:
            log.error("materialize_story %r: %s (%r)", title, m.reason, m.row)
        raise MalformedStoryError(title, malformed)
    story = Story(id=story_row["id"], title=story_row["title"], sentences=tuple(sentences))
    ordering = Ordering(story_id=story.id, keys=tuple(r["idx"] for r in links))
    return story, ordering


def get_or_create_story(db: Database, title: str) -> tuple[Story, Ordering] | None:
    """Return the story titled *title*, creating an empty one if needed.

    Returns None when a concurrent writer created the same title between
    our lookup and our insert; calling again will find that story.
    """
    existing = materialize_story(db, title)
    if existing is not None:
        return existing
    story_id = db.insert_story(title)
    if story_id is None:
        log.warning("get_or_create_story: lost race creating %r, retry", title)
        return None
    log.info("Created story %r (id %d)", title, story_id)
    return Story(id=story_id, title=title), Ordering(story_id=story_id)


def splice(
    db: Database,
    story: Story,
    ordering: Ordering,
    start: int,
    delete_count: int,
    new_sentences: Iterable[SentenceInput],
) -> SpliceResult:
    """Delete *delete_count* sentences at *start* and insert *new_sentences* there.

    Follows ``list.__setitem__(slice(start, start + delete_count), ...)``:
    a *start* past the end appends and an oversized *delete_count* deletes
    to the end. Returns the new snapshot, its ordering, and the inserted
    sentences whose content was stored for the first time (the ones that
    still need audio).
    """
    if start < 0 or delete_count < 0:
        raise ValueError(f"start and delete_count must be >= 0, got {start}, {delete_count}")
    if ordering.story_id != story.id or len(ordering.keys) != len(story.sentences):
        raise OrderingMismatchError(
            f"ordering for story {ordering.story_id} ({len(ordering.keys)} keys) "
            f"does not match story {story.id} ({len(story.sentences)} sentences)"
        )
    new_sentences = list(new_sentences)

    start = min(start, len(story.sentences))
    end = min(start + delete_count, len(story.sentences))

    # Bounds come from the snapshot, before anything shifts.
    left = ordering.keys[start - 1] if start > 0 else ""
    right = ordering.keys[start] if start < len(ordering.keys) else ""
    new_keys = allocate_keys(left, right, len(new_sentences)) if new_sentences else []

    deleted = list(zip(story.sentences[start:end], ordering.keys[start:end]))

    additions = []
    for s, key in zip(new_sentences, new_keys):
        words = tuple(s.words)
        additions.append((serialize_words(words), plain_text(words), s.translation, key))
    removals = [(sentence.id, key) for sentence, key in deleted]

    resolved = db.apply_splice(story.id, additions, removals)

    inserted: list[Sentence] = []
    needs_audio: list[Sentence] = []
    for s, (_, plain, translation, _), (sentence_id, created) in zip(
        new_sentences, additions, resolved
    ):
        sentence = Sentence(
            id=sentence_id, words=tuple(s.words), plain=plain, translation=translation
        )
        inserted.append(sentence)
        # A repeat of content inserted earlier in this same splice resolves
        # as a dedup hit, so it is not listed twice.
        if created:
            needs_audio.append(sentence)

    sentences = story.sentences[:start] + tuple(inserted) + story.sentences[end:]
    keys = ordering.keys[:start] + tuple(new_keys) + ordering.keys[end:]
    log.info(
        "splice %r at %d: -%d +%d, %d new sentence(s)",
        story.title, start, len(deleted), len(inserted), len(needs_audio),
    )
    return SpliceResult(
        story=Story(id=story.id, title=story.title, sentences=sentences),
        ordering=Ordering(story_id=story.id, keys=keys),
        needs_audio=tuple(needs_audio),
    )
