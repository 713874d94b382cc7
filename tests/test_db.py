"""Tests for the database layer."""
from __future__ import annotations

import sqlite3

import pytest

from tamachi.db import SCHEMA_VERSION, STATE_TABLE, Database, is_unique_violation
from tamachi.errors import ResolverInvariantError, SchemaVersionError


def _vanish_trigger(db: Database, translation: str) -> None:
    """Make inserts of *translation* silently do nothing, as if the row vanished."""
    db.conn.execute(f"""
        CREATE TRIGGER vanish BEFORE INSERT ON sentence
        WHEN NEW.translation = '{translation}'
        BEGIN SELECT RAISE(IGNORE); END
    """)
    db.conn.commit()


class TestSchema:
    def test_bootstrap_creates_tables(self, tmp_db):
        names = {
            r[0] for r in tmp_db.conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert {"user", "sentence", "story", "link", "audio", "review", STATE_TABLE} <= names
        assert tmp_db.schema_version() == SCHEMA_VERSION

    def test_reopen_keeps_data(self, tmp_path):
        db = Database(tmp_path / "t.db")
        db.insert_story("Nail")
        db.close()

        db = Database(tmp_path / "t.db")
        assert db.get_story_row("Nail") is not None
        assert db.conn.execute(f"SELECT COUNT(*) FROM {STATE_TABLE}").fetchone()[0] == 1
        db.close()

    def test_version_mismatch_is_fatal(self, tmp_path):
        db = Database(tmp_path / "t.db")
        db.conn.execute(f"UPDATE {STATE_TABLE} SET schema_version = 99")
        db.conn.commit()
        db.close()

        with pytest.raises(SchemaVersionError) as exc:
            Database(tmp_path / "t.db")
        assert exc.value.found == 99
        assert exc.value.expected == SCHEMA_VERSION


class TestUniqueViolation:
    def test_detects_unique(self, tmp_db):
        tmp_db.insert_story("Nail")
        with pytest.raises(sqlite3.IntegrityError) as exc:
            tmp_db.conn.execute("INSERT INTO story (title) VALUES ('Nail')")
        assert is_unique_violation(exc.value)

    def test_not_null_is_not_unique(self, tmp_db):
        with pytest.raises(sqlite3.IntegrityError) as exc:
            tmp_db.conn.execute("INSERT INTO story (title) VALUES (NULL)")
        assert not is_unique_violation(exc.value)

    def test_other_errors(self):
        assert not is_unique_violation(ValueError("UNIQUE constraint failed"))


class TestResolver:
    def test_new_content_is_created(self, tmp_db):
        sentence_id, created = tmp_db.resolve_sentence('["x"]', "x", "x")
        assert created is True
        assert tmp_db.get_sentence(sentence_id)["plain"] == "x"

    def test_same_content_same_id(self, tmp_db):
        first, _ = tmp_db.resolve_sentence('["x"]', "x", "x")
        second, created = tmp_db.resolve_sentence('["x"]', "x", "x")
        assert second == first
        assert created is False
        assert tmp_db.get_sentence_count() == 1

    def test_translation_is_part_of_identity(self, tmp_db):
        a, _ = tmp_db.resolve_sentence('["x"]', "x", "ex")
        b, _ = tmp_db.resolve_sentence('["x"]', "x", "cross")
        assert a != b

    def test_vanished_content_raises(self, tmp_db):
        _vanish_trigger(tmp_db, "gone")
        with pytest.raises(ResolverInvariantError):
            tmp_db.resolve_sentence('["x"]', "x", "gone")


class TestApplySplice:
    def test_inserts_links(self, tmp_db):
        story_id = tmp_db.insert_story("Nail")
        resolved = tmp_db.apply_splice(
            story_id, [('["x"]', "x", "x", "F"), ('["z"]', "z", "z", "V")], []
        )
        assert [created for _, created in resolved] == [True, True]
        links = tmp_db.get_story_links(story_id)
        assert [l["idx"] for l in links] == ["F", "V"]

    def test_removes_by_sentence_and_key(self, tmp_db):
        story_id = tmp_db.insert_story("Nail")
        (sid, _), = tmp_db.apply_splice(story_id, [('["x"]', "x", "x", "F")], [])
        # A stale key does not match anything.
        tmp_db.apply_splice(story_id, [], [(sid, "Q")])
        assert len(tmp_db.get_story_links(story_id)) == 1
        tmp_db.apply_splice(story_id, [], [(sid, "F")])
        assert tmp_db.get_story_links(story_id) == []
        # The sentence itself survives.
        assert tmp_db.get_sentence(sid) is not None

    def test_failure_rolls_back_everything(self, tmp_db):
        story_id = tmp_db.insert_story("Nail")
        (kept, _), = tmp_db.apply_splice(story_id, [('["k"]', "k", "k", "F")], [])
        _vanish_trigger(tmp_db, "gone")

        with pytest.raises(ResolverInvariantError):
            tmp_db.apply_splice(
                story_id,
                [('["a"]', "a", "a", "V"), ('["b"]', "b", "gone", "k")],
                [(kept, "F")],
            )

        links = tmp_db.get_story_links(story_id)
        assert [(l["sentence_id"], l["idx"]) for l in links] == [(kept, "F")]
        assert tmp_db.get_sentence_count() == 1

    def test_duplicate_key_in_story_rejected(self, tmp_db):
        story_id = tmp_db.insert_story("Nail")
        tmp_db.apply_splice(story_id, [('["x"]', "x", "x", "F")], [])
        with pytest.raises(sqlite3.IntegrityError):
            tmp_db.apply_splice(story_id, [('["z"]', "z", "z", "F")], [])
        assert tmp_db.get_sentence_count() == 1


class TestStories:
    def test_insert_story(self, tmp_db):
        story_id = tmp_db.insert_story("Nail")
        assert tmp_db.get_story_row("Nail")["id"] == story_id

    def test_duplicate_title_returns_none(self, tmp_db):
        tmp_db.insert_story("Nail")
        assert tmp_db.insert_story("Nail") is None

    def test_titles(self, tmp_db):
        tmp_db.insert_story("b")
        tmp_db.insert_story("a")
        assert tmp_db.get_story_titles() == ["a", "b"]


class TestAudioRows:
    def test_reserve_once(self, tmp_db):
        sid, _ = tmp_db.resolve_sentence('["x"]', "x", "x")
        first = tmp_db.reserve_audio(sid, "ja", "Mizuki standard")
        assert first is not None
        assert tmp_db.reserve_audio(sid, "ja", "Mizuki standard") is None
        assert tmp_db.get_audio(sid, "ja", "Mizuki standard")["payload"] == ""

    def test_fill_is_write_once(self, tmp_db):
        sid, _ = tmp_db.resolve_sentence('["x"]', "x", "x")
        audio_id = tmp_db.reserve_audio(sid, "ja", "Mizuki standard")
        assert tmp_db.fill_audio(audio_id, "data:audio/mpeg;base64,AAAA")
        assert not tmp_db.fill_audio(audio_id, "data:audio/mpeg;base64,BBBB")
        assert tmp_db.get_audio(sid, "ja", "Mizuki standard")["payload"].endswith("AAAA")

    def test_release_only_drops_empty_rows(self, tmp_db):
        sid, _ = tmp_db.resolve_sentence('["x"]', "x", "x")
        filled = tmp_db.reserve_audio(sid, "ja", "a")
        tmp_db.fill_audio(filled, "data:audio/mpeg;base64,AAAA")
        empty = tmp_db.reserve_audio(sid, "ja", "b")

        tmp_db.release_audio(filled)
        tmp_db.release_audio(empty)

        speakers = [r["speaker"] for r in tmp_db.get_audio_for_sentence(sid)]
        assert speakers == ["a"]

    def test_delete_stale(self, tmp_db):
        sid, _ = tmp_db.resolve_sentence('["x"]', "x", "x")
        tmp_db.reserve_audio(sid, "ja", "a")
        tmp_db.conn.execute("UPDATE audio SET created = 0")
        tmp_db.conn.commit()
        tmp_db.reserve_audio(sid, "ja", "b")

        assert tmp_db.delete_stale_audio(before=1000) == 1
        assert [r["speaker"] for r in tmp_db.get_audio_for_sentence(sid)] == ["b"]


class TestStats:
    def test_empty(self, tmp_db):
        stats = tmp_db.get_stats()
        assert stats["stories"] == 0
        assert stats["audio_pending"] == 0

    def test_counts(self, tmp_db):
        story_id = tmp_db.insert_story("Nail")
        (sid, _), = tmp_db.apply_splice(story_id, [('["x"]', "x", "x", "F")], [])
        tmp_db.reserve_audio(sid, "ja", "a")
        stats = tmp_db.get_stats()
        assert stats["stories"] == 1
        assert stats["sentences"] == 1
        assert stats["links"] == 1
        assert stats["audio"] == 1
        assert stats["audio_pending"] == 1
