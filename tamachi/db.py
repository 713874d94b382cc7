from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

from tamachi.errors import ResolverInvariantError, SchemaVersionError

log = logging.getLogger("tamachi.db")

SCHEMA_VERSION = 1
STATE_TABLE = "_tamachi_db_state"

SCHEMA_V1 = f"""
BEGIN;

CREATE TABLE {STATE_TABLE} (schema_version INTEGER NOT NULL);

CREATE TABLE user (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    hashed TEXT NOT NULL,
    salt TEXT NOT NULL,
    iterations INTEGER NOT NULL,
    keylen INTEGER NOT NULL,
    digest TEXT NOT NULL
);

CREATE TABLE sentence (
    id INTEGER PRIMARY KEY,
    words TEXT NOT NULL,
    plain TEXT NOT NULL,
    translation TEXT NOT NULL,
    UNIQUE (words, translation)
);

CREATE TABLE story (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL UNIQUE
);

CREATE TABLE link (
    id INTEGER PRIMARY KEY,
    story_id INTEGER NOT NULL REFERENCES story(id),
    sentence_id INTEGER NOT NULL REFERENCES sentence(id),
    idx TEXT NOT NULL,
    UNIQUE (story_id, idx)
);

CREATE TABLE audio (
    id INTEGER PRIMARY KEY,
    sentence_id INTEGER NOT NULL REFERENCES sentence(id),
    language TEXT NOT NULL,
    speaker TEXT NOT NULL,
    payload TEXT NOT NULL,
    created INTEGER NOT NULL,
    UNIQUE (sentence_id, language, speaker)
);

CREATE TABLE review (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES user(id),
    sentence_id INTEGER NOT NULL REFERENCES sentence(id),
    epoch INTEGER NOT NULL,
    results TEXT NOT NULL,
    halflife REAL NOT NULL
);

CREATE INDEX review_user_sentence ON review (user_id, sentence_id, epoch);

INSERT INTO {STATE_TABLE} (schema_version) VALUES ({SCHEMA_VERSION});

COMMIT;
"""


def is_unique_violation(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.IntegrityError) and "UNIQUE constraint failed" in str(exc)


def now_ms() -> int:
    return int(time.time() * 1000)


class Database:
    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        present = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (STATE_TABLE,),
        ).fetchone()
        if present is None:
            log.info("Uninitialized database %s, creating schema v%d", self.db_path, SCHEMA_VERSION)
            self.conn.executescript(SCHEMA_V1)
            return
        version = self.schema_version()
        if version != SCHEMA_VERSION:
            self.conn.close()
            raise SchemaVersionError(version, SCHEMA_VERSION)

    def schema_version(self) -> int:
        row = self.conn.execute(f"SELECT schema_version FROM {STATE_TABLE}").fetchone()
        return row[0]

    def close(self) -> None:
        self.conn.close()

    # ── Users ─────────────────────────────────────────────────────────────

    def insert_user(self, name: str, secret: dict) -> int | None:
        """Insert a user; returns None when *name* is already taken."""
        try:
            with self.conn:
                cur = self.conn.execute(
                    "INSERT INTO user (name, hashed, salt, iterations, keylen, digest) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (name, secret["hashed"], secret["salt"], secret["iterations"],
                     secret["keylen"], secret["digest"]),
                )
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                log.info("insert_user: name %r already taken", name)
                return None
            raise
        return cur.lastrowid

    def update_user_password(self, name: str, secret: dict) -> int:
        with self.conn:
            cur = self.conn.execute(
                "UPDATE user SET hashed=?, salt=?, iterations=?, keylen=?, digest=? "
                "WHERE name = ?",
                (secret["hashed"], secret["salt"], secret["iterations"],
                 secret["keylen"], secret["digest"], name),
            )
        return cur.rowcount

    def get_user(self, name: str) -> dict | None:
        row = self.conn.execute("SELECT * FROM user WHERE name = ?", (name,)).fetchone()
        return dict(row) if row else None

    # ── Sentences ─────────────────────────────────────────────────────────

    def _resolve_sentence(self, words: str, plain: str, translation: str) -> tuple[int, bool]:
        cur = self.conn.execute(
            "INSERT INTO sentence (words, plain, translation) VALUES (?, ?, ?) "
            "ON CONFLICT (words, translation) DO NOTHING",
            (words, plain, translation),
        )
        if cur.rowcount:
            return cur.lastrowid, True
        row = self.conn.execute(
            "SELECT id FROM sentence WHERE words = ? AND translation = ?",
            (words, translation),
        ).fetchone()
        if row is None:
            raise ResolverInvariantError(
                f"sentence {words!r} / {translation!r} failed to insert and select"
            )
        return row["id"], False

    def resolve_sentence(self, words: str, plain: str, translation: str) -> tuple[int, bool]:
        """Return (id, created) for the sentence content, inserting it if new."""
        with self.conn:
            return self._resolve_sentence(words, plain, translation)

    def get_sentence(self, sentence_id: int) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM sentence WHERE id = ?", (sentence_id,)
        ).fetchone()
        return dict(row) if row else None

    def get_sentence_count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM sentence").fetchone()[0]

    # ── Stories ───────────────────────────────────────────────────────────

    def get_story_row(self, title: str) -> dict | None:
        row = self.conn.execute("SELECT * FROM story WHERE title = ?", (title,)).fetchone()
        return dict(row) if row else None

    def insert_story(self, title: str) -> int | None:
        """Insert a story; returns None when another writer created *title* first."""
        try:
            with self.conn:
                cur = self.conn.execute("INSERT INTO story (title) VALUES (?)", (title,))
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                log.info("insert_story: %r already exists", title)
                return None
            raise
        return cur.lastrowid

    def get_story_titles(self) -> list[str]:
        rows = self.conn.execute("SELECT title FROM story ORDER BY title").fetchall()
        return [r["title"] for r in rows]

    def get_story_links(self, story_id: int) -> list[dict]:
        """Links of a story joined to their sentence content, in key order."""
        rows = self.conn.execute("""
            SELECT link.sentence_id, link.idx,
                   sentence.words, sentence.plain, sentence.translation
            FROM link
            INNER JOIN sentence ON link.sentence_id = sentence.id
            WHERE link.story_id = ?
            ORDER BY link.idx
        """, (story_id,)).fetchall()
        return [dict(r) for r in rows]

    def apply_splice(
        self,
        story_id: int,
        additions: list[tuple[str, str, str, str]],
        removals: list[tuple[int, str]],
    ) -> list[tuple[int, bool]]:
        """Persist one splice atomically.

        additions: (words, plain, translation, idx) per inserted sentence.
        removals: (sentence_id, idx) per deleted link.
        Returns (sentence_id, created) per addition, in order.
        """
        resolved = []
        with self.conn:
            for words, plain, translation, idx in additions:
                sentence_id, created = self._resolve_sentence(words, plain, translation)
                self.conn.execute(
                    "INSERT INTO link (story_id, sentence_id, idx) VALUES (?, ?, ?)",
                    (story_id, sentence_id, idx),
                )
                resolved.append((sentence_id, created))
            for sentence_id, idx in removals:
                self.conn.execute(
                    "DELETE FROM link WHERE story_id = ? AND sentence_id = ? AND idx = ?",
                    (story_id, sentence_id, idx),
                )
        return resolved

    # ── Audio ─────────────────────────────────────────────────────────────

    def reserve_audio(self, sentence_id: int, language: str, speaker: str) -> int | None:
        """Insert an empty audio row; None when the triple already has a row."""
        try:
            with self.conn:
                cur = self.conn.execute(
                    "INSERT INTO audio (sentence_id, language, speaker, payload, created) "
                    "VALUES (?, ?, ?, '', ?)",
                    (sentence_id, language, speaker, now_ms()),
                )
        except sqlite3.IntegrityError as e:
            if is_unique_violation(e):
                return None
            raise
        return cur.lastrowid

    def fill_audio(self, audio_id: int, payload: str) -> bool:
        """Set the payload of a reserved row. Filled rows are never overwritten."""
        with self.conn:
            cur = self.conn.execute(
                "UPDATE audio SET payload = ? WHERE id = ? AND payload = ''",
                (payload, audio_id),
            )
        return cur.rowcount == 1

    def release_audio(self, audio_id: int) -> None:
        """Drop a reservation that was never filled."""
        with self.conn:
            self.conn.execute(
                "DELETE FROM audio WHERE id = ? AND payload = ''", (audio_id,)
            )

    def get_audio(self, sentence_id: int, language: str, speaker: str) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM audio WHERE sentence_id = ? AND language = ? AND speaker = ?",
            (sentence_id, language, speaker),
        ).fetchone()
        return dict(row) if row else None

    def get_audio_for_sentence(self, sentence_id: int) -> list[dict]:
        rows = self.conn.execute(
            "SELECT * FROM audio WHERE sentence_id = ? ORDER BY language, speaker",
            (sentence_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def delete_stale_audio(self, before: int) -> int:
        """Delete empty reservations created before *before* (epoch ms)."""
        with self.conn:
            cur = self.conn.execute(
                "DELETE FROM audio WHERE payload = '' AND created < ?", (before,)
            )
        return cur.rowcount

    # ── Reviews ───────────────────────────────────────────────────────────

    def insert_review(
        self, user_id: int, sentence_id: int, epoch: int, results: str, halflife: float
    ) -> int:
        with self.conn:
            cur = self.conn.execute(
                "INSERT INTO review (user_id, sentence_id, epoch, results, halflife) "
                "VALUES (?, ?, ?, ?, ?)",
                (user_id, sentence_id, epoch, results, halflife),
            )
        return cur.lastrowid

    def get_reviews_for_user(self, user_id: int) -> list[dict]:
        rows = self.conn.execute(
            "SELECT * FROM review WHERE user_id = ? ORDER BY epoch, id", (user_id,)
        ).fetchall()
        return [dict(r) for r in rows]

    def get_most_overdue(self, user_id: int, now: int) -> dict | None:
        """Sentence whose latest review has the largest (now - epoch) / halflife."""
        row = self.conn.execute("""
            SELECT r.sentence_id, r.epoch, r.halflife, r.results,
                   (? - r.epoch) * 1.0 / r.halflife AS ratio
            FROM review r
            JOIN (
                SELECT sentence_id, MAX(epoch) AS epoch
                FROM review
                WHERE user_id = ?
                GROUP BY sentence_id
            ) latest
                ON r.sentence_id = latest.sentence_id
                AND r.epoch = latest.epoch
            WHERE r.user_id = ?
            ORDER BY ratio DESC, r.id DESC
            LIMIT 1
        """, (now, user_id, user_id)).fetchone()
        return dict(row) if row else None

    # ── Stats ─────────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        counts = {}
        for table in ("user", "sentence", "story", "link", "audio", "review"):
            counts[table] = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        pending = self.conn.execute(
            "SELECT COUNT(*) FROM audio WHERE payload = ''"
        ).fetchone()[0]
        return {
            "users": counts["user"],
            "sentences": counts["sentence"],
            "stories": counts["story"],
            "links": counts["link"],
            "audio": counts["audio"],
            "audio_pending": pending,
            "reviews": counts["review"],
        }
