"""FastAPI application with all routes."""
from __future__ import annotations

import logging

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

from fastapi import FastAPI, HTTPException, Request

from tamachi.audio import AudioCache, audio_clips, tts_for, voices_for
from tamachi.config import Settings, load_settings, save_settings
from tamachi.db import Database
from tamachi.errors import MalformedStoryError
from tamachi.models import AudioClip, Ruby, SentenceInput, Story
from tamachi.review import next_review, record_review
from tamachi.stories import (
    get_or_create_story,
    load_sentence,
    materialize_story,
    serialize_word,
    splice,
)
from tamachi.users import authenticate, create_user

app = FastAPI(title="Tamachi")

# Global state (initialized in startup)
_db: Database | None = None
_settings: Settings | None = None


def get_db() -> Database:
    assert _db is not None
    return _db


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def _get_tts():
    return tts_for(get_settings())


def _get_audio_cache() -> AudioCache:
    s = get_settings()
    tts = _get_tts()
    return AudioCache(get_db(), tts, voices_for(s, tts.name()), s.source_language)


@app.on_event("startup")
async def startup():
    global _db, _settings
    if _db is not None:
        return  # Already initialized (e.g. by tests)
    _settings = load_settings()
    _db = Database(_settings.db_full_path)


@app.on_event("shutdown")
async def shutdown():
    if _db:
        _db.close()


# ── Helpers ───────────────────────────────────────────────────────────────

def _story_dict(story: Story) -> dict:
    return {
        "id": story.id,
        "title": story.title,
        "sentences": [
            {
                "id": s.id,
                "words": [serialize_word(w) for w in s.words],
                "plain": s.plain,
                "translation": s.translation,
            }
            for s in story.sentences
        ],
    }


def _clip_dict(clip: AudioClip) -> dict:
    d = {
        "id": clip.id,
        "language": clip.language,
        "speaker": clip.speaker,
        "created": clip.created,
        "status": "pending" if clip.pending else "ready",
    }
    if not clip.pending:
        d["payload"] = clip.payload
    return d


def _parse_word(value):
    if isinstance(value, str):
        return value
    if isinstance(value, list) and len(value) == 2 and all(isinstance(v, str) for v in value):
        return Ruby(value[0], value[1])
    if isinstance(value, dict) and isinstance(value.get("display"), str) \
            and isinstance(value.get("hint"), str):
        return Ruby(value["display"], value["hint"])
    raise HTTPException(400, f"Malformed word: {value!r}")


def _parse_sentences(raw) -> list[SentenceInput]:
    if not isinstance(raw, list):
        raise HTTPException(400, "sentences must be a list")
    parsed = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("words"), list) \
                or not isinstance(item.get("translation"), str):
            raise HTTPException(400, f"Malformed sentence: {item!r}")
        words = tuple(_parse_word(w) for w in item["words"])
        parsed.append(SentenceInput(words=words, translation=item["translation"]))
    return parsed


def _load_story(title: str):
    try:
        return materialize_story(get_db(), title)
    except MalformedStoryError as e:
        raise HTTPException(500, str(e))


# ── API: Stats ────────────────────────────────────────────────────────────

@app.get("/api/stats")
async def api_stats():
    return get_db().get_stats()


# ── API: Stories ──────────────────────────────────────────────────────────

@app.get("/api/stories")
async def api_list_stories():
    return {"titles": get_db().get_story_titles()}


@app.get("/api/stories/{title}")
async def api_get_story(title: str):
    found = _load_story(title)
    if found is None:
        raise HTTPException(404, "Story not found")
    story, _ = found
    return _story_dict(story)


@app.post("/api/stories/{title}")
async def api_create_story(title: str):
    try:
        snapshot = get_or_create_story(get_db(), title)
    except MalformedStoryError as e:
        raise HTTPException(500, str(e))
    if snapshot is None:
        raise HTTPException(409, "Story was created concurrently, retry")
    story, _ = snapshot
    return _story_dict(story)


@app.post("/api/stories/{title}/splice")
async def api_splice(title: str, request: Request):
    body = await request.json() if await request.body() else {}
    start = body.get("start", 0)
    delete_count = body.get("delete_count", 0)
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (start, delete_count)):
        raise HTTPException(400, "start and delete_count must be integers")
    new_sentences = _parse_sentences(body.get("sentences", []))

    db = get_db()
    try:
        snapshot = get_or_create_story(db, title)
    except MalformedStoryError as e:
        raise HTTPException(500, str(e))
    if snapshot is None:
        raise HTTPException(409, "Story was created concurrently, retry")
    story, ordering = snapshot

    try:
        result = splice(db, story, ordering, start, delete_count, new_sentences)
    except ValueError as e:
        raise HTTPException(400, str(e))

    response = _story_dict(result.story)
    response["needs_audio"] = [s.id for s in result.needs_audio]
    if body.get("audio") and result.needs_audio:
        report = await _get_audio_cache().ensure_audio_many(result.needs_audio)
        response["audio"] = report.to_dict()
    return response


# ── API: Audio ────────────────────────────────────────────────────────────

@app.post("/api/sentences/{sentence_id}/audio")
async def api_ensure_audio(sentence_id: int):
    sentence = load_sentence(get_db(), sentence_id)
    if sentence is None:
        raise HTTPException(404, "Sentence not found")
    report = await _get_audio_cache().ensure_audio(sentence)
    return report.to_dict()


@app.get("/api/sentences/{sentence_id}/audio")
async def api_get_audio(sentence_id: int):
    db = get_db()
    if db.get_sentence(sentence_id) is None:
        raise HTTPException(404, "Sentence not found")
    clips = audio_clips(db, sentence_id)
    return {"clips": [_clip_dict(c) for c in clips]}


# ── API: Users ────────────────────────────────────────────────────────────

@app.post("/api/users", status_code=201)
async def api_create_user(request: Request):
    body = await request.json()
    name = body.get("name", "").strip()
    password = body.get("password", "")
    if not name or not password:
        raise HTTPException(400, "name and password are required")
    user_id = create_user(get_db(), name, password)
    if user_id is None:
        raise HTTPException(409, "Name already taken")
    return {"id": user_id, "name": name}


@app.post("/api/login")
async def api_login(request: Request):
    body = await request.json()
    if not authenticate(get_db(), body.get("name", ""), body.get("password", "")):
        raise HTTPException(401, "Invalid name or password")
    return {"ok": True}


# ── API: Reviews ──────────────────────────────────────────────────────────

def _require_user(name: str) -> dict:
    user = get_db().get_user(name)
    if user is None:
        raise HTTPException(404, "User not found")
    return user


@app.post("/api/reviews", status_code=201)
async def api_record_review(request: Request):
    body = await request.json()
    user = _require_user(body.get("user", ""))
    sentence_id = body.get("sentence_id")
    if not isinstance(sentence_id, int) or get_db().get_sentence(sentence_id) is None:
        raise HTTPException(404, "Sentence not found")
    if "result" not in body:
        raise HTTPException(400, "No result provided")
    review_id = record_review(
        get_db(), user["id"], sentence_id, body["result"], timestamp=body.get("timestamp")
    )
    return {"id": review_id}


@app.get("/api/users/{name}/next")
async def api_next_review(name: str):
    user = _require_user(name)
    return {"next": next_review(get_db(), user["id"])}


# ── API: Settings ─────────────────────────────────────────────────────────

@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_dict()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    body = await request.json()
    s = get_settings()
    for k, v in body.items():
        if k in s.to_dict():
            setattr(s, k, v)
    save_settings(s)
    return s.to_dict()
