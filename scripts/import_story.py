"""Import a story from a JSON file into tamachi.db.

The file holds {"title": ..., "sentences": [{"words": [...], "translation": ...}]}
where each word is a plain string or a [display, hint] pair. Sentences are
appended to the end of the story (created if missing). With --audio, speech
is generated for sentences seen for the first time.

Usage:
    python scripts/import_story.py STORY.json [--audio]
"""
import asyncio
import json
import sys
from pathlib import Path

from tamachi.audio import AudioCache, tts_for, voices_for
from tamachi.config import load_settings
from tamachi.db import Database
from tamachi.models import Ruby, SentenceInput
from tamachi.stories import get_or_create_story, splice


def _word(value):
    return value if isinstance(value, str) else Ruby(value[0], value[1])


def main():
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if not args:
        print(__doc__)
        sys.exit(1)
    with_audio = "--audio" in sys.argv

    data = json.loads(Path(args[0]).read_text())
    settings = load_settings()
    db = Database(settings.db_full_path)

    snapshot = get_or_create_story(db, data["title"])
    if snapshot is None:
        print(f"  Story {data['title']!r} was created concurrently, run again")
        db.close()
        sys.exit(1)
    story, ordering = snapshot

    inputs = [
        SentenceInput(words=tuple(_word(w) for w in s["words"]), translation=s["translation"])
        for s in data["sentences"]
    ]
    result = splice(db, story, ordering, len(story.sentences), 0, inputs)
    print(f"  {data['title']}: {len(inputs)} sentences added, "
          f"{len(result.needs_audio)} new, {len(result.story.sentences)} total")

    if with_audio and result.needs_audio:
        tts = tts_for(settings)
        cache = AudioCache(db, tts, voices_for(settings, tts.name()), settings.source_language)
        report = asyncio.run(cache.ensure_audio_many(result.needs_audio))
        print(f"  audio: {len(report.generated)} generated, {len(report.skipped)} skipped, "
              f"{len(report.failed)} failed")
        for sentence_id, speaker, error in report.failed:
            print(f"    FAIL #{sentence_id} {speaker}: {error}")

    db.close()


if __name__ == "__main__":
    main()
