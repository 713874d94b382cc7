"""CLI entry point for tamachi.

Usage:
  python -m tamachi serve [--port PORT] [--host HOST]
  python -m tamachi stop
  python -m tamachi restart [--port PORT]
  python -m tamachi status
  python -m tamachi init
  python -m tamachi show TITLE
  python -m tamachi repair-audio [--minutes N]
  python -m tamachi stats
"""
from __future__ import annotations

import os
import signal
import sys
from pathlib import Path

PID_FILE = Path(__file__).resolve().parent.parent / ".server.pid"


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "stop":
        _stop()
    elif command == "restart":
        _restart(args[1:])
    elif command == "status":
        _status()
    elif command == "init":
        _init()
    elif command == "show":
        _show(args[1:])
    elif command == "repair-audio":
        _repair_audio(args[1:])
    elif command == "stats":
        _stats()
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, stop, restart, status, init, show, repair-audio, stats")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str) -> str:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _read_pid() -> int | None:
    """Read PID from file, return None if stale or missing."""
    if not PID_FILE.exists():
        return None
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        PID_FILE.unlink(missing_ok=True)
        return None


def _stop() -> bool:
    """Stop a running server. Returns True if a server was stopped."""
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
        return False
    try:
        os.kill(pid, signal.SIGTERM)
        print(f"Stopped server (PID {pid}).")
        PID_FILE.unlink(missing_ok=True)
        return True
    except ProcessLookupError:
        print("Server was not running (stale PID file removed).")
        PID_FILE.unlink(missing_ok=True)
        return False


def _status():
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
    else:
        print(f"Server is running (PID {pid}).")


def _restart(args: list[str]):
    import time
    _stop()
    time.sleep(1)
    _serve(args)


def _serve(args: list[str]):
    import uvicorn

    existing = _read_pid()
    if existing is not None:
        print(f"Server already running (PID {existing}). Use 'restart' or 'stop' first.")
        sys.exit(1)

    port = int(_parse_flag(args, "--port", "8765"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    PID_FILE.write_text(str(os.getpid()))

    print(f"Starting Tamachi on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")
    try:
        uvicorn.run(
            "tamachi.app:app",
            host=host,
            port=port,
            reload=False,
            timeout_graceful_shutdown=5,
        )
    finally:
        PID_FILE.unlink(missing_ok=True)


def _open_db():
    from tamachi.config import load_settings
    from tamachi.db import Database
    from tamachi.errors import SchemaVersionError

    settings = load_settings()
    try:
        return settings, Database(settings.db_full_path)
    except SchemaVersionError as e:
        print(f"Cannot open {settings.db_full_path}: {e}")
        sys.exit(1)


def _init():
    settings, db = _open_db()
    print(f"Database ready at {settings.db_full_path} (schema v{db.schema_version()})")
    db.close()


def _show(args: list[str]):
    if not args:
        print("Usage: show TITLE")
        sys.exit(1)
    from tamachi.stories import materialize_story

    _, db = _open_db()
    found = materialize_story(db, args[0])
    if found is None:
        print(f"No story titled {args[0]!r}")
        db.close()
        sys.exit(1)
    story, ordering = found
    print(f"{story.title} ({len(story.sentences)} sentences)")
    for key, s in zip(ordering.keys, story.sentences):
        print(f"  [{key}] #{s.id} {s.plain} | {s.translation}")
    db.close()


def _repair_audio(args: list[str]):
    from tamachi.audio import repair_stale_audio

    settings, db = _open_db()
    minutes = int(_parse_flag(args, "--minutes", str(settings.stale_audio_minutes)))
    removed = repair_stale_audio(db, minutes)
    print(f"Removed {removed} audio reservation(s) empty for more than {minutes} minutes")
    db.close()


def _stats():
    _, db = _open_db()
    stats = db.get_stats()

    print("Tamachi Stats")
    print("=" * 40)
    print(f"Users:          {stats['users']}")
    print(f"Stories:        {stats['stories']}")
    print(f"Sentences:      {stats['sentences']}")
    print(f"Story links:    {stats['links']}")
    print(f"Audio clips:    {stats['audio']} ({stats['audio_pending']} pending)")
    print(f"Reviews:        {stats['reviews']}")
    db.close()


if __name__ == "__main__":
    main()
