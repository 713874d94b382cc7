"""User accounts with PBKDF2-hashed passwords."""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tamachi.db import Database

log = logging.getLogger("tamachi.users")

SALTLEN = 32
ITERATIONS = 100_000
KEYLEN = 32
DIGEST = "sha256"


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def hash_password(
    clear: str,
    salt: str = "",
    iterations: int = ITERATIONS,
    keylen: int = KEYLEN,
    digest: str = DIGEST,
) -> dict:
    """Hash *clear*; returns the hash plus everything needed to verify it later."""
    salt = salt or _b64url(os.urandom(SALTLEN))
    key = hashlib.pbkdf2_hmac(digest, clear.encode(), salt.encode(), iterations, keylen)
    return {
        "hashed": _b64url(key),
        "salt": salt,
        "iterations": iterations,
        "keylen": keylen,
        "digest": digest,
    }


def create_user(db: Database, name: str, password: str) -> int | None:
    """Returns the new user id, or None if *name* is taken."""
    user_id = db.insert_user(name, hash_password(password))
    if user_id is not None:
        log.info("Created user %r", name)
    return user_id


def reset_password(db: Database, name: str, password: str) -> bool:
    """Overwrite a password without checking the old one. False if no such user."""
    return db.update_user_password(name, hash_password(password)) > 0


def authenticate(db: Database, name: str, password: str) -> bool:
    row = db.get_user(name)
    if row is None:
        return False
    submitted = hash_password(
        password,
        salt=row["salt"],
        iterations=row["iterations"],
        keylen=row["keylen"],
        digest=row["digest"],
    )
    return hmac.compare_digest(submitted["hashed"], row["hashed"])
