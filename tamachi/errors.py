from __future__ import annotations


class TamachiError(Exception):
    pass


class ResolverInvariantError(TamachiError):
    """Sentence content was neither inserted nor found on lookup."""


class SchemaVersionError(TamachiError):
    def __init__(self, found: int, expected: int):
        super().__init__(
            f"database schema version {found} does not match {expected}; "
            "migrations are not supported"
        )
        self.found = found
        self.expected = expected


class MalformedStoryError(TamachiError):
    def __init__(self, title: str, rows: list):
        super().__init__(f"story {title!r} has {len(rows)} malformed link row(s)")
        self.title = title
        self.rows = rows


class OrderingMismatchError(TamachiError):
    pass
