# Overview: Service-layer helpers for locking, optimistic version checks and retry backoff.

from __future__ import annotations

from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical read-modify-write sections.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def check_version(record, expected_version: int | None) -> None:
    """
    Compare a client-supplied version against the row's version_id.

    None skips the check (last-write-wins for callers that opt out).
    """
    if expected_version is None:
        return
    if int(expected_version) != record.version_id:
        raise ConflictError(
            f"Record was modified by someone else (version {record.version_id}, "
            f"you sent {expected_version}). Reload and try again."
        )


def commit_or_conflict() -> None:
    """Commit; an optimistic-lock miss becomes a ConflictError."""
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("Record was modified concurrently. Reload and try again.")


def backoff_seconds(attempt: int, *, base: int, cap: int = 6 * 3600) -> int:
    """Exponential backoff for background retries: base * 2**attempt, capped."""
    return min(cap, base * (2 ** max(attempt, 0)))
