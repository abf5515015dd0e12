"""Helpers for interpreting database integrity errors."""

from __future__ import annotations

import re

from sqlalchemy.exc import IntegrityError

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: ([\w.]+(?:, [\w.]+)*)")
_POSTGRES_KEY = re.compile(r"Key \(([^)]+)\)=")
_POSTGRES_CONSTRAINT = re.compile(r'unique constraint "([^"]+)"')

# Named unique indexes whose column cannot be read back from the error text.
_CONSTRAINT_FIELDS = {
    "uq_tracker_registrations_active_url": "url",
    "uq_tracker_registrations_tracker_id": "tracker_id",
    "uq_trackers_canonical_url": "url",
    "uq_processed_events_event_key": "event_key",
}

# Derived columns reported under the field callers submitted.
_COLUMN_FIELDS = {"canonical_url": "url"}


def is_unique_violation(exc: IntegrityError) -> bool:
    """Return True when the error was raised by a unique constraint."""
    message = str(exc.orig)
    return (
        "UNIQUE constraint failed" in message
        or "duplicate key value violates unique constraint" in message
        or getattr(exc.orig, "sqlstate", None) == "23505"
        or getattr(exc.orig, "pgcode", None) == "23505"
    )


def unique_violation_field(exc: IntegrityError) -> str | None:
    """Return the column named by a unique-constraint violation, if any.

    SQLite reports ``UNIQUE constraint failed: table.column``; PostgreSQL
    reports either ``Key (column)=(...)`` in the detail or the constraint
    name, which is mapped through the known index names.
    """
    if not is_unique_violation(exc):
        return None

    message = str(exc.orig)
    match = _SQLITE_UNIQUE.search(message)
    if match:
        column = match.group(1).split(",")[0].strip().rsplit(".", 1)[-1]
        return _COLUMN_FIELDS.get(column, column)

    match = _POSTGRES_KEY.search(message)
    if match:
        column = match.group(1).split(",")[0].strip()
        return _COLUMN_FIELDS.get(column, column)

    match = _POSTGRES_CONSTRAINT.search(message)
    if match:
        name = match.group(1)
        return _CONSTRAINT_FIELDS.get(name, name)

    return None
