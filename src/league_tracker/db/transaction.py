"""Unit-of-work helper used by services that write several rows atomically."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session

T = TypeVar("T")

logger = logging.getLogger(__name__)


def run_in_transaction(session: Session, callback: Callable[[Session], T]) -> T:
    """Run ``callback`` inside one transaction on ``session``.

    The transaction commits when the callback returns and rolls back when it
    raises; the exception is re-raised unchanged. Any transaction already
    open on the session (for example an implicit one started by a read) is
    joined, so its reads and the callback's writes commit together; otherwise a
    new transaction is begun.

    Args:
        session: Session to run against.
        callback: Function receiving the session and performing the writes.

    Returns:
        Whatever ``callback`` returned.
    """
    if not session.in_transaction():
        session.begin()
    try:
        result = callback(session)
        session.commit()
    except BaseException:
        logger.debug("Rolling back transaction", exc_info=True)
        session.rollback()
        raise
    return result
