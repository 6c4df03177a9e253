"""
Optimistic concurrency for read-modify-write updates.

Every status and finalizer write goes through optimistic_update: read the
latest object, apply the mutation, write it back carrying the read
resourceVersion. A ConflictError means someone else wrote in between, so
the whole cycle is retried against a fresh read.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from infraforge.contracts.timeouts import STATUS_UPDATE_MAX_ATTEMPTS
from infraforge.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def optimistic_update(
    read: Callable[[], T],
    mutate: Callable[[T], T],
    write: Callable[[T], T],
    max_attempts: int = STATUS_UPDATE_MAX_ATTEMPTS,
) -> T:
    """
    Read, mutate and write until the write is accepted.

    Args:
        read: Returns the current object
        mutate: Returns the object to write (may modify its argument)
        write: Persists the object; raises ConflictError on a stale revision
        max_attempts: Attempts before giving up

    Returns:
        Whatever write returned

    Raises:
        ConflictError: every attempt conflicted
    """
    last_error: ConflictError = ConflictError("no attempts made")
    for attempt in range(1, max_attempts + 1):
        current = read()
        try:
            return write(mutate(current))
        except ConflictError as e:
            last_error = e
            logger.debug(f"Write conflict ({attempt}/{max_attempts}): {e}")

    raise ConflictError(f"update conflicted {max_attempts} times: {last_error}") from last_error
