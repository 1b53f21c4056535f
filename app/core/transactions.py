from __future__ import annotations

import logging
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import StaleState
from app.core.extensions import db

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Version-counter mismatches and uniqueness guards are how concurrent writers
# collide; both are safe to replay against freshly loaded state.
CONFLICT_ERRORS = (StaleDataError, IntegrityError)


def run_in_transaction(unit: Callable[..., T], *args, max_attempts: int | None = None, **kwargs) -> T:
    """Run ``unit`` and commit its writes atomically.

    On a write conflict the session is rolled back and ``unit`` is replayed, up
    to ``COMMIT_MAX_ATTEMPTS`` times; then the conflict surfaces as StaleState.
    Any other error rolls back and propagates unchanged.
    """
    attempts = max_attempts or int(current_app.config.get("COMMIT_MAX_ATTEMPTS", 3))
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            result = unit(*args, **kwargs)
            db.session.commit()
            return result
        except CONFLICT_ERRORS as exc:
            db.session.rollback()
            last_error = exc
            logger.warning(
                "Write conflict in %s (attempt %s/%s): %s",
                getattr(unit, "__name__", "unit"),
                attempt,
                attempts,
                exc.__class__.__name__,
                extra={"attempt": attempt},
            )
        except Exception:
            db.session.rollback()
            raise
    raise StaleState(
        f"{getattr(unit, '__name__', 'command')} kept conflicting with concurrent writers; refetch and retry"
    ) from last_error
