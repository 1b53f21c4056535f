from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy import select, update

from app.core.extensions import db
from app.core.models import NumberSequence

logger = logging.getLogger(__name__)


def next_number(organization_id: int, name: str, start_from: Callable[[], int] | None = None) -> int:
    """Allocate the next value of the ``name`` counter of an organization.

    The increment runs in SQL, so the row stays locked by the caller's
    transaction until it commits and concurrent writers queue behind it.
    ``start_from`` gives the value already in use when the counter row does
    not exist yet. A concurrent first use fails the insert with an
    IntegrityError, which the unit of work replays.
    """
    increment = (
        update(NumberSequence)
        .where(NumberSequence.org_id == organization_id, NumberSequence.name == name)
        .values(current_value=NumberSequence.current_value + 1)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(increment).rowcount == 0:
        start = start_from() if start_from is not None else 0
        db.session.add(NumberSequence(org_id=organization_id, name=name, current_value=start + 1))
        db.session.flush()
        logger.debug("Counter %s started at %s for org %s", name, start + 1, organization_id)
    return db.session.execute(
        select(NumberSequence.current_value).where(
            NumberSequence.org_id == organization_id,
            NumberSequence.name == name,
        )
    ).scalar_one()
