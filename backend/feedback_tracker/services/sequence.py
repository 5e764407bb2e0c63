"""Atomic named counters backing the human-readable request ids."""

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from feedback_tracker.models.tracker import Counter

logger = logging.getLogger(__name__)

REQUEST_SEQUENCE = "requests"


def next_sequence_value(db: Session, name: str = REQUEST_SEQUENCE) -> int:
    """Increment ``name`` and return the new value.

    The single ``UPDATE ... SET value = value + 1`` takes the row lock, so two
    transactions can never observe the same value. The row is seeded by the
    initial migration; a missing row is created on first use.
    """
    result = db.execute(
        update(Counter)
        .where(Counter.name == name)
        .values(value=Counter.value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info("Seeding counter %s", name)
        db.add(Counter(name=name, value=1))
        db.flush()
        return 1
    return int(db.execute(select(Counter.value).where(Counter.name == name)).scalar_one())
