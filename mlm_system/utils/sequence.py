# mlm_system/utils/sequence.py
"""
Explicit monotonic counters backed by the sequence_counters table.
"""
import logging

from sqlalchemy.orm import Session

from models.sequence_counter import SequenceCounter

logger = logging.getLogger(__name__)

AUTOPOOL_POSITION = "autopool_position"
USER_ID = "user_id"


def nextValue(session: Session, name: str, seed: int = 0) -> int:
    """
    Increment counter `name` and return the new value.

    The increment is one UPDATE in the caller's transaction; concurrent
    callers serialize on the row lock. A missing counter starts at seed.
    """
    updated = (
        session.query(SequenceCounter)
        .filter(SequenceCounter.name == name)
        .update({SequenceCounter.value: SequenceCounter.value + 1}, synchronize_session=False)
    )

    if not updated:
        session.add(SequenceCounter(name=name, value=seed + 1))
        session.flush()
        logger.info(f"Sequence '{name}' created at {seed + 1}")
        return seed + 1

    return session.query(SequenceCounter.value).filter(SequenceCounter.name == name).scalar()


def currentValue(session: Session, name: str) -> int:
    value = session.query(SequenceCounter.value).filter(SequenceCounter.name == name).scalar()
    return value or 0
