# mlm_system/utils/claims.py
"""
Compare-and-swap claims on per-user distribution stamps.

A cycle claims a user's interval by moving the stamp from the value it
read to "now" in a single UPDATE. If another run got there first the
UPDATE matches no row and the caller skips the user.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def claimStamp(
        session: Session,
        model,
        keyColumn,
        keyValue: int,
        stampColumn,
        expected: Optional[datetime],
        newValue: datetime
) -> bool:
    """
    Atomically set stampColumn to newValue where it still equals expected.

    Returns:
        True if this caller won the claim
    """
    condition = stampColumn.is_(None) if expected is None else stampColumn == expected

    updated = (
        session.query(model)
        .filter(keyColumn == keyValue, condition)
        .update({stampColumn: newValue}, synchronize_session="fetch")
    )

    if not updated:
        logger.info(
            f"Claim lost on {model.__tablename__}.{stampColumn.key} for {keyValue}: "
            f"stamp moved since it was read"
        )
    return bool(updated)
