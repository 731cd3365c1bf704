# models/listeners/ceiling_listeners.py
"""
Package ceiling guard.

Architecture:
    UserPackage (INSERT/UPDATE) -> check earned against ceilingLimit

Guarantees on every flush:
    earned <= ceilingLimit, otherwise CeilingExceededError
    earned == ceilingLimit -> isActive=False, completedDate stamped
    earned never decreases, a completed package never comes back

Services complete packages themselves; this is the last line that makes
a violation impossible to persist.
"""
import logging
from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

logger = logging.getLogger(__name__)


def register_ceiling_listeners():
    """
    Register UserPackage ceiling listeners.

    Called once during application startup from models/listeners/__init__.py
    """
    from models.package import UserPackage
    from mlm_system.errors import CeilingExceededError, InvalidStateError

    def _check_and_complete(target):
        earned = target.earned if target.earned is not None else Decimal("0")
        ceiling = target.ceilingLimit

        if ceiling is None:
            return

        if earned > ceiling:
            logger.error(
                f"CEILING VIOLATION blocked: package={target.userPackageID}, "
                f"user={target.userID}, earned={earned} > ceiling={ceiling}"
            )
            raise CeilingExceededError(
                f"Package {target.userPackageID} earned {earned} exceeds ceiling {ceiling}",
                userPackageId=target.userPackageID,
                userId=target.userID
            )

        if earned >= ceiling and target.isActive:
            from mlm_system.utils.time_machine import timeMachine
            target.isActive = False
            if target.completedDate is None:
                target.completedDate = timeMachine.now
            logger.info(
                f"Package {target.userPackageID} of user {target.userID} "
                f"reached ceiling {ceiling}, deactivated"
            )

    def guard_insert(mapper, connection, target):
        _check_and_complete(target)

    def guard_update(mapper, connection, target):
        active_hist = get_history(target, 'isActive')
        if active_hist.deleted and active_hist.deleted[0] is False and target.isActive:
            raise InvalidStateError(
                f"Package {target.userPackageID} is completed and cannot be reactivated",
                userPackageId=target.userPackageID
            )

        earned_hist = get_history(target, 'earned')
        if earned_hist.deleted and earned_hist.added:
            before, after = earned_hist.deleted[0], earned_hist.added[0]
            if before is not None and after is not None and after < before:
                raise InvalidStateError(
                    f"Package {target.userPackageID} earned cannot decrease ({before} -> {after})",
                    userPackageId=target.userPackageID
                )

        _check_and_complete(target)

    event.listen(UserPackage, 'before_insert', guard_insert)
    event.listen(UserPackage, 'before_update', guard_update)
