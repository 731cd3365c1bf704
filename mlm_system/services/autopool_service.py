# mlm_system/services/autopool_service.py
"""
Autopool engine - global perfect quaternary tree.

Enrollment is explicit (not part of registration). Each new member takes
the next global position from the autopool_position sequence and pays a
flat fee to every eligible ancestor: autopoolFees[d] to the ancestor d+1
levels above the new position.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from models.autopool_node import AutopoolNode
from models.base import increment_columns
from models.enums import IncomeType
from models.user import User
from mlm_system.errors import AlreadyEnrolledError, NodeNotFoundError, UserNotFoundError
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.settings_service import SettingsService
from mlm_system.utils import integrity
from mlm_system.utils.autopool_math import (
    cumulativeCount,
    findLevel,
    findParentPosition,
    levelSize,
    levelStart,
    positionOffset,
)
from mlm_system.utils.integrity import integrityMonitor
from mlm_system.utils.sequence import AUTOPOOL_POSITION, nextValue

logger = logging.getLogger(__name__)


class AutopoolService:
    """Autopool enrollment, spillover income and read-only views."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = SettingsService(session)
        self.ledger = LedgerService(session)

    def _getByPosition(self, position: int) -> Optional[AutopoolNode]:
        return self.session.query(AutopoolNode).filter_by(position=position).first()

    def _getByUser(self, userId: int) -> Optional[AutopoolNode]:
        return self.session.query(AutopoolNode).filter_by(userID=userId).first()

    # ═══════════════════════════════════════════════════════════════════
    # ENROLLMENT
    # ═══════════════════════════════════════════════════════════════════

    async def enrollUser(self, userId: int) -> Dict[str, Any]:
        """
        Enroll user at the next autopool position and pay ancestors.
        Commits on success, rolls back on error.

        Raises:
            UserNotFoundError, AlreadyEnrolledError
        """
        try:
            user = self.session.query(User).filter_by(userID=userId).first()
            if not user:
                raise UserNotFoundError(f"User {userId} not found", userId=userId)

            if self._getByUser(userId):
                raise AlreadyEnrolledError(f"User {userId} is already in the autopool", userId=userId)

            seed = self.session.query(func.coalesce(func.max(AutopoolNode.position), 0)).scalar()
            position = nextValue(self.session, AUTOPOOL_POSITION, seed=seed)
            level = findLevel(position)
            parentPosition = findParentPosition(position)

            node = AutopoolNode(
                userID=userId,
                position=position,
                parentPosition=parentPosition,
                level=level,
                children=[],
                isEligible=True,
                totalEarned=Decimal("0")
            )
            self.session.add(node)

            if parentPosition:
                parent = self._getByPosition(parentPosition)
                if parent is None:
                    integrityMonitor.raiseAlarm(
                        integrity.AUTOPOOL_MISSING_NODE,
                        f"Parent position {parentPosition} of new position {position} is empty",
                        userId=userId
                    )
                else:
                    parent.children = list(parent.children or []) + [position]
                    flag_modified(parent, 'children')

            self.session.flush()
            payouts = self._distributeSpillover(userId, position)

            self.session.commit()

        except Exception:
            self.session.rollback()
            raise

        logger.info(
            f"User {userId} enrolled in autopool at position {position} "
            f"(level {level}, parent {parentPosition}), {len(payouts)} ancestors paid"
        )

        return {
            "success": True,
            "userId": userId,
            "position": position,
            "level": level,
            "parentPosition": parentPosition,
            "payouts": payouts,
        }

    def _distributeSpillover(self, newUserId: int, position: int) -> List[Dict[str, Any]]:
        fees = self.settings.getDecimalList("autopool_fees")
        payouts = []

        ancestorPosition = findParentPosition(position)
        depth = 0
        while ancestorPosition >= 1 and depth < len(fees):
            ancestor = self._getByPosition(ancestorPosition)
            if ancestor is None:
                integrityMonitor.raiseAlarm(
                    integrity.AUTOPOOL_MISSING_NODE,
                    f"Ancestor position {ancestorPosition} of {position} is empty",
                    userId=newUserId
                )
                break

            fee = fees[depth]
            if ancestor.isEligible and fee > 0:
                recipient = self.session.query(User).filter_by(userID=ancestor.userID).first()
                if recipient is None:
                    logger.warning(f"Autopool position {ancestorPosition} belongs to missing user {ancestor.userID}")
                else:
                    self.ledger.creditIncome(
                        recipient,
                        IncomeType.AUTOPOOL,
                        fee,
                        sourceUserId=newUserId,
                        level=depth + 1,
                        meta={"position": ancestorPosition, "newPosition": position}
                    )
                    increment_columns(ancestor, totalEarned=fee)
                    payouts.append({
                        "userId": ancestor.userID,
                        "position": ancestorPosition,
                        "level": depth + 1,
                        "amount": fee,
                    })

            ancestorPosition = findParentPosition(ancestorPosition)
            depth += 1

        self.session.flush()
        return payouts

    async def setEligibility(self, userId: int, isEligible: bool) -> AutopoolNode:
        node = self._getByUser(userId)
        if not node:
            raise NodeNotFoundError(f"User {userId} is not in the autopool", userId=userId)
        node.isEligible = isEligible
        self.session.commit()
        logger.info(f"Autopool eligibility for user {userId} set to {isEligible}")
        return node

    # ═══════════════════════════════════════════════════════════════════
    # QUERIES (read-only)
    # ═══════════════════════════════════════════════════════════════════

    async def getPosition(self, userId: int) -> Dict[str, Any]:
        node = self._getByUser(userId)
        if not node:
            raise NodeNotFoundError(f"User {userId} is not in the autopool", userId=userId)

        parent = self._getByPosition(node.parentPosition) if node.parentPosition else None
        return {
            "userId": userId,
            "position": node.position,
            "level": node.level,
            "offset": positionOffset(node.position),
            "parentPosition": node.parentPosition,
            "parentUserId": parent.userID if parent else None,
            "children": list(node.children or []),
            "isEligible": node.isEligible,
            "totalEarned": node.totalEarned or Decimal("0"),
        }

    async def getOverview(self, maxLevels: int = 5) -> Dict[str, Any]:
        """Fill state per level."""
        total = self.session.query(func.count(AutopoolNode.nodeID)).scalar() or 0

        levels = []
        for level in range(maxLevels):
            capacity = levelSize(level)
            start = levelStart(level)
            filled = max(min(total - start + 1, capacity), 0)
            levels.append({
                "level": level,
                "capacity": capacity,
                "filled": filled,
                "firstPosition": start,
                "complete": filled == capacity,
            })

        return {
            "totalMembers": total,
            "currentLevel": findLevel(total) if total else -1,
            "nextPosition": total + 1,
            "levels": levels,
            "capacityThroughLastLevel": cumulativeCount(maxLevels - 1),
        }

    async def getTeam(self, userId: int, depth: int = 3) -> Dict[str, Any]:
        """Members below userId's position, breadth-first, `depth` levels deep."""
        node = self._getByUser(userId)
        if not node:
            raise NodeNotFoundError(f"User {userId} is not in the autopool", userId=userId)

        levels = []
        frontier = list(node.children or [])
        for relative in range(1, depth + 1):
            if not frontier:
                break
            members = (
                self.session.query(AutopoolNode)
                .filter(AutopoolNode.position.in_(frontier))
                .order_by(AutopoolNode.position)
                .all()
            )
            levels.append({
                "relativeLevel": relative,
                "members": [{"userId": m.userID, "position": m.position} for m in members],
            })
            frontier = [child for m in members for child in (m.children or [])]

        return {
            "userId": userId,
            "position": node.position,
            "teamSize": sum(len(lv["members"]) for lv in levels),
            "levels": levels,
        }
