# mlm_system/services/binary_service.py
"""
Binary tree engine.

Placement:  extreme-slot walk down one side from the referrer.
Volume:     purchase volume added to every ancestor on the child's side.
Matching:   weaker leg fully consumed, stronger leg keeps the remainder
            (carry-forward), income capped at the highest active package.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models.base import increment_columns
from models.binary_node import BinaryNode, EMPTY_SLOT
from models.enums import IncomeType, Side
from models.package import UserPackage
from models.user import User
from mlm_system.errors import (
    InvalidStateError,
    NodeNotFoundError,
    StructuralInconsistencyError,
    UserNotFoundError,
)
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.settings_service import SettingsService
from mlm_system.utils import integrity
from mlm_system.utils.batch import run_user_batch
from mlm_system.utils.chain_walker import ChainWalker
from mlm_system.utils.claims import claimStamp
from mlm_system.utils.integrity import integrityMonitor
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BinaryService:
    """Placement, volume propagation and matching income."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = SettingsService(session)
        self.ledger = LedgerService(session)
        self.walker = ChainWalker(session)

    def _getNode(self, userId: int) -> Optional[BinaryNode]:
        return self.session.query(BinaryNode).filter_by(userID=userId).first()

    # ═══════════════════════════════════════════════════════════════════
    # PLACEMENT
    # ═══════════════════════════════════════════════════════════════════

    async def findExtremePlacement(self, referrerId: int, side: Side) -> BinaryNode:
        """
        Node that will receive the new child: follow `side` children from the
        referrer until one has that slot empty.

        Raises:
            NodeNotFoundError: referrer has no binary node
            StructuralInconsistencyError: cycle or dangling child pointer
        """
        side = Side(side)
        node = self._getNode(referrerId)
        if not node:
            raise NodeNotFoundError(f"Binary node for referrer {referrerId} not found", referrerId=referrerId)

        visited = {node.userID}
        while True:
            childId = node.getChildID(side)
            if childId == EMPTY_SLOT:
                return node

            if childId in visited:
                integrityMonitor.raiseAlarm(
                    integrity.BINARY_CYCLE,
                    f"Cycle on {side.name} spine at node {childId}",
                    referrerId=referrerId
                )
                raise StructuralInconsistencyError(f"Cycle detected below referrer {referrerId}")
            visited.add(childId)

            child = self._getNode(childId)
            if not child:
                integrityMonitor.raiseAlarm(
                    integrity.BINARY_DANGLING_POINTER,
                    f"Node {node.userID} points to missing {side.name} child {childId}",
                    referrerId=referrerId
                )
                raise StructuralInconsistencyError(f"Dangling child pointer {childId} below referrer {referrerId}")
            node = child

    async def placeUser(self, userId: int, referrerId: int, side: Side) -> BinaryNode:
        """
        Create the user's binary node under the referrer's extreme slot.

        A root-sentinel referrer without a node of its own yields a top node
        (parentID=0). Flushes; the caller commits.
        """
        side = Side(side)
        if self._getNode(userId):
            raise InvalidStateError(f"User {userId} is already placed in the binary tree", userId=userId)

        now = timeMachine.now

        if self.walker.is_root_referrer(referrerId) and not self._getNode(referrerId):
            node = self._newNode(userId, EMPTY_SLOT, side, now)
            self.session.add(node)
            self.session.flush()
            logger.info(f"User {userId} placed as top binary node ({side.name})")
            return node

        parent = await self.findExtremePlacement(referrerId, side)

        node = self._newNode(userId, parent.userID, side, now)
        parent.setChildID(side, userId)
        self.session.add(node)
        self.session.flush()

        walk = self.walker.walk_binary_upline(node, lambda ancestor, s, depth: ancestor.addDownline(s))
        logger.info(
            f"User {userId} placed under {parent.userID} on {side.name} "
            f"(referrer={referrerId}, ancestors counted={walk['processed']})"
        )
        return node

    @staticmethod
    def _newNode(userId: int, parentId: int, side: Side, now: datetime) -> BinaryNode:
        return BinaryNode(
            userID=userId,
            parentID=parentId,
            position=int(side),
            leftChildID=EMPTY_SLOT,
            rightChildID=EMPTY_SLOT,
            leftVolume=ZERO,
            rightVolume=ZERO,
            leftCarryForward=ZERO,
            rightCarryForward=ZERO,
            totalLeftVolume=ZERO,
            totalRightVolume=ZERO,
            leftCount=0,
            rightCount=0,
            lastBinaryProcess=now
        )

    # ═══════════════════════════════════════════════════════════════════
    # VOLUME PROPAGATION
    # ═══════════════════════════════════════════════════════════════════

    async def propagateVolume(self, userId: int, amount: Decimal) -> Dict[str, Any]:
        """
        Add amount to the live and lifetime volume of every ancestor, on the
        side the walk arrived from.

        A corrupted chain stops the walk; already updated ancestors stay updated.
        """
        node = self._getNode(userId)
        if not node:
            raise NodeNotFoundError(f"Binary node for user {userId} not found", userId=userId)

        walk = self.walker.walk_binary_upline(
            node,
            lambda ancestor, side, depth: ancestor.addVolume(side, amount)
        )

        if walk["aborted"]:
            logger.error(
                f"Volume propagation for user {userId} aborted after "
                f"{walk['processed']} ancestors: {walk['aborted']}"
            )
        else:
            logger.info(f"Propagated volume {amount} from user {userId} to {walk['processed']} ancestors")

        return {
            "userId": userId,
            "amount": amount,
            "ancestorsUpdated": walk["processed"],
            "aborted": walk["aborted"],
        }

    # ═══════════════════════════════════════════════════════════════════
    # MATCHING INCOME
    # ═══════════════════════════════════════════════════════════════════

    def _getIncomeCeiling(self, userId: int, price: Decimal) -> Optional[Dict[str, Decimal]]:
        """Highest active package value, in tokens at the current price. None if no active package."""
        top = (
            self.session.query(UserPackage)
            .filter(UserPackage.userID == userId, UserPackage.isActive.is_(True))
            .order_by(UserPackage.amountPaid.desc())
            .first()
        )
        if not top:
            return None
        return {
            "packageValueUSD": Decimal(str(top.amountPaid)),
            "ceiling": self.settings.usdToTokens(top.amountPaid, price),
        }

    def _calculateMatching(self, left: Decimal, right: Decimal, ceiling: Decimal) -> Dict[str, Any]:
        binaryFee = self.settings.getDecimal("binary_fee")

        matching = min(left, right)
        rawIncome = matching * binaryFee / 100
        income = min(rawIncome, ceiling)

        # Weaker leg (left on ties) is washed out completely
        if left <= right:
            newLeft, newRight = ZERO, right - matching
        else:
            newLeft, newRight = left - matching, ZERO

        return {
            "matchingVolume": matching,
            "binaryFee": binaryFee,
            "rawIncome": rawIncome,
            "income": income,
            "ceilingApplied": rawIncome > ceiling,
            "newLeft": newLeft,
            "newRight": newRight,
        }

    async def processUserBinary(self, userId: int) -> Dict[str, Any]:
        """
        Run one matching cycle for a user.

        Skips when the interval has not elapsed, a leg is empty, or the user
        has no active package. The interval is claimed with a CAS on
        lastBinaryProcess before any volume is consumed.
        """
        now = timeMachine.now

        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise UserNotFoundError(f"User {userId} not found", userId=userId)

        node = self._getNode(userId)
        if not node:
            return {"userId": userId, "status": "skipped", "reason": "no binary node"}

        interval = self.settings.getInterval("binary_distribution_interval")
        lastProcess = node.lastBinaryProcess
        if lastProcess and now - lastProcess < interval:
            return {"userId": userId, "status": "skipped", "reason": "interval not elapsed"}

        left = node.leftVolume or ZERO
        right = node.rightVolume or ZERO
        if left <= 0 or right <= 0:
            return {"userId": userId, "status": "skipped", "reason": "no matching volume"}

        price = self.settings.getTokenPrice()
        ceilingInfo = self._getIncomeCeiling(userId, price)
        if ceilingInfo is None:
            return {"userId": userId, "status": "skipped", "reason": "no active packages"}

        if not claimStamp(
                self.session, BinaryNode, BinaryNode.userID, userId,
                BinaryNode.lastBinaryProcess, lastProcess, now
        ):
            return {"userId": userId, "status": "skipped", "reason": "concurrently processed"}

        calc = self._calculateMatching(left, right, ceilingInfo["ceiling"])

        # Consume only the matched volume, purchases landing meanwhile stay
        increment_columns(node, leftVolume=calc["newLeft"] - left, rightVolume=calc["newRight"] - right)
        node.leftCarryForward = calc["newLeft"]
        node.rightCarryForward = calc["newRight"]
        node.lastBinaryProcess = now

        if calc["income"] > 0:
            self.ledger.creditIncome(
                user,
                IncomeType.BINARY,
                calc["income"],
                meta={
                    "leftVolume": left,
                    "rightVolume": right,
                    "matchingVolume": calc["matchingVolume"],
                    "originalCalculation": calc["rawIncome"],
                    "ceilingApplied": calc["ceilingApplied"],
                    "packageValue": ceilingInfo["packageValueUSD"],
                }
            )
            user.lastBinaryDistributed = now

        self.session.flush()

        logger.info(
            f"Binary cycle user {userId}: matched={calc['matchingVolume']}, "
            f"income={calc['income']}, ceiling_applied={calc['ceilingApplied']}, "
            f"carry L={calc['newLeft']} R={calc['newRight']}"
        )

        return {
            "userId": userId,
            "status": "success",
            "matchingVolume": calc["matchingVolume"],
            "income": calc["income"],
            "ceilingApplied": calc["ceilingApplied"],
            "leftCarryForward": calc["newLeft"],
            "rightCarryForward": calc["newRight"],
        }

    async def processAllBinaryIncome(self) -> Dict[str, Any]:
        """Matching cycle for every active user with a binary node."""
        userIds = [
            row.userID for row in
            self.session.query(BinaryNode.userID)
            .join(User, User.userID == BinaryNode.userID)
            .filter(User.isActive.is_(True))
            .order_by(BinaryNode.userID)
            .all()
        ]
        logger.info(f"Binary cycle starting for {len(userIds)} users")
        return await run_user_batch(self.session, userIds, self.processUserBinary, "Binary cycle")

    # ═══════════════════════════════════════════════════════════════════
    # QUERIES (read-only)
    # ═══════════════════════════════════════════════════════════════════

    async def getBinaryLegs(self, userId: int) -> Dict[str, Any]:
        node = self._getNode(userId)
        if not node:
            raise NodeNotFoundError(f"Binary node for user {userId} not found", userId=userId)

        left = {
            "childId": node.leftChildID,
            "volume": node.leftVolume or ZERO,
            "totalVolume": node.totalLeftVolume or ZERO,
            "carryForward": node.leftCarryForward or ZERO,
            "count": node.leftCount or 0,
        }
        right = {
            "childId": node.rightChildID,
            "volume": node.rightVolume or ZERO,
            "totalVolume": node.totalRightVolume or ZERO,
            "carryForward": node.rightCarryForward or ZERO,
            "count": node.rightCount or 0,
        }
        weaker = "left" if left["volume"] <= right["volume"] else "right"

        return {
            "userId": userId,
            "parentId": node.parentID,
            "position": Side(node.position).name.lower(),
            "left": left,
            "right": right,
            "weakerLeg": weaker,
            "strongerLeg": "right" if weaker == "left" else "left",
            "lastBinaryProcess": node.lastBinaryProcess,
        }

    async def getPendingBinaryIncome(self, userId: int) -> Dict[str, Any]:
        """What the next matching cycle would pay, without changing anything."""
        node = self._getNode(userId)
        if not node:
            raise NodeNotFoundError(f"Binary node for user {userId} not found", userId=userId)

        left = node.leftVolume or ZERO
        right = node.rightVolume or ZERO
        price = self.settings.getTokenPrice()
        ceilingInfo = self._getIncomeCeiling(userId, price)

        if left <= 0 or right <= 0 or ceilingInfo is None:
            return {
                "userId": userId,
                "matchingVolume": min(left, right),
                "estimatedIncome": ZERO,
                "ceiling": ceilingInfo["ceiling"] if ceilingInfo else ZERO,
                "ceilingApplied": False,
            }

        calc = self._calculateMatching(left, right, ceilingInfo["ceiling"])
        return {
            "userId": userId,
            "matchingVolume": calc["matchingVolume"],
            "rawIncome": calc["rawIncome"],
            "estimatedIncome": calc["income"],
            "ceiling": ceilingInfo["ceiling"],
            "ceilingApplied": calc["ceilingApplied"],
            "leftCarryForward": calc["newLeft"],
            "rightCarryForward": calc["newRight"],
        }

    async def getBinaryTree(self, userId: int, depth: int = 2) -> Dict[str, Any]:
        """Nested subtree rooted at userId, `depth` levels deep."""
        root = self._getNode(userId)
        if not root:
            raise NodeNotFoundError(f"Binary node for user {userId} not found", userId=userId)

        visited = set()

        def build(node: BinaryNode, remaining: int) -> Dict[str, Any]:
            visited.add(node.userID)
            entry = {
                "userId": node.userID,
                "position": Side(node.position).name.lower(),
                "leftVolume": node.leftVolume or ZERO,
                "rightVolume": node.rightVolume or ZERO,
                "leftCount": node.leftCount or 0,
                "rightCount": node.rightCount or 0,
                "left": None,
                "right": None,
            }
            if remaining <= 0:
                return entry

            for side in (Side.LEFT, Side.RIGHT):
                childId = node.getChildID(side)
                if childId == EMPTY_SLOT:
                    continue
                if childId in visited:
                    integrityMonitor.raiseAlarm(
                        integrity.BINARY_CYCLE,
                        f"Cycle below node {node.userID} at {childId}",
                        rootUserId=userId
                    )
                    continue
                child = self._getNode(childId)
                if child:
                    entry[side.name.lower()] = build(child, remaining - 1)
            return entry

        return build(root, depth)
