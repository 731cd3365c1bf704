# mlm_system/utils/chain_walker.py
"""
Safe MLM chain walking utilities.
Prevents infinite loops and reports broken chains as integrity alarms.

Two chains are walked:
    referral chain  User.referrerID        (level income, team structure)
    binary chain    BinaryNode.parentID    (volume propagation, downline counts)
"""
from typing import Callable, List, Optional
from sqlalchemy.orm import Session
import logging

from config import Config
from models.user import User
from models.binary_node import BinaryNode
from models.enums import Side
from mlm_system.utils import integrity
from mlm_system.utils.integrity import integrityMonitor

logger = logging.getLogger(__name__)


class ChainWalker:
    """
    Safe utilities for walking referral and binary upline chains.
    """

    def __init__(self, session: Session):
        self.session = session
        self._root_user_id = None

    def get_root_user_id(self) -> int:
        """Reserved root sentinel referrer id from config."""
        if self._root_user_id is None:
            self._root_user_id = int(Config.get(Config.ROOT_USER_ID))
        return self._root_user_id

    def is_root_referrer(self, user_id: Optional[int]) -> bool:
        """0 / None and ROOT_USER_ID all terminate referral chains."""
        return not user_id or user_id == self.get_root_user_id()

    # ------------------------------------------------------------------
    # Referral chain
    # ------------------------------------------------------------------

    def walk_upline(
            self,
            start_user: User,
            callback: Callable[[User, int], bool],
            max_depth: int = 50
    ) -> int:
        """
        Walk up the referral chain, calling callback for each referrer.

        Stops at the root sentinel, at a missing referrer, when callback
        returns False, or after max_depth levels.

        Args:
            start_user: User whose referrers are visited (not visited itself)
            callback: Function(referrer, level) -> continue_walking (bool)
            max_depth: Maximum number of referrers to visit

        Returns:
            Number of referrers processed
        """
        current_user = start_user
        level = 1
        processed = 0
        visited = {start_user.userID}

        while level <= max_depth:
            referrer_id = current_user.referrerID

            if self.is_root_referrer(referrer_id):
                logger.debug(f"Reached root at level {level} from user {start_user.userID}")
                break

            if referrer_id in visited:
                integrityMonitor.raiseAlarm(
                    integrity.REFERRAL_CYCLE,
                    f"Referral cycle at user {referrer_id}",
                    startUserId=start_user.userID
                )
                break

            visited.add(referrer_id)

            referrer = self.session.query(User).filter_by(userID=referrer_id).first()
            if not referrer:
                logger.warning(
                    f"Referrer not found: userID={referrer_id} "
                    f"for user {current_user.userID}"
                )
                break

            should_continue = callback(referrer, level)
            processed += 1

            if not should_continue:
                break

            current_user = referrer
            level += 1

        return processed

    def get_upline_chain(self, user: User, max_depth: int = 50) -> List[User]:
        """List of referrers from the direct referrer upwards."""
        chain = []

        def collect(upline_user, level):
            chain.append(upline_user)
            return True

        self.walk_upline(user, collect, max_depth)
        return chain

    # ------------------------------------------------------------------
    # Binary chain
    # ------------------------------------------------------------------

    def walk_binary_upline(
            self,
            start_node: BinaryNode,
            callback: Callable[[BinaryNode, Side, int], None]
    ) -> dict:
        """
        Walk from start_node to its top node, calling
        callback(ancestor, side_of_child_under_ancestor, depth) per ancestor.

        A revisited node, a self-parent or a dangling parent pointer raises an
        integrity alarm and aborts the walk. Updates already applied by the
        callback are kept.

        Returns:
            {"processed": int, "aborted": None | alarm kind}
        """
        current = start_node
        visited = {start_node.userID}
        processed = 0
        depth = 1

        while current.parentID:
            parent_id = current.parentID

            if parent_id == current.userID:
                integrityMonitor.raiseAlarm(
                    integrity.BINARY_SELF_PARENT,
                    f"Binary node {parent_id} is its own parent",
                    startUserId=start_node.userID
                )
                return {"processed": processed, "aborted": integrity.BINARY_SELF_PARENT}

            if parent_id in visited:
                integrityMonitor.raiseAlarm(
                    integrity.BINARY_CYCLE,
                    f"Cycle detected at binary node {parent_id}",
                    startUserId=start_node.userID
                )
                return {"processed": processed, "aborted": integrity.BINARY_CYCLE}

            visited.add(parent_id)

            parent = self.session.query(BinaryNode).filter_by(userID=parent_id).first()
            if not parent:
                integrityMonitor.raiseAlarm(
                    integrity.BINARY_DANGLING_POINTER,
                    f"Binary parent {parent_id} of node {current.userID} does not exist",
                    startUserId=start_node.userID
                )
                return {"processed": processed, "aborted": integrity.BINARY_DANGLING_POINTER}

            callback(parent, Side(current.position), depth)
            processed += 1

            current = parent
            depth += 1

        return {"processed": processed, "aborted": None}
