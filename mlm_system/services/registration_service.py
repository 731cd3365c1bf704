# mlm_system/services/registration_service.py
"""
User registration: User + TeamStructure + BinaryNode in one transaction.
Autopool enrollment is separate (AutopoolService.enrollUser).
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from models.base import increment_columns
from models.enums import Side
from models.team_structure import TeamStructure
from models.user import User
from mlm_system.config.ranks import Rank
from mlm_system.errors import InvalidStateError, ReferrerNotFoundError
from mlm_system.services.binary_service import BinaryService
from mlm_system.utils.chain_walker import ChainWalker
from mlm_system.utils.sequence import USER_ID, nextValue
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

# Generated ids are ROOT_USER_ID + step * n
USER_ID_STEP = 7


class RegistrationService:

    def __init__(self, session: Session):
        self.session = session
        self.walker = ChainWalker(session)
        self.binary = BinaryService(session)

    def _nextUserId(self) -> int:
        root = self.walker.get_root_user_id()
        while True:
            candidate = root + USER_ID_STEP * nextValue(self.session, USER_ID)
            if not self.session.query(User.userID).filter_by(userID=candidate).first():
                return candidate

    async def registerUser(
            self,
            referrerId: Optional[int] = None,
            side: Side = Side.LEFT,
            userId: Optional[int] = None,
            name: Optional[str] = None,
            walletAddress: Optional[str] = None
    ) -> User:
        """
        Register a user under referrerId (None = root sentinel).

        Raises:
            ReferrerNotFoundError: referrer is neither root nor an existing user
            NodeNotFoundError: referrer exists but has no binary node
            InvalidStateError: explicit userId already taken
        """
        side = Side(side)
        if referrerId is None:
            referrerId = self.walker.get_root_user_id()

        try:
            referrer = None
            if not self.walker.is_root_referrer(referrerId):
                referrer = self.session.query(User).filter_by(userID=referrerId).first()
                if not referrer:
                    raise ReferrerNotFoundError(f"Referrer {referrerId} not found", referrerId=referrerId)

            if userId is None:
                userId = self._nextUserId()
            elif self.session.query(User.userID).filter_by(userID=userId).first():
                raise InvalidStateError(f"User {userId} already exists", userId=userId)

            now = timeMachine.now
            user = User(
                userID=userId,
                referrerID=referrerId,
                name=name,
                walletAddress=walletAddress,
                binarySide=int(side),
                directReferralCount=0,
                rank=int(Rank.NONE),
                registeredAt=now,
                lastROIDistributed=now,
                lastBinaryDistributed=now,
                lastRewardDistributed=now,
                isActive=True
            )
            self.session.add(user)
            self.session.add(TeamStructure(userID=userId))
            self.session.flush()

            await self.binary.placeUser(userId, referrerId, side)

            if referrer is not None:
                increment_columns(referrer, directReferralCount=1)
                referrerTeam = (
                    self.session.query(TeamStructure)
                    .filter_by(userID=referrerId)
                    .populate_existing()
                    .with_for_update()
                    .first()
                )
                if referrerTeam is None:
                    logger.warning(f"TeamStructure missing for referrer {referrerId}, creating")
                    referrerTeam = TeamStructure(userID=referrerId)
                    self.session.add(referrerTeam)
                referrerTeam.addTeamMember(userId, 1)
                referrerTeam.applyRankDelta(None, Rank.NONE)

            self.session.commit()

        except Exception:
            self.session.rollback()
            raise

        logger.info(f"User {userId} registered (referrer={referrerId}, side={side.name})")
        return user
