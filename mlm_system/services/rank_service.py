"""
Rank management service for MLM system.

Ranks are recomputed from scratch each pass, so a user can also drop.
Requirements per tier (USD converted at the current token price):
    self volume, direct referral count, direct volume, and team members
    holding exactly the immediately lower rank (from TeamStructure.rankCounts)
"""
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
import logging

from models.team_structure import TeamStructure
from models.user import User
from mlm_system.config.ranks import Rank, RANKS_DESCENDING, get_rank_config
from mlm_system.errors import UserNotFoundError
from mlm_system.services.settings_service import SettingsService
from mlm_system.utils.batch import run_user_batch
from mlm_system.utils.chain_walker import ChainWalker

logger = logging.getLogger(__name__)


class RankService:
    """Service for managing user ranks and qualifications."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = SettingsService(session)
        self.walker = ChainWalker(session)

    def _getTeam(self, userId: int, forUpdate: bool = False) -> Optional[TeamStructure]:
        query = self.session.query(TeamStructure).filter_by(userID=userId)
        if forUpdate:
            query = query.populate_existing().with_for_update()
        return query.first()

    def _getMetrics(self, user: User, price: Decimal) -> Dict[str, Any]:
        team = self._getTeam(user.userID)
        directVolume = Decimal(str(team.directBusiness)) if team else Decimal("0")

        return {
            "selfVolumeUSD": Decimal(str(user.personalVolume or 0)) * price,
            "directReferrals": user.directReferralCount or 0,
            "directVolumeUSD": directVolume * price,
            "team": team,
        }

    @staticmethod
    def _isQualified(metrics: Dict[str, Any], rank: Rank, requirements: Dict[str, Any]) -> bool:
        if metrics["selfVolumeUSD"] < requirements["selfVolumeUSD"]:
            return False
        if metrics["directReferrals"] < requirements["directReferrals"]:
            return False
        if metrics["directVolumeUSD"] < requirements["directVolumeUSD"]:
            return False

        needed = requirements["downlineRankCount"]
        if needed > 0:
            team = metrics["team"]
            lowerRankCount = team.getRankCount(rank - 1) if team else 0
            if lowerRankCount < needed:
                return False
        return True

    async def calculateRank(self, userId: int) -> Rank:
        """
        Highest tier the user currently qualifies for (checked top-down).
        """
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise UserNotFoundError(f"User {userId} not found", userId=userId)

        price = self.settings.getTokenPrice()
        config = get_rank_config(self.settings.getSetting("rank_requirements"))
        metrics = self._getMetrics(user, price)

        for rank in RANKS_DESCENDING:
            if self._isQualified(metrics, rank, config[rank]):
                return rank
        return Rank.NONE

    async def updateUserRank(self, userId: int) -> Dict[str, Any]:
        """
        Recompute and store a user's rank, moving the rank count in the
        referrer's TeamStructure on change.
        """
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise UserNotFoundError(f"User {userId} not found", userId=userId)

        oldRank = Rank(user.rank or 0)
        newRank = await self.calculateRank(userId)

        if newRank == oldRank:
            return {"userId": userId, "status": "skipped", "reason": "unchanged", "rank": int(oldRank)}

        user.rank = int(newRank)

        if not self.walker.is_root_referrer(user.referrerID):
            referrerTeam = self._getTeam(user.referrerID, forUpdate=True)
            if referrerTeam is not None:
                referrerTeam.applyRankDelta(oldRank, newRank)
            else:
                logger.warning(
                    f"Referrer {user.referrerID} of user {userId} has no TeamStructure, "
                    f"rank delta not recorded"
                )

        self.session.flush()

        logger.info(f"User {userId} rank changed: {oldRank.displayName} -> {newRank.displayName}")

        return {
            "userId": userId,
            "status": "success",
            "oldRank": int(oldRank),
            "newRank": int(newRank),
        }

    async def processAllRanks(self) -> Dict[str, Any]:
        """Recalculate ranks for every active user."""
        # Newest users first: downline ranks settle before their referrers' are checked
        userIds = [
            row.userID for row in
            self.session.query(User.userID)
            .filter(User.isActive.is_(True))
            .order_by(User.userID.desc())
            .all()
        ]
        logger.info(f"Rank recalculation starting for {len(userIds)} users")
        return await run_user_batch(self.session, userIds, self.updateUserRank, "Rank recalculation")

    async def getRankStatus(self, userId: int) -> Dict[str, Any]:
        """Current rank and progress towards the next tier."""
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise UserNotFoundError(f"User {userId} not found", userId=userId)

        price = self.settings.getTokenPrice()
        config = get_rank_config(self.settings.getSetting("rank_requirements"))
        metrics = self._getMetrics(user, price)
        current = Rank(user.rank or 0)

        status = {
            "userId": userId,
            "rank": int(current),
            "rankName": current.displayName,
            "selfVolumeUSD": metrics["selfVolumeUSD"],
            "directReferrals": metrics["directReferrals"],
            "directVolumeUSD": metrics["directVolumeUSD"],
            "nextRank": None,
        }

        if current == Rank.DIAMOND:
            return status

        nextRank = Rank(current + 1)
        req = config[nextRank]
        team = metrics["team"]
        status["nextRank"] = {
            "rank": int(nextRank),
            "rankName": nextRank.displayName,
            "requirements": req,
            "progress": {
                "selfVolumeUSD": metrics["selfVolumeUSD"],
                "directReferrals": metrics["directReferrals"],
                "directVolumeUSD": metrics["directVolumeUSD"],
                "downlineRankCount": team.getRankCount(current) if team else 0,
            },
            "qualified": self._isQualified(metrics, nextRank, req),
        }
        return status
