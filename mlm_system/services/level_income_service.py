# mlm_system/services/level_income_service.py
"""
Level (referral) income engine.

Runs inline with a purchase. Walks up to 7 referrers; the referrer at
level N (1-based) is paid only with at least N direct referrals. The
whole walked path is recorded in each referrer's TeamStructure whether
or not that hop was paid.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from models.enums import IncomeType
from models.team_structure import TeamStructure, TEAM_DEPTH
from models.user import User
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.settings_service import SettingsService
from mlm_system.utils.chain_walker import ChainWalker

logger = logging.getLogger(__name__)


class LevelIncomeService:
    """Referral chain income and team aggregate updates."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = SettingsService(session)
        self.ledger = LedgerService(session)
        self.walker = ChainWalker(session)

    async def distributeLevelIncome(self, buyer: User, purchaseAmount: Decimal) -> Dict[str, Any]:
        """
        Pay level income for a purchase of purchaseAmount tokens by buyer.

        Returns:
            {"paid": [...], "skipped": [...], "path": [referrer ids], "totalPaid"}
        """
        fees = self.settings.getDecimalList("level_income_fees")
        maxLevels = min(len(fees), TEAM_DEPTH)

        paid: List[Dict[str, Any]] = []
        skipped: List[Dict[str, Any]] = []
        path: List[User] = []

        def pay_level(referrer: User, level: int) -> bool:
            path.append(referrer)
            percent = fees[level - 1]
            directs = referrer.directReferralCount or 0

            if directs < level:
                skipped.append({"userId": referrer.userID, "level": level, "directReferrals": directs})
                logger.debug(
                    f"Level {level} locked for referrer {referrer.userID}: "
                    f"{directs} direct referrals < {level}"
                )
                return True

            amount = purchaseAmount * percent / 100
            if amount > 0:
                self.ledger.creditIncome(
                    referrer,
                    IncomeType.LEVEL,
                    amount,
                    sourceUserId=buyer.userID,
                    level=level,
                    meta={"purchaseAmount": purchaseAmount, "percent": percent}
                )
                paid.append({"userId": referrer.userID, "level": level, "amount": amount})
            return True

        self.walker.walk_upline(buyer, pay_level, max_depth=maxLevels)

        await self.updateTeamForNewMember(buyer.userID, path, purchaseAmount)
        self.session.flush()

        totalPaid = sum((p["amount"] for p in paid), Decimal("0"))
        logger.info(
            f"Level income for purchase by {buyer.userID}: amount={purchaseAmount}, "
            f"levels_walked={len(path)}, paid={len(paid)}, total={totalPaid}"
        )

        return {
            "paid": paid,
            "skipped": skipped,
            "path": [u.userID for u in path],
            "totalPaid": totalPaid,
        }

    async def updateTeamForNewMember(
            self,
            memberId: int,
            referrerPath: List[User],
            amount: Decimal
    ) -> None:
        """Record member and volume at each depth of the referrer path (max 7)."""
        for level, referrer in enumerate(referrerPath[:TEAM_DEPTH], start=1):
            team = self.getOrCreateTeam(referrer.userID)
            team.addTeamMember(memberId, level)
            if amount > 0:
                team.addVolumeAtLevel(level, amount)

    def getOrCreateTeam(self, userId: int) -> TeamStructure:
        team = (
            self.session.query(TeamStructure)
            .filter_by(userID=userId)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if team is None:
            logger.warning(f"TeamStructure missing for user {userId}, creating")
            team = TeamStructure(userID=userId)
            self.session.add(team)
        return team
