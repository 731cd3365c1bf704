# mlm_system/services/weekly_reward_service.py
"""
Weekly reward engine.

Shares a percentage of completed purchase turnover since the last run
equally among the active users of each rank tier. The global marker
(setting 'last_weekly_reward_dist') moves once per run, together with the
payouts, via a compare-and-swap on the setting version.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.enums import IncomeType, TransactionStatus, TransactionType
from models.transaction import Transaction
from models.user import User
from mlm_system.config.defaults import LAST_WEEKLY_REWARD_KEY
from mlm_system.config.ranks import Rank
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.settings_service import SettingsService
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

REWARD_RANKS = [Rank.SILVER, Rank.GOLD, Rank.PLATINUM, Rank.DIAMOND]


class WeeklyRewardService:
    """Rank-based share of weekly turnover."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = SettingsService(session)
        self.ledger = LedgerService(session)

    def getLastDistribution(self) -> Optional[datetime]:
        raw = self.settings.getSetting(LAST_WEEKLY_REWARD_KEY, None)
        return datetime.fromisoformat(raw) if raw else None

    def getRankPercentages(self) -> Dict[Rank, Decimal]:
        raw = self.settings.getSetting("weekly_reward_percentages")
        percentages = {}
        for key, value in raw.items():
            rank = Rank(int(key))
            if rank != Rank.NONE:
                percentages[rank] = Decimal(str(value))
        return percentages

    def calculateTurnover(self, since: datetime, until: datetime) -> Decimal:
        """Sum of completed purchase transactions in (since, until]."""
        total = (
            self.session.query(func.coalesce(func.sum(Transaction.amount), 0))
            .filter(
                Transaction.type == TransactionType.PURCHASE,
                Transaction.status == TransactionStatus.COMPLETED,
                Transaction.createdAt > since,
                Transaction.createdAt <= until,
            )
            .scalar()
        )
        return Decimal(str(total))

    async def distributeWeeklyRewards(self) -> Dict[str, Any]:
        """
        Run one weekly distribution. Commits on success, rolls back on error.

        Returns:
            {"status": "success"|"skipped", "turnover", "ranks": {...}}
        """
        now = timeMachine.now
        interval = self.settings.getInterval("weekly_reward_interval")

        lastDistribution = self.getLastDistribution()
        markerVersion = self.settings.getVersion(LAST_WEEKLY_REWARD_KEY)

        if lastDistribution and now - lastDistribution < interval:
            return {"status": "skipped", "reason": "interval not elapsed"}

        since = lastDistribution or (now - interval)

        try:
            turnover = self.calculateTurnover(since, now)
            rankResults = {}

            if turnover > 0:
                percentages = self.getRankPercentages()
                for rank in REWARD_RANKS:
                    percent = percentages.get(rank)
                    if not percent:
                        continue
                    rankResults[rank.displayName] = self._rewardRank(rank, percent, turnover, now)

            if not self.settings.compareAndSetSetting(LAST_WEEKLY_REWARD_KEY, markerVersion, now):
                self.session.rollback()
                logger.warning("Weekly reward marker moved by another run, discarding this run")
                return {"status": "skipped", "reason": "concurrently processed"}

            self.session.commit()

        except IntegrityError:
            self.session.rollback()
            logger.warning("Weekly reward marker created by another run, discarding this run")
            return {"status": "skipped", "reason": "concurrently processed"}
        except Exception:
            self.session.rollback()
            raise

        if turnover <= 0:
            logger.info(f"No purchase turnover since {since.isoformat()}, weekly reward skipped")
            return {"status": "skipped", "reason": "no turnover", "turnover": turnover}

        logger.info(f"Weekly rewards distributed: turnover={turnover}, ranks={list(rankResults)}")
        return {
            "status": "success",
            "since": since,
            "until": now,
            "turnover": turnover,
            "ranks": rankResults,
        }

    def _rewardRank(self, rank: Rank, percent: Decimal, turnover: Decimal, now: datetime) -> Dict[str, Any]:
        users = (
            self.session.query(User)
            .filter(User.rank == int(rank), User.isActive.is_(True))
            .order_by(User.userID)
            .all()
        )
        pool = turnover * percent / 100

        if not users:
            return {"pool": pool, "recipients": 0, "share": Decimal("0")}

        share = pool / len(users)
        if share > 0:
            for user in users:
                self.ledger.creditIncome(
                    user,
                    IncomeType.REWARD,
                    share,
                    meta={"rank": int(rank), "turnover": turnover, "percent": percent, "recipients": len(users)}
                )
                user.lastRewardDistributed = now

        self.session.flush()
        logger.info(f"{rank.displayName}: pool={pool} split among {len(users)} users ({share} each)")
        return {"pool": pool, "recipients": len(users), "share": share}
