# tests/test_weekly_reward.py
"""
Tests for weekly rank rewards and the global distribution marker.

Run:
    pytest tests/test_weekly_reward.py -v
"""
from decimal import Decimal

from models import Income, IncomeType, User
from mlm_system.config.defaults import LAST_WEEKLY_REWARD_KEY
from mlm_system.config.ranks import Rank
from mlm_system.services.settings_service import SettingsService
from mlm_system.services.weekly_reward_service import WeeklyRewardService
from mlm_system.utils.time_machine import timeMachine


async def make_ranked(session, register, rank):
    user = await register()
    user.rank = int(rank)
    session.commit()
    return user


# =============================================================================
# TEST CLASS: Distribution
# =============================================================================

class TestWeeklyDistribution:

    async def test_pool_split_equally_within_rank(self, session, register, buy):
        silver_a = await make_ranked(session, register, Rank.SILVER)
        silver_b = await make_ranked(session, register, Rank.SILVER)
        gold = await make_ranked(session, register, Rank.GOLD)
        buyer = await register()
        await buy(buyer.userID)

        result = await WeeklyRewardService(session).distributeWeeklyRewards()

        assert result["status"] == "success"
        assert result["turnover"] == Decimal("1000000")
        # 1% silver pool = 10,000 over two users, 1% gold pool = 10,000 to one
        assert result["ranks"]["Silver"]["share"] == Decimal("5000")
        assert result["ranks"]["Gold"]["recipients"] == 1
        assert result["ranks"]["Diamond"]["recipients"] == 0

        for user, expected in ((silver_a, "5000"), (silver_b, "5000"), (gold, "10000")):
            stored = session.query(User).filter_by(userID=user.userID).one()
            assert stored.rewardIncome == Decimal(expected)
            assert stored.lastRewardDistributed == timeMachine.now
        assert session.query(Income).filter_by(incomeType=IncomeType.REWARD).count() == 3

    async def test_marker_moves_with_payouts(self, session, register, buy):
        await make_ranked(session, register, Rank.SILVER)
        buyer = await register()
        await buy(buyer.userID)
        service = WeeklyRewardService(session)

        await service.distributeWeeklyRewards()

        assert service.getLastDistribution() == timeMachine.now
        assert SettingsService(session).getVersion(LAST_WEEKLY_REWARD_KEY) == 1

    async def test_second_run_within_interval_skips(self, session, register, buy, advance):
        silver = await make_ranked(session, register, Rank.SILVER)
        buyer = await register()
        await buy(buyer.userID)
        service = WeeklyRewardService(session)
        await service.distributeWeeklyRewards()

        advance(days=6)
        result = await service.distributeWeeklyRewards()

        assert result == {"status": "skipped", "reason": "interval not elapsed"}
        assert session.query(User).filter_by(userID=silver.userID).one().rewardIncome == Decimal("10000")

    async def test_only_new_turnover_counts(self, session, register, buy, advance):
        silver = await make_ranked(session, register, Rank.SILVER)
        buyer = await register()
        await buy(buyer.userID)
        service = WeeklyRewardService(session)
        await service.distributeWeeklyRewards()

        advance(days=7)
        await buy(buyer.userID, 4)
        result = await service.distributeWeeklyRewards()

        assert result["turnover"] == Decimal("500000")
        assert session.query(User).filter_by(userID=silver.userID).one().rewardIncome == Decimal("15000")
        assert SettingsService(session).getVersion(LAST_WEEKLY_REWARD_KEY) == 2

    async def test_no_turnover_still_advances_marker(self, session, register):
        await make_ranked(session, register, Rank.SILVER)
        service = WeeklyRewardService(session)

        result = await service.distributeWeeklyRewards()

        assert result["status"] == "skipped"
        assert result["reason"] == "no turnover"
        assert service.getLastDistribution() == timeMachine.now
        assert session.query(Income).count() == 0

    async def test_stale_marker_version_discards_run(self, session, register, buy, advance):
        silver = await make_ranked(session, register, Rank.SILVER)
        buyer = await register()
        await buy(buyer.userID)
        service = WeeklyRewardService(session)
        await service.distributeWeeklyRewards()
        advance(days=7)
        await buy(buyer.userID)

        # another run moved the marker after this one read it
        real_get_version = service.settings.getVersion
        service.settings.getVersion = lambda key: real_get_version(key) - 1
        result = await service.distributeWeeklyRewards()

        assert result == {"status": "skipped", "reason": "concurrently processed"}
        assert session.query(User).filter_by(userID=silver.userID).one().rewardIncome == Decimal("10000")
