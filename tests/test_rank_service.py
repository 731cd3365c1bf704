# tests/test_rank_service.py
"""
Tests for rank qualification and rank-count bookkeeping.

Run:
    pytest tests/test_rank_service.py -v
"""
from decimal import Decimal

import pytest

from models import TeamStructure, User
from mlm_system.config.ranks import Rank, get_rank_config
from mlm_system.errors import UserNotFoundError
from mlm_system.services.rank_service import RankService


def team_of(session, userId) -> TeamStructure:
    return session.query(TeamStructure).filter_by(userID=userId).one()


@pytest.fixture
def silver_candidate(register, buy):
    """
    sponsor <- leader <- 5 directs, everyone bought $100.

    leader: self $100, 5 directs, direct volume $500 -> Silver.
    """

    async def _build():
        sponsor = await register()
        leader = await register(sponsor.userID)
        await buy(leader.userID)
        for _ in range(5):
            member = await register(leader.userID)
            await buy(member.userID)
        return sponsor, leader

    return _build


# =============================================================================
# TEST CLASS: Rank table
# =============================================================================

class TestRankConfig:

    def test_defaults(self):
        config = get_rank_config()
        assert config[Rank.SILVER]["directReferrals"] == 5
        assert config[Rank.GOLD]["directVolumeUSD"] == Decimal("1000")
        assert config[Rank.DIAMOND]["downlineRankCount"] == 2

    def test_override_by_value_and_name(self):
        config = get_rank_config({"2": {"directVolumeUSD": 1200}, "diamond": {"directReferrals": 12}})
        assert config[Rank.GOLD]["directVolumeUSD"] == Decimal("1200")
        assert config[Rank.GOLD]["directReferrals"] == 6
        assert config[Rank.DIAMOND]["directReferrals"] == 12

    def test_invalid_override_is_ignored(self):
        config = get_rank_config({"emerald": {"directReferrals": 1}})
        assert config == get_rank_config()


# =============================================================================
# TEST CLASS: Qualification
# =============================================================================

class TestRankQualification:

    async def test_silver_qualification(self, session, silver_candidate):
        _, leader = await silver_candidate()

        assert await RankService(session).calculateRank(leader.userID) == Rank.SILVER

    async def test_update_moves_referrer_rank_count(self, session, silver_candidate):
        sponsor, leader = await silver_candidate()

        result = await RankService(session).updateUserRank(leader.userID)
        session.commit()

        assert result == {"userId": leader.userID, "status": "success", "oldRank": 0, "newRank": 1}
        assert session.query(User).filter_by(userID=leader.userID).one().rank == int(Rank.SILVER)
        assert team_of(session, sponsor.userID).rankCounts == [0, 1, 0, 0, 0]

    async def test_unchanged_rank_is_skipped(self, session, register):
        user = await register()

        result = await RankService(session).updateUserRank(user.userID)

        assert result["status"] == "skipped"
        assert result["reason"] == "unchanged"

    async def test_rank_can_drop(self, session, silver_candidate, set_setting):
        sponsor, leader = await silver_candidate()
        service = RankService(session)
        await service.updateUserRank(leader.userID)
        session.commit()

        set_setting("rank_requirements", {"1": {"directReferrals": 6}})
        result = await service.updateUserRank(leader.userID)
        session.commit()

        assert result["newRank"] == int(Rank.NONE)
        assert team_of(session, sponsor.userID).rankCounts == [1, 0, 0, 0, 0]

    async def test_downline_rank_requirement_counts_exactly_lower_rank(
            self, session, silver_candidate, set_setting
    ):
        _, leader = await silver_candidate()
        set_setting("rank_requirements", {
            "gold": {"selfVolumeUSD": 100, "directReferrals": 5, "directVolumeUSD": 300, "downlineRankCount": 2}
        })
        service = RankService(session)

        assert await service.calculateRank(leader.userID) == Rank.SILVER

        team = team_of(session, leader.userID)
        team.applyRankDelta(Rank.NONE, Rank.SILVER)
        team.applyRankDelta(Rank.NONE, Rank.GOLD)
        session.commit()

        # One Silver plus one Gold is not two Silvers
        assert await service.calculateRank(leader.userID) == Rank.SILVER

        team.applyRankDelta(Rank.NONE, Rank.SILVER)
        session.commit()

        assert await service.calculateRank(leader.userID) == Rank.GOLD

    async def test_higher_ranked_members_do_not_count_as_lower_rank(
            self, session, silver_candidate, set_setting
    ):
        _, leader = await silver_candidate()
        set_setting("rank_requirements", {
            "gold": {"selfVolumeUSD": 100, "directReferrals": 5, "directVolumeUSD": 300, "downlineRankCount": 2}
        })

        team = team_of(session, leader.userID)
        team.applyRankDelta(Rank.NONE, Rank.DIAMOND)
        team.applyRankDelta(Rank.NONE, Rank.DIAMOND)
        session.commit()

        service = RankService(session)
        result = await service.updateUserRank(leader.userID)
        session.commit()
        assert result["newRank"] == int(Rank.SILVER)

        status = await service.getRankStatus(leader.userID)
        assert status["nextRank"]["rank"] == int(Rank.GOLD)
        assert status["nextRank"]["progress"]["downlineRankCount"] == 0
        assert status["nextRank"]["qualified"] is False

    async def test_batch_recalculation(self, session, silver_candidate):
        _, leader = await silver_candidate()

        result = await RankService(session).processAllRanks()

        assert result["processed"] == 7
        assert result["succeeded"] == 1
        assert result["skipped"] == 6
        assert session.query(User).filter_by(userID=leader.userID).one().rank == int(Rank.SILVER)

    async def test_unknown_user(self, session):
        with pytest.raises(UserNotFoundError):
            await RankService(session).updateUserRank(1)


# =============================================================================
# TEST CLASS: Status
# =============================================================================

class TestRankStatus:

    async def test_progress_towards_next_rank(self, session, silver_candidate):
        _, leader = await silver_candidate()

        status = await RankService(session).getRankStatus(leader.userID)

        assert status["rank"] == 0
        assert status["directReferrals"] == 5
        assert status["directVolumeUSD"] == Decimal("500")
        assert status["nextRank"]["rank"] == int(Rank.SILVER)
        assert status["nextRank"]["qualified"] is True
