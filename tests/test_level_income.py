# tests/test_level_income.py
"""
Tests for level income and team structure propagation.

Run:
    pytest tests/test_level_income.py -v
"""
from decimal import Decimal

from models import Income, IncomeType, TeamStructure, User


def team_of(session, userId) -> TeamStructure:
    return session.query(TeamStructure).filter_by(userID=userId).one()


async def build_chain(register, length):
    """root <- u1 <- u2 <- ... <- u{length}; returns [u1, ..., u{length}]."""
    chain = []
    referrerId = None
    for _ in range(length):
        user = await register(referrerId)
        chain.append(user)
        referrerId = user.userID
    return chain


# =============================================================================
# TEST CLASS: Gating
# =============================================================================

class TestLevelGating:

    async def test_depth_five_needs_five_directs(self, session, register, buy):
        """
        TEST: a referrer with 2 directs at depth 5 earns nothing,
        but the buyer is still recorded at level 5 of its team.
        """
        u1, u2, u3, u4, u5 = await build_chain(register, 5)
        await register(u1.userID)  # second direct for u1
        buyer = await register(u5.userID)

        result = await buy(buyer.userID)

        level = result["levelIncome"]
        assert level["path"] == [u5.userID, u4.userID, u3.userID, u2.userID, u1.userID]
        assert [p["userId"] for p in level["paid"]] == [u5.userID]
        assert level["paid"][0]["amount"] == Decimal("50000")
        assert {"userId": u1.userID, "level": 5, "directReferrals": 2} in level["skipped"]

        assert session.query(User).filter_by(userID=u1.userID).one().levelIncome == 0
        assert buyer.userID in team_of(session, u1.userID).getLevelMembers(5)
        assert team_of(session, u1.userID).getLevelVolume(5) == Decimal("1000000")

    async def test_enough_directs_unlock_level(self, session, register, buy):
        sponsor = await register()
        first = await register(sponsor.userID)
        await register(sponsor.userID)
        buyer = await register(first.userID)

        result = await buy(buyer.userID)

        paid = {p["userId"]: p for p in result["levelIncome"]["paid"]}
        assert paid[first.userID]["level"] == 1
        assert paid[sponsor.userID]["level"] == 2
        assert paid[sponsor.userID]["amount"] == Decimal("10000")

        income = session.query(Income).filter_by(userID=sponsor.userID, incomeType=IncomeType.LEVEL).one()
        assert income.level == 2
        assert income.sourceUserID == buyer.userID

    async def test_walk_stops_after_seven_levels(self, session, register, buy):
        chain = await build_chain(register, 9)
        buyer = chain[-1]

        result = await buy(buyer.userID)

        assert len(result["levelIncome"]["path"]) == 7
        assert chain[0].userID not in result["levelIncome"]["path"]


# =============================================================================
# TEST CLASS: Team structure
# =============================================================================

class TestTeamStructure:

    async def test_registration_counts_direct_member(self, session, register):
        sponsor = await register()
        member = await register(sponsor.userID)

        team = team_of(session, sponsor.userID)
        assert team.getLevelMembers(1) == [member.userID]
        assert team.directTeam == 1
        assert team.getRankCount(0) == 1

    async def test_purchase_adds_business(self, session, register, buy):
        sponsor = await register()
        member = await register(sponsor.userID)

        await buy(member.userID)
        await buy(member.userID, 4)

        team = team_of(session, sponsor.userID)
        assert team.directBusiness == Decimal("1500000")
        assert team.totalBusiness == Decimal("1500000")
        assert team.getLevelMembers(1) == [member.userID]
        assert team.directTeam == 1
