# tests/test_concurrency.py
"""
Tests for writes from overlapping transactions on shared aggregates.

Each test opens a second session on the same database, lets both read the
shared row, then commits them one after the other.

Run:
    pytest tests/test_concurrency.py -v
"""
from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from models import BinaryNode, IncomeType, Side, TeamStructure, User, UserPackage
from mlm_system.errors import ConcurrentUpdateError
from mlm_system.services.binary_service import BinaryService
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.level_income_service import LevelIncomeService
from mlm_system.utils.time_machine import timeMachine


def node_of(session, userId) -> BinaryNode:
    return session.query(BinaryNode).filter_by(userID=userId).one()


@pytest.fixture
def second_session(session_factory):
    """Independent session on the test database."""
    other = session_factory()
    yield other
    other.close()


# =============================================================================
# TEST CLASS: Binary volume
# =============================================================================

class TestBinaryVolume:

    async def test_propagation_from_two_sessions_accumulates(
            self, session, session_factory, second_session, register
    ):
        """
        TEST: top <- a <- b on the left spine. Both sessions hold the top
        node, then each propagates 100 from a different descendant.
        """
        top = await register()
        a = await register(top.userID, Side.LEFT)
        b = await register(top.userID, Side.LEFT)

        first = session_factory()
        try:
            assert node_of(first, top.userID).leftVolume == 0
            assert node_of(second_session, top.userID).leftVolume == 0

            await BinaryService(first).propagateVolume(a.userID, Decimal("100"))
            first.commit()

            await BinaryService(second_session).propagateVolume(b.userID, Decimal("100"))
            second_session.commit()
        finally:
            first.close()

        session.expire_all()
        top_node = node_of(session, top.userID)
        assert top_node.leftVolume == Decimal("200")
        assert top_node.totalLeftVolume == Decimal("200")
        assert node_of(session, a.userID).leftVolume == Decimal("100")

    async def test_matching_keeps_volume_added_after_read(
            self, session, second_session, register, set_setting, advance
    ):
        """
        TEST: L=300, R=800 read by the matching session; 50 more arrives on
        the left before it writes. Only the matched 300 is consumed.
        """
        set_setting("token_price", Decimal("1"))
        a = await register()
        b = await register(a.userID, Side.LEFT)

        a_node = node_of(session, a.userID)
        a_node.leftVolume = Decimal("300")
        a_node.rightVolume = Decimal("800")
        session.add(UserPackage(
            userID=a.userID,
            packageIndex=0,
            amountPaid=Decimal("1000"),
            tokenAmount=Decimal("1000"),
            ceilingLimit=Decimal("4000"),
            earned=Decimal("0"),
            isActive=True,
            purchaseDate=timeMachine.now
        ))
        session.commit()
        advance(days=1)

        assert node_of(second_session, a.userID).leftVolume == Decimal("300")

        await BinaryService(session).propagateVolume(b.userID, Decimal("50"))
        session.commit()

        result = await BinaryService(second_session).processUserBinary(a.userID)
        second_session.commit()

        assert result["matchingVolume"] == Decimal("300")
        session.expire_all()
        a_node = node_of(session, a.userID)
        assert a_node.leftVolume == Decimal("50")
        assert a_node.rightVolume == Decimal("500")


# =============================================================================
# TEST CLASS: Income accumulators
# =============================================================================

class TestAccumulators:

    async def test_income_from_two_sessions_accumulates(self, session, session_factory, second_session, register):
        user = await register()

        first = session_factory()
        try:
            firstCopy = first.query(User).filter_by(userID=user.userID).one()
            secondCopy = second_session.query(User).filter_by(userID=user.userID).one()
            assert firstCopy.levelIncome == 0
            assert secondCopy.levelIncome == 0

            LedgerService(first).creditIncome(firstCopy, IncomeType.LEVEL, Decimal("10"))
            first.commit()

            LedgerService(second_session).creditIncome(secondCopy, IncomeType.LEVEL, Decimal("5"))
            second_session.commit()
        finally:
            first.close()

        session.expire_all()
        assert session.query(User).filter_by(userID=user.userID).one().levelIncome == Decimal("15")


# =============================================================================
# TEST CLASS: Team aggregates
# =============================================================================

class TestTeamStructure:

    async def test_stale_team_copy_is_rejected(self, session, session_factory, second_session, register):
        sponsor = await register()
        await register(sponsor.userID)

        first = session_factory()
        try:
            firstTeam = first.query(TeamStructure).filter_by(userID=sponsor.userID).one()
            secondTeam = second_session.query(TeamStructure).filter_by(userID=sponsor.userID).one()

            firstTeam.addVolumeAtLevel(1, Decimal("100"))
            first.commit()

            secondTeam.addVolumeAtLevel(1, Decimal("50"))
            with pytest.raises(StaleDataError):
                second_session.commit()
            second_session.rollback()
        finally:
            first.close()

        session.expire_all()
        team = session.query(TeamStructure).filter_by(userID=sponsor.userID).one()
        assert team.getLevelVolume(1) == Decimal("100")
        assert team.directBusiness == Decimal("100")

    async def test_purchase_reports_team_conflict(self, session, register, buy, monkeypatch):
        user = await register()

        async def collide(*args, **kwargs):
            raise StaleDataError("team_structures row changed")

        monkeypatch.setattr(LevelIncomeService, "updateTeamForNewMember", collide)

        with pytest.raises(ConcurrentUpdateError):
            await buy(user.userID)

        assert session.query(UserPackage).filter_by(userID=user.userID).count() == 0
        assert session.query(User).filter_by(userID=user.userID).one().personalVolume == 0
