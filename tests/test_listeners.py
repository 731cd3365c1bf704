# tests/test_listeners.py
"""
Tests for model invariant listeners.

    UserPackage: earned <= ceilingLimit, auto-complete, no reactivation
    Income / Transaction / Activity: append-only

Run:
    pytest tests/test_listeners.py -v
"""
from decimal import Decimal

import pytest

from models import Activity, Income, IncomeType, Transaction, TransactionStatus, UserPackage
from mlm_system.errors import AppendOnlyViolationError, CeilingExceededError, InvalidStateError
from mlm_system.services.ledger_service import LedgerService


@pytest.fixture
def package(session, register, buy):
    async def _package():
        user = await register()
        result = await buy(user.userID)
        return session.query(UserPackage).filter_by(userPackageID=result["userPackage"].userPackageID).one()

    return _package


@pytest.fixture
def income(session, register):
    async def _income():
        user = await register()
        row = LedgerService(session).creditIncome(user, IncomeType.ROI, Decimal("12"))
        session.commit()
        return row

    return _income


# =============================================================================
# TEST CLASS: Ceiling guard
# =============================================================================

class TestCeilingGuard:

    async def test_earned_above_ceiling_blocked(self, session, package):
        pkg = await package()
        pkg.earned = pkg.ceilingLimit + 1

        with pytest.raises(CeilingExceededError):
            session.flush()
        session.rollback()

        assert session.query(UserPackage).one().earned == 0

    async def test_reaching_ceiling_completes_package(self, session, package):
        pkg = await package()
        pkg.earned = pkg.ceilingLimit
        session.commit()

        stored = session.query(UserPackage).one()
        assert stored.isActive is False
        assert stored.completedDate is not None

    async def test_completed_package_cannot_be_reactivated(self, session, package):
        pkg = await package()
        pkg.earned = pkg.ceilingLimit
        session.commit()

        pkg.isActive = True
        with pytest.raises(InvalidStateError):
            session.flush()
        session.rollback()

    async def test_earned_never_decreases(self, session, package):
        pkg = await package()
        pkg.earned = Decimal("100")
        session.commit()

        pkg.earned = Decimal("50")
        with pytest.raises(InvalidStateError):
            session.flush()
        session.rollback()


# =============================================================================
# TEST CLASS: Append-only ledger
# =============================================================================

class TestAppendOnly:

    async def test_income_delete_blocked(self, session, income):
        row = await income()

        session.delete(row)
        with pytest.raises(AppendOnlyViolationError):
            session.flush()
        session.rollback()

        assert session.query(Income).count() == 1

    async def test_income_amount_immutable(self, session, income):
        row = await income()

        row.amount = Decimal("13")
        with pytest.raises(AppendOnlyViolationError):
            session.flush()
        session.rollback()

    async def test_income_can_be_marked_paid_once(self, session, income):
        row = await income()
        row.isPaid = True
        session.commit()

        row.isPaid = False
        with pytest.raises(AppendOnlyViolationError):
            session.flush()
        session.rollback()

        assert session.query(Income).one().isPaid is True

    async def test_activity_immutable(self, session, income):
        await income()
        activity = session.query(Activity).one()

        activity.amount = Decimal("1")
        with pytest.raises(AppendOnlyViolationError):
            session.flush()
        session.rollback()

    async def test_transaction_status_may_change(self, session, register, buy):
        user = await register()
        await buy(user.userID)
        tx = session.query(Transaction).one()

        tx.status = TransactionStatus.CANCELLED
        session.commit()
        assert session.query(Transaction).one().status == TransactionStatus.CANCELLED

        tx.amount = Decimal("1")
        with pytest.raises(AppendOnlyViolationError):
            session.flush()
        session.rollback()
