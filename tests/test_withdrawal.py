# tests/test_withdrawal.py
"""
Tests for withdrawal of pending income.

Run:
    pytest tests/test_withdrawal.py -v
"""
from decimal import Decimal

import pytest

from models import Activity, ActivityType, Income, IncomeType, Transaction, TransactionType, User
from mlm_system.errors import InsufficientBalanceError, InvalidStateError, UserNotFoundError
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.withdrawal_service import WithdrawalService


@pytest.fixture
def earner(session, register):
    """User with 20 level and 30 ROI income pending."""

    async def _build():
        user = await register()
        ledger = LedgerService(session)
        ledger.creditIncome(user, IncomeType.ROI, Decimal("30"))
        ledger.creditIncome(user, IncomeType.LEVEL, Decimal("20"), sourceUserId=1, level=1)
        session.commit()
        return user

    return _build


# =============================================================================
# TEST CLASS: Withdraw
# =============================================================================

class TestWithdraw:

    async def test_buckets_consumed_in_priority_order(self, session, earner):
        user = await earner()

        result = await WithdrawalService(session).withdraw(user.userID, Decimal("25"))

        assert result["success"] is True
        assert result["deductions"] == {IncomeType.LEVEL: Decimal("20"), IncomeType.ROI: Decimal("5")}
        assert result["fee"] == Decimal("2.5")
        assert result["netAmount"] == Decimal("22.5")

    async def test_pending_drops_by_exact_amount(self, session, earner):
        user = await earner()
        ledger = LedgerService(session)

        await WithdrawalService(session).withdraw(user.userID, Decimal("25"))

        assert await ledger.getPendingIncome(user.userID) == Decimal("25")
        pending = ledger.getPendingByType(user.userID)
        assert pending[IncomeType.LEVEL] == 0
        assert pending[IncomeType.ROI] == Decimal("25")

        carry = session.query(Income).filter(Income.userID == user.userID, Income.isPaid.is_(False)).one()
        assert carry.meta["carryOver"] is True
        assert carry.incomeType == IncomeType.ROI

    async def test_user_totals_and_records(self, session, earner):
        user = await earner()

        await WithdrawalService(session).withdraw(user.userID, Decimal("25"))

        stored = session.query(User).filter_by(userID=user.userID).one()
        assert stored.totalWithdrawn == Decimal("25")
        assert stored.purchaseWallet == Decimal("1.25")
        # accumulators are lifetime totals and stay untouched
        assert stored.roiIncome == Decimal("30")

        tx = session.query(Transaction).filter_by(userID=user.userID, type=TransactionType.WITHDRAWAL).one()
        assert tx.amount == Decimal("25")
        assert tx.fee == Decimal("2.5")
        assert (
            session.query(Activity)
            .filter_by(userID=user.userID, activityType=int(ActivityType.WITHDRAWAL))
            .count() == 1
        )

    async def test_below_minimum(self, session, earner):
        user = await earner()

        with pytest.raises(InvalidStateError):
            await WithdrawalService(session).withdraw(user.userID, Decimal("5"))

    async def test_insufficient_pending_changes_nothing(self, session, earner):
        user = await earner()

        with pytest.raises(InsufficientBalanceError):
            await WithdrawalService(session).withdraw(user.userID, Decimal("100"))

        assert await LedgerService(session).getPendingIncome(user.userID) == Decimal("50")
        assert session.query(Transaction).filter_by(type=TransactionType.WITHDRAWAL).count() == 0

    async def test_unknown_user(self, session):
        with pytest.raises(UserNotFoundError):
            await WithdrawalService(session).withdraw(1, Decimal("10"))


# =============================================================================
# TEST CLASS: Income queries
# =============================================================================

class TestIncomeQueries:

    async def test_summary(self, session, earner):
        user = await earner()

        summary = await LedgerService(session).getIncomeSummary(user.userID)

        assert summary["earned"]["roi"] == Decimal("30")
        assert summary["pending"]["level"] == Decimal("20")
        assert summary["totalEarned"] == Decimal("50")
        assert summary["totalPending"] == Decimal("50")

    async def test_history_pagination(self, session, earner):
        user = await earner()

        page = await LedgerService(session).getIncomes(user.userID, page=1, limit=1)
        only_roi = await LedgerService(session).getIncomes(user.userID, incomeType=IncomeType.ROI)

        assert page["total"] == 2
        assert page["pages"] == 2
        assert len(page["items"]) == 1
        assert only_roi["total"] == 1

    def test_non_positive_income_rejected(self, session):
        user = User(userID=77, referrerID=0)
        with pytest.raises(ValueError):
            LedgerService(session).creditIncome(user, IncomeType.ROI, Decimal("0"))
