# tests/test_roi_service.py
"""
Tests for ROI accrual: rate, interval, ceiling and period limits.

Run:
    pytest tests/test_roi_service.py -v
"""
from decimal import Decimal

from models import Income, IncomeType, User, UserPackage
from mlm_system.services.roi_service import ROIService


def packages_of(session, userId):
    return (
        session.query(UserPackage)
        .filter_by(userID=userId)
        .order_by(UserPackage.userPackageID)
        .all()
    )


# =============================================================================
# TEST CLASS: Accrual
# =============================================================================

class TestROIAccrual:

    async def test_first_cycle_after_purchase(self, session, register, buy, advance):
        """
        TEST: $100 at 0.0001 -> 1,000,000 tokens, ceiling 4,000,000,
        first cycle at 5 permille credits 5,000.
        """
        user = await register()
        result = await buy(user.userID)

        package = result["userPackage"]
        assert package.tokenAmount == Decimal("1000000")
        assert package.ceilingLimit == Decimal("4000000")

        advance(days=1)
        roi = await ROIService(session).processUserROI(user.userID)
        session.commit()

        assert roi["status"] == "success"
        assert roi["amount"] == Decimal("5000")
        assert roi["dropped"] == 0
        assert session.query(User).filter_by(userID=user.userID).one().roiIncome == Decimal("5000")
        assert packages_of(session, user.userID)[0].earned == Decimal("5000")

        income = session.query(Income).filter_by(userID=user.userID, incomeType=IncomeType.ROI).one()
        assert income.isPaid is False

    async def test_second_call_within_interval_skips(self, session, register, buy, advance):
        user = await register()
        await buy(user.userID)
        advance(days=1)
        service = ROIService(session)

        await service.processUserROI(user.userID)
        session.commit()
        second = await service.processUserROI(user.userID)
        session.commit()

        assert second == {"userId": user.userID, "status": "skipped", "reason": "interval not elapsed"}
        assert session.query(User).filter_by(userID=user.userID).one().roiIncome == Decimal("5000")

    async def test_no_packages_still_stamps(self, session, register, advance):
        user = await register()
        advance(days=1)

        result = await ROIService(session).processUserROI(user.userID)
        session.commit()

        assert result["status"] == "success"
        assert result["amount"] == 0
        assert session.query(Income).count() == 0
        again = await ROIService(session).processUserROI(user.userID)
        assert again["reason"] == "interval not elapsed"

    async def test_max_roi_period(self, session, register, buy, advance):
        user = await register()
        await buy(user.userID)
        advance(days=400)

        result = await ROIService(session).processUserROI(user.userID)

        assert result["reason"] == "max ROI period reached"
        assert session.query(User).filter_by(userID=user.userID).one().roiIncome == 0


# =============================================================================
# TEST CLASS: Ceiling
# =============================================================================

class TestROICeiling:

    async def test_package_completes_at_ceiling_and_overflow_is_dropped(self, session, register, buy, advance):
        user = await register()
        await buy(user.userID)
        package = packages_of(session, user.userID)[0]
        package.earned = Decimal("3999000")
        session.commit()
        advance(days=1)

        result = await ROIService(session).processUserROI(user.userID)
        session.commit()

        assert result["amount"] == Decimal("1000")
        assert result["dropped"] == Decimal("4000")
        assert result["completedPackages"] == [package.userPackageID]

        package = packages_of(session, user.userID)[0]
        assert package.earned == package.ceilingLimit
        assert package.isActive is False
        assert package.completedDate is not None

    async def test_completed_package_earns_nothing_more(self, session, register, buy, advance):
        user = await register()
        await buy(user.userID)
        packages_of(session, user.userID)[0].earned = Decimal("3999000")
        session.commit()
        advance(days=1)
        await ROIService(session).processUserROI(user.userID)
        session.commit()

        advance(days=1)
        result = await ROIService(session).processUserROI(user.userID)
        session.commit()

        assert result["activeVolume"] == 0
        assert result["amount"] == 0
        assert session.query(User).filter_by(userID=user.userID).one().roiIncome == Decimal("1000")

    async def test_oldest_package_filled_first(self, session, register, buy, advance):
        user = await register()
        await buy(user.userID)
        advance(hours=1)
        await buy(user.userID)
        first, second = packages_of(session, user.userID)
        first.earned = Decimal("3996000")
        session.commit()
        advance(days=1)

        result = await ROIService(session).processUserROI(user.userID)
        session.commit()

        # 2,000,000 active volume -> 10,000: 4,000 fills the first, 6,000 goes to the second
        assert result["amount"] == Decimal("10000")
        first, second = packages_of(session, user.userID)
        assert first.isActive is False
        assert second.earned == Decimal("6000")

    async def test_batch_processes_every_active_user(self, session, register, buy, advance):
        a = await register()
        b = await register(a.userID)
        await buy(a.userID)
        advance(days=1)

        result = await ROIService(session).processAllROI()

        assert result["processed"] == 2
        assert result["succeeded"] == 2
        assert result["errors"] == 0
        assert session.query(User).filter_by(userID=b.userID).one().roiIncome == 0
