# mlm_system/services/roi_service.py
"""
ROI accrual engine.

Per user and interval: dailyROIRate (permille) of the active package
volume is spread over active packages oldest first, each capped by its
ceiling. A package that fills up is completed; whatever no package can
absorb is dropped.
"""
import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from models.enums import IncomeType
from models.package import UserPackage
from models.user import User
from mlm_system.errors import UserNotFoundError
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.settings_service import SettingsService
from mlm_system.utils.batch import run_user_batch
from mlm_system.utils.claims import claimStamp
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class ROIService:
    """Ceiling-limited ROI accrual."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = SettingsService(session)
        self.ledger = LedgerService(session)

    def _activePackages(self, userId: int):
        return (
            self.session.query(UserPackage)
            .filter(UserPackage.userID == userId, UserPackage.isActive.is_(True))
            .order_by(UserPackage.purchaseDate.asc(), UserPackage.userPackageID.asc())
            .all()
        )

    async def processUserROI(self, userId: int) -> Dict[str, Any]:
        """
        One ROI cycle for a user.

        Returns:
            {"userId", "status": "success"|"skipped", ...}
        """
        now = timeMachine.now

        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise UserNotFoundError(f"User {userId} not found", userId=userId)

        maxDays = self.settings.getInt("max_roi_days")
        if user.registeredAt and now - user.registeredAt >= timedelta(days=maxDays):
            return {"userId": userId, "status": "skipped", "reason": "max ROI period reached"}

        interval = self.settings.getInterval("income_distribution_interval")
        lastDistributed = user.lastROIDistributed
        if lastDistributed and now - lastDistributed < interval:
            return {"userId": userId, "status": "skipped", "reason": "interval not elapsed"}

        if not claimStamp(
                self.session, User, User.userID, userId,
                User.lastROIDistributed, lastDistributed, now
        ):
            return {"userId": userId, "status": "skipped", "reason": "concurrently processed"}
        user.lastROIDistributed = now

        packages = self._activePackages(userId)
        activeVolume = sum((Decimal(str(p.tokenAmount)) for p in packages), ZERO)
        dailyRate = self.settings.getDecimal("daily_roi_rate")
        roiAmount = dailyRate * activeVolume / 1000

        remaining = roiAmount
        credited = ZERO
        completed = []
        allocations = []

        for package in packages:
            if remaining <= 0:
                break

            capacity = package.remainingCapacity
            if capacity <= 0:
                # Should already be inactive; close it and move on
                self._completePackage(package, now)
                completed.append(package.userPackageID)
                continue

            share = remaining if capacity >= remaining else capacity
            package.earned = (package.earned or ZERO) + share
            credited += share
            remaining -= share
            allocations.append({"userPackageId": package.userPackageID, "amount": share})

            if package.earned >= package.ceilingLimit:
                self._completePackage(package, now)
                completed.append(package.userPackageID)

        if credited > 0:
            self.ledger.creditIncome(
                user,
                IncomeType.ROI,
                credited,
                meta={
                    "activeVolume": activeVolume,
                    "rate": dailyRate,
                    "calculated": roiAmount,
                    "dropped": remaining,
                    "allocations": allocations,
                }
            )

        self.session.flush()

        if remaining > 0 and roiAmount > 0:
            logger.info(f"User {userId}: {remaining} ROI dropped, all package ceilings reached")

        logger.info(
            f"ROI cycle user {userId}: volume={activeVolume}, calculated={roiAmount}, "
            f"credited={credited}, completed_packages={completed}"
        )

        return {
            "userId": userId,
            "status": "success",
            "activeVolume": activeVolume,
            "calculated": roiAmount,
            "amount": credited,
            "dropped": remaining,
            "completedPackages": completed,
        }

    @staticmethod
    def _completePackage(package: UserPackage, now) -> None:
        package.isActive = False
        if package.completedDate is None:
            package.completedDate = now
        logger.info(f"Package {package.userPackageID} of user {package.userID} reached ceiling")

    async def processAllROI(self) -> Dict[str, Any]:
        """ROI cycle for every active user."""
        userIds = [
            row.userID for row in
            self.session.query(User.userID)
            .filter(User.isActive.is_(True))
            .order_by(User.userID)
            .all()
        ]
        logger.info(f"ROI cycle starting for {len(userIds)} users")
        return await run_user_batch(self.session, userIds, self.processUserROI, "ROI cycle")
