# mlm_system/services/purchase_service.py
"""
Package purchase flow.

One transaction per purchase:
    1. place the buyer in the binary tree if not placed yet
    2. create UserPackage, purchase Transaction and Activity
    3. propagate volume to all binary ancestors
    4. pay level income (after 3, both touch shared aggregates)
Any error rolls the whole purchase back.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from models.activity import Activity
from models.base import increment_columns
from models.binary_node import BinaryNode
from models.enums import ActivityType, Side, TransactionStatus, TransactionType
from models.package import UserPackage
from models.transaction import Transaction
from models.user import User
from mlm_system.errors import ConcurrentUpdateError, UserNotFoundError
from mlm_system.services.binary_service import BinaryService
from mlm_system.services.level_income_service import LevelIncomeService
from mlm_system.services.package_service import PackageService
from mlm_system.services.settings_service import SettingsService
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class PurchaseService:
    """Handles package purchases."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = SettingsService(session)
        self.packages = PackageService(session)
        self.binary = BinaryService(session)
        self.levelIncome = LevelIncomeService(session)

    async def purchasePackage(
            self,
            userId: int,
            packageIndex: int,
            side: Optional[Side] = None
    ) -> Dict[str, Any]:
        """
        Buy catalogue package packageIndex for userId.

        Args:
            userId: Buyer
            packageIndex: Catalogue index
            side: Binary side, used only if the buyer is not placed yet

        Returns:
            {"success", "userPackage", "activity", "transaction",
             "placement", "volumePropagation", "levelIncome"}

        Raises:
            UserNotFoundError, PackageNotFoundError, ReferrerNotFoundError,
            NodeNotFoundError, ExternalDependencyError, ConcurrentUpdateError
        """
        try:
            user = self.session.query(User).filter_by(userID=userId).first()
            if not user:
                raise UserNotFoundError(f"User {userId} not found", userId=userId)

            package = self.packages.getPackage(packageIndex)
            price = self.settings.getTokenPrice()

            # Placement if needed
            placement = None
            if not self.session.query(BinaryNode).filter_by(userID=userId).first():
                placeSide = Side(side if side is not None else user.binarySide or Side.LEFT)
                node = await self.binary.placeUser(userId, user.referrerID, placeSide)
                placement = {"parentId": node.parentID, "side": placeSide.name.lower()}

            amountPaid = Decimal(str(package.priceUSD))
            tokenAmount = self.settings.usdToTokens(amountPaid, price)
            ceilingLimit = tokenAmount * Decimal(str(package.maxROIMultiplier))
            now = timeMachine.now

            userPackage = UserPackage(
                userID=userId,
                packageIndex=package.packageIndex,
                amountPaid=amountPaid,
                tokenAmount=tokenAmount,
                ceilingLimit=ceilingLimit,
                earned=Decimal("0"),
                isActive=True,
                purchaseDate=now
            )
            self.session.add(userPackage)

            increment_columns(user, personalVolume=tokenAmount)

            transaction = Transaction(
                userID=userId,
                type=TransactionType.PURCHASE,
                amount=tokenAmount,
                amountUSD=amountPaid,
                fee=Decimal("0"),
                status=TransactionStatus.COMPLETED,
                walletAddress=user.walletAddress,
                meta={"packageIndex": package.packageIndex, "price": str(price)}
            )
            self.session.add(transaction)

            activity = Activity(
                userID=userId,
                activityType=int(ActivityType.PURCHASE),
                amount=tokenAmount,
                meta={"packageIndex": package.packageIndex, "amountUSD": str(amountPaid)}
            )
            self.session.add(activity)
            self.session.flush()

            volumeResult = await self.binary.propagateVolume(userId, tokenAmount)
            levelResult = await self.levelIncome.distributeLevelIncome(user, tokenAmount)

            self.session.commit()

        except StaleDataError as e:
            self.session.rollback()
            logger.warning(f"Purchase by user {userId} collided with a concurrent team update: {e}")
            raise ConcurrentUpdateError(
                f"Team aggregates changed during purchase by user {userId}, retry",
                userId=userId
            ) from e
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            f"User {userId} purchased package {packageIndex}: ${amountPaid} = {tokenAmount} tokens "
            f"(ceiling {ceilingLimit}), ancestors={volumeResult['ancestorsUpdated']}, "
            f"level_income_paid={len(levelResult['paid'])}"
        )

        return {
            "success": True,
            "userPackage": userPackage,
            "activity": activity,
            "transaction": transaction,
            "placement": placement,
            "volumePropagation": volumeResult,
            "levelIncome": levelResult,
        }
