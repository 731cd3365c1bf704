# mlm_system/services/ledger_service.py
"""
Income ledger: append Income + Activity and bump the user's accumulator
in one step, plus read-side summaries.

creditIncome() is synchronous so it can be called from chain-walk
callbacks; it flushes nothing, the caller owns the transaction.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.activity import Activity
from models.enums import IncomeType, INCOME_ACTIVITY
from models.income import Income
from models.user import User
from mlm_system.errors import UserNotFoundError
from mlm_system.services.settings_service import to_jsonable

logger = logging.getLogger(__name__)


class LedgerService:
    """Append-only income ledger operations."""

    def __init__(self, session: Session):
        self.session = session

    def creditIncome(
            self,
            user: User,
            incomeType: IncomeType,
            amount: Decimal,
            sourceUserId: Optional[int] = None,
            level: Optional[int] = None,
            meta: Optional[Dict[str, Any]] = None
    ) -> Income:
        """
        Record income for user: Income row, Activity row, accumulator.

        Args:
            user: Recipient
            incomeType: Kind of income
            amount: Positive token amount
            sourceUserId: User whose action produced the income
            level: Referral / autopool depth where relevant
            meta: Extra calculation details (Decimals are stored as strings)
        """
        if amount <= 0:
            raise ValueError(f"Income amount must be positive, got {amount}")

        meta = to_jsonable(meta) if meta else None

        income = Income(
            userID=user.userID,
            incomeType=incomeType,
            amount=amount,
            sourceUserID=sourceUserId,
            level=level,
            isPaid=False,
            isDistributed=True,
            meta=meta
        )
        self.session.add(income)

        self.session.add(Activity(
            userID=user.userID,
            activityType=int(INCOME_ACTIVITY[incomeType]),
            amount=amount,
            sourceUserID=sourceUserId,
            level=level,
            meta=meta
        ))

        user.addToAccumulator(incomeType, amount)

        logger.debug(
            f"Credited {incomeType.value} income {amount} to user {user.userID} "
            f"(source={sourceUserId}, level={level})"
        )
        return income

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _requireUser(self, userId: int) -> User:
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise UserNotFoundError(f"User {userId} not found", userId=userId)
        return user

    def getPendingByType(self, userId: int) -> Dict[IncomeType, Decimal]:
        """Unpaid income per type (every type present, zero if none)."""
        rows = (
            self.session.query(Income.incomeType, func.coalesce(func.sum(Income.amount), 0))
            .filter(Income.userID == userId, Income.isPaid.is_(False))
            .group_by(Income.incomeType)
            .all()
        )
        pending = {incomeType: Decimal("0") for incomeType in IncomeType}
        for incomeType, total in rows:
            pending[incomeType] = Decimal(str(total))
        return pending

    async def getPendingIncome(self, userId: int) -> Decimal:
        self._requireUser(userId)
        return sum(self.getPendingByType(userId).values(), Decimal("0"))

    async def getIncomeSummary(self, userId: int) -> Dict[str, Any]:
        """Lifetime accumulators and pending (unpaid) balance per income type."""
        user = self._requireUser(userId)
        pending = self.getPendingByType(userId)

        return {
            "userId": userId,
            "earned": {t.value: user.getAccumulator(t) for t in IncomeType},
            "pending": {t.value: pending[t] for t in IncomeType},
            "totalEarned": user.totalEarned,
            "totalPending": sum(pending.values(), Decimal("0")),
            "totalWithdrawn": user.totalWithdrawn or Decimal("0"),
        }

    async def getIncomes(
            self,
            userId: int,
            incomeType: Optional[IncomeType] = None,
            page: int = 1,
            limit: int = 20
    ) -> Dict[str, Any]:
        """Paginated income history, newest first."""
        self._requireUser(userId)

        query = self.session.query(Income).filter(Income.userID == userId)
        if incomeType is not None:
            query = query.filter(Income.incomeType == incomeType)

        total = query.count()
        page = max(page, 1)
        items: List[Income] = (
            query.order_by(Income.createdAt.desc(), Income.incomeID.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        return {
            "items": items,
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit if limit else 0,
        }
