# mlm_system/services/withdrawal_service.py
"""
Withdrawal of pending (unpaid) income.

Buckets are consumed in a fixed order: level, binary, autopool, reward, roi.
Inside a bucket unpaid Income rows are marked paid oldest first. When the
last consumed row is larger than what is still needed, its unconsumed part
is re-issued as a new unpaid row of the same type (meta.carryOver), so
pending drops by exactly the withdrawn amount and rows stay append-only.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from models.activity import Activity
from models.base import increment_columns
from models.enums import ActivityType, IncomeType, TransactionStatus, TransactionType, WITHDRAWAL_PRIORITY
from models.income import Income
from models.transaction import Transaction
from models.user import User
from mlm_system.errors import InsufficientBalanceError, InvalidStateError, UserNotFoundError
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class WithdrawalService:
    """Pending income withdrawal."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = SettingsService(session)
        self.ledger = LedgerService(session)

    async def withdraw(self, userId: int, amount: Decimal) -> Dict[str, Any]:
        """
        Withdraw amount tokens of pending income. Commits on success.

        Raises:
            UserNotFoundError, InvalidStateError, InsufficientBalanceError
        """
        amount = Decimal(str(amount))

        try:
            user = self.session.query(User).filter_by(userID=userId).first()
            if not user:
                raise UserNotFoundError(f"User {userId} not found", userId=userId)

            if amount <= 0:
                raise InvalidStateError("Withdrawal amount must be positive", amount=str(amount))

            minWithdrawal = self.settings.getDecimal("min_withdrawal")
            if amount < minWithdrawal:
                raise InvalidStateError(
                    f"Minimum withdrawal is {minWithdrawal}",
                    amount=str(amount),
                    minimum=str(minWithdrawal)
                )

            pendingByType = self.ledger.getPendingByType(userId)
            pending = sum(pendingByType.values(), ZERO)
            if pending < amount:
                raise InsufficientBalanceError(
                    f"Insufficient pending income: {pending} < {amount}",
                    pending=str(pending),
                    requested=str(amount)
                )

            price = self.settings.getTokenPrice()
            feePercent = self.settings.getDecimal("withdrawal_fee")
            fee = amount * feePercent / 100
            netAmount = amount - fee

            deductions = self._consumeBuckets(user, amount, pendingByType)

            transaction = Transaction(
                userID=userId,
                type=TransactionType.WITHDRAWAL,
                amount=amount,
                amountUSD=amount * price,
                fee=fee,
                status=TransactionStatus.COMPLETED,
                walletAddress=user.walletAddress,
                meta={
                    "netAmount": str(netAmount),
                    "deductions": {t.value: str(v) for t, v in deductions.items()},
                }
            )
            self.session.add(transaction)

            self.session.add(Activity(
                userID=userId,
                activityType=int(ActivityType.WITHDRAWAL),
                amount=amount,
                meta={"fee": str(fee), "netAmount": str(netAmount)}
            ))

            increment_columns(user, totalWithdrawn=amount, purchaseWallet=fee / 2)

            self.session.commit()

        except Exception:
            self.session.rollback()
            raise

        logger.info(
            f"Withdrawal user {userId}: amount={amount}, fee={fee}, net={netAmount}, "
            f"buckets={[t.value for t in deductions]}"
        )

        return {
            "success": True,
            "transaction": transaction,
            "amount": amount,
            "fee": fee,
            "netAmount": netAmount,
            "deductions": deductions,
        }

    def _consumeBuckets(
            self,
            user: User,
            amount: Decimal,
            pendingByType: Dict[IncomeType, Decimal]
    ) -> Dict[IncomeType, Decimal]:
        remaining = amount
        deductions: Dict[IncomeType, Decimal] = {}

        for incomeType in WITHDRAWAL_PRIORITY:
            if remaining <= 0:
                break
            available = pendingByType.get(incomeType, ZERO)
            if available <= 0:
                continue

            take = min(available, remaining)
            self._markPaid(user, incomeType, take)
            deductions[incomeType] = take
            remaining -= take

        return deductions

    def _markPaid(self, user: User, incomeType: IncomeType, needed: Decimal) -> None:
        rows: List[Income] = (
            self.session.query(Income)
            .filter(
                Income.userID == user.userID,
                Income.incomeType == incomeType,
                Income.isPaid.is_(False),
            )
            .order_by(Income.createdAt.asc(), Income.incomeID.asc())
            .all()
        )

        consumed = ZERO
        for row in rows:
            if consumed >= needed:
                break
            row.isPaid = True
            consumed += Decimal(str(row.amount))

            if consumed > needed:
                # Re-issue the unconsumed part of this row as pending income
                leftover = consumed - needed
                self.session.add(Income(
                    userID=user.userID,
                    incomeType=incomeType,
                    amount=leftover,
                    sourceUserID=row.sourceUserID,
                    level=row.level,
                    isPaid=False,
                    isDistributed=True,
                    meta={"carryOver": True, "fromIncomeId": row.incomeID}
                ))
                consumed = needed
