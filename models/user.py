# models/user.py
"""
User model - identity, referral link and income accumulators.

Accumulators (roiIncome, levelIncome, ...) only ever grow; they are bumped
by LedgerService together with the matching Income row.
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Boolean
from sqlalchemy.orm import relationship

from models.base import Base, AuditMixin, _get_current_time, increment_columns
from models.enums import IncomeType, INCOME_ACCUMULATOR, Side


class User(Base, AuditMixin):
    __tablename__ = 'users'

    # Immutable numeric identity (generated or supplied at registration)
    userID = Column(Integer, primary_key=True, autoincrement=False)

    # Direct referrer (0 or ROOT_USER_ID = root sentinel)
    referrerID = Column(Integer, nullable=False, index=True)

    name = Column(String, nullable=True)
    walletAddress = Column(String, nullable=True)

    # Requested binary side (Side.LEFT / Side.RIGHT)
    binarySide = Column(Integer, nullable=False, default=int(Side.LEFT))

    directReferralCount = Column(Integer, nullable=False, default=0)
    rank = Column(Integer, nullable=False, default=0, index=True)  # mlm_system.config.ranks.Rank

    # Income accumulators (tokens)
    roiIncome = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    levelIncome = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    binaryIncome = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    autopoolIncome = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    rewardIncome = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    # Own purchase volume (tokens), used for rank qualification
    personalVolume = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    totalWithdrawn = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    purchaseWallet = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    # Last distribution stamps, per income type
    lastROIDistributed = Column(DateTime, nullable=True)
    lastBinaryDistributed = Column(DateTime, nullable=True)
    lastRewardDistributed = Column(DateTime, nullable=True)

    registeredAt = Column(DateTime, nullable=False, default=_get_current_time)
    isActive = Column(Boolean, nullable=False, default=True, index=True)

    # Relationships
    packages = relationship(
        'UserPackage',
        back_populates='user',
        order_by='UserPackage.purchaseDate'
    )

    def getAccumulator(self, incomeType: IncomeType) -> Decimal:
        return getattr(self, INCOME_ACCUMULATOR[incomeType]) or Decimal("0")

    def addToAccumulator(self, incomeType: IncomeType, amount: Decimal) -> None:
        attr = INCOME_ACCUMULATOR[incomeType]
        increment_columns(self, **{attr: amount})

    @property
    def totalEarned(self) -> Decimal:
        return sum((self.getAccumulator(t) for t in IncomeType), Decimal("0"))

    def __repr__(self):
        return f"<User(userID={self.userID}, referrerID={self.referrerID}, rank={self.rank})>"
