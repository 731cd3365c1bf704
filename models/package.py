# models/package.py
"""
Package catalogue and purchased packages.

UserPackage.earned grows until it reaches ceilingLimit, after which the
package is permanently inactive (guarded by models.listeners.ceiling_listeners).
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship, column_property

from models.base import Base, AuditMixin, _get_current_time


class Package(Base, AuditMixin):
    __tablename__ = 'packages'

    packageID = Column(Integer, primary_key=True, autoincrement=True)
    packageIndex = Column(Integer, nullable=False, unique=True)

    name = Column(String, nullable=False)
    priceUSD = Column(DECIMAL(18, 2), nullable=False)
    maxROIMultiplier = Column(DECIMAL(8, 2), nullable=False, default=Decimal("4"))
    isActive = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Package(index={self.packageIndex}, name={self.name}, price={self.priceUSD})>"


class UserPackage(Base, AuditMixin):
    __tablename__ = 'user_packages'

    userPackageID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    packageIndex = Column(Integer, nullable=False)

    amountPaid = Column(DECIMAL(18, 2), nullable=False)  # USD
    tokenAmount = Column(DECIMAL(36, 12), nullable=False)  # amountPaid / price at purchase
    ceilingLimit = Column(DECIMAL(36, 12), nullable=False)  # tokenAmount * multiplier
    # active_history: ceiling listener compares against the loaded value
    earned = column_property(Column(DECIMAL(36, 12), nullable=False, default=Decimal("0")), active_history=True)

    isActive = column_property(Column(Boolean, nullable=False, default=True, index=True), active_history=True)
    purchaseDate = Column(DateTime, nullable=False, default=_get_current_time)
    completedDate = Column(DateTime, nullable=True)

    user = relationship('User', back_populates='packages')

    @property
    def remainingCapacity(self) -> Decimal:
        return max((self.ceilingLimit or Decimal("0")) - (self.earned or Decimal("0")), Decimal("0"))

    def __repr__(self):
        return (
            f"<UserPackage(id={self.userPackageID}, user={self.userID}, "
            f"earned={self.earned}/{self.ceilingLimit}, active={self.isActive})>"
        )
