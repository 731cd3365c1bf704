# models/income.py
"""
Income ledger - append-only.

Rows are never deleted; the only columns that may change after insert
are isPaid / isDistributed (see models.listeners.ledger_listeners).
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, DECIMAL, Boolean, JSON, Enum
from sqlalchemy.orm import column_property

from models.base import Base, AuditMixin
from models.enums import IncomeType, values_of


class Income(Base, AuditMixin):
    __tablename__ = 'incomes'

    incomeID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, nullable=False, index=True)

    incomeType = Column(
        Enum(IncomeType, name='income_type', native_enum=False, values_callable=values_of),
        nullable=False,
        index=True
    )
    amount = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    sourceUserID = Column(Integer, nullable=True)
    level = Column(Integer, nullable=True)

    # Old value kept on set so the append-only guard can see paid -> unpaid
    isPaid = column_property(Column(Boolean, nullable=False, default=False, index=True), active_history=True)
    isDistributed = Column(Boolean, nullable=False, default=True)

    meta = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<Income(id={self.incomeID}, user={self.userID}, {self.incomeType}, amount={self.amount})>"
