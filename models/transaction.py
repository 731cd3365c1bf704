# models/transaction.py
"""
Transaction journal - append-only record of token/USD movements.
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, String, DECIMAL, JSON, Enum

from models.base import Base, AuditMixin
from models.enums import TransactionType, TransactionStatus, values_of


class Transaction(Base, AuditMixin):
    __tablename__ = 'transactions'

    transactionID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, nullable=False, index=True)

    type = Column(
        Enum(TransactionType, name='transaction_type', native_enum=False, values_callable=values_of),
        nullable=False,
        index=True
    )
    amount = Column(DECIMAL(36, 12), nullable=False)  # tokens
    amountUSD = Column(DECIMAL(18, 6), nullable=False, default=Decimal("0"))
    fee = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    status = Column(
        Enum(TransactionStatus, name='transaction_status', native_enum=False, values_callable=values_of),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True
    )

    walletAddress = Column(String, nullable=True)
    meta = Column(JSON, nullable=True)

    def __repr__(self):
        return (
            f"<Transaction(id={self.transactionID}, user={self.userID}, "
            f"type={self.type}, amount={self.amount}, status={self.status})>"
        )
