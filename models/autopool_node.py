# models/autopool_node.py
"""
AutopoolNode model - membership in the global quaternary autopool.

position is the 1-based global sequence number; level and parentPosition
are derived from it (see mlm_system.utils.autopool_math) and cached here.
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, DECIMAL, Boolean, JSON

from models.base import Base, AuditMixin


class AutopoolNode(Base, AuditMixin):
    __tablename__ = 'autopool_nodes'

    nodeID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, nullable=False, unique=True, index=True)

    position = Column(Integer, nullable=False, unique=True, index=True)
    parentPosition = Column(Integer, nullable=False, default=0)  # 0 for the root position
    level = Column(Integer, nullable=False, default=0)

    # Child positions, at most 4, in fill order
    children = Column(JSON, nullable=False, default=list)

    isEligible = Column(Boolean, nullable=False, default=True)
    totalEarned = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    def __repr__(self):
        return f"<AutopoolNode(userID={self.userID}, position={self.position}, level={self.level})>"
