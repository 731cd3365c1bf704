# models/binary_node.py
"""
BinaryNode model - one per user, placement in the binary network.

Live volume (leftVolume/rightVolume) is consumed by matching cycles,
lifetime volume (totalLeftVolume/totalRightVolume) only grows.
A child pointer of 0 means the slot is empty; parentID 0 marks a top node.
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, DECIMAL, DateTime, Index, text

from models.base import Base, AuditMixin, increment_columns
from models.enums import Side

EMPTY_SLOT = 0


class BinaryNode(Base, AuditMixin):
    __tablename__ = 'binary_nodes'
    __table_args__ = (
        # One node per (parent, side); top nodes (parentID=0) are exempt
        Index(
            'uq_binary_nodes_slot', 'parentID', 'position',
            unique=True,
            sqlite_where=text('"parentID" != 0'),
            postgresql_where=text('"parentID" != 0'),
        ),
    )

    userID = Column(Integer, primary_key=True, autoincrement=False)

    parentID = Column(Integer, nullable=False, default=EMPTY_SLOT, index=True)
    position = Column(Integer, nullable=False, default=int(Side.LEFT))

    leftChildID = Column(Integer, nullable=False, default=EMPTY_SLOT)
    rightChildID = Column(Integer, nullable=False, default=EMPTY_SLOT)

    # Live volume (washed out by matching)
    leftVolume = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    rightVolume = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    # Mirror of live volume after the last matching cycle
    leftCarryForward = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    rightCarryForward = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    # Lifetime volume
    totalLeftVolume = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    totalRightVolume = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    # Downline head counts
    leftCount = Column(Integer, nullable=False, default=0)
    rightCount = Column(Integer, nullable=False, default=0)

    lastBinaryProcess = Column(DateTime, nullable=True)

    def getChildID(self, side: Side) -> int:
        return (self.leftChildID if side == Side.LEFT else self.rightChildID) or EMPTY_SLOT

    def setChildID(self, side: Side, childId: int) -> None:
        if side == Side.LEFT:
            self.leftChildID = childId
        else:
            self.rightChildID = childId

    def addVolume(self, side: Side, amount: Decimal) -> None:
        if side == Side.LEFT:
            increment_columns(self, leftVolume=amount, totalLeftVolume=amount)
        else:
            increment_columns(self, rightVolume=amount, totalRightVolume=amount)

    def addDownline(self, side: Side) -> None:
        if side == Side.LEFT:
            increment_columns(self, leftCount=1)
        else:
            increment_columns(self, rightCount=1)

    @property
    def isTopNode(self) -> bool:
        return not self.parentID

    def __repr__(self):
        return (
            f"<BinaryNode(userID={self.userID}, parent={self.parentID}, "
            f"L={self.leftVolume}, R={self.rightVolume})>"
        )
