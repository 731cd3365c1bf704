# models/sequence_counter.py
"""
Named monotonic counters (autopool positions, generated user ids).

Incremented with a single UPDATE inside the caller's transaction, so a
rolled back enrollment also rolls back its number and no slot is skipped.
"""
from sqlalchemy import Column, String, BigInteger

from models.base import Base


class SequenceCounter(Base):
    __tablename__ = 'sequence_counters'

    name = Column(String(64), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)

    def __repr__(self):
        return f"<SequenceCounter({self.name}={self.value})>"
