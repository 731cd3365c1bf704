# models/mlm/system_time.py
"""
SystemTime model - persisted virtual clock + scheduler state.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON
from datetime import datetime, timezone
from models.base import Base


class SystemTime(Base):
    __tablename__ = 'system_time'

    timeID = Column(Integer, primary_key=True, autoincrement=True)

    # Clock
    realTime = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))
    virtualTime = Column(DateTime, nullable=True)
    isTestMode = Column(Boolean, default=False)

    notes = Column(String, nullable=True)  # "simulating week 3", etc.

    # Scheduler state (survives restarts)
    schedulerState = Column(JSON, nullable=True)
    # Structure:
    # {
    #   "roi_cycle": {"lastRun": "2026-01-02T00:00:00", "processed": 120, "errors": 0},
    #   "weekly_reward_cycle": {...}
    # }

    def __repr__(self):
        return f"<SystemTime(test={self.isTestMode}, virtual={self.virtualTime})>"
