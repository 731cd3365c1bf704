# models/activity.py
"""
Activity feed - append-only audit trail of user-visible events.
"""
from sqlalchemy import Column, Integer, DECIMAL, JSON

from models.base import Base, AuditMixin


class Activity(Base, AuditMixin):
    __tablename__ = 'activities'

    activityID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, nullable=False, index=True)

    activityType = Column(Integer, nullable=False, index=True)  # models.enums.ActivityType
    amount = Column(DECIMAL(36, 12), nullable=True)

    sourceUserID = Column(Integer, nullable=True)
    level = Column(Integer, nullable=True)

    meta = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<Activity(id={self.activityID}, user={self.userID}, type={self.activityType})>"
