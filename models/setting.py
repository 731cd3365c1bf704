# models/setting.py
"""
Runtime settings store (key -> JSON value).

version is bumped on every write; distribution markers are advanced with
a compare-and-swap on it.
"""
from sqlalchemy import Column, Integer, String, JSON

from models.base import Base, AuditMixin


class Setting(Base, AuditMixin):
    __tablename__ = 'settings'

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)
    group = Column(String(50), nullable=False, default='general', index=True)
    description = Column(String, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    def __repr__(self):
        return f"<Setting({self.key}={self.value!r}, v{self.version})>"
