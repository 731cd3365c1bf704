# models/base.py
"""
Base model and mixins for all database tables.
"""
from sqlalchemy import Column, DateTime, inspect
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _get_current_time():
    """Lazy import to avoid circular dependency."""
    from mlm_system.utils.time_machine import timeMachine
    return timeMachine.now


def increment_columns(instance, **deltas) -> None:
    """
    Add deltas to numeric columns of a mapped instance.

    A persistent row is updated in SQL (col = col + delta) and the touched
    attributes are expired, so concurrent writers to the same row never
    overwrite each other. Rows not yet flushed are updated in memory.

    Usage:
        increment_columns(node, leftVolume=amount, totalLeftVolume=amount)
    """
    state = inspect(instance)
    session = state.session

    if session is None or not state.persistent:
        for name, delta in deltas.items():
            setattr(instance, name, (getattr(instance, name) or 0) + delta)
        return

    model = type(instance)
    criteria = [column == value for column, value in zip(state.mapper.primary_key, state.identity)]
    values = {getattr(model, name): getattr(model, name) + delta for name, delta in deltas.items()}

    session.query(model).filter(*criteria).update(values, synchronize_session=False)
    session.expire(instance, list(deltas))


class AuditMixin:
    createdAt = Column(DateTime, default=_get_current_time, index=True)
    updatedAt = Column(DateTime, default=_get_current_time, onupdate=_get_current_time)
