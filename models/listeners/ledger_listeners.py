# models/listeners/ledger_listeners.py
"""
Append-only protection for Income, Transaction and Activity.

    DELETE on any of them        -> AppendOnlyViolationError
    UPDATE on Income             -> only isPaid / isDistributed may change
    UPDATE on Transaction        -> only status / meta may change
    UPDATE on Activity           -> never
"""
import logging

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

logger = logging.getLogger(__name__)

# Columns each ledger table allows to change after insert
MUTABLE_COLUMNS = {
    'incomes': {'isPaid', 'isDistributed', 'updatedAt'},
    'transactions': {'status', 'meta', 'updatedAt'},
    'activities': {'updatedAt'},
}


def _changed_columns(mapper, target):
    changed = []
    for attr in mapper.column_attrs:
        if get_history(target, attr.key).has_changes():
            changed.append(attr.key)
    return changed


def register_ledger_protection():
    """
    Register append-only listeners on the ledger tables.

    Called once during application startup from models/listeners/__init__.py
    """
    from models.income import Income
    from models.transaction import Transaction
    from models.activity import Activity
    from mlm_system.errors import AppendOnlyViolationError

    def block_delete(mapper, connection, target):
        table = mapper.local_table.name
        logger.error(f"Blocked DELETE on append-only table {table}: {target!r}")
        raise AppendOnlyViolationError(f"Rows of {table} cannot be deleted", table=table)

    def restrict_update(mapper, connection, target):
        table = mapper.local_table.name
        forbidden = [
            key for key in _changed_columns(mapper, target)
            if key not in MUTABLE_COLUMNS[table]
        ]
        if forbidden:
            logger.error(
                f"Blocked UPDATE on append-only table {table}: {target!r}, "
                f"columns={forbidden}"
            )
            raise AppendOnlyViolationError(
                f"Columns {forbidden} of {table} are immutable",
                table=table,
                columns=forbidden
            )

        if table == 'incomes':
            paid_hist = get_history(target, 'isPaid')
            if paid_hist.deleted and paid_hist.deleted[0] is True and not target.isPaid:
                raise AppendOnlyViolationError(
                    f"Income {target.incomeID} is already paid",
                    table=table
                )

    for model in (Income, Transaction, Activity):
        event.listen(model, 'before_delete', block_delete)
        event.listen(model, 'before_update', restrict_update)
