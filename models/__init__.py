"""
Database models for the MLM compensation engine.
Import all models here so every table is registered on Base.metadata.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Kind enumerations
from models.enums import (
    Side,
    IncomeType,
    ActivityType,
    TransactionType,
    TransactionStatus,
)

# Core models
from models.user import User
from models.package import Package, UserPackage
from models.income import Income
from models.transaction import Transaction
from models.activity import Activity
from models.setting import Setting
from models.sequence_counter import SequenceCounter

# Graph models
from models.binary_node import BinaryNode
from models.autopool_node import AutopoolNode
from models.team_structure import TeamStructure

# MLM system models
from models.mlm.system_time import SystemTime

# Event listeners
from models.listeners import register_all_listeners

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Enums
    'Side',
    'IncomeType',
    'ActivityType',
    'TransactionType',
    'TransactionStatus',

    # Core
    'User',
    'Package',
    'UserPackage',
    'Income',
    'Transaction',
    'Activity',
    'Setting',
    'SequenceCounter',

    # Graphs
    'BinaryNode',
    'AutopoolNode',
    'TeamStructure',

    # MLM
    'SystemTime',

    # Listeners
    'register_all_listeners',
]
