# models/enums.py
"""
Closed kind enumerations shared by ledger models and engine services.
"""
from enum import Enum, IntEnum


class Side(IntEnum):
    """Binary placement side."""
    LEFT = 0
    RIGHT = 1

    @property
    def opposite(self) -> "Side":
        return Side.RIGHT if self is Side.LEFT else Side.LEFT


class IncomeType(Enum):
    ROI = "roi"
    LEVEL = "level"
    BINARY = "binary"
    AUTOPOOL = "autopool"
    REWARD = "reward"


class ActivityType(IntEnum):
    """Audit trail entry kinds. Values are stable, they are persisted."""
    PURCHASE = 0
    LEVEL_INCOME = 1
    ROI = 2
    AUTOPOOL = 3
    WEEKLY_REWARD = 4
    BINARY_INCOME = 5
    WITHDRAWAL = 6


class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    PURCHASE = "purchase"
    TRANSFER = "transfer"
    FEE = "fee"
    REWARD = "reward"
    ADMIN = "admin"


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Income kind -> audit entry kind. Exhaustive over IncomeType.
INCOME_ACTIVITY = {
    IncomeType.ROI: ActivityType.ROI,
    IncomeType.LEVEL: ActivityType.LEVEL_INCOME,
    IncomeType.BINARY: ActivityType.BINARY_INCOME,
    IncomeType.AUTOPOOL: ActivityType.AUTOPOOL,
    IncomeType.REWARD: ActivityType.WEEKLY_REWARD,
}

# Income kind -> User accumulator column. Exhaustive over IncomeType.
INCOME_ACCUMULATOR = {
    IncomeType.ROI: "roiIncome",
    IncomeType.LEVEL: "levelIncome",
    IncomeType.BINARY: "binaryIncome",
    IncomeType.AUTOPOOL: "autopoolIncome",
    IncomeType.REWARD: "rewardIncome",
}

# Order in which withdrawals consume pending income buckets
WITHDRAWAL_PRIORITY = (
    IncomeType.LEVEL,
    IncomeType.BINARY,
    IncomeType.AUTOPOOL,
    IncomeType.REWARD,
    IncomeType.ROI,
)


def values_of(enum_cls):
    """values_callable for SQLAlchemy Enum columns: persist .value, not .name."""
    return [member.value for member in enum_cls]
