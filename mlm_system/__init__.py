# mlm_system/__init__.py
"""
MLM System - compensation ledger and graph maintenance engine.
"""

# Services
from mlm_system.services.settings_service import SettingsService
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.registration_service import RegistrationService
from mlm_system.services.package_service import PackageService
from mlm_system.services.purchase_service import PurchaseService
from mlm_system.services.binary_service import BinaryService
from mlm_system.services.autopool_service import AutopoolService
from mlm_system.services.roi_service import ROIService
from mlm_system.services.level_income_service import LevelIncomeService
from mlm_system.services.rank_service import RankService
from mlm_system.services.weekly_reward_service import WeeklyRewardService
from mlm_system.services.withdrawal_service import WithdrawalService

# Configuration
from mlm_system.config.ranks import Rank, get_rank_config

# Utilities
from mlm_system.utils.time_machine import timeMachine
from mlm_system.utils.integrity import integrityMonitor

__all__ = [
    # Services
    'SettingsService',
    'LedgerService',
    'RegistrationService',
    'PackageService',
    'PurchaseService',
    'BinaryService',
    'AutopoolService',
    'ROIService',
    'LevelIncomeService',
    'RankService',
    'WeeklyRewardService',
    'WithdrawalService',

    # Config
    'Rank',
    'get_rank_config',

    # Utils
    'timeMachine',
    'integrityMonitor',
]
