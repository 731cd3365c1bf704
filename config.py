# config.py
"""
Configuration management for the MLM compensation engine.
Loads process-level settings from .env and validates critical keys.

Business tunables (percentages, intervals, token price) live in the
settings table and are read through SettingsService, not here.
"""
import os
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        url = Config.get(Config.DATABASE_URL)

        # Set dynamic value
        Config.set(Config.SYSTEM_READY, True)
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Database
    DATABASE_URL = "DATABASE_URL"

    # MLM System
    ROOT_USER_ID = "ROOT_USER_ID"
    DEFAULT_TOKEN_PRICE = "DEFAULT_TOKEN_PRICE"

    # Logging
    LOG_LEVEL = "LOG_LEVEL"
    LOG_FILE = "LOG_FILE"

    # Scheduler
    SCHEDULER_TIMEZONE = "SCHEDULER_TIMEZONE"

    # System
    SYSTEM_READY = "SYSTEM_READY"

    # ═══════════════════════════════════════════════════════════════════════
    # DEFAULTS
    # ═══════════════════════════════════════════════════════════════════════

    DEFAULTS: Dict[str, Any] = {
        DATABASE_URL: "sqlite:///mlm_engine.db",
        ROOT_USER_ID: 103115,
        DEFAULT_TOKEN_PRICE: Decimal("0.00011"),
        LOG_LEVEL: "INFO",
        LOG_FILE: None,
        SCHEDULER_TIMEZONE: "UTC",
        SYSTEM_READY: False,
    }

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
        ROOT_USER_ID,
        DEFAULT_TOKEN_PRICE,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    _config: Dict[str, Any] = {}
    _initialized: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def initialize_from_env(cls) -> None:
        """
        Load configuration from .env file.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                cls.DEFAULTS[cls.DATABASE_URL]
            )

            # MLM
            cls._config[cls.ROOT_USER_ID] = int(
                os.getenv("ROOT_USER_ID", str(cls.DEFAULTS[cls.ROOT_USER_ID]))
            )
            cls._config[cls.DEFAULT_TOKEN_PRICE] = Decimal(
                os.getenv("DEFAULT_TOKEN_PRICE", str(cls.DEFAULTS[cls.DEFAULT_TOKEN_PRICE]))
            )

            # Logging
            cls._config[cls.LOG_LEVEL] = os.getenv("LOG_LEVEL", "INFO").upper()
            cls._config[cls.LOG_FILE] = os.getenv("LOG_FILE") or None

            # Scheduler
            cls._config[cls.SCHEDULER_TIMEZONE] = os.getenv("SCHEDULER_TIMEZONE", "UTC")

            # System
            cls._config[cls.SYSTEM_READY] = False

            cls._initialized = True
            logger.info("Configuration loaded from environment successfully")

        except (ValueError, InvalidOperation) as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @classmethod
    def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present and sane.

        Raises:
            ConfigurationError: If any critical key is missing or invalid
        """
        missing = [key for key in cls.CRITICAL_KEYS if cls.get(key) is None]
        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        price = cls.get(cls.DEFAULT_TOKEN_PRICE)
        if price <= 0:
            error_msg = f"DEFAULT_TOKEN_PRICE must be positive, got {price}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        if not isinstance(cls.get(cls.ROOT_USER_ID), int):
            error_msg = f"ROOT_USER_ID must be an integer, got {cls.get(cls.ROOT_USER_ID)!r}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        logger.info("All critical configuration keys validated")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Falls back to the built-in default for known keys, then to `default`.
        """
        if key in cls._config:
            return cls._config[key]
        if default is not None:
            return default
        return cls.DEFAULTS.get(key)

    @classmethod
    def set(cls, key: str, value: Any, source: str = "runtime") -> None:
        """Set dynamic configuration value."""
        old_value = cls._config.get(key)
        cls._config[key] = value
        if old_value != value:
            logger.debug(f"Config {key} set from {source}: {old_value!r} -> {value!r}")

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        """Get copy of all configuration values."""
        return {**cls.DEFAULTS, **cls._config}

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized

    @classmethod
    def reset(cls) -> None:
        """Drop all loaded values (used by tests)."""
        cls._config = {}
        cls._initialized = False
