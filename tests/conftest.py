# tests/conftest.py
"""
Pytest configuration and shared fixtures for the MLM engine tests.

Every test gets a fresh SQLite database file, seeded settings and package
catalogue, and a frozen virtual clock.

Run:
    pytest tests -v
    pytest tests/test_binary_service.py -v
"""
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import Config
from models import Base, Side
from models.listeners import register_all_listeners
from mlm_system.services.package_service import PackageService
from mlm_system.services.purchase_service import PurchaseService
from mlm_system.services.registration_service import RegistrationService
from mlm_system.services.settings_service import SettingsService
from mlm_system.utils.integrity import integrityMonitor
from mlm_system.utils.time_machine import timeMachine

# =============================================================================
# CONSTANTS
# =============================================================================

START_TIME = datetime(2026, 1, 5, 12, 0, 0)

# $100 package at 0.0001 USD/token
DEFAULT_PRICE = Decimal("0.0001")
PACKAGE_100 = 5


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def setup_listeners():
    """Register listeners once at test session start."""
    register_all_listeners()


@pytest.fixture
def engine(tmp_path):
    """Fresh database per test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'mlm_test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def session(session_factory):
    """Create database session for each test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clean_state():
    """Frozen clock, default config and empty alarm counters for every test."""
    Config.reset()
    integrityMonitor.reset()
    timeMachine.setTime(START_TIME)
    yield
    timeMachine.resetToRealTime()
    integrityMonitor.reset()
    Config.reset()


@pytest.fixture(autouse=True)
def seeded(clean_state, session):
    """Default settings and catalogue, token price 0.0001."""
    settings = SettingsService(session)
    settings.initializeDefaultSettings()
    PackageService(session).initializeDefaultPackages()
    settings.setSetting("token_price", DEFAULT_PRICE)
    session.commit()
    return settings


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def set_setting(session):
    """Store a setting and commit."""

    def _set(key, value):
        SettingsService(session).setSetting(key, value)
        session.commit()

    return _set


@pytest.fixture
def register(session):
    """
    Register a user through RegistrationService.

    Usage:
        user = await register()                    # under root
        child = await register(user.userID, Side.RIGHT)
    """

    async def _register(referrerId=None, side=Side.LEFT, **kwargs):
        return await RegistrationService(session).registerUser(referrerId=referrerId, side=side, **kwargs)

    return _register


@pytest.fixture
def buy(session):
    """Purchase a catalogue package (default: $100)."""

    async def _buy(userId, packageIndex=PACKAGE_100):
        return await PurchaseService(session).purchasePackage(userId, packageIndex)

    return _buy


@pytest.fixture
def advance():
    """Move the virtual clock forward."""

    def _advance(days=0, hours=0, seconds=0):
        return timeMachine.advanceTime(days=days, hours=hours, seconds=seconds)

    return _advance
