# mlm_system/services/settings_service.py
"""
Runtime settings and token price oracle.

Every tunable the engines use is read here with a hardcoded fallback
(mlm_system.config.defaults). Values are stored as JSON; Decimals are
written as strings so nothing is lost to float conversion.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Config
from models.setting import Setting
from mlm_system.config.defaults import DEFAULT_SETTINGS
from mlm_system.errors import ExternalDependencyError
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

_MISSING = object()


def to_jsonable(value: Any) -> Any:
    """Convert Decimals/datetimes (also nested) into JSON-safe values."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class SettingsService:
    """Key/value settings with defaults, plus the price oracle."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Raw access
    # ------------------------------------------------------------------

    def _getRow(self, key: str) -> Optional[Setting]:
        try:
            return self.session.query(Setting).filter_by(key=key).first()
        except SQLAlchemyError as e:
            logger.error(f"Settings store unavailable reading '{key}': {e}")
            raise ExternalDependencyError(f"Settings store unavailable: {e}", key=key)

    def getSetting(self, key: str, default: Any = _MISSING) -> Any:
        """
        Stored value for key, else `default`, else the built-in default.
        """
        row = self._getRow(key)
        if row is not None and row.value is not None:
            return row.value
        if default is not _MISSING:
            return default
        return DEFAULT_SETTINGS.get(key, (None,))[0]

    def getDecimal(self, key: str, default: Any = _MISSING) -> Decimal:
        raw = self.getSetting(key, default)
        try:
            return Decimal(str(raw))
        except (InvalidOperation, TypeError):
            logger.error(f"Setting '{key}' is not numeric: {raw!r}")
            raise ExternalDependencyError(f"Setting '{key}' is not numeric", key=key, value=raw)

    def getInt(self, key: str, default: Any = _MISSING) -> int:
        return int(self.getDecimal(key, default))

    def getDecimalList(self, key: str) -> List[Decimal]:
        raw = self.getSetting(key)
        try:
            return [Decimal(str(v)) for v in raw]
        except (InvalidOperation, TypeError):
            logger.error(f"Setting '{key}' is not a numeric list: {raw!r}")
            raise ExternalDependencyError(f"Setting '{key}' is not a numeric list", key=key)

    def getInterval(self, key: str) -> timedelta:
        return timedelta(seconds=self.getInt(key))

    def getVersion(self, key: str) -> Optional[int]:
        row = self._getRow(key)
        return row.version if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def setSetting(
            self,
            key: str,
            value: Any,
            group: Optional[str] = None,
            description: Optional[str] = None
    ) -> Setting:
        """Insert or update a setting (flushes, does not commit)."""
        row = self._getRow(key)
        value = to_jsonable(value)

        if row is None:
            default_group = DEFAULT_SETTINGS.get(key, (None, "general"))[1]
            row = Setting(
                key=key,
                value=value,
                group=group or default_group,
                description=description,
                version=1
            )
            self.session.add(row)
        else:
            row.value = value
            row.version = (row.version or 0) + 1
            if group:
                row.group = group
            if description:
                row.description = description

        self.session.flush()
        logger.info(f"Setting '{key}' = {value!r}")
        return row

    def compareAndSetSetting(self, key: str, expectedVersion: Optional[int], value: Any) -> bool:
        """
        Write value only if the row is still at expectedVersion.

        expectedVersion None means "row must not exist yet"; a concurrent
        insert surfaces as IntegrityError at flush.
        """
        value = to_jsonable(value)

        if expectedVersion is None:
            if self._getRow(key) is not None:
                return False
            self.session.add(Setting(
                key=key,
                value=value,
                group=DEFAULT_SETTINGS.get(key, (None, "markers"))[1],
                version=1
            ))
            self.session.flush()
            return True

        updated = (
            self.session.query(Setting)
            .filter(Setting.key == key, Setting.version == expectedVersion)
            .update(
                {
                    Setting.value: value,
                    Setting.version: Setting.version + 1,
                    Setting.updatedAt: timeMachine.now,
                },
                synchronize_session="fetch"
            )
        )
        return bool(updated)

    def initializeDefaultSettings(self) -> int:
        """Insert missing defaults without touching stored values. Returns inserted count."""
        inserted = 0
        for key, (value, group, description) in DEFAULT_SETTINGS.items():
            if self._getRow(key) is not None:
                continue
            if value is None and key == "token_price":
                value = Config.get(Config.DEFAULT_TOKEN_PRICE)
            self.session.add(Setting(
                key=key,
                value=to_jsonable(value),
                group=group,
                description=description,
                version=1
            ))
            inserted += 1

        self.session.flush()
        if inserted:
            logger.info(f"Initialized {inserted} default settings")
        return inserted

    def getAllSettings(self, group: Optional[str] = None) -> Dict[str, Any]:
        query = self.session.query(Setting)
        if group:
            query = query.filter_by(group=group)
        return {row.key: row.value for row in query.order_by(Setting.key).all()}

    # ------------------------------------------------------------------
    # Price oracle
    # ------------------------------------------------------------------

    def getTokenPrice(self) -> Decimal:
        """
        Current USD price of one token.

        Raises:
            ExternalDependencyError: price missing, non-numeric or not positive
        """
        price = self.getDecimal("token_price", Config.get(Config.DEFAULT_TOKEN_PRICE))
        if price <= 0:
            logger.error(f"Invalid token price: {price}")
            raise ExternalDependencyError(f"Token price must be positive, got {price}", price=str(price))
        return price

    def usdToTokens(self, amountUSD: Decimal, price: Optional[Decimal] = None) -> Decimal:
        price = price if price is not None else self.getTokenPrice()
        return Decimal(str(amountUSD)) / price

    def tokensToUsd(self, tokens: Decimal, price: Optional[Decimal] = None) -> Decimal:
        price = price if price is not None else self.getTokenPrice()
        return Decimal(str(tokens)) * price
