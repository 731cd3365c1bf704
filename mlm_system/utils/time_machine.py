# mlm_system/utils/time_machine.py
"""
Time source for the whole engine.

All services read "now" from timeMachine so interval checks can be
simulated. Virtual time is frozen: it only moves via setTime/advanceTime.
Times are naive UTC throughout (matching the DateTime columns).
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class TimeMachine:
    """Real clock with an optional virtual override."""

    def __init__(self):
        self._virtualTime: Optional[datetime] = None
        self._isTestMode = False

    @staticmethod
    def _realNow() -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @property
    def now(self) -> datetime:
        if self._isTestMode and self._virtualTime is not None:
            return self._virtualTime
        return self._realNow()

    @property
    def isTestMode(self) -> bool:
        return self._isTestMode

    @property
    def currentMonth(self) -> str:
        return self.now.strftime('%Y-%m')

    def setTime(self, newTime: datetime) -> None:
        """Freeze the clock at newTime (aware datetimes are converted to naive UTC)."""
        if newTime.tzinfo is not None:
            newTime = newTime.astimezone(timezone.utc).replace(tzinfo=None)
        self._virtualTime = newTime
        self._isTestMode = True
        logger.info(f"Time machine set to {newTime.isoformat()}")

    def advanceTime(self, days: int = 0, hours: int = 0, seconds: int = 0) -> datetime:
        """Move the virtual clock forward, starting from real time if not frozen yet."""
        base = self.now
        self.setTime(base + timedelta(days=days, hours=hours, seconds=seconds))
        return self._virtualTime

    def resetToRealTime(self) -> None:
        if self._isTestMode:
            logger.info("Time machine reset to real time")
        self._virtualTime = None
        self._isTestMode = False

    # ------------------------------------------------------------------
    # Persistence (SystemTime row)
    # ------------------------------------------------------------------

    def loadFromDb(self, session) -> None:
        """Restore virtual clock saved by an operator, if any."""
        from models.mlm.system_time import SystemTime

        record = session.query(SystemTime).order_by(SystemTime.timeID.desc()).first()
        if record and record.isTestMode and record.virtualTime:
            self.setTime(record.virtualTime)
        else:
            self.resetToRealTime()

    def saveToDb(self, session, notes: Optional[str] = None) -> None:
        from models.mlm.system_time import SystemTime

        record = session.query(SystemTime).order_by(SystemTime.timeID.desc()).first()
        if record is None:
            record = SystemTime()
            session.add(record)
        record.realTime = self._realNow()
        record.virtualTime = self._virtualTime
        record.isTestMode = self._isTestMode
        if notes:
            record.notes = notes


timeMachine = TimeMachine()
