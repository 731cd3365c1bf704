# background/mlm_scheduler.py
"""
MLM Scheduler - periodic compensation cycles.
Uses APScheduler for task scheduling.

Jobs:
    roi_cycle            ROIService.processAllROI
    binary_cycle         BinaryService.processAllBinaryIncome
    weekly_reward_cycle  WeeklyRewardService.distributeWeeklyRewards
    rank_recalculation   RankService.processAllRanks

Overlapping runs are harmless: every engine re-checks its interval per
user and claims it with a compare-and-swap before paying.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import Config
from core.db import get_db_session_ctx
from models.mlm.system_time import SystemTime
from mlm_system.services.binary_service import BinaryService
from mlm_system.services.rank_service import RankService
from mlm_system.services.roi_service import ROIService
from mlm_system.services.settings_service import SettingsService
from mlm_system.services.weekly_reward_service import WeeklyRewardService
from mlm_system.utils.integrity import integrityMonitor
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

# job id -> (display name, interval setting)
JOBS = {
    "roi_cycle": ("ROI Distribution", "income_distribution_interval"),
    "binary_cycle": ("Binary Matching", "binary_distribution_interval"),
    "weekly_reward_cycle": ("Weekly Rewards", "weekly_reward_interval"),
    "rank_recalculation": ("Rank Recalculation", "rank_update_interval"),
}

# Batch jobs re-check per-user intervals, so they poll more often than the interval
MAX_POLL_SECONDS = 3600


class MLMScheduler:
    """
    Background scheduler for MLM operations.
    Uses APScheduler for reliable task scheduling.
    """

    def __init__(self):
        self.isRunning = False

        self.scheduler = AsyncIOScheduler(
            timezone=Config.get(Config.SCHEDULER_TIMEZONE, "UTC"),
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job at a time
                'misfire_grace_time': 300  # 5 minutes grace period
            }
        )

        # Statistics
        self.stats = {
            "tasksExecuted": 0,
            "errors": 0,
            "lastError": None,
            "startedAt": None,
            "lastExecutedAt": None,
            "jobs": {jobId: {"runs": 0, "lastRun": None, "lastResult": None} for jobId in JOBS},
        }

    def _loadIntervals(self) -> Dict[str, int]:
        with get_db_session_ctx() as session:
            settings = SettingsService(session)
            return {jobId: settings.getInt(settingKey) for jobId, (_, settingKey) in JOBS.items()}

    async def start(self):
        """Start scheduler with all jobs."""
        if self.isRunning:
            logger.warning("MLM Scheduler already running")
            return

        logger.info("=" * 60)
        logger.info("Starting MLM Scheduler with APScheduler")
        logger.info("=" * 60)

        with get_db_session_ctx() as session:
            timeMachine.loadFromDb(session)

        intervals = self._loadIntervals()
        wrappers = {
            "roi_cycle": self._safe_roi_wrapper,
            "binary_cycle": self._safe_binary_wrapper,
            "weekly_reward_cycle": self._safe_weekly_wrapper,
            "rank_recalculation": self._safe_rank_wrapper,
        }

        for jobId, (name, settingKey) in JOBS.items():
            seconds = max(min(intervals[jobId], MAX_POLL_SECONDS), 1)
            self.scheduler.add_job(
                func=wrappers[jobId],
                trigger=IntervalTrigger(seconds=seconds),
                id=jobId,
                name=name,
                replace_existing=True
            )
            logger.info(f"Job registered: {name} (every {seconds}s, interval setting {settingKey}={intervals[jobId]})")

        self.scheduler.start()
        self.isRunning = True
        self.stats["startedAt"] = datetime.now(timezone.utc)

        logger.info(f"MLM Scheduler started, active jobs: {len(self.scheduler.get_jobs())}")

    async def stop(self):
        """Stop scheduler gracefully."""
        if not self.isRunning:
            return

        logger.info("Stopping MLM Scheduler...")
        self.isRunning = False

        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)

        logger.info("MLM Scheduler stopped")

    # ═══════════════════════════════════════════════════════════════════
    # SAFE WRAPPERS (error handling for APScheduler jobs)
    # ═══════════════════════════════════════════════════════════════════

    async def _safe_run(self, jobId: str, coro_factory):
        try:
            await coro_factory()
        except Exception as e:
            logger.error(f"Error in {jobId} job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    async def _safe_roi_wrapper(self):
        await self._safe_run("roi_cycle", self.runROICycle)

    async def _safe_binary_wrapper(self):
        await self._safe_run("binary_cycle", self.runBinaryCycle)

    async def _safe_weekly_wrapper(self):
        await self._safe_run("weekly_reward_cycle", self.runWeeklyRewardCycle)

    async def _safe_rank_wrapper(self):
        await self._safe_run("rank_recalculation", self.runRankRecalculation)

    # ═══════════════════════════════════════════════════════════════════
    # CYCLES
    # ═══════════════════════════════════════════════════════════════════

    async def runROICycle(self) -> Dict[str, Any]:
        logger.info(f"Executing ROI cycle at {timeMachine.now.isoformat()}")
        with get_db_session_ctx() as session:
            result = await ROIService(session).processAllROI()
            self._recordRun(session, "roi_cycle", result)
        return result

    async def runBinaryCycle(self) -> Dict[str, Any]:
        logger.info(f"Executing binary cycle at {timeMachine.now.isoformat()}")
        with get_db_session_ctx() as session:
            result = await BinaryService(session).processAllBinaryIncome()
            self._recordRun(session, "binary_cycle", result)
        return result

    async def runWeeklyRewardCycle(self) -> Dict[str, Any]:
        logger.info(f"Executing weekly reward cycle at {timeMachine.now.isoformat()}")
        with get_db_session_ctx() as session:
            result = await WeeklyRewardService(session).distributeWeeklyRewards()
            self._recordRun(session, "weekly_reward_cycle", result)
        return result

    async def runRankRecalculation(self) -> Dict[str, Any]:
        logger.info(f"Executing rank recalculation at {timeMachine.now.isoformat()}")
        with get_db_session_ctx() as session:
            result = await RankService(session).processAllRanks()
            self._recordRun(session, "rank_recalculation", result)
        return result

    async def runTask(self, jobId: str) -> Dict[str, Any]:
        """Run one cycle on demand (operator / CLI)."""
        runners = {
            "roi_cycle": self.runROICycle,
            "binary_cycle": self.runBinaryCycle,
            "weekly_reward_cycle": self.runWeeklyRewardCycle,
            "rank_recalculation": self.runRankRecalculation,
        }
        if jobId not in runners:
            raise ValueError(f"Unknown task '{jobId}', expected one of {sorted(runners)}")
        return await runners[jobId]()

    def _recordRun(self, session, jobId: str, result: Dict[str, Any]) -> None:
        now = timeMachine.now
        summary = {
            key: result.get(key)
            for key in ("status", "reason", "processed", "succeeded", "skipped", "errors")
            if key in result
        }

        jobStats = self.stats["jobs"][jobId]
        jobStats["runs"] += 1
        jobStats["lastRun"] = now
        jobStats["lastResult"] = summary
        self.stats["tasksExecuted"] += 1
        self.stats["lastExecutedAt"] = datetime.now(timezone.utc)

        record = session.query(SystemTime).order_by(SystemTime.timeID.desc()).first()
        if record is None:
            record = SystemTime(isTestMode=timeMachine.isTestMode)
            session.add(record)
        state = dict(record.schedulerState or {})
        state[jobId] = {"lastRun": now.isoformat(), **summary}
        record.schedulerState = state

    # ═══════════════════════════════════════════════════════════════════
    # STATUS
    # ═══════════════════════════════════════════════════════════════════

    def getStatus(self) -> Dict[str, Any]:
        jobs = []
        if self.isRunning:
            for job in self.scheduler.get_jobs():
                jobs.append({
                    "id": job.id,
                    "name": job.name,
                    "nextRun": job.next_run_time,
                })

        return {
            "isRunning": self.isRunning,
            "jobs": jobs,
            "stats": self.stats,
            "integrity": integrityMonitor.getStats(),
            "time": {
                "now": timeMachine.now,
                "isTestMode": timeMachine.isTestMode,
            },
        }

    def getLastRun(self, jobId: str) -> Optional[datetime]:
        return self.stats["jobs"].get(jobId, {}).get("lastRun")
