#!/usr/bin/env python3
"""
Run one compensation cycle on demand.

Usage:
    python scripts/run_cycle.py roi_cycle
    python scripts/run_cycle.py binary_cycle --advance-days 1
    python scripts/run_cycle.py weekly_reward_cycle
    python scripts/run_cycle.py rank_recalculation
"""

import sys
import os
import argparse
import asyncio

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import setup_database, get_db_session_ctx
from background.mlm_scheduler import JOBS, MLMScheduler
from mlm_system.utils.integrity import integrityMonitor
from mlm_system.utils.time_machine import timeMachine

import logging

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def run(task, advance_days):
    with get_db_session_ctx() as session:
        timeMachine.loadFromDb(session)
        if advance_days:
            timeMachine.advanceTime(days=advance_days)
            timeMachine.saveToDb(session, notes=f"advanced {advance_days}d by run_cycle")

    scheduler = MLMScheduler()
    result = await scheduler.runTask(task)

    print("\n" + "=" * 60)
    print(f"{JOBS[task][0]} at {timeMachine.now.isoformat()}")
    print("=" * 60)
    for key in ("status", "reason", "processed", "succeeded", "skipped", "errors", "turnover"):
        if key in result:
            print(f"  {key}: {result[key]}")

    for item in result.get("results", []):
        if item.get("status") == "error":
            print(f"  ERROR user {item['userId']}: {item.get('error')} {item.get('message')}")

    alarms = integrityMonitor.getStats()
    if alarms["total"]:
        print(f"\n  Integrity alarms: {alarms['byKind']}")


def main():
    parser = argparse.ArgumentParser(description="Run one MLM cycle")
    parser.add_argument("task", choices=sorted(JOBS))
    parser.add_argument("--advance-days", type=int, default=0, help="Advance the virtual clock first")
    args = parser.parse_args()

    Config.initialize_from_env()
    setup_database()
    asyncio.run(run(args.task, args.advance_days))


if __name__ == "__main__":
    main()
