# mlm_system/utils/integrity.py
"""
Structural-inconsistency alarms.

A cycle or dangling pointer in the binary/referral/autopool graphs means
corrupted data. Walks stop early and report here: the alarm is
logged at ERROR on the 'mlm_system.integrity' logger and counted, and the
scheduler status exposes the counters.
"""
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger("mlm_system.integrity")

# Alarm kinds
BINARY_CYCLE = "binary_cycle"
BINARY_SELF_PARENT = "binary_self_parent"
BINARY_DANGLING_POINTER = "binary_dangling_pointer"
REFERRAL_CYCLE = "referral_cycle"
AUTOPOOL_MISSING_NODE = "autopool_missing_node"


class IntegrityMonitor:
    """In-process alarm registry."""

    def __init__(self, keepLast: int = 50):
        self.counts: Counter = Counter()
        self.recent: List[Dict[str, Any]] = []
        self.keepLast = keepLast

    def raiseAlarm(self, kind: str, message: str, **context) -> None:
        self.counts[kind] += 1
        entry = {"kind": kind, "message": message, "at": timeMachine.now.isoformat(), **context}
        self.recent.append(entry)
        del self.recent[:-self.keepLast]
        logger.error(f"INTEGRITY ALARM [{kind}]: {message} {context or ''}".rstrip())

    def getStats(self, kind: Optional[str] = None) -> Dict[str, Any]:
        if kind is not None:
            return {"kind": kind, "count": self.counts.get(kind, 0)}
        return {
            "total": sum(self.counts.values()),
            "byKind": dict(self.counts),
            "recent": list(self.recent),
        }

    def reset(self) -> None:
        self.counts.clear()
        self.recent.clear()


integrityMonitor = IntegrityMonitor()
