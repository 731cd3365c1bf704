"""
MLM ranks configuration and constants.
Thresholds can be overridden at runtime via the 'rank_requirements' setting.
"""
from enum import IntEnum
from decimal import Decimal
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


class Rank(IntEnum):
    """MLM rank enumeration (values are persisted on User.rank)."""
    NONE = 0
    SILVER = 1
    GOLD = 2
    PLATINUM = 3
    DIAMOND = 4

    @property
    def displayName(self) -> str:
        return self.name.capitalize()


# Checked top-down, first match wins
RANKS_DESCENDING = [Rank.DIAMOND, Rank.PLATINUM, Rank.GOLD, Rank.SILVER]

# USD thresholds. downlineRankCount counts team members holding exactly the
# immediately lower rank.
DEFAULT_RANK_REQUIREMENTS: Dict[Rank, Dict[str, Any]] = {
    Rank.SILVER: {
        "selfVolumeUSD": Decimal("100"),
        "directReferrals": 5,
        "directVolumeUSD": Decimal("300"),
        "downlineRankCount": 0,
    },
    Rank.GOLD: {
        "selfVolumeUSD": Decimal("250"),
        "directReferrals": 6,
        "directVolumeUSD": Decimal("1000"),
        "downlineRankCount": 2,
    },
    Rank.PLATINUM: {
        "selfVolumeUSD": Decimal("500"),
        "directReferrals": 8,
        "directVolumeUSD": Decimal("2500"),
        "downlineRankCount": 2,
    },
    Rank.DIAMOND: {
        "selfVolumeUSD": Decimal("1000"),
        "directReferrals": 10,
        "directVolumeUSD": Decimal("5000"),
        "downlineRankCount": 2,
    },
}


def get_rank_config(override: Optional[Dict[str, Any]] = None) -> Dict[Rank, Dict[str, Any]]:
    """
    Build the effective rank table.

    Args:
        override: raw 'rank_requirements' setting, keyed by rank value or
                  name ({"2": {"directVolumeUSD": 1200}, "gold": {...}})

    Returns:
        Dictionary mapping Rank enum to requirement dict
    """
    rank_config = {rank: dict(req) for rank, req in DEFAULT_RANK_REQUIREMENTS.items()}

    if not override:
        return rank_config

    for rank_key, rank_data in override.items():
        try:
            key = str(rank_key)
            rank_enum = Rank(int(key)) if key.isdigit() else Rank[key.upper()]
            if rank_enum == Rank.NONE:
                continue

            entry = rank_config[rank_enum]
            for field in ("selfVolumeUSD", "directVolumeUSD"):
                if field in rank_data:
                    entry[field] = Decimal(str(rank_data[field]))
            for field in ("directReferrals", "downlineRankCount"):
                if field in rank_data:
                    entry[field] = int(rank_data[field])

        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Invalid rank configuration for '{rank_key}': {e}")
            continue

    return rank_config
