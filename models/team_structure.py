# models/team_structure.py
"""
TeamStructure model - per-user referral team aggregate.

Fixed-size arrays (stored as JSON):
    levelMembers[0..6]  -> member ids at referral depth 1..7
    levelVolumes[0..6]  -> purchase volume (tokens, as strings) at depth 1..7
    rankCounts[0..4]    -> direct team members holding rank NONE..DIAMOND

Index helpers take 1-based levels and Rank values.
"""
from decimal import Decimal
from typing import List

from sqlalchemy import Column, Integer, DECIMAL, JSON
from sqlalchemy.orm.attributes import flag_modified

from models.base import Base, AuditMixin

TEAM_DEPTH = 7
RANK_TIERS = 5


def _empty_members() -> List[List[int]]:
    return [[] for _ in range(TEAM_DEPTH)]


def _empty_volumes() -> List[str]:
    return ["0"] * TEAM_DEPTH


def _empty_rank_counts() -> List[int]:
    return [0] * RANK_TIERS


class TeamStructure(Base, AuditMixin):
    __tablename__ = 'team_structures'

    userID = Column(Integer, primary_key=True, autoincrement=False)

    levelMembers = Column(JSON, nullable=False, default=_empty_members)
    levelVolumes = Column(JSON, nullable=False, default=_empty_volumes)
    rankCounts = Column(JSON, nullable=False, default=_empty_rank_counts)

    directTeam = Column(Integer, nullable=False, default=0)
    totalTeam = Column(Integer, nullable=False, default=0)

    directBusiness = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))
    totalBusiness = Column(DECIMAL(36, 12), nullable=False, default=Decimal("0"))

    # Optimistic lock: a writer holding a stale copy fails with StaleDataError
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs):
        kwargs.setdefault('levelMembers', _empty_members())
        kwargs.setdefault('levelVolumes', _empty_volumes())
        kwargs.setdefault('rankCounts', _empty_rank_counts())
        kwargs.setdefault('directTeam', 0)
        kwargs.setdefault('totalTeam', 0)
        kwargs.setdefault('directBusiness', Decimal("0"))
        kwargs.setdefault('totalBusiness', Decimal("0"))
        super().__init__(**kwargs)

    @staticmethod
    def _checkLevel(level: int) -> int:
        if not 1 <= level <= TEAM_DEPTH:
            raise ValueError(f"Team level must be 1..{TEAM_DEPTH}, got {level}")
        return level - 1

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def getLevelMembers(self, level: int) -> List[int]:
        return list(self.levelMembers[self._checkLevel(level)])

    def addTeamMember(self, memberId: int, level: int) -> bool:
        """Record member at level. Returns False if already recorded there."""
        idx = self._checkLevel(level)
        members = self.levelMembers[idx]
        if memberId in members:
            return False

        members.append(memberId)
        flag_modified(self, 'levelMembers')

        self.totalTeam = (self.totalTeam or 0) + 1
        if level == 1:
            self.directTeam = (self.directTeam or 0) + 1
        return True

    # ------------------------------------------------------------------
    # Volumes
    # ------------------------------------------------------------------

    def getLevelVolume(self, level: int) -> Decimal:
        return Decimal(str(self.levelVolumes[self._checkLevel(level)]))

    def addVolumeAtLevel(self, level: int, amount: Decimal) -> None:
        idx = self._checkLevel(level)
        self.levelVolumes[idx] = str(Decimal(str(self.levelVolumes[idx])) + amount)
        flag_modified(self, 'levelVolumes')

        self.totalBusiness = (self.totalBusiness or Decimal("0")) + amount
        if level == 1:
            self.directBusiness = (self.directBusiness or Decimal("0")) + amount

    # ------------------------------------------------------------------
    # Rank counts
    # ------------------------------------------------------------------

    def getRankCount(self, rank: int) -> int:
        return int(self.rankCounts[int(rank)])

    def applyRankDelta(self, oldRank, newRank) -> None:
        """Move one member from oldRank to newRank. oldRank None means a new member."""
        if oldRank is not None:
            idx = int(oldRank)
            # Never below zero, aggregates may predate this member
            self.rankCounts[idx] = max(int(self.rankCounts[idx]) - 1, 0)
        if newRank is not None:
            idx = int(newRank)
            self.rankCounts[idx] = int(self.rankCounts[idx]) + 1
        flag_modified(self, 'rankCounts')

    def __repr__(self):
        return f"<TeamStructure(userID={self.userID}, direct={self.directTeam}, total={self.totalTeam})>"
