# mlm_system/utils/autopool_math.py
"""
Position arithmetic for the perfect quaternary autopool tree.

Positions are 1-based and fill breadth-first, left to right:
    level 0: 1
    level 1: 2..5
    level 2: 6..21
Level L holds 4^L positions and starts at (4^L - 1) / 3 + 1.
"""

BRANCHING = 4


def levelSize(level: int) -> int:
    return BRANCHING ** level


def levelStart(level: int) -> int:
    """First position of level (1-based)."""
    return (BRANCHING ** level - 1) // (BRANCHING - 1) + 1


def cumulativeCount(level: int) -> int:
    """Total positions in levels 0..level."""
    return (BRANCHING ** (level + 1) - 1) // (BRANCHING - 1)


def findLevel(position: int) -> int:
    """Level holding position, -1 for non-positive positions."""
    if position <= 0:
        return -1

    level = 0
    total = 1
    while total < position:
        level += 1
        total += levelSize(level)
    return level


def positionOffset(position: int) -> int:
    """0-based offset of position within its level."""
    return position - levelStart(findLevel(position))


def findParentPosition(position: int) -> int:
    """Parent position, 0 for the root (and for invalid positions)."""
    level = findLevel(position)
    if level <= 0:
        return 0
    return levelStart(level - 1) + positionOffset(position) // BRANCHING


def childPositions(position: int) -> list:
    """The (up to) 4 positions directly under position."""
    level = findLevel(position)
    if level < 0:
        return []
    first = levelStart(level + 1) + positionOffset(position) * BRANCHING
    return list(range(first, first + BRANCHING))


def ancestorPositions(position: int, maxDepth: int = None) -> list:
    """Ancestors from the direct parent up to the root, optionally capped."""
    result = []
    current = findParentPosition(position)
    while current >= 1:
        if maxDepth is not None and len(result) >= maxDepth:
            break
        result.append(current)
        current = findParentPosition(current)
    return result
