#!/usr/bin/env python3
"""
Display the binary placement tree.

Shows volumes, carry-forward and downline counts per node.

Usage:
    python scripts/show_tree.py --root-id USER_ID [--max-depth DEPTH]
    python scripts/show_tree.py --all-tops
"""

import sys
import os
import argparse
import asyncio

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_session
from models.binary_node import BinaryNode
from models.user import User
from mlm_system.config.ranks import Rank
from mlm_system.services.binary_service import BinaryService

import logging

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def print_subtree(session, entry, prefix="", is_last=True, label=""):
    """Print one node of BinaryService.getBinaryTree() output and recurse."""
    connector = "└─ " if is_last else "├─ "
    user = session.query(User).filter_by(userID=entry["userId"]).first()

    rank_display = ""
    if user and user.rank:
        rank_display = f"[{Rank(user.rank).displayName}]"
    active_marker = "✅" if user and user.isActive else "❌"

    print(
        f"{prefix}{connector}{label}{entry['userId']} {active_marker} {rank_display} "
        f"L={entry['leftVolume']} ({entry['leftCount']}) "
        f"R={entry['rightVolume']} ({entry['rightCount']})"
    )

    children = [(name, entry[name]) for name in ("left", "right") if entry[name]]
    for i, (name, child) in enumerate(children):
        new_prefix = prefix + ("    " if is_last else "│   ")
        print_subtree(session, child, new_prefix, i == len(children) - 1, f"{name[0].upper()}: ")


async def show(root_ids, max_depth):
    session = get_session()
    try:
        service = BinaryService(session)

        print("\n" + "=" * 80)
        print("BINARY TREE")
        print("=" * 80)
        print("\nLegend:")
        print("  L/R = live leg volume (downline count)")
        print("  ✅ = Active user, ❌ = Inactive user")
        print("  [rank] = User rank (if any)")
        print("\n" + "=" * 80 + "\n")

        for root_id in root_ids:
            tree = await service.getBinaryTree(root_id, depth=max_depth)
            print_subtree(session, tree)
            print()
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description="Display binary placement tree")
    parser.add_argument("--root-id", type=int, help="User ID to start from")
    parser.add_argument("--all-tops", action="store_true", help="Show every top node (parentID=0)")
    parser.add_argument("--max-depth", type=int, default=5, help="Maximum depth to display")
    args = parser.parse_args()

    Config.initialize_from_env()

    if args.root_id:
        root_ids = [args.root_id]
    elif args.all_tops:
        session = get_session()
        try:
            root_ids = [
                row.userID for row in
                session.query(BinaryNode.userID).filter(BinaryNode.parentID == 0).order_by(BinaryNode.userID).all()
            ]
        finally:
            session.close()
    else:
        parser.error("either --root-id or --all-tops is required")
        return

    if not root_ids:
        print("No binary nodes found")
        return

    asyncio.run(show(root_ids, args.max_depth))


if __name__ == "__main__":
    main()
