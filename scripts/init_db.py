#!/usr/bin/env python3
"""
Create tables and seed default settings, package catalogue and root user.

Usage:
    python scripts/init_db.py [--with-root] [--token-price PRICE] [--drop]
"""

import sys
import os
import argparse
import asyncio
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import setup_database, drop_all_tables, get_db_session_ctx, get_session
from models.user import User
from mlm_system.services.package_service import PackageService
from mlm_system.services.registration_service import RegistrationService
from mlm_system.services.settings_service import SettingsService

import logging

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def create_root_user():
    """Register the ROOT_USER_ID account as a top binary node."""
    root_id = Config.get(Config.ROOT_USER_ID)
    session = get_session()
    try:
        if session.query(User).filter_by(userID=root_id).first():
            logger.info(f"Root user {root_id} already exists")
            return
        await RegistrationService(session).registerUser(referrerId=0, userId=root_id, name="root")
        logger.info(f"Root user {root_id} created")
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description="Initialize MLM engine database")
    parser.add_argument("--drop", action="store_true", help="Drop all tables first (DESTRUCTIVE)")
    parser.add_argument("--with-root", action="store_true", help="Create the root user account")
    parser.add_argument("--token-price", type=str, help="Store this token price (USD)")
    args = parser.parse_args()

    Config.initialize_from_env()

    if args.drop:
        drop_all_tables()
    setup_database()

    with get_db_session_ctx() as session:
        settings = SettingsService(session)
        settings_added = settings.initializeDefaultSettings()
        packages_added = PackageService(session).initializeDefaultPackages()
        if args.token_price:
            settings.setSetting("token_price", Decimal(args.token_price))

    print(f"Settings added: {settings_added}")
    print(f"Packages added: {packages_added}")

    if args.with_root:
        asyncio.run(create_root_user())


if __name__ == "__main__":
    main()
