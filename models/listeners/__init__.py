"""
SQLAlchemy Event Listeners Package.

Registers all event listeners for the application.
Import this module once during app startup to activate listeners.

Listeners:
    - ceiling_listeners: UserPackage earned <= ceilingLimit, auto-complete at ceiling
    - ledger_listeners: Income/Transaction/Activity are append-only
"""
import logging

logger = logging.getLogger(__name__)

_listeners_registered = False


def register_all_listeners():
    """
    Register all event listeners.

    Safe to call multiple times - listeners are registered only once.

    Call this from application startup, e.g.:
        from models.listeners import register_all_listeners
        register_all_listeners()
    """
    global _listeners_registered

    if _listeners_registered:
        logger.debug("Listeners already registered, skipping")
        return

    from models.listeners.ceiling_listeners import register_ceiling_listeners
    from models.listeners.ledger_listeners import register_ledger_protection

    register_ceiling_listeners()
    logger.info("Ceiling listeners registered (UserPackage)")

    register_ledger_protection()
    logger.info("Append-only listeners registered (Income, Transaction, Activity)")

    _listeners_registered = True
    logger.info("All event listeners registered successfully")
