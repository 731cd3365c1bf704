# mlm_system/utils/batch.py
"""
Population batch runner.

Each user is processed and committed on its own; a failure rolls back
only that user's work, is logged, and is recorded in the summary.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mlm_system.errors import MLMError

logger = logging.getLogger(__name__)


async def run_user_batch(
        session: Session,
        userIds: Iterable[int],
        handler: Callable[[int], Awaitable[Dict[str, Any]]],
        label: str
) -> Dict[str, Any]:
    """
    Run handler(userId) for every user, committing after each.

    handler returns a dict with "status" in {"success", "skipped"}.

    Returns:
        {"processed", "succeeded", "skipped", "errors", "results"}
    """
    stats = {"processed": 0, "succeeded": 0, "skipped": 0, "errors": 0, "results": []}

    for userId in list(userIds):
        stats["processed"] += 1
        try:
            result = await handler(userId)
            session.commit()
        except MLMError as e:
            session.rollback()
            logger.error(f"{label}: user {userId} failed: {e}")
            result = {"userId": userId, "status": "error", "error": type(e).__name__, "message": str(e)}
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"{label}: store error for user {userId}: {e}")
            result = {"userId": userId, "status": "error", "error": "ExternalDependencyError", "message": str(e)}
        except Exception as e:
            session.rollback()
            logger.error(f"{label}: unexpected error for user {userId}: {e}", exc_info=True)
            result = {"userId": userId, "status": "error", "error": type(e).__name__, "message": str(e)}

        status = result.get("status")
        if status == "success":
            stats["succeeded"] += 1
        elif status == "skipped":
            stats["skipped"] += 1
        else:
            stats["errors"] += 1
        stats["results"].append(result)

    logger.info(
        f"{label} complete: processed={stats['processed']}, "
        f"succeeded={stats['succeeded']}, skipped={stats['skipped']}, errors={stats['errors']}"
    )
    return stats
