"""
Security store sweeper.

Removes expired rate-limit entries, expired CSRF tokens and fully decayed
violation histories every SECURITY_SWEEP_INTERVAL_SECONDS. Started from the
application lifespan and cancelled on shutdown.
"""

import asyncio

from invitegate.config import settings
from invitegate.infrastructure.observability.logging import get_logger
from invitegate.services.security_store import SecurityStore

logger = get_logger(__name__)

RETRY_DELAY_SECONDS = 30


async def run_store_sweeper(store: SecurityStore, interval_seconds: float | None = None) -> None:
    interval = interval_seconds or settings.SECURITY_SWEEP_INTERVAL_SECONDS
    logger.info("Starting security store sweeper", interval_seconds=interval)

    while True:
        try:
            await asyncio.sleep(interval)
            removed = store.sweep()
            logger.debug("Security store sweep cycle completed", removed=removed)
        except asyncio.CancelledError:
            logger.info("Security store sweeper stopped")
            raise
        except Exception as e:
            logger.error(
                "Error in security store sweeper", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(RETRY_DELAY_SECONDS)


def start_store_sweeper(store: SecurityStore, interval_seconds: float | None = None) -> asyncio.Task:
    return asyncio.create_task(run_store_sweeper(store, interval_seconds), name="security-store-sweeper")


async def stop_store_sweeper(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
