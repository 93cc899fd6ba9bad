"""Periodic removal of expired credentials, scheduled from the app lifespan."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.config import settings
from core.database import async_session_maker
from services.credential_store import CredentialStore
from services.token_service import SweepResult, TokenService
from utils.logger import get_logger

logger = get_logger(__name__)

CLEANUP_JOB_ID = "sweep_expired_credentials"


async def sweep_expired_credentials(session_factory=async_session_maker) -> SweepResult:
    async with session_factory() as session:
        result = await TokenService(CredentialStore(session)).sweep_expired()

    logger.info("Expired credentials swept", extra=result._asdict())
    return result


async def _scheduled_sweep() -> None:
    try:
        await sweep_expired_credentials()
    except Exception:
        # Keep the scheduler alive; the next run retries
        logger.exception("Credential sweep failed")


def create_cleanup_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _scheduled_sweep,
        "interval",
        minutes=settings.TOKEN_CLEANUP_INTERVAL_MINUTES,
        id=CLEANUP_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
