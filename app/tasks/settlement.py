"""Verification polling task.

Asks the Verification Oracle about every active market and settles the ones
whose outcome has been verified.
"""

from datetime import datetime, timezone

import structlog
from sqlalchemy import select

from app.config import get_settings
from app.models.base import get_task_session
from app.models.domain import JobRun, Market, MarketStatus
from app.services.collaborators import VerificationOracleClient
from app.services.market import (
    ConflictError,
    MarketCore,
    UpstreamTimeoutError,
    ValidationError,
)
from app.tasks import celery_app

logger = structlog.get_logger(__name__)

JOB_NAME = "poll_verifications"


@celery_app.task(bind=True, max_retries=3, soft_time_limit=780, time_limit=840)
def poll_verifications(self):
    """
    Scheduled: Every 15 minutes
    Timeout: 13 minutes

    Process:
    1. Get active markets (oldest first, up to batch_size)
    2. Ask the oracle about each market's prediction
    3. Settle verified markets; skip unverified ones
    4. Count duplicates (AlreadyClosed) and invalid verifications
    5. Log job run with stats
    """
    import asyncio

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_poll_verifications_async(self))
    finally:
        loop.close()


async def _poll_verifications_async(task):
    """Async implementation of verification polling."""
    settings = get_settings()
    config = settings.load_defaults_config()
    batch_size = config.get("tasks", {}).get(JOB_NAME, {}).get("batch_size", 200)

    started_at = datetime.now(timezone.utc)
    job_status = "running"
    error_message = None
    stats = {
        "checked": 0,
        "settled": 0,
        "pending": 0,
        "already_closed": 0,
        "invalid": 0,
    }

    async with get_task_session() as session:
        # Create job run record
        job_run = JobRun(
            job_name=JOB_NAME,
            started_at=started_at,
            status="running",
        )
        session.add(job_run)
        await session.commit()

        try:
            core = MarketCore.build(config.get("market", {}).get("odds"))

            result = await session.execute(
                select(Market.id, Market.prediction_id)
                .where(Market.status == MarketStatus.ACTIVE.value)
                .order_by(Market.created_at)
                .limit(batch_size)
            )
            active = result.all()

            async with VerificationOracleClient(settings) as oracle:
                for market_id, prediction_id in active:
                    stats["checked"] += 1
                    try:
                        outcome = await oracle.fetch_verification(prediction_id)
                        if outcome is None:
                            stats["pending"] += 1
                            continue

                        await core.settlement.settle(session, outcome)
                        stats["settled"] += 1
                    except ConflictError:
                        # Settled elsewhere since the market list was read
                        stats["already_closed"] += 1
                    except ValidationError as e:
                        stats["invalid"] += 1
                        logger.warning(
                            "verification_rejected",
                            market_id=market_id,
                            prediction_id=prediction_id,
                            kind=e.kind.value,
                            reason=e.reason,
                        )

            job_status = "success"
            logger.info(
                "verification_poll_task_complete",
                stats=stats,
                duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
            )

        except UpstreamTimeoutError as e:
            job_status = "failed"
            error_message = e.reason
            logger.error(
                "verification_poll_task_failed",
                error=e.reason,
                task_id=task.request.id,
            )

            # Oracle unreachable: back off and try again
            if task.request.retries < task.max_retries:
                raise task.retry(exc=e, countdown=60 * (task.request.retries + 1))

        except Exception as e:
            job_status = "failed"
            error_message = str(e)
            logger.error(
                "verification_poll_task_failed",
                error=str(e),
                task_id=task.request.id,
            )

        finally:
            # Update job run record
            job_run.completed_at = datetime.now(timezone.utc)
            job_run.status = job_status
            job_run.error_message = error_message
            job_run.records_processed = stats["settled"]
            job_run.job_metadata = stats
            await session.commit()

    return stats
