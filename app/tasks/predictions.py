"""Prediction intake task.

Pulls new predictions from the Prediction Producer and opens a market for
each one.
"""

from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.base import get_task_session
from app.models.domain import JobRun
from app.services.collaborators import PredictionProducerClient
from app.services.ingestion import PredictionIngestionService
from app.services.market import MarketCore, UpstreamTimeoutError
from app.tasks import celery_app

logger = structlog.get_logger(__name__)

JOB_NAME = "ingest_predictions"


@celery_app.task(bind=True, max_retries=3, soft_time_limit=240, time_limit=280)
def ingest_predictions(self):
    """
    Scheduled: Every 5 minutes
    Timeout: 4 minutes

    Process:
    1. Work out the window: since the last successful run, or the
       configured lookback on the first run
    2. Fetch predictions from the Prediction Producer
    3. Record each prediction and open its market
       (duplicates and rejected payloads are counted, not fatal)
    4. Log job run with stats
    """
    import asyncio

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_ingest_predictions_async(self))
    finally:
        loop.close()


async def _last_successful_run(session: AsyncSession) -> datetime | None:
    result = await session.execute(
        select(JobRun.started_at)
        .where(JobRun.job_name == JOB_NAME)
        .where(JobRun.status == "success")
        .order_by(JobRun.started_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _ingest_predictions_async(task):
    """Async implementation of prediction intake."""
    settings = get_settings()
    config = settings.load_defaults_config()
    task_config = config.get("tasks", {}).get(JOB_NAME, {})
    lookback = timedelta(hours=task_config.get("lookback_hours", 24))

    started_at = datetime.now(timezone.utc)
    job_status = "running"
    error_message = None
    stats = {}

    async with get_task_session() as session:
        since = await _last_successful_run(session) or started_at - lookback

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
            ingestion = PredictionIngestionService(core.store)

            async with PredictionProducerClient(settings) as producer:
                records = await producer.fetch_predictions(since=since)

            stats = await ingestion.ingest_many(session, records)

            job_status = "success"
            logger.info(
                "prediction_ingest_task_complete",
                stats=stats,
                since=since.isoformat(),
                duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
            )

        except UpstreamTimeoutError as e:
            job_status = "failed"
            error_message = e.reason
            logger.error(
                "prediction_ingest_task_failed",
                error=e.reason,
                task_id=task.request.id,
            )

            # Producer unreachable: back off and try again
            if task.request.retries < task.max_retries:
                raise task.retry(exc=e, countdown=60 * (task.request.retries + 1))

        except Exception as e:
            job_status = "failed"
            error_message = str(e)
            logger.error(
                "prediction_ingest_task_failed",
                error=str(e),
                task_id=task.request.id,
            )

        finally:
            # Update job run record
            job_run.completed_at = datetime.now(timezone.utc)
            job_run.status = job_status
            job_run.error_message = error_message
            job_run.records_processed = stats.get("markets_opened", 0)
            job_run.job_metadata = stats
            await session.commit()

    return stats
