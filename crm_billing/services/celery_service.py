import asyncio
import logging
from datetime import date

from celery import Celery
from celery.schedules import crontab

from crm_billing.core.config import settings
from crm_billing.repository.database_async import SessionLocalAsync, engine_async
from crm_billing.services.subscription_billing_service import SubscriptionBillingService

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

# Celery configuration
celery_app = Celery(
    "crm_billing",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    timezone=settings.CELERY_TIMEZONE,
    beat_schedule={
        "daily-subscription-billing": {
            "task": "crm_billing.services.celery_service.run_daily_billing",
            "schedule": crontab(hour=settings.BILLING_CRON_HOUR, minute=0),
        },
    },
)


async def _run_billing(today: date) -> dict:
    try:
        async with SessionLocalAsync() as session:
            result = await SubscriptionBillingService().run_billing_batch(session, today)
    finally:
        # Each task gets its own event loop, pooled connections must not outlive it
        await engine_async.dispose()
    return result.model_dump(mode="json", by_alias=True)


@celery_app.task(name="crm_billing.services.celery_service.run_daily_billing")
def run_daily_billing(day: str = None):
    """Runs the same batch as GET /api/cron/billing. ``day`` (ISO date) overrides today."""
    today = date.fromisoformat(day) if day else date.today()
    logging.info(f"Starting daily billing run for {today.isoformat()}")
    try:
        result = asyncio.run(_run_billing(today))
    except Exception:
        logging.exception("Daily billing run failed")
        raise
    logging.info(
        f"Daily billing run finished: processed={result['processed']} sent={result['sent']} failed={result['failed']}"
    )
    return result


if __name__ == "__main__":
    logging.info("Starting Celery worker...")
    celery_app.worker_main(["worker", "--beat", "--loglevel=info"])
