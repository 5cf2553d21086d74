# crm_billing/routers/cron_router.py
"""
Scheduled billing trigger.

An external scheduler calls this once a day (GET, POST for manual triggers) with
``Authorization: Bearer <CRON_SECRET>``. Companies whose billing day is today get
their monthly proforma.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from crm_billing.dependencies import get_billing_pipeline, get_db, verify_cron_secret
from crm_billing.schemas.cron_schema import BatchResult
from crm_billing.services.subscription_billing_service import SubscriptionBillingService

router = APIRouter(
    prefix="/api/cron",
    tags=["Cron"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.api_route(
    "/billing",
    methods=["GET", "POST"],
    response_model=BatchResult,
    summary="Run the daily subscription billing batch",
)
async def run_billing(
        db: AsyncSession = Depends(get_db),
        pipeline: SubscriptionBillingService = Depends(get_billing_pipeline),
):
    try:
        return await pipeline.run_billing_batch(db)
    except Exception as e:
        logging.exception("Billing cron job error")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e) or "Unknown error"})
