# crm_billing/routers/proforma_router.py

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from crm_billing.dependencies import WorkspaceContext, get_billing_pipeline, get_current_workspace, get_db
from crm_billing.exceptions.billing_exceptions import (
    BlobUploadException,
    CompanyNotFoundException,
    NoSubscriptionItemsException,
)
from crm_billing.schemas.cron_schema import GenerateProformaRequest, ManualProformaResult
from crm_billing.services.subscription_billing_service import SubscriptionBillingService

router = APIRouter(
    prefix="/api/billing",
    tags=["Billing"],
)


@router.post(
    "/generate-proforma",
    response_model=ManualProformaResult,
    summary="Generate a proforma now without emailing it",
)
async def generate_proforma(
        request: GenerateProformaRequest,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
        pipeline: SubscriptionBillingService = Depends(get_billing_pipeline),
):
    """
    Creates the AdmCloud quote (when configured), renders and uploads the PDF and
    records a PENDING history row. The scheduled run for the month is unaffected.
    """
    try:
        return await pipeline.generate_manual_proforma(db, context.workspace, request.company_id)
    except CompanyNotFoundException as e:
        raise HTTPException(status_code=404, detail={"error_code": "COMPANY_NOT_FOUND", "message": e.message})
    except NoSubscriptionItemsException as e:
        raise HTTPException(status_code=400, detail={"error_code": "NO_SUBSCRIPTION_ITEMS", "message": e.message})
    except BlobUploadException as e:
        raise HTTPException(status_code=500, detail={"error_code": "PDF_UPLOAD_FAILED", "message": e.message})
    except Exception as e:
        logging.exception(f"Error generating proforma for company {request.company_id}")
        raise HTTPException(status_code=500, detail={"error_code": "PROFORMA_FAILED", "message": str(e)})
