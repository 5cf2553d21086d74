# crm_billing/routers/workspace_router.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from crm_billing.dependencies import WorkspaceContext, get_current_workspace, get_db
from crm_billing.exceptions.billing_exceptions import PermissionDeniedException
from crm_billing.schemas.billing_schema import SenderCandidateSchema, WorkspaceBillingConfigSchema
from crm_billing.services.workspace_service import WorkspaceService

router = APIRouter(
    prefix="/api/v1/workspace",
    tags=["Workspace"],
)


@router.get("/billing-config", response_model=WorkspaceBillingConfigSchema)
async def get_billing_config(context: WorkspaceContext = Depends(get_current_workspace)):
    return context.workspace


@router.put("/billing-config", response_model=WorkspaceBillingConfigSchema)
async def update_billing_config(
        config: WorkspaceBillingConfigSchema,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    """Only workspace owners and admins may change billing configuration."""
    try:
        return await WorkspaceService.update_billing_config(db, context.workspace, context.is_admin, config)
    except PermissionDeniedException as e:
        raise HTTPException(status_code=403, detail={"error_code": "PERMISSION_DENIED", "message": e.message})


@router.get("/billing-senders", response_model=List[SenderCandidateSchema])
async def get_billing_senders(
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    return await WorkspaceService.get_workspace_users(db, context.workspace)
