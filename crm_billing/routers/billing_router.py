# crm_billing/routers/billing_router.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from crm_billing.dependencies import WorkspaceContext, get_current_workspace, get_db
from crm_billing.exceptions.billing_exceptions import CompanyNotFoundException
from crm_billing.schemas.billing_history_schema import BillingHistoryInfoSchema
from crm_billing.schemas.billing_schema import (
    BillingItemInfoSchema,
    BillingItemSchema,
    BillingOverviewSchema,
    BillingProfileInfoSchema,
    BillingSettingsUpdateSchema,
    InvoiceRecipientSchema,
)
from crm_billing.services.billing_service import BillingService

router = APIRouter(
    prefix="/api/v1",
    tags=["Billing"],
)


def company_not_found(e: CompanyNotFoundException) -> HTTPException:
    return HTTPException(status_code=404, detail={"error_code": "COMPANY_NOT_FOUND", "message": e.message})


@router.get("/companies/{company_id}/billing", response_model=BillingOverviewSchema)
async def get_billing(
        company_id: str,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    """
    Billing profile of a company, created with defaults on first access.

    Items come back with their quantity resolved against the current active
    project and user counts.
    """
    try:
        return await BillingService.get_billing_overview(db, context.workspace.id, company_id)
    except CompanyNotFoundException as e:
        raise company_not_found(e)


@router.put("/companies/{company_id}/billing", response_model=BillingProfileInfoSchema)
async def update_billing(
        company_id: str,
        update: BillingSettingsUpdateSchema,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    try:
        return await BillingService.update_settings(db, context.workspace.id, company_id, update)
    except CompanyNotFoundException as e:
        raise company_not_found(e)


@router.post("/companies/{company_id}/billing/items", response_model=BillingItemInfoSchema, status_code=201)
async def add_billing_item(
        company_id: str,
        item: BillingItemSchema,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    try:
        return await BillingService.add_item(db, context.workspace.id, company_id, item)
    except CompanyNotFoundException as e:
        raise company_not_found(e)


@router.put("/billing/items/{item_id}", response_model=BillingItemInfoSchema)
async def update_billing_item(
        item_id: str,
        item: BillingItemSchema,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    return await BillingService.update_item(db, context.workspace.id, item_id, item)


@router.delete("/billing/items/{item_id}", status_code=204)
async def delete_billing_item(
        item_id: str,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    await BillingService.delete_item(db, context.workspace.id, item_id)
    return


@router.get("/companies/{company_id}/billing-history", response_model=List[BillingHistoryInfoSchema])
async def get_billing_history(
        company_id: str,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    """Billing history of a company, newest first."""
    try:
        return await BillingService.get_billing_history(db, context.workspace.id, company_id)
    except CompanyNotFoundException as e:
        raise company_not_found(e)


@router.get("/companies/{company_id}/invoice-recipients", response_model=List[InvoiceRecipientSchema])
async def get_invoice_recipients(
        company_id: str,
        context: WorkspaceContext = Depends(get_current_workspace),
        db: AsyncSession = Depends(get_db),
):
    try:
        company = await BillingService.get_company(db, context.workspace.id, company_id)
    except CompanyNotFoundException as e:
        raise company_not_found(e)
    return await BillingService.get_invoice_contacts(db, company.id)
