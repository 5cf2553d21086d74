# crm_billing/routers/admcloud_router.py

import logging
from typing import Callable, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from crm_billing.dependencies import WorkspaceContext, get_current_workspace
from crm_billing.services.admcloud_catalog import map_items, map_named, map_price_lists
from crm_billing.services.admcloud_client import AdmCloudClient, AdmCloudConfig

router = APIRouter(
    prefix="/api/v1/admcloud",
    tags=["AdmCloud"],
)

NOT_CONFIGURED_MESSAGE = "AdmCloud is not configured for this workspace"


def get_admcloud_client_factory() -> Callable[[AdmCloudConfig], AdmCloudClient]:
    return AdmCloudClient


async def fetch_catalog(context: WorkspaceContext, client_factory, key: str, fetch: str,
                        mapper: Callable[[List[Dict]], List[Dict]]) -> Dict:
    config = AdmCloudConfig.from_workspace(context.workspace)
    if config is None:
        return {key: [], "message": NOT_CONFIGURED_MESSAGE}

    client = client_factory(config)
    response = await getattr(client, fetch)()
    if not response.success:
        logging.error(f"AdmCloud {fetch} failed for workspace {context.workspace.id}: {response.error}")
        raise HTTPException(
            status_code=502,
            detail={"error_code": "ADMCLOUD_ERROR", "message": response.error or "AdmCloud request failed"},
        )
    return {key: mapper(response.data or [])}


@router.get("/items")
async def get_items(
        context: WorkspaceContext = Depends(get_current_workspace),
        client_factory=Depends(get_admcloud_client_factory),
):
    return await fetch_catalog(context, client_factory, "items", "get_items", map_items)


@router.get("/payment-terms")
async def get_payment_terms(
        context: WorkspaceContext = Depends(get_current_workspace),
        client_factory=Depends(get_admcloud_client_factory),
):
    return await fetch_catalog(context, client_factory, "paymentTerms", "get_payment_terms", map_named)


@router.get("/sales-stages")
async def get_sales_stages(
        context: WorkspaceContext = Depends(get_current_workspace),
        client_factory=Depends(get_admcloud_client_factory),
):
    return await fetch_catalog(context, client_factory, "salesStages", "get_sales_stages", map_named)


@router.get("/price-lists")
async def get_price_lists(
        context: WorkspaceContext = Depends(get_current_workspace),
        client_factory=Depends(get_admcloud_client_factory),
):
    return await fetch_catalog(context, client_factory, "priceLists", "get_price_lists", map_price_lists)
