# crm_billing/services/admcloud_client.py
"""
AdmCloud accounting API client.

The API uses HTTP Basic auth and expects the application id, company and role
as query parameters on every call. Responses are either the bare payload or a
``{"success": ..., "data": ..., "message": ...}`` envelope.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from crm_billing.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmCloudConfig:
    app_id: str
    username: str
    password: str
    company: str
    role: str = settings.ADMCLOUD_DEFAULT_ROLE
    base_url: str = settings.ADMCLOUD_BASE_URL
    timeout: float = settings.ADMCLOUD_TIMEOUT_SECONDS

    @classmethod
    def from_workspace(cls, workspace) -> Optional["AdmCloudConfig"]:
        """Build a config from workspace columns, or None when AdmCloud is disabled or incomplete."""
        if not workspace.admcloud_enabled:
            return None
        if not (workspace.admcloud_app_id and workspace.admcloud_username
                and workspace.admcloud_password and workspace.admcloud_company):
            return None
        return cls(
            app_id=workspace.admcloud_app_id,
            username=workspace.admcloud_username,
            password=workspace.admcloud_password,
            company=workspace.admcloud_company,
            role=workspace.admcloud_role or settings.ADMCLOUD_DEFAULT_ROLE,
        )


@dataclass
class AdmCloudResponse:
    success: bool
    data: Any = None
    error: Optional[str] = None


def _mask(url: str) -> str:
    return re.sub(r"appid=[^&]+", "appid=***", url)


def _normalize_list(data) -> List[Dict]:
    if not data:
        return []
    return data if isinstance(data, list) else [data]


class AdmCloudClient:
    """Stateless client; every call uses the immutable config it was built with."""

    def __init__(self, config: AdmCloudConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    def _auth_params(self) -> Dict[str, str]:
        return {
            "appid": self.config.app_id,
            "company": self.config.company,
            "role": self.config.role,
        }

    async def _request(self, method: str, endpoint: str, params: Optional[Dict[str, str]] = None,
                       json: Optional[Dict] = None) -> AdmCloudResponse:
        query = {**self._auth_params(), **(params or {})}
        try:
            async with httpx.AsyncClient(
                base_url=self.config.base_url,
                auth=(self.config.username, self.config.password),
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, endpoint, params=query, json=json)
        except httpx.HTTPError as e:
            logger.error(f"AdmCloud {method} {endpoint} failed: {e}")
            return AdmCloudResponse(success=False, error=str(e) or e.__class__.__name__)

        logger.info(f"AdmCloud {method} {_mask(str(response.request.url))} -> {response.status_code}")

        if response.is_error:
            body = response.text
            logger.warning(f"AdmCloud error response: {body[:500]}")
            return AdmCloudResponse(
                success=False,
                error=f"Error {response.status_code}: {body or response.reason_phrase}",
            )

        try:
            payload = response.json()
        except ValueError:
            return AdmCloudResponse(success=False, error="Invalid JSON in AdmCloud response")

        if isinstance(payload, dict) and "success" in payload and "data" in payload:
            if not payload["success"]:
                return AdmCloudResponse(
                    success=False,
                    error=payload.get("message") or "Unknown error in AdmCloud response",
                )
            return AdmCloudResponse(success=True, data=payload["data"])
        return AdmCloudResponse(success=True, data=payload)

    async def _get_list(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> AdmCloudResponse:
        response = await self._request("GET", endpoint, params={"skip": "0", **(params or {})})
        if not response.success:
            return response
        return AdmCloudResponse(success=True, data=_normalize_list(response.data))

    async def get_customer(self, relationship_id: str) -> AdmCloudResponse:
        return await self._request("GET", f"/Customers/{relationship_id}")

    async def create_quote(self, quote: Dict) -> AdmCloudResponse:
        return await self._request("POST", "/Quotes", json=quote)

    async def get_items(self) -> AdmCloudResponse:
        return await self._get_list("/Items", {"expand": "Prices"})

    async def get_price_lists(self) -> AdmCloudResponse:
        return await self._get_list("/PriceList")

    async def get_payment_terms(self) -> AdmCloudResponse:
        return await self._get_list("/PaymentTerms")

    async def get_sales_stages(self) -> AdmCloudResponse:
        return await self._get_list("/SalesStages")
