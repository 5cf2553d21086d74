# crm_billing/services/accounting_bridge.py

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional

from crm_billing.core.config import settings
from crm_billing.schemas.proforma_schema import CalculatedItem
from crm_billing.services.admcloud_client import AdmCloudClient, AdmCloudConfig

logger = logging.getLogger(__name__)

NOT_LINKED_ERROR = "Company is not linked to an AdmCloud customer"


@dataclass
class AccountingOutcome:
    attempted: bool = False
    doc_id: Optional[str] = None
    doc_number: Optional[str] = None
    error: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.doc_id is not None


def select_billing_address(addresses: List[Dict]) -> Optional[Dict]:
    for address in addresses:
        if address.get("DefaultBillingAddress"):
            return address
    return addresses[0] if addresses else None


def select_quote_contact(contacts: List[Dict]) -> Optional[Dict]:
    for contact in contacts:
        if contact.get("IncludeInQuoteEMails"):
            return contact
    return contacts[0] if contacts else None


def build_quote_request(
        relationship_id: str,
        items: List[CalculatedItem],
        issue_date: date,
        notes: str,
        workspace=None,
        customer: Optional[Dict] = None,
) -> Dict:
    quote = {
        "RelationshipID": relationship_id,
        "DocDate": issue_date.isoformat(),
        "CurrencyID": settings.billing_currency,
        "Notes": notes,
        "Items": [
            {
                "ItemID": item.admcloud_item_id,
                "Quantity": float(item.calculated_quantity),
                "Price": float(item.price),
                "RowOrder": index,
            }
            for index, item in enumerate(items)
        ],
    }

    if workspace is not None:
        if workspace.admcloud_default_payment_term_id:
            quote["PaymentTermID"] = workspace.admcloud_default_payment_term_id
        if workspace.admcloud_default_sales_stage_id:
            quote["SalesStageID"] = workspace.admcloud_default_sales_stage_id

    if customer:
        contact = select_quote_contact(customer.get("Contacts") or [])
        if contact:
            quote["ContactID"] = contact.get("ID")

        address = select_billing_address(customer.get("Addresses") or [])
        if address:
            quote.update({
                "BillToAddressID": address.get("ID"),
                "BillToName": address.get("Name") or customer.get("Name"),
                "BillToAddress1": address.get("Address1"),
                "BillToAddress2": address.get("Address2"),
                "BillToCity": address.get("City"),
                "BillToState": address.get("State"),
                "BillToPostalCode": address.get("PostalCode"),
                "BillToPhone": address.get("Phone1"),
                "BillToContact": address.get("Contact"),
                "BillToCountryID": address.get("CountryID"),
            })
    return {key: value for key, value in quote.items() if value is not None}


class AccountingBridge:
    """
    Creates the AdmCloud quote that backs a proforma.

    Never raises: an unconfigured workspace, an unlinked company or a failed API
    call all come back as an AccountingOutcome so the caller can keep generating
    the PDF with a fallback document number.
    """

    def __init__(self, client_factory: Callable[[AdmCloudConfig], AdmCloudClient] = AdmCloudClient):
        self.client_factory = client_factory

    async def create_quote_for_company(self, workspace, company, items: List[CalculatedItem],
                                       issue_date: date, notes: str) -> AccountingOutcome:
        config = AdmCloudConfig.from_workspace(workspace)
        if config is None:
            return AccountingOutcome()

        if not company.admcloud_relationship_id:
            logger.info(f"Company {company.id} has no AdmCloud relationship id, skipping quote")
            return AccountingOutcome(error=NOT_LINKED_ERROR)

        client = self.client_factory(config)
        try:
            customer_result = await client.get_customer(company.admcloud_relationship_id)
            customer = customer_result.data if customer_result.success else None
            if not customer_result.success:
                logger.warning(
                    f"Could not load AdmCloud customer {company.admcloud_relationship_id}: {customer_result.error}"
                )

            quote = build_quote_request(
                company.admcloud_relationship_id, items, issue_date, notes,
                workspace=workspace, customer=customer if isinstance(customer, dict) else None,
            )
            result = await client.create_quote(quote)
        except Exception as e:
            logger.error(f"AdmCloud quote creation raised for company {company.id}: {e}")
            return AccountingOutcome(attempted=True, error=str(e) or e.__class__.__name__)

        if not result.success or not isinstance(result.data, dict):
            error = result.error or "AdmCloud returned no quote"
            logger.error(f"Failed to create quote in AdmCloud for {company.name}: {error}")
            return AccountingOutcome(attempted=True, error=error)

        doc_id = result.data.get("ID")
        return AccountingOutcome(
            attempted=True,
            doc_id=str(doc_id) if doc_id is not None else None,
            doc_number=result.data.get("DocID") or None,
        )
