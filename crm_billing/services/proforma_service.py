# crm_billing/services/proforma_service.py

from datetime import date, timedelta
from typing import List, Optional

from crm_billing.core.config import settings, DEFAULT_BANK_INFO
from crm_billing.schemas.proforma_schema import (
    BankInfo,
    BillingTotals,
    CalculatedItem,
    ProformaData,
    ProformaItem,
)


def add_business_days(start: date, days: int) -> date:
    """Add `days` weekdays to `start`, skipping Saturdays and Sundays (no holiday calendar)."""
    result = start
    added = 0
    while added < days:
        result += timedelta(days=1)
        if result.weekday() < 5:
            added += 1
    return result


def fallback_proforma_number(company_id: str, year: int, month: int, manual: bool = False) -> str:
    """
    Locally generated document number used when AdmCloud does not supply one.

    Unique per (company, month) only: two runs in the same month get the same number.
    """
    number = f"PRO-{year}{month:02d}-{company_id[-6:]}"
    if manual:
        number += "-M"
    return number


def build_proforma(
        workspace,
        company,
        invoice_contacts: List,
        items: List[CalculatedItem],
        totals: BillingTotals,
        document_number: str,
        issue_date: date,
        notes: Optional[str] = None,
) -> ProformaData:
    return ProformaData(
        document_number=document_number,
        document_date=issue_date,
        expiration_date=add_business_days(issue_date, settings.proforma_validity_business_days),
        currency=settings.billing_currency,

        provider_name=workspace.legal_name or workspace.name,
        provider_logo=workspace.logo_url or None,
        provider_address=workspace.address or "",
        provider_phone=workspace.phone or "",
        provider_rnc=workspace.rnc or "",

        client_name=company.legal_name or company.name,
        client_rnc=company.tax_id or "",
        client_address=company.fiscal_address or "",
        client_contact=invoice_contacts[0].full_name if invoice_contacts else "",

        items=[
            ProformaItem(
                name=item.description,
                quantity=item.calculated_quantity,
                unit_price=item.price,
                total=item.subtotal,
            )
            for item in items
        ],

        subtotal=totals.subtotal,
        discount=totals.discount,
        tax_amount=totals.tax_amount,
        total=totals.total,

        notes=notes,
        bank_info=BankInfo(**DEFAULT_BANK_INFO),
    )
