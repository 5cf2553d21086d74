# crm_billing/services/billing_email.py

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from crm_billing.services.pdf_generator import format_money
from crm_billing.services.template_renderer import render_template

MONTH_NAMES = ["Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
               "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre"]

DEFAULT_SUBJECT = "Proforma mensual - {{EMPRESA}} - {{MES}} {{AÑO}}"

DEFAULT_BODY = """
<p>Estimado(a) cliente,</p>
<p>Adjunto encontrará la proforma correspondiente a su suscripción mensual de servicios.</p>
<p><strong>Empresa:</strong> {{EMPRESA}}<br/>
<strong>Período:</strong> {{MES}} {{AÑO}}<br/>
<strong>Número de documento:</strong> {{NUMERO_PROFORMA}}<br/>
<strong>Total:</strong> {{TOTAL}}</p>
<p>Favor realizar el pago según las instrucciones indicadas en el documento adjunto.</p>
<p>Saludos cordiales,<br/>{{PROVEEDOR_NOMBRE}}</p>
"""


@dataclass
class BillingEmail:
    subject: str
    body: str
    attachment_name: str


def parse_email_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [email.strip() for email in value.split(",") if email.strip()]


def attachment_filename(proforma_number: str) -> str:
    return f"Proforma_{re.sub(r'[^a-zA-Z0-9]', '_', proforma_number)}.pdf"


def build_billing_email(workspace, company, proforma_number: str, total: Decimal,
                        month: int, year: int, currency: str = "USD") -> BillingEmail:
    tokens = {
        "EMPRESA": company.name,
        "MES": MONTH_NAMES[month - 1],
        "AÑO": str(year),
        "NUMERO_PROFORMA": proforma_number,
        "TOTAL": f"{currency} {format_money(total)}",
        "PROVEEDOR_NOMBRE": workspace.legal_name or workspace.name,
        "CLIENTE_RNC": company.tax_id or "",
    }
    return BillingEmail(
        subject=render_template(workspace.billing_email_subject or DEFAULT_SUBJECT, tokens),
        body=render_template(workspace.billing_email_body or DEFAULT_BODY, tokens),
        attachment_name=attachment_filename(proforma_number),
    )
