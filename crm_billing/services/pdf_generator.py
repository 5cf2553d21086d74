# crm_billing/services/pdf_generator.py

from datetime import date
from decimal import Decimal

from jinja2 import Environment, FileSystemLoader, select_autoescape
from weasyprint import HTML
import os

from crm_billing.schemas.proforma_schema import ProformaData

MONTH_ABBREVIATIONS = ["Ene", "Feb", "Mar", "Abr", "May", "Jun", "Jul", "Ago", "Sep", "Oct", "Nov", "Dic"]


def format_money(amount) -> str:
    """1234.5 -> '1,234.50'"""
    return f"{Decimal(amount):,.2f}"


def format_quantity(value) -> str:
    """3.00 -> '3', 2.50 -> '2.5'"""
    return f"{Decimal(str(value)).normalize():,f}"


def format_date(value: date) -> str:
    """date(2024, 3, 5) -> '05/Mar/2024'"""
    return f"{value.day:02d}/{MONTH_ABBREVIATIONS[value.month - 1]}/{value.year}"


# Initialize Jinja2 environment
template_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(__file__), '../templates')),
    autoescape=select_autoescape(['html', 'xml'])
)
template_env.filters["money"] = format_money
template_env.filters["quantity"] = format_quantity
template_env.filters["doc_date"] = format_date


def render_proforma_html(proforma: ProformaData) -> str:
    template = template_env.get_template('proforma_template.html')
    return template.render(
        proforma=proforma,
        has_discount=proforma.discount > 0,
        net_amount=proforma.subtotal - proforma.discount,
    )


def generate_proforma_pdf(proforma: ProformaData) -> bytes:
    """
    Renders a proforma as a single-page PDF.

    Args:
        proforma (ProformaData): Fully assembled document payload.

    Returns:
        bytes: Generated PDF content.
    """
    html_out = render_proforma_html(proforma)

    # Convert HTML to PDF
    pdf = HTML(string=html_out).write_pdf()

    return pdf
