# crm_billing/schemas/proforma_schema.py

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from crm_billing.models.billing import CountType, CalculatedBase


class CalculatedItem(BaseModel):
    """A billing item with its quantity resolved against live company counts."""
    id: Optional[str] = None
    admcloud_item_id: str
    code: str
    description: str
    price: Decimal
    count_type: CountType
    manual_quantity: Optional[Decimal] = None
    calculated_base: Optional[CalculatedBase] = None
    calculated_subtract: Optional[int] = None
    calculated_quantity: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class BillingTotals(BaseModel):
    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class ProformaItem(BaseModel):
    name: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


class BankAccount(BaseModel):
    currency: str
    number: str
    type: str


class Bank(BaseModel):
    name: str
    accounts: List[BankAccount] = Field(default_factory=list)


class BankInfo(BaseModel):
    beneficiary: str
    rnc: str
    banks: List[Bank] = Field(default_factory=list)


class ProformaData(BaseModel):
    """Everything the PDF renderer needs, and nothing it has to look up."""
    document_number: str
    document_date: date
    expiration_date: date
    currency: str = "USD"
    exchange_rate: Optional[str] = None

    provider_name: str
    provider_logo: Optional[str] = None
    provider_address: str = ""
    provider_phone: str = ""
    provider_rnc: str = ""

    client_name: str
    client_rnc: str = ""
    client_address: str = ""
    client_contact: str = ""

    items: List[ProformaItem]

    subtotal: Decimal
    discount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal

    notes: Optional[str] = None
    bank_info: Optional[BankInfo] = None
