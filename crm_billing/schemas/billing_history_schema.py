# crm_billing/schemas/billing_history_schema.py

import json

from pydantic import BaseModel, field_validator
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from crm_billing.models.billing_history import BillingStatus


class BillingHistoryInfoSchema(BaseModel):
    id: str
    proforma_number: Optional[str]
    admcloud_doc_id: Optional[str]
    billing_month: int
    billing_year: int
    status: BillingStatus
    generated_at: datetime
    sent_at: Optional[datetime]
    pdf_url: Optional[str]
    total_amount: Decimal
    currency: str
    error_message: Optional[str]
    recipients: List[str]

    @field_validator("recipients", mode="before")
    @classmethod
    def decode_recipients(cls, v):
        if v is None or v == "":
            return []
        if isinstance(v, str):
            return json.loads(v)
        return v

    class Config:
        from_attributes = True
