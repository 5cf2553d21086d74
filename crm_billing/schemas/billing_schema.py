# crm_billing/schemas/billing_schema.py

from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from crm_billing.models.billing import BillingType, CountType, CalculatedBase
from crm_billing.schemas.proforma_schema import CalculatedItem


class BillingSettingsUpdateSchema(BaseModel):
    billing_type: BillingType = Field(BillingType.STANDARD, description="STANDARD or CUSTOM billing")
    billing_day: int = Field(..., ge=1, le=31, description="Day of month on which the proforma is generated")
    auto_billing_enabled: Optional[bool] = Field(None, description="Include the company in the daily run")


class BillingItemSchema(BaseModel):
    admcloud_item_id: str = Field(..., min_length=1, description="AdmCloud catalog item id")
    code: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    count_type: CountType
    manual_quantity: Optional[Decimal] = Field(None, ge=0)
    calculated_base: Optional[CalculatedBase] = None
    calculated_subtract: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_quantity_fields(self):
        if self.count_type == CountType.CALCULATED and self.calculated_base is None:
            raise ValueError("calculated_base is required when count_type is CALCULATED")
        return self


class BillingItemInfoSchema(BaseModel):
    id: str
    profile_id: str
    admcloud_item_id: str
    code: str
    description: str
    price: Decimal
    count_type: CountType
    manual_quantity: Optional[Decimal]
    calculated_base: Optional[CalculatedBase]
    calculated_subtract: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class BillingProfileInfoSchema(BaseModel):
    id: str
    company_id: str
    billing_type: BillingType
    billing_day: int
    auto_billing_enabled: bool

    class Config:
        from_attributes = True


class BillingOverviewSchema(BillingProfileInfoSchema):
    items: List[CalculatedItem]
    total: Decimal
    active_projects: int
    active_users: int


class InvoiceRecipientSchema(BaseModel):
    id: str
    full_name: str
    email: str

    class Config:
        from_attributes = True


class WorkspaceBillingConfigSchema(BaseModel):
    billing_enabled: bool = False
    billing_emails_cc: Optional[str] = Field(None, description="Comma separated CC addresses")
    billing_emails_bcc: Optional[str] = Field(None, description="Comma separated BCC addresses")
    billing_email_subject: Optional[str] = Field(None, max_length=500)
    billing_email_body: Optional[str] = None
    billing_from_user_id: Optional[str] = None

    @model_validator(mode="after")
    def check_email_lists(self):
        for field in ("billing_emails_cc", "billing_emails_bcc"):
            value = getattr(self, field)
            if not value:
                continue
            for address in (part.strip() for part in value.split(",")):
                if address and "@" not in address:
                    raise ValueError(f"{field}: '{address}' is not a valid email address")
        return self

    class Config:
        from_attributes = True


class SenderCandidateSchema(BaseModel):
    id: str
    name: Optional[str]
    email: str
    email_configured: bool

    class Config:
        from_attributes = True
