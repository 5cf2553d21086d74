# crm_billing/schemas/cron_schema.py

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompanyBillingDetail(CamelModel):
    company_id: str
    company_name: str
    status: Literal["sent", "failed", "no_recipients", "skipped"]
    error: Optional[str] = None


class BatchResult(CamelModel):
    success: bool = True
    date: datetime
    day: int
    processed: int = 0
    sent: int = 0
    failed: int = 0
    details: List[CompanyBillingDetail] = Field(default_factory=list)


class GenerateProformaRequest(CamelModel):
    company_id: str = Field(..., min_length=1)


class ManualProformaResult(CamelModel):
    success: bool = True
    proforma_number: str
    adm_cloud_doc_id: Optional[str] = None
    adm_cloud_created: bool = False
    adm_cloud_error: Optional[str] = None
    pdf_url: str
    total: float
    items_count: int
