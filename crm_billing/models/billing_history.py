# crm_billing/models/billing_history.py

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, Enum, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from crm_billing.models import Base
from crm_billing.models.ids import generate_id


class BillingStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


def sent_period_key(company_id: str, year: int, month: int) -> str:
    return f"{company_id}:{year:04d}-{month:02d}"


class BillingHistory(Base):
    __tablename__ = "billing_history"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    admcloud_doc_id = Column(String(100), nullable=True)
    proforma_number = Column(String(100), nullable=True)
    billing_month = Column(Integer, nullable=False)
    billing_year = Column(Integer, nullable=False)
    status = Column(Enum(BillingStatus), default=BillingStatus.PENDING, nullable=False)
    generated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    pdf_url = Column(String(1000), nullable=True)
    subtotal = Column(Numeric(12, 2), default=0, nullable=False)
    tax_amount = Column(Numeric(12, 2), default=0, nullable=False)
    total_amount = Column(Numeric(12, 2), default=0, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    recipients = Column(Text, nullable=False, default="[]")  # JSON list of emails
    cc_recipients = Column(Text, nullable=True)  # JSON list of emails
    error_message = Column(Text, nullable=True)
    items_snapshot = Column(Text, nullable=True)  # JSON list of calculated items

    # Set on SENT rows and on the PENDING row a scheduled run holds while it works;
    # the unique constraint makes "one sent proforma per company and month" a
    # storage-level guarantee.
    sent_period_key = Column(String(80), nullable=True)

    company = relationship("Company")

    __table_args__ = (
        UniqueConstraint('sent_period_key', name='unique_sent_billing_period'),
        Index('ix_billing_history_period', 'company_id', 'billing_year', 'billing_month'),
    )
