# crm_billing/models/billing.py

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship

from crm_billing.models import Base
from crm_billing.models.ids import generate_id


class BillingType(str, enum.Enum):
    STANDARD = "STANDARD"
    CUSTOM = "CUSTOM"


class CountType(str, enum.Enum):
    MANUAL = "MANUAL"
    ACTIVE_PROJECTS = "ACTIVE_PROJECTS"
    ACTIVE_USERS = "ACTIVE_USERS"
    CALCULATED = "CALCULATED"


class CalculatedBase(str, enum.Enum):
    USERS = "USERS"
    PROJECTS = "PROJECTS"


class BillingProfile(Base):
    __tablename__ = "billing_profiles"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, unique=True)
    billing_type = Column(Enum(BillingType), default=BillingType.STANDARD, nullable=False)
    billing_day = Column(Integer, default=1, nullable=False, index=True)
    auto_billing_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = relationship("Company", back_populates="billing_profile")
    items = relationship(
        "BillingItem",
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="BillingItem.created_at",
    )


class BillingItem(Base):
    __tablename__ = "billing_items"

    id = Column(String(36), primary_key=True, default=generate_id)
    profile_id = Column(String(36), ForeignKey("billing_profiles.id", ondelete="CASCADE"), nullable=False)
    admcloud_item_id = Column(String(100), nullable=False)
    code = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    count_type = Column(Enum(CountType), default=CountType.MANUAL, nullable=False)
    manual_quantity = Column(Numeric(12, 2), nullable=True)  # MANUAL only
    calculated_base = Column(Enum(CalculatedBase), nullable=True)  # CALCULATED only
    calculated_subtract = Column(Integer, nullable=True)  # CALCULATED only
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    profile = relationship("BillingProfile", back_populates="items")
