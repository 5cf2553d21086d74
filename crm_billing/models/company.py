# crm_billing/models/company.py

from datetime import datetime

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from crm_billing.models import Base
from crm_billing.models.ids import generate_id

ACTIVE_CLIENT_STATUS = "CLIENTE"
ACTIVE_STATUS = "ACTIVE"


class Company(Base):
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=generate_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    legal_name = Column(String(255), nullable=True)
    tax_id = Column(String(50), nullable=True)
    fiscal_address = Column(String(500), nullable=True)
    status = Column(String(20), default="PROSPECTO", nullable=False)
    admcloud_relationship_id = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    workspace = relationship("Workspace", back_populates="companies")
    contacts = relationship("Contact", back_populates="company", cascade="all, delete-orphan")
    projects = relationship("Project", cascade="all, delete-orphan")
    client_users = relationship("ClientUser", cascade="all, delete-orphan")
    billing_profile = relationship(
        "BillingProfile", back_populates="company", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('ix_company_workspace_status', 'workspace_id', 'status'),
    )


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, default="")
    receives_invoices = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    company = relationship("Company", back_populates="contacts")


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    status = Column(String(20), default=ACTIVE_STATUS, nullable=False)


class ClientUser(Base):
    __tablename__ = "client_users"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(255), nullable=False)
    status = Column(String(20), default=ACTIVE_STATUS, nullable=False)
