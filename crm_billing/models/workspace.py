# crm_billing/models/workspace.py

from datetime import datetime

from sqlalchemy import Column, String, Boolean, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from crm_billing.models import Base
from crm_billing.models.ids import generate_id


class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    legal_name = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    phone = Column(String(50), nullable=True)
    rnc = Column(String(50), nullable=True)
    logo_url = Column(String(500), nullable=True)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    # Subscription billing
    billing_enabled = Column(Boolean, default=False, nullable=False)
    billing_from_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    billing_emails_cc = Column(Text, nullable=True)  # comma separated
    billing_emails_bcc = Column(Text, nullable=True)
    billing_email_subject = Column(String(500), nullable=True)
    billing_email_body = Column(Text, nullable=True)

    # AdmCloud credentials
    admcloud_enabled = Column(Boolean, default=False, nullable=False)
    admcloud_app_id = Column(String(255), nullable=True)
    admcloud_username = Column(String(255), nullable=True)
    admcloud_password = Column(String(255), nullable=True)
    admcloud_company = Column(String(255), nullable=True)
    admcloud_role = Column(String(100), nullable=True)
    admcloud_default_payment_term_id = Column(String(100), nullable=True)
    admcloud_default_sales_stage_id = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    billing_from_user = relationship("User", foreign_keys=[billing_from_user_id])
    companies = relationship("Company", back_populates="workspace")
    members = relationship("WorkspaceMember", back_populates="workspace")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)

    # Sender identity used for outgoing billing email
    email_configured = Column(Boolean, default=False, nullable=False)
    email_from_address = Column(String(255), nullable=True)
    email_from_name = Column(String(255), nullable=True)
    email_password = Column(String(255), nullable=True)

    memberships = relationship("WorkspaceMember", back_populates="user")


class WorkspaceMember(Base):
    __tablename__ = "workspace_members"

    id = Column(String(36), primary_key=True, default=generate_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default="MEMBER", nullable=False)  # OWNER, ADMIN, MEMBER

    workspace = relationship("Workspace", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (UniqueConstraint('workspace_id', 'user_id', name='unique_workspace_member'),)
