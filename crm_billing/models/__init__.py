# crm_billing/models/__init__.py

from sqlalchemy.ext.declarative import declarative_base

Base = declarative_base()

# Import all models to ensure they are registered with Base.metadata
from crm_billing.models.workspace import Workspace, User, WorkspaceMember
from crm_billing.models.company import Company, Contact, Project, ClientUser
from crm_billing.models.billing import BillingProfile, BillingItem
from crm_billing.models.billing_history import BillingHistory
