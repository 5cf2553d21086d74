"""Shared fixtures: a throwaway SQLite database, seed data builders and pipeline fakes."""

import os
import tempfile
from decimal import Decimal

# Settings are read at import time, so the environment goes first
_db_dir = tempfile.mkdtemp(prefix="crm-billing-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir}/test.db"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

import pytest
import pytest_asyncio

from crm_billing.models import Base
from crm_billing.models.billing import BillingItem, BillingProfile, CountType
from crm_billing.models.company import ACTIVE_CLIENT_STATUS, ClientUser, Company, Contact, Project
from crm_billing.models.workspace import User, Workspace
from crm_billing.repository.database_async import SessionLocalAsync, engine_async
from crm_billing.services.accounting_bridge import AccountingOutcome
from crm_billing.services.email_sender import SendResult
from crm_billing.services.subscription_billing_service import SubscriptionBillingService


@pytest_asyncio.fixture
async def db():
    async with engine_async.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with SessionLocalAsync() as session:
        yield session
    await engine_async.dispose()


@pytest_asyncio.fixture
async def workspace(db):
    owner = User(email="owner@acme.test", name="Owner")
    sender = User(
        email="billing@acme.test",
        name="Billing",
        email_configured=True,
        email_from_address="billing@acme.test",
        email_from_name="Acme Billing",
        email_password="app-password",
    )
    db.add_all([owner, sender])
    await db.flush()

    ws = Workspace(
        name="Acme",
        legal_name="Acme Soluciones SRL",
        rnc="1-01-00000-1",
        owner_id=owner.id,
        billing_enabled=True,
        billing_from_user_id=sender.id,
        billing_emails_cc="finance@acme.test",
    )
    db.add(ws)
    await db.commit()
    return ws


def manual_item(price="100.00", quantity="1", code="SUB-BASE"):
    return {
        "admcloud_item_id": f"ITEM-{code}",
        "code": code,
        "description": f"Suscripción {code}",
        "price": Decimal(price),
        "count_type": CountType.MANUAL,
        "manual_quantity": Decimal(quantity),
    }


@pytest.fixture
def add_company(db):
    async def _add_company(
            workspace,
            name="Cliente Uno",
            billing_day=15,
            items=None,
            contacts=("ana@cliente.test",),
            active_projects=0,
            active_users=0,
            status=ACTIVE_CLIENT_STATUS,
            auto_billing_enabled=True,
            admcloud_relationship_id=None,
    ) -> Company:
        company = Company(
            workspace_id=workspace.id,
            name=name,
            tax_id="1-31-00000-9",
            status=status,
            admcloud_relationship_id=admcloud_relationship_id,
        )
        company.billing_profile = BillingProfile(
            billing_day=billing_day,
            auto_billing_enabled=auto_billing_enabled,
            items=[BillingItem(**fields) for fields in (items if items is not None else [manual_item()])],
        )
        company.contacts = [
            Contact(full_name=email.split("@")[0].title(), email=email, receives_invoices=True)
            for email in contacts
        ]
        company.projects = [Project(name=f"Proyecto {i}") for i in range(active_projects)]
        company.client_users = [ClientUser(email=f"user{i}@cliente.test") for i in range(active_users)]
        db.add(company)
        await db.commit()
        return company

    return _add_company


class FakeAccounting:
    def __init__(self, outcome=None):
        self.outcome = outcome or AccountingOutcome()
        self.calls = []

    async def create_quote_for_company(self, workspace, company, items, issue_date, notes):
        self.calls.append((company.id, items, issue_date, notes))
        return self.outcome


class FakeEmailSender:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def send(self, sender, to, subject, html_body, attachments, cc=None):
        if to in self.failing:
            return SendResult(success=False, error="Connection refused")
        self.sent.append({"to": to, "cc": cc, "subject": subject, "body": html_body, "attachments": attachments})
        return SendResult(success=True)


class FakeUploader:
    def __init__(self, error=None):
        self.error = error
        self.uploads = []

    async def __call__(self, content, workspace_id, company_id, year, month, manual=False):
        if self.error:
            raise self.error
        self.uploads.append((workspace_id, company_id, year, month, manual))
        suffix = "-manual" if manual else ""
        return f"https://files.test/proformas/{workspace_id}/{company_id}/{year}-{month:02d}{suffix}.pdf"


def fake_render(proforma) -> bytes:
    return b"%PDF-1.4 " + proforma.document_number.encode()


@pytest.fixture
def accounting():
    return FakeAccounting()


@pytest.fixture
def mailer():
    return FakeEmailSender()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def pipeline(accounting, mailer, uploader):
    return SubscriptionBillingService(
        accounting=accounting,
        email_sender=mailer,
        render_pdf=fake_render,
        upload_pdf=uploader,
    )
