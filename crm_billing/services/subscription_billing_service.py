# crm_billing/services/subscription_billing_service.py
"""
Monthly subscription billing pipeline.

For every company due today: resolve item quantities, create the AdmCloud quote,
render and upload the proforma PDF, email it to the company's invoice contacts
and append one billing history row describing the outcome.

The pipeline is best-effort and sequential. Accounting, upload and email are
independent side effects; a failure in one company never stops the batch.
"""

import asyncio
import logging
from datetime import date, datetime
from types import SimpleNamespace
from typing import Callable, List, Optional

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from crm_billing.core.config import settings
from crm_billing.exceptions.billing_exceptions import (
    AlreadyBilledException,
    NoSubscriptionItemsException,
    SenderNotConfiguredException,
)
from crm_billing.models.billing import BillingProfile
from crm_billing.models.billing_history import BillingStatus
from crm_billing.models.company import ACTIVE_CLIENT_STATUS, Company
from crm_billing.models.workspace import Workspace
from crm_billing.schemas.cron_schema import BatchResult, CompanyBillingDetail, ManualProformaResult
from crm_billing.services.accounting_bridge import AccountingBridge, AccountingOutcome
from crm_billing.services.billing_calculator import calculate_items, calculate_totals
from crm_billing.services.billing_email import build_billing_email, parse_email_list
from crm_billing.services.billing_service import BillingService
from crm_billing.services.blob_storage import upload_proforma_pdf
from crm_billing.services.email_sender import Attachment, EmailSender, SenderIdentity
from crm_billing.services.pdf_generator import generate_proforma_pdf
from crm_billing.services.proforma_service import build_proforma, fallback_proforma_number

logger = logging.getLogger(__name__)

NO_RECIPIENTS_ERROR = "No contacts configured to receive invoices (missing recipients)"
NO_ITEMS_ERROR = "No subscription items configured"
ALL_SENDS_FAILED_ERROR = "Failed to send email to all recipients"
ALREADY_BILLED_NOTE = "Already billed this month"


def snapshot(obj) -> SimpleNamespace:
    """Copy the column values of an ORM object so later rollbacks cannot expire them."""
    return SimpleNamespace(**{attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs})


def accounting_note(outcome: AccountingOutcome) -> Optional[str]:
    if outcome.error:
        return f"AdmCloud: {outcome.error}"
    return None


class SubscriptionBillingService:

    def __init__(
            self,
            accounting: Optional[AccountingBridge] = None,
            email_sender: Optional[EmailSender] = None,
            render_pdf: Callable = generate_proforma_pdf,
            upload_pdf: Callable = upload_proforma_pdf,
    ):
        self.accounting = accounting or AccountingBridge()
        self.email_sender = email_sender or EmailSender()
        self.render_pdf = render_pdf
        self.upload_pdf = upload_pdf

    async def _render(self, proforma) -> bytes:
        return await asyncio.to_thread(self.render_pdf, proforma)

    # Batch driver

    async def run_billing_batch(self, db: AsyncSession, today: Optional[date] = None,
                                now: Optional[datetime] = None) -> BatchResult:
        now = now or datetime.utcnow()
        today = today or now.date()
        result = BatchResult(date=now, day=today.day)

        workspaces = await db.execute(
            select(Workspace)
            .where(Workspace.billing_enabled.is_(True), Workspace.billing_from_user_id.is_not(None))
            .options(selectinload(Workspace.billing_from_user))
        )
        targets = [
            (snapshot(workspace), snapshot(workspace.billing_from_user) if workspace.billing_from_user else None)
            for workspace in workspaces.scalars().all()
        ]
        for workspace, sender_user in targets:
            await self._run_workspace(db, workspace, sender_user, today, result)

        logger.info(
            f"Billing run {today.isoformat()}: processed={result.processed} sent={result.sent} failed={result.failed}"
        )
        return result

    async def _run_workspace(self, db: AsyncSession, workspace, sender_user, today: date, result: BatchResult):
        companies = await db.execute(
            select(Company)
            .join(BillingProfile, BillingProfile.company_id == Company.id)
            .where(
                Company.workspace_id == workspace.id,
                Company.status == ACTIVE_CLIENT_STATUS,
                BillingProfile.billing_day == today.day,
                BillingProfile.auto_billing_enabled.is_(True),
            )
            .options(selectinload(Company.billing_profile).selectinload(BillingProfile.items))
            .order_by(Company.name)
            .execution_options(populate_existing=True)
        )
        due = [
            (snapshot(company), [snapshot(item) for item in company.billing_profile.items])
            for company in companies.scalars().all()
        ]
        if not due:
            return

        sender_error = None
        try:
            sender = SenderIdentity.from_user(sender_user, workspace.name)
        except SenderNotConfiguredException as e:
            logger.error(f"Workspace {workspace.id}: sender user not configured for email")
            sender = None
            sender_error = e.message

        for company, items in due:
            result.processed += 1
            if sender is None:
                if await BillingService.is_period_billed(db, company.id, today.year, today.month):
                    result.details.append(CompanyBillingDetail(
                        company_id=company.id, company_name=company.name, status="skipped",
                        error=ALREADY_BILLED_NOTE,
                    ))
                    continue
                await self._record_failure(db, workspace, company, today, sender_error)
                result.failed += 1
                result.details.append(CompanyBillingDetail(
                    company_id=company.id, company_name=company.name, status="failed", error=sender_error,
                ))
                continue

            try:
                detail = await self.process_company(db, workspace, sender, company, items, today)
            except Exception as e:
                logger.exception(f"Error processing company {company.id}")
                error = str(e) or e.__class__.__name__
                await self._record_failure(db, workspace, company, today, error)
                detail = CompanyBillingDetail(
                    company_id=company.id, company_name=company.name, status="failed", error=error,
                )

            if detail.status == "sent":
                result.sent += 1
            elif detail.status in ("failed", "no_recipients"):
                result.failed += 1
            result.details.append(detail)

    async def _finalize(self, db: AsyncSession, entry_id: str, *, status: BillingStatus,
                        error_message: Optional[str] = None, **fields):
        """
        Settle a reserved history row. Never inserts: the reserved row is the only
        ledger entry for this attempt, so a failing update falls back to a status-only one.
        """
        try:
            await BillingService.complete_history(db, entry_id, status=status, error_message=error_message, **fields)
            return
        except Exception:
            logger.exception(f"Could not finalize billing history {entry_id}, retrying status only")

        try:
            await BillingService.settle_history(db, entry_id, status, error_message)
        except Exception:
            logger.exception(f"Billing history {entry_id} left {BillingStatus.PENDING.value}")

    async def _record_failure(self, db: AsyncSession, workspace, company, today: date, error: str):
        try:
            await db.rollback()
            await BillingService.record_history(
                db,
                company_id=company.id,
                workspace_id=workspace.id,
                year=today.year,
                month=today.month,
                status=BillingStatus.FAILED,
                error_message=error,
            )
        except Exception:
            logger.exception(f"Could not record billing failure for company {company.id}")

    async def process_company(self, db: AsyncSession, workspace, sender: SenderIdentity, company,
                              items: List, today: date) -> CompanyBillingDetail:
        """Bill one company for the current month. Returns the per-company batch detail."""
        month, year = today.month, today.year

        def detail(status, error=None):
            return CompanyBillingDetail(company_id=company.id, company_name=company.name, status=status, error=error)

        if await BillingService.is_period_billed(db, company.id, year, month):
            return detail("skipped", ALREADY_BILLED_NOTE)

        if not items:
            await BillingService.record_history(
                db, company_id=company.id, workspace_id=workspace.id, year=year, month=month,
                status=BillingStatus.FAILED, error_message=NO_ITEMS_ERROR,
            )
            return detail("failed", NO_ITEMS_ERROR)

        contacts = [snapshot(c) for c in await BillingService.get_invoice_contacts(db, company.id)]
        recipients = [contact.email for contact in contacts]
        if not recipients:
            await BillingService.record_history(
                db, company_id=company.id, workspace_id=workspace.id, year=year, month=month,
                status=BillingStatus.FAILED, error_message=NO_RECIPIENTS_ERROR,
            )
            return detail("no_recipients", NO_RECIPIENTS_ERROR)

        cc_recipients = parse_email_list(workspace.billing_emails_cc)

        # Reserving the period is the race-resolution point: a concurrent run that
        # already holds it makes this insert fail.
        try:
            entry = await BillingService.record_history(
                db, company_id=company.id, workspace_id=workspace.id, year=year, month=month,
                status=BillingStatus.PENDING, recipients=recipients, cc_recipients=cc_recipients,
                reserve_period=True,
            )
        except AlreadyBilledException as e:
            return detail("skipped", e.message)
        entry_id = entry.id

        try:
            active_projects, active_users = await BillingService.get_active_counts(db, company.id)
            calculated = calculate_items(items, active_projects, active_users)
            totals = calculate_totals(calculated)

            outcome = await self.accounting.create_quote_for_company(
                workspace, company, calculated, today, f"Facturación mensual automática - {month}/{year}",
            )
            proforma_number = outcome.doc_number or fallback_proforma_number(company.id, year, month)

            proforma = build_proforma(workspace, company, contacts, calculated, totals, proforma_number, today)
            pdf = await self._render(proforma)
            pdf_url = await self.upload_pdf(pdf, workspace.id, company.id, year, month)

            email = build_billing_email(
                workspace, company, proforma_number, totals.total, month, year, settings.billing_currency,
            )
            attachment = Attachment(filename=email.attachment_name, content=pdf)

            # One message per recipient. CC addresses ride along until one delivery succeeds,
            # so they receive exactly one copy.
            sent_any = False
            for recipient in recipients:
                send_result = await self.email_sender.send(
                    sender, recipient, email.subject, email.body, [attachment],
                    cc=None if sent_any else cc_recipients,
                )
                sent_any = sent_any or send_result.success
        except Exception as e:
            logger.exception(f"Billing pipeline failed for company {company.id}")
            error = str(e) or e.__class__.__name__
            await self._finalize(db, entry_id, status=BillingStatus.FAILED, error_message=error)
            return detail("failed", error)

        await self._finalize(
            db,
            entry_id,
            status=BillingStatus.SENT if sent_any else BillingStatus.FAILED,
            admcloud_doc_id=outcome.doc_id,
            proforma_number=proforma_number,
            pdf_url=pdf_url,
            items=calculated,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total,
            error_message=accounting_note(outcome) if sent_any else ALL_SENDS_FAILED_ERROR,
        )
        if sent_any:
            logger.info(f"Proforma {proforma_number} sent for company {company.id}")
            return detail("sent")
        return detail("failed", "Email sending failed")

    # Manual generation

    async def generate_manual_proforma(self, db: AsyncSession, workspace, company_id: str,
                                       today: Optional[date] = None) -> ManualProformaResult:
        """
        Generate a proforma on demand without emailing it.

        The ledger row is written as PENDING and never reserves the billing period,
        so a manual proforma does not stop the scheduled run from sending.
        """
        today = today or date.today()
        month, year = today.month, today.year
        workspace = snapshot(workspace)

        company_row = await BillingService.get_company(db, workspace.id, company_id)
        profile = company_row.billing_profile
        if profile is None or not profile.items:
            raise NoSubscriptionItemsException()
        company = snapshot(company_row)
        items = [snapshot(item) for item in profile.items]

        active_projects, active_users = await BillingService.get_active_counts(db, company.id)
        calculated = calculate_items(items, active_projects, active_users)
        totals = calculate_totals(calculated)
        contacts = [snapshot(c) for c in await BillingService.get_invoice_contacts(db, company.id)]

        outcome = await self.accounting.create_quote_for_company(
            workspace, company, calculated, today, f"Proforma manual - {month}/{year}",
        )
        proforma_number = outcome.doc_number or fallback_proforma_number(company.id, year, month, manual=True)

        proforma = build_proforma(workspace, company, contacts, calculated, totals, proforma_number, today)
        pdf = await self._render(proforma)
        pdf_url = await self.upload_pdf(pdf, workspace.id, company.id, year, month, manual=True)

        await BillingService.record_history(
            db,
            company_id=company.id,
            workspace_id=workspace.id,
            year=year,
            month=month,
            status=BillingStatus.PENDING,
            recipients=[contact.email for contact in contacts],
            items=calculated,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total,
            currency=settings.billing_currency,
            proforma_number=proforma_number,
            admcloud_doc_id=outcome.doc_id,
            pdf_url=pdf_url,
            error_message=accounting_note(outcome),
        )

        return ManualProformaResult(
            proforma_number=proforma_number,
            adm_cloud_doc_id=outcome.doc_id,
            adm_cloud_created=outcome.created,
            adm_cloud_error=outcome.error,
            pdf_url=pdf_url,
            total=float(totals.total),
            items_count=len(calculated),
        )
