import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from fastapi import HTTPException
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from crm_billing.exceptions.billing_exceptions import AlreadyBilledException, CompanyNotFoundException
from crm_billing.models.billing import BillingItem, BillingProfile, BillingType, CountType
from crm_billing.models.billing_history import BillingHistory, BillingStatus, sent_period_key
from crm_billing.models.company import ACTIVE_STATUS, ClientUser, Company, Contact, Project
from crm_billing.schemas.billing_schema import BillingItemSchema, BillingSettingsUpdateSchema
from crm_billing.schemas.proforma_schema import CalculatedItem
from crm_billing.services.billing_calculator import calculate_items, calculate_totals

logger = logging.getLogger(__name__)


class BillingService:

    @staticmethod
    async def get_company(db: AsyncSession, workspace_id: str, company_id: str) -> Company:
        result = await db.execute(
            select(Company)
            .where(Company.id == company_id, Company.workspace_id == workspace_id)
            .options(selectinload(Company.billing_profile).selectinload(BillingProfile.items))
            .execution_options(populate_existing=True)
        )
        company = result.scalar_one_or_none()
        if not company:
            raise CompanyNotFoundException()
        return company

    @staticmethod
    async def get_active_counts(db: AsyncSession, company_id: str) -> Tuple[int, int]:
        """Returns (active projects, active client users) for a company."""
        projects = await db.execute(
            select(func.count(Project.id)).where(Project.company_id == company_id, Project.status == ACTIVE_STATUS)
        )
        users = await db.execute(
            select(func.count(ClientUser.id)).where(
                ClientUser.company_id == company_id, ClientUser.status == ACTIVE_STATUS
            )
        )
        return projects.scalar_one(), users.scalar_one()

    @staticmethod
    async def get_invoice_contacts(db: AsyncSession, company_id: str) -> List[Contact]:
        result = await db.execute(
            select(Contact)
            .where(Contact.company_id == company_id, Contact.receives_invoices.is_(True), Contact.email != "")
            .order_by(Contact.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_or_create_profile(db: AsyncSession, company: Company) -> BillingProfile:
        result = await db.execute(
            select(BillingProfile)
            .where(BillingProfile.company_id == company.id)
            .options(selectinload(BillingProfile.items))
            .execution_options(populate_existing=True)
        )
        profile = result.scalar_one_or_none()
        if profile:
            return profile

        profile = BillingProfile(company_id=company.id, billing_type=BillingType.STANDARD, billing_day=1)
        db.add(profile)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise HTTPException(status_code=500, detail="Failed to create billing profile") from e

        result = await db.execute(
            select(BillingProfile)
            .where(BillingProfile.id == profile.id)
            .options(selectinload(BillingProfile.items))
        )
        return result.scalar_one()

    @staticmethod
    async def get_billing_overview(db: AsyncSession, workspace_id: str, company_id: str) -> dict:
        """Profile, items with live quantities, total and the counts they were computed from."""
        company = await BillingService.get_company(db, workspace_id, company_id)
        profile = await BillingService.get_or_create_profile(db, company)
        active_projects, active_users = await BillingService.get_active_counts(db, company.id)

        items = calculate_items(profile.items, active_projects, active_users)
        totals = calculate_totals(items)
        return {
            "id": profile.id,
            "company_id": company.id,
            "billing_type": profile.billing_type,
            "billing_day": profile.billing_day,
            "auto_billing_enabled": profile.auto_billing_enabled,
            "items": items,
            "total": totals.total,
            "active_projects": active_projects,
            "active_users": active_users,
        }

    @staticmethod
    async def update_settings(db: AsyncSession, workspace_id: str, company_id: str,
                              update: BillingSettingsUpdateSchema) -> BillingProfile:
        company = await BillingService.get_company(db, workspace_id, company_id)
        profile = await BillingService.get_or_create_profile(db, company)

        profile.billing_type = update.billing_type
        profile.billing_day = min(max(1, update.billing_day), 31)
        if update.auto_billing_enabled is not None:
            profile.auto_billing_enabled = update.auto_billing_enabled

        try:
            await db.commit()
            await db.refresh(profile)
            return profile
        except SQLAlchemyError as e:
            await db.rollback()
            raise HTTPException(status_code=500, detail="Failed to update billing settings") from e

    @staticmethod
    def _apply_item_fields(item: BillingItem, data: BillingItemSchema):
        item.admcloud_item_id = data.admcloud_item_id
        item.code = data.code
        item.description = data.description
        item.price = data.price
        item.count_type = data.count_type
        # Only the quantity fields relevant to the count type are stored
        item.manual_quantity = (data.manual_quantity or Decimal("0")) if data.count_type == CountType.MANUAL else None
        if data.count_type == CountType.CALCULATED:
            item.calculated_base = data.calculated_base
            item.calculated_subtract = data.calculated_subtract or 0
        else:
            item.calculated_base = None
            item.calculated_subtract = None

    @staticmethod
    async def add_item(db: AsyncSession, workspace_id: str, company_id: str, data: BillingItemSchema) -> BillingItem:
        company = await BillingService.get_company(db, workspace_id, company_id)
        profile = await BillingService.get_or_create_profile(db, company)

        item = BillingItem(profile_id=profile.id)
        BillingService._apply_item_fields(item, data)
        db.add(item)
        try:
            await db.commit()
            await db.refresh(item)
            return item
        except SQLAlchemyError as e:
            await db.rollback()
            raise HTTPException(status_code=500, detail="Failed to create billing item") from e

    @staticmethod
    async def get_item(db: AsyncSession, workspace_id: str, item_id: str) -> BillingItem:
        result = await db.execute(
            select(BillingItem)
            .join(BillingProfile, BillingItem.profile_id == BillingProfile.id)
            .join(Company, BillingProfile.company_id == Company.id)
            .where(BillingItem.id == item_id, Company.workspace_id == workspace_id)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise HTTPException(status_code=404, detail="Billing item not found")
        return item

    @staticmethod
    async def update_item(db: AsyncSession, workspace_id: str, item_id: str, data: BillingItemSchema) -> BillingItem:
        item = await BillingService.get_item(db, workspace_id, item_id)
        BillingService._apply_item_fields(item, data)
        try:
            await db.commit()
            await db.refresh(item)
            return item
        except SQLAlchemyError as e:
            await db.rollback()
            raise HTTPException(status_code=500, detail="Failed to update billing item") from e

    @staticmethod
    async def delete_item(db: AsyncSession, workspace_id: str, item_id: str):
        item = await BillingService.get_item(db, workspace_id, item_id)
        await db.delete(item)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error deleting billing item {item_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete billing item") from e

    @staticmethod
    async def get_billing_history(db: AsyncSession, workspace_id: str, company_id: str) -> List[BillingHistory]:
        await BillingService.get_company(db, workspace_id, company_id)
        result = await db.execute(
            select(BillingHistory)
            .where(BillingHistory.company_id == company_id, BillingHistory.workspace_id == workspace_id)
            .order_by(BillingHistory.generated_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def is_period_billed(db: AsyncSession, company_id: str, year: int, month: int) -> bool:
        result = await db.execute(
            select(BillingHistory.id).where(
                BillingHistory.company_id == company_id,
                BillingHistory.billing_month == month,
                BillingHistory.billing_year == year,
                BillingHistory.status == BillingStatus.SENT,
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def record_history(
            db: AsyncSession,
            *,
            company_id: str,
            workspace_id: str,
            year: int,
            month: int,
            status: BillingStatus,
            recipients: Sequence[str] = (),
            cc_recipients: Sequence[str] = (),
            items: Optional[Sequence[CalculatedItem]] = None,
            subtotal: Decimal = Decimal("0"),
            tax_amount: Decimal = Decimal("0"),
            total_amount: Decimal = Decimal("0"),
            currency: str = "USD",
            proforma_number: Optional[str] = None,
            admcloud_doc_id: Optional[str] = None,
            pdf_url: Optional[str] = None,
            error_message: Optional[str] = None,
            reserve_period: bool = False,
    ) -> BillingHistory:
        """
        Appends a ledger row.

        SENT rows, and rows created with reserve_period=True, carry the (company, month)
        period key. Inserting a second one for the same period fails on the unique
        constraint and raises AlreadyBilledException instead of creating a duplicate.
        """
        holds_period = reserve_period or status == BillingStatus.SENT
        now = datetime.utcnow()
        entry = BillingHistory(
            company_id=company_id,
            workspace_id=workspace_id,
            admcloud_doc_id=admcloud_doc_id,
            proforma_number=proforma_number,
            billing_month=month,
            billing_year=year,
            status=status,
            generated_at=now,
            sent_at=now if status == BillingStatus.SENT else None,
            pdf_url=pdf_url,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=total_amount,
            currency=currency,
            recipients=json.dumps(list(recipients)),
            cc_recipients=json.dumps(list(cc_recipients)) if cc_recipients else None,
            error_message=error_message,
            items_snapshot=json.dumps([item.model_dump(mode="json") for item in items]) if items else None,
            sent_period_key=sent_period_key(company_id, year, month) if holds_period else None,
        )
        db.add(entry)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            if holds_period:
                logger.warning(f"Company {company_id} already has a sent proforma for {year}-{month:02d}")
                raise AlreadyBilledException() from e
            raise
        await db.refresh(entry)
        return entry

    @staticmethod
    async def complete_history(
            db: AsyncSession,
            entry_id: str,
            *,
            status: BillingStatus,
            items: Optional[Sequence[CalculatedItem]] = None,
            **fields,
    ) -> BillingHistory:
        """
        Finalizes a row created with reserve_period=True.

        A SENT row keeps the period key and gets its sent_at; any other outcome
        releases the key so a later run may bill the month again.
        """
        result = await db.execute(select(BillingHistory).where(BillingHistory.id == entry_id))
        entry = result.scalar_one()

        entry.status = status
        for field, value in fields.items():
            setattr(entry, field, value)
        if items is not None:
            entry.items_snapshot = json.dumps([item.model_dump(mode="json") for item in items])
        if status == BillingStatus.SENT:
            entry.sent_at = datetime.utcnow()
        else:
            entry.sent_period_key = None

        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        await db.refresh(entry)
        return entry

    @staticmethod
    async def settle_history(db: AsyncSession, entry_id: str, status: BillingStatus,
                             error_message: Optional[str] = None):
        """Status-only finalize of a reserved row, used when complete_history cannot be applied."""
        values = {"status": status, "error_message": error_message}
        if status == BillingStatus.SENT:
            values["sent_at"] = datetime.utcnow()
        else:
            values["sent_period_key"] = None

        await db.rollback()
        try:
            await db.execute(update(BillingHistory).where(BillingHistory.id == entry_id).values(**values))
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
