"""Daily batch and manual generation against a real database with faked side effects."""

import json
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.future import select

from conftest import FakeAccounting, FakeEmailSender, FakeUploader, fake_render, manual_item
from crm_billing.exceptions.billing_exceptions import BlobUploadException, NoSubscriptionItemsException
from crm_billing.models.billing import CalculatedBase, CountType
from crm_billing.models.billing_history import BillingHistory, BillingStatus, sent_period_key
from crm_billing.models.workspace import User
from crm_billing.services.accounting_bridge import AccountingOutcome
from crm_billing.services.billing_service import BillingService
from crm_billing.services.subscription_billing_service import (
    NO_ITEMS_ERROR,
    NO_RECIPIENTS_ERROR,
    SubscriptionBillingService,
)

TODAY = date(2024, 3, 15)


async def history(db, company_id):
    result = await db.execute(
        select(BillingHistory)
        .where(BillingHistory.company_id == company_id)
        .order_by(BillingHistory.generated_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class TestBillingBatch:

    @pytest.mark.asyncio
    async def test_sends_proforma_and_records_sent_row(self, db, workspace, add_company, pipeline, mailer,
                                                       uploader):
        accounting = FakeAccounting(AccountingOutcome(attempted=True, doc_id="991", doc_number="COT-000123"))
        pipeline.accounting = accounting
        company = await add_company(
            workspace,
            contacts=("ana@cliente.test", "luis@cliente.test"),
            active_projects=3,
            active_users=5,
            items=[
                {**manual_item(price="10.00", code="PROJ"), "count_type": CountType.ACTIVE_PROJECTS,
                 "manual_quantity": None},
                {**manual_item(price="20.00", code="USR"), "count_type": CountType.CALCULATED,
                 "manual_quantity": None, "calculated_base": CalculatedBase.USERS, "calculated_subtract": 2},
            ],
        )
        company_id = company.id

        result = await pipeline.run_billing_batch(db, TODAY)

        assert (result.processed, result.sent, result.failed) == (1, 1, 0)
        assert result.day == 15
        assert result.details[0].status == "sent"

        [row] = await history(db, company_id)
        assert row.status == BillingStatus.SENT
        assert row.proforma_number == "COT-000123"
        assert row.admcloud_doc_id == "991"
        assert row.total_amount == Decimal("90.00")
        assert row.tax_amount == Decimal("0")
        assert row.sent_at is not None
        assert row.sent_period_key == sent_period_key(company_id, 2024, 3)
        assert sorted(json.loads(row.recipients)) == ["ana@cliente.test", "luis@cliente.test"]
        assert len(json.loads(row.items_snapshot)) == 2

        assert sorted(mail["to"] for mail in mailer.sent) == ["ana@cliente.test", "luis@cliente.test"]
        # CC copies go out once, with the first delivered message
        assert mailer.sent[0]["cc"] == ["finance@acme.test"]
        assert mailer.sent[1]["cc"] is None
        assert mailer.sent[0]["attachments"][0].filename == "Proforma_COT_000123.pdf"
        assert uploader.uploads == [(workspace.id, company_id, 2024, 3, False)]

    @pytest.mark.asyncio
    async def test_missing_recipients_fails_and_batch_continues(self, db, workspace, add_company, pipeline):
        lonely = await add_company(workspace, name="A Sin Contactos", contacts=())
        billed = await add_company(workspace, name="B Con Contactos")
        lonely_id, billed_id = lonely.id, billed.id

        result = await pipeline.run_billing_batch(db, TODAY)

        assert (result.processed, result.sent, result.failed) == (2, 1, 1)
        statuses = {detail.company_id: detail.status for detail in result.details}
        assert statuses == {lonely_id: "no_recipients", billed_id: "sent"}

        [row] = await history(db, lonely_id)
        assert row.status == BillingStatus.FAILED
        assert "missing recipients" in row.error_message
        assert row.error_message == NO_RECIPIENTS_ERROR
        assert row.sent_period_key is None

    @pytest.mark.asyncio
    async def test_accounting_failure_falls_back_to_local_number(self, db, workspace, add_company, pipeline,
                                                                 mailer):
        pipeline.accounting = FakeAccounting(AccountingOutcome(attempted=True, error="Connection timed out"))
        company = await add_company(workspace, admcloud_relationship_id="REL-1")
        company_id = company.id

        result = await pipeline.run_billing_batch(db, TODAY)

        assert result.sent == 1
        [row] = await history(db, company_id)
        assert row.status == BillingStatus.SENT
        assert row.admcloud_doc_id is None
        assert row.proforma_number == f"PRO-202403-{company_id[-6:]}"
        assert row.error_message == "AdmCloud: Connection timed out"
        assert len(mailer.sent) == 1

    @pytest.mark.asyncio
    async def test_second_run_does_not_send_again(self, db, workspace, add_company, pipeline, mailer):
        company = await add_company(workspace)
        company_id = company.id

        first = await pipeline.run_billing_batch(db, TODAY)
        second = await pipeline.run_billing_batch(db, TODAY)

        assert first.sent == 1
        assert (second.processed, second.sent, second.failed) == (1, 0, 0)
        assert second.details[0].status == "skipped"
        assert len(mailer.sent) == 1
        rows = await history(db, company_id)
        assert [row.status for row in rows] == [BillingStatus.SENT]

    @pytest.mark.asyncio
    async def test_existing_reservation_blocks_concurrent_run(self, db, workspace, add_company, pipeline,
                                                              mailer):
        company = await add_company(workspace)
        company_id = company.id
        # Another worker holds the period but has not finished yet
        db.add(BillingHistory(
            company_id=company_id, workspace_id=workspace.id, billing_month=3, billing_year=2024,
            status=BillingStatus.PENDING, sent_period_key=sent_period_key(company_id, 2024, 3),
        ))
        await db.commit()

        result = await pipeline.run_billing_batch(db, TODAY)

        assert result.details[0].status == "skipped"
        assert mailer.sent == []
        assert len(await history(db, company_id)) == 1

    @pytest.mark.asyncio
    async def test_all_sends_failing_releases_the_period(self, db, workspace, add_company, accounting, uploader):
        company = await add_company(workspace)
        company_id = company.id
        failing = SubscriptionBillingService(
            accounting=accounting,
            email_sender=FakeEmailSender(failing={"ana@cliente.test"}),
            render_pdf=fake_render,
            upload_pdf=uploader,
        )

        result = await failing.run_billing_batch(db, TODAY)

        assert (result.sent, result.failed) == (0, 1)
        [row] = await history(db, company_id)
        assert row.status == BillingStatus.FAILED
        assert row.sent_period_key is None
        assert row.pdf_url is not None

        retry_mailer = FakeEmailSender()
        retry = SubscriptionBillingService(
            accounting=accounting, email_sender=retry_mailer, render_pdf=fake_render, upload_pdf=uploader,
        )
        result = await retry.run_billing_batch(db, TODAY)

        assert result.sent == 1
        assert len(retry_mailer.sent) == 1

    @pytest.mark.asyncio
    async def test_upload_failure_records_failed_row(self, db, workspace, add_company, accounting, mailer):
        broken = await add_company(workspace, name="A Cliente")
        broken_id = broken.id
        service = SubscriptionBillingService(
            accounting=accounting,
            email_sender=mailer,
            render_pdf=fake_render,
            upload_pdf=FakeUploader(error=BlobUploadException("Bucket unavailable")),
        )

        result = await service.run_billing_batch(db, TODAY)

        assert result.failed == 1
        assert result.details[0].error == "Bucket unavailable"
        [row] = await history(db, broken_id)
        assert row.status == BillingStatus.FAILED
        assert row.error_message == "Bucket unavailable"
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_company_without_items_fails(self, db, workspace, add_company, pipeline):
        company = await add_company(workspace, items=[])
        company_id = company.id

        result = await pipeline.run_billing_batch(db, TODAY)

        assert result.details[0].status == "failed"
        [row] = await history(db, company_id)
        assert row.error_message == NO_ITEMS_ERROR

    @pytest.mark.asyncio
    async def test_only_due_active_auto_billed_companies_are_processed(self, db, workspace, add_company,
                                                                       pipeline):
        await add_company(workspace, name="Otro dia", billing_day=16)
        await add_company(workspace, name="Prospecto", status="PROSPECTO")
        await add_company(workspace, name="Manual", auto_billing_enabled=False)
        due = await add_company(workspace, name="Hoy")
        due_id = due.id

        result = await pipeline.run_billing_batch(db, TODAY)

        assert result.processed == 1
        assert result.details[0].company_id == due_id

    @pytest.mark.asyncio
    async def test_unconfigured_sender_fails_every_due_company(self, db, workspace, add_company, pipeline,
                                                               mailer):
        company = await add_company(workspace)
        company_id = company.id
        sender = await db.get(User, workspace.billing_from_user_id)
        sender.email_configured = False
        await db.commit()

        result = await pipeline.run_billing_batch(db, TODAY)

        assert (result.processed, result.failed) == (1, 1)
        assert mailer.sent == []
        [row] = await history(db, company_id)
        assert row.status == BillingStatus.FAILED
        assert row.error_message == "Billing sender email is not configured"

    @pytest.mark.asyncio
    async def test_unconfigured_sender_skips_already_billed_company(self, db, workspace, add_company, pipeline,
                                                                    mailer):
        company = await add_company(workspace)
        company_id = company.id
        first = await pipeline.run_billing_batch(db, TODAY)
        sender = await db.get(User, workspace.billing_from_user_id)
        sender.email_configured = False
        await db.commit()

        second = await pipeline.run_billing_batch(db, TODAY)

        assert first.sent == 1
        assert (second.processed, second.sent, second.failed) == (1, 0, 0)
        assert second.details[0].status == "skipped"
        assert len(mailer.sent) == 1
        rows = await history(db, company_id)
        assert [row.status for row in rows] == [BillingStatus.SENT]

    @pytest.mark.asyncio
    async def test_finalize_error_keeps_a_single_sent_row(self, db, workspace, add_company, pipeline, mailer,
                                                          monkeypatch):
        company = await add_company(workspace)
        company_id = company.id

        async def failing_complete(*args, **kwargs):
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

        monkeypatch.setattr(BillingService, "complete_history", staticmethod(failing_complete))

        result = await pipeline.run_billing_batch(db, TODAY)

        assert (result.sent, result.failed) == (1, 0)
        assert len(mailer.sent) == 1
        [row] = await history(db, company_id)
        assert row.status == BillingStatus.SENT
        assert row.sent_at is not None
        assert row.sent_period_key == sent_period_key(company_id, 2024, 3)

        again = await pipeline.run_billing_batch(db, TODAY)

        assert again.details[0].status == "skipped"
        assert len(mailer.sent) == 1

    @pytest.mark.asyncio
    async def test_finalize_error_after_failure_releases_the_period(self, db, workspace, add_company,
                                                                   accounting, mailer, monkeypatch):
        company = await add_company(workspace)
        company_id = company.id
        service = SubscriptionBillingService(
            accounting=accounting,
            email_sender=mailer,
            render_pdf=fake_render,
            upload_pdf=FakeUploader(error=BlobUploadException("Bucket unavailable")),
        )

        async def failing_complete(*args, **kwargs):
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

        monkeypatch.setattr(BillingService, "complete_history", staticmethod(failing_complete))

        result = await service.run_billing_batch(db, TODAY)

        assert result.failed == 1
        assert result.details[0].error == "Bucket unavailable"
        [row] = await history(db, company_id)
        assert row.status == BillingStatus.FAILED
        assert row.sent_period_key is None
        assert row.error_message == "Bucket unavailable"

    @pytest.mark.asyncio
    async def test_batch_result_carries_run_timestamp(self, db, workspace, pipeline):
        started = datetime(2024, 3, 15, 8, 0, 5)

        result = await pipeline.run_billing_batch(db, now=started)

        assert result.date == started
        assert result.day == 15
        assert result.processed == 0


class TestManualProforma:

    @pytest.mark.asyncio
    async def test_generates_pending_row_without_email(self, db, workspace, add_company, pipeline, mailer,
                                                       uploader):
        company = await add_company(workspace, items=[manual_item(price="45.00", quantity="2")])
        company_id = company.id

        result = await pipeline.generate_manual_proforma(db, workspace, company_id, TODAY)

        assert result.success
        assert result.proforma_number == f"PRO-202403-{company_id[-6:]}-M"
        assert result.adm_cloud_created is False
        assert result.total == 90.0
        assert result.items_count == 1
        assert uploader.uploads[0][-1] is True
        assert mailer.sent == []

        [row] = await history(db, company_id)
        assert row.status == BillingStatus.PENDING
        assert row.sent_period_key is None

    @pytest.mark.asyncio
    async def test_manual_run_does_not_block_scheduled_run(self, db, workspace, add_company, pipeline, mailer):
        company = await add_company(workspace)
        company_id = company.id

        await pipeline.generate_manual_proforma(db, workspace, company_id, TODAY)
        result = await pipeline.run_billing_batch(db, TODAY)

        assert result.sent == 1
        assert len(mailer.sent) == 1

    @pytest.mark.asyncio
    async def test_accounting_error_is_passed_through(self, db, workspace, add_company, pipeline):
        pipeline.accounting = FakeAccounting(AccountingOutcome(attempted=True, error="Error 401: Unauthorized"))
        company = await add_company(workspace)

        result = await pipeline.generate_manual_proforma(db, workspace, company.id, TODAY)

        assert result.success
        assert result.adm_cloud_error == "Error 401: Unauthorized"
        assert result.adm_cloud_doc_id is None

    @pytest.mark.asyncio
    async def test_requires_items(self, db, workspace, add_company, pipeline):
        company = await add_company(workspace, items=[])

        with pytest.raises(NoSubscriptionItemsException):
            await pipeline.generate_manual_proforma(db, workspace, company.id, TODAY)
