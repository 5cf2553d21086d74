# crm_billing/services/workspace_service.py

import logging
from typing import List

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from crm_billing.exceptions.billing_exceptions import PermissionDeniedException
from crm_billing.models.workspace import User, Workspace, WorkspaceMember
from crm_billing.schemas.billing_schema import WorkspaceBillingConfigSchema

logger = logging.getLogger(__name__)


class WorkspaceService:

    @staticmethod
    async def get_workspace_users(db: AsyncSession, workspace: Workspace) -> List[User]:
        """Owner plus members; the candidates for the billing sender."""
        result = await db.execute(
            select(User)
            .join(WorkspaceMember, WorkspaceMember.user_id == User.id)
            .where(WorkspaceMember.workspace_id == workspace.id)
            .order_by(User.email)
        )
        users = list(result.scalars().all())

        if workspace.owner_id and all(user.id != workspace.owner_id for user in users):
            owner = await db.get(User, workspace.owner_id)
            if owner:
                users.insert(0, owner)
        return users

    @staticmethod
    async def update_billing_config(db: AsyncSession, workspace: Workspace, is_admin: bool,
                                    config: WorkspaceBillingConfigSchema) -> Workspace:
        if not is_admin:
            raise PermissionDeniedException()

        if config.billing_from_user_id:
            users = await WorkspaceService.get_workspace_users(db, workspace)
            if all(user.id != config.billing_from_user_id for user in users):
                raise HTTPException(status_code=400, detail="Sender user does not belong to this workspace")

        workspace.billing_enabled = config.billing_enabled
        workspace.billing_emails_cc = config.billing_emails_cc
        workspace.billing_emails_bcc = config.billing_emails_bcc
        workspace.billing_email_subject = config.billing_email_subject
        workspace.billing_email_body = config.billing_email_body
        workspace.billing_from_user_id = config.billing_from_user_id

        try:
            await db.commit()
            await db.refresh(workspace)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error updating billing config for workspace {workspace.id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to save billing configuration") from e
        return workspace
