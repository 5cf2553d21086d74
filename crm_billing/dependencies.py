# crm_billing/dependencies.py

import hmac
import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from crm_billing.core.config import settings
from crm_billing.models.workspace import User, Workspace, WorkspaceMember
from crm_billing.repository.database_async import SessionLocalAsync
from crm_billing.services.subscription_billing_service import SubscriptionBillingService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLES = ("OWNER", "ADMIN")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocalAsync() as session:
        yield session


@dataclass
class WorkspaceContext:
    """The signed-in user and the workspace they act on."""
    user: User
    workspace: Workspace
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def create_access_token(email: str) -> str:
    return jwt.encode({"sub": email}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


async def get_current_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


async def get_current_workspace(
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
) -> WorkspaceContext:
    # Owned workspace first, then any membership
    result = await db.execute(select(Workspace).where(Workspace.owner_id == user.id))
    workspace = result.scalars().first()
    if workspace:
        return WorkspaceContext(user=user, workspace=workspace, role="OWNER")

    result = await db.execute(
        select(WorkspaceMember)
        .where(WorkspaceMember.user_id == user.id)
        .options(selectinload(WorkspaceMember.workspace))
        .order_by(WorkspaceMember.id)
    )
    membership = result.scalars().first()
    if not membership:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User has no workspace")
    return WorkspaceContext(user=user, workspace=membership.workspace, role=membership.role)


async def verify_cron_secret(request: Request):
    """Guard for the scheduled billing trigger."""
    mode = settings.cron_auth_mode
    if mode == "disabled":
        logger.warning("Cron authorization is disabled, accepting unauthenticated billing trigger")
        return
    if mode == "unconfigured":
        logger.error("CRON_SECRET is not set and CRON_AUTH_DISABLED is off, refusing billing trigger")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    expected = f"Bearer {settings.CRON_SECRET}"
    provided = request.headers.get("authorization") or ""
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_billing_pipeline() -> SubscriptionBillingService:
    return SubscriptionBillingService()
