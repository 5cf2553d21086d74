# crm_billing/repository/database_async.py

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from crm_billing.core.config import settings
from crm_billing.models import Base  # Ensure all models are imported here

# Create the asynchronous engine
engine_async = create_async_engine(settings.database_url, echo=settings.SQL_ECHO)

# Create the asynchronous sessionmaker
SessionLocalAsync = sessionmaker(
    bind=engine_async,
    class_=AsyncSession,
    expire_on_commit=False
)


async def create_tables():
    async with engine_async.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
