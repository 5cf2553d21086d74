# crm_billing/services/blob_storage.py

import asyncio
import logging
import time
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from crm_billing.core.config import settings
from crm_billing.exceptions.billing_exceptions import BlobUploadException

logger = logging.getLogger(__name__)

s3 = boto3.client('s3', region_name=settings.S3_REGION)

BUCKET_NAME = settings.S3_BUCKET_NAME


def proforma_key(workspace_id: str, company_id: str, year: int, month: int,
                 manual_timestamp: Optional[int] = None) -> str:
    """
    proformas/<workspace>/<company>/<yyyy>-<mm>.pdf for scheduled runs, with a
    -manual-<timestamp> suffix for ad-hoc generations so they never overwrite it.
    """
    name = f"{year}-{month:02d}"
    if manual_timestamp is not None:
        name += f"-manual-{manual_timestamp}"
    return f"proformas/{workspace_id}/{company_id}/{name}.pdf"


def public_url(key: str) -> str:
    return f"{settings.S3_PUBLIC_HOST.rstrip('/')}/{key}"


async def upload_proforma_pdf(content: bytes, workspace_id: str, company_id: str, year: int, month: int,
                              manual: bool = False) -> str:
    """Uploads a proforma PDF and returns its public URL."""
    timestamp = int(time.time() * 1000) if manual else None
    file_key = proforma_key(workspace_id, company_id, year, month, timestamp)

    try:
        await asyncio.to_thread(
            s3.put_object,
            Bucket=BUCKET_NAME,
            Key=file_key,
            Body=content,
            ContentType="application/pdf",
            ACL="public-read",
        )
    except NoCredentialsError:
        raise BlobUploadException("AWS credentials not found")
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Failed to upload {file_key}: {e}")
        raise BlobUploadException(f"Failed to upload proforma PDF: {e}") from e

    logger.info(f"Uploaded proforma to s3://{BUCKET_NAME}/{file_key}")
    return public_url(file_key)
