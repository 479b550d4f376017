import base64
import logging
import secrets
import time
from typing import Optional
import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formcraft.core.config import Settings
from formcraft.models.orm import FormFile, new_id
from formcraft.services.forms import record_form_file

logger = logging.getLogger(__name__)

class BlobStore:
    """S3-compatible object storage for uploaded answers."""

    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self.bucket = settings.S3_BUCKET_NAME
        self.client = client
        if self.client is None and settings.storage_configured():
            self.client = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT_URL,
                aws_access_key_id=settings.S3_ACCESS_KEY_ID,
                aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY.get_secret_value(),
                config=BotoConfig(signature_version="s3v4"),
                region_name=settings.S3_REGION,
            )

    @property
    def configured(self) -> bool:
        return self.client is not None

    def ensure_bucket(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError:
            logger.info(f"Creating storage bucket {self.bucket}")
            self.client.create_bucket(Bucket=self.bucket)

    def public_url(self, key: str) -> str:
        base = (self.settings.S3_PUBLIC_BASE_URL or "").rstrip("/")
        if base:
            return f"{base}/{key}"
        if self.settings.S3_ENDPOINT_URL:
            return f"{self.settings.S3_ENDPOINT_URL.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.settings.S3_REGION}.amazonaws.com/{key}"

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        return self.public_url(key)

    def remove(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)

def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store

def to_data_url(data: bytes, content_type: str) -> str:
    return f"data:{content_type or 'application/octet-stream'};base64,{base64.b64encode(data).decode('ascii')}"

def object_key(form_id: str, filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
    return f"forms/{form_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"

def store_upload(db: Session, blobs: Optional[BlobStore], *, form_id: str, field_id: str, filename: str,
                 content_type: str, data: bytes, response_id: Optional[str] = None) -> FormFile:
    """Put the bytes in the blob store, or inline them as a data URL when it is unavailable."""
    key: Optional[str] = None
    url: Optional[str] = None
    if blobs is not None and blobs.configured:
        key = object_key(form_id, filename)
        try:
            url = blobs.upload(key, data, content_type)
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Storage upload failed for form {form_id}, using inline fallback: {e}")
            key = None
    else:
        logger.info("Storage not available, using inline fallback")
    if url is None:
        url = to_data_url(data, content_type)
    fields = dict(form_id=form_id, response_id=response_id, field_id=field_id, file_name=filename,
                  file_type=content_type, file_size=len(data), file_url=url, storage_key=key)
    try:
        return record_form_file(db, **fields)
    except SQLAlchemyError as e:
        # the upload itself succeeded; hand back the reference without a metadata row
        db.rollback()
        logger.error(f"File metadata insert failed for form {form_id}: {e}")
        return FormFile(id=new_id(), **fields)
