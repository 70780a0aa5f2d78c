from __future__ import annotations

from typing import Any, Optional

import boto3

from hotel_billing.core import config


class BlobStoreNotConfigured(RuntimeError):
    pass


def _get_required(value: Optional[str], name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise BlobStoreNotConfigured(f"Missing required blob store setting: {name}")
    return value


def _get_s3_client():
    access_key_id = _get_required(config.AWS_ACCESS_KEY_ID, "AWS_ACCESS_KEY_ID")
    secret_access_key = _get_required(config.AWS_SECRET_ACCESS_KEY, "AWS_SECRET_ACCESS_KEY")

    return boto3.client(
        "s3",
        endpoint_url=config.S3_ENDPOINT_URL,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name=config.AWS_REGION,
    )


def invoice_artifact_key(hotel_id: str, invoice_number: str) -> str:
    hotel_key = str(hotel_id).strip().strip("/")
    return "/".join(["invoices", hotel_key, f"{invoice_number}.pdf"])


class S3BlobStore:
    """Invoice artifacts in S3 or any S3-compatible endpoint (R2, MinIO)."""

    def __init__(self, bucket: Optional[str] = None, client: Any = None) -> None:
        self.bucket = (config.S3_BUCKET_INVOICES if bucket is None else bucket) or ""
        self._client = client

    @property
    def configured(self) -> bool:
        if not self.bucket:
            return False
        if self._client is not None:
            return True
        return bool(config.AWS_ACCESS_KEY_ID and config.AWS_SECRET_ACCESS_KEY)

    @property
    def client(self):
        if self._client is None:
            self._client = _get_s3_client()
        return self._client

    def put(self, key: str, data: bytes, content_type: str = "application/pdf") -> None:
        bucket = _get_required(self.bucket, "S3_BUCKET_INVOICES")
        self.client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)

    def presigned_url(self, key: str, expires_in: int = config.PRESIGNED_URL_EXPIRATION_SECONDS) -> str:
        bucket = _get_required(self.bucket, "S3_BUCKET_INVOICES")
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=expires_in,
        )
