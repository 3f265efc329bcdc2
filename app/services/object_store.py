"""Object storage for Step-B image uploads.

Images are uploaded by the browser straight to object storage using presigned
URLs; the API only hands out keys/URLs and deletes objects that a later
submission no longer references.

S3ObjectStore is used when S3_BUCKET is set. Without a bucket the local
development store returns `url=None` for every file, which tells the front end
to fall back to its inline upload path, and acknowledges deletes without
touching anything.
"""

import re
import uuid
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings, get_settings
from app.exceptions import TransportError
from app.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_UNSAFE_EMAIL_CHARS = re.compile(r"[^a-z0-9@._-]")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def make_key(email: Optional[str], filename: Optional[str]) -> str:
    """
    Build a collision-free object key under the participant's folder.

    '@' and '.' are kept so the folder reads like the email; everything else
    unsafe becomes '_' (no percent-encoding, which presigners would encode
    twice).

    Example:
        >>> make_key("Ada@Example.com", "card front.jpg")  # doctest: +ELLIPSIS
        'images/ada@example.com/..._card_front.jpg'
    """
    safe_email = _UNSAFE_EMAIL_CHARS.sub("_", (email or "unknown").lower())
    clean = _UNSAFE_FILENAME_CHARS.sub("_", filename or "file")
    return f"images/{safe_email}/{uuid.uuid4()}_{clean}"


class ObjectStore(ABC):
    """Presign/delete capability consumed by the Step-B flow."""

    @abstractmethod
    def presign(self, owner_email: str, files: Iterable[dict]) -> List[dict]:
        """Return one `{key, url, contentType}` entry per requested file.

        A `url` of None means no direct upload is available (dev mode).
        """

    @abstractmethod
    def delete(self, keys: List[str]) -> List[str]:
        """Delete objects by key and return the acknowledged keys."""


class LocalObjectStore(ObjectStore):
    """No-op store for local development and tests."""

    def presign(self, owner_email: str, files: Iterable[dict]) -> List[dict]:
        results = []
        for f in files:
            content_type = f.get("contentType") or DEFAULT_CONTENT_TYPE
            results.append({
                "key": make_key(owner_email, f.get("name") or "upload"),
                "url": None,
                "contentType": content_type,
                "mock": True,
            })
        return results

    def delete(self, keys: List[str]) -> List[str]:
        if keys:
            logger.warning(
                f"delete called with {len(keys)} keys but no object storage is configured; "
                "skipping deletion."
            )
        return list(keys)


class S3ObjectStore(ObjectStore):
    """Presigned PUT uploads and batch deletes against an S3 bucket.

    The boto3 client is created lazily from the default AWS credential chain.

    Raises:
        TransportError: When S3 rejects a presign or delete request
    """

    def __init__(self, settings: Optional[Settings] = None, client: Any = None):
        self.settings = settings or get_settings()
        self.bucket = self.settings.s3_bucket
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.settings.s3_region)
        return self._client

    def presign(self, owner_email: str, files: Iterable[dict]) -> List[dict]:
        client = self._get_client()
        results = []
        for f in files:
            content_type = f.get("contentType") or DEFAULT_CONTENT_TYPE
            key = make_key(owner_email, f.get("name") or "upload")
            try:
                url = client.generate_presigned_url(
                    "put_object",
                    Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                    ExpiresIn=self.settings.s3_presign_expires_seconds,
                )
            except (BotoCoreError, ClientError) as e:
                logger.error(f"S3 presign failed for {key}: {e}")
                raise TransportError("could not presign upload", details={"key": key})
            results.append({"key": key, "url": url, "contentType": content_type})
        return results

    def delete(self, keys: List[str]) -> List[str]:
        if not keys:
            return []
        try:
            response = self._get_client().delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in keys]},
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 delete of {len(keys)} object(s) failed: {e}")
            raise TransportError("could not delete objects", details={"keys": list(keys)})

        errors = response.get("Errors") or []
        if errors:
            logger.warning(
                f"S3 refused to delete {len(errors)} object(s): "
                f"{', '.join(error.get('Key', '?') for error in errors)}"
            )
        return [item["Key"] for item in response.get("Deleted") or []]


# Global singleton instance
_store_instance: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    """Get global ObjectStore instance (FastAPI dependency).

    S3 is used when S3_BUCKET is set; otherwise uploads run in dev mode.
    """
    global _store_instance
    if _store_instance is None:
        settings = get_settings()
        if settings.s3_configured:
            _store_instance = S3ObjectStore(settings)
        else:
            logger.warning("S3_BUCKET not set; image uploads run in local dev mode")
            _store_instance = LocalObjectStore()
    return _store_instance
