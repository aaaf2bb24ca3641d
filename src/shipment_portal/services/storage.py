"""Object store for shipment document files.

File bytes live in an S3-compatible bucket; the Document row only holds the
object key. Keys are laid out per shipment:

    shipments/<shipment_id>/<random hex><ext>

Each object carries its SHA-256 digest in metadata, and downloads are
verified against the digest recorded on the Document row.

Example:
    store = DocumentStore.from_settings(get_settings().s3)
    stored = store.put(shipment_id, data, extension=".pdf", content_type="application/pdf")
    data, content_type = store.get(stored.key, expected_digest=stored.sha256_digest)
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from uuid import UUID

    from shipment_portal.core.config import S3Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Result of storing a document file.

    Attributes:
        key: Object key in the documents bucket.
        sha256_digest: SHA-256 hex digest of the bytes.
        size_bytes: Stored length.
        etag: S3 ETag.
    """

    key: str
    sha256_digest: str
    size_bytes: int
    etag: str


class StorageError(Exception):
    """An object storage call failed.

    Attributes:
        message: What went wrong.
        key: Object key, when the failure concerns one object.
        operation: Name of the S3 call that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.message = message
        self.key = key
        self.operation = operation
        super().__init__(message)


class ObjectNotFoundError(StorageError):
    """No object is stored under the key."""


class IntegrityError(StorageError):
    """Raised when downloaded bytes do not match the recorded digest."""


def document_key(shipment_id: UUID | str, extension: str) -> str:
    """Build a fresh, collision-resistant key for a shipment document."""
    return f"shipments/{shipment_id}/{secrets.token_hex(16)}{extension.lower()}"


class DocumentStore:
    """S3-compatible storage for shipment documents, bound to one bucket.

    Uses synchronous boto3; callers on the event loop run it in a thread.
    """

    DIGEST_METADATA_KEY = "sha256-digest"

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None,
        access_key: str,
        secret_key: str,
        region: str = "us-east-1",
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        max_retries: int = 3,
    ) -> None:
        self.bucket = bucket
        self._region = region

        config = Config(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": max_retries, "mode": "standard"},
            signature_version="s3v4",
        )

        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=config,
        )

        logger.debug("Initialized DocumentStore for bucket=%s endpoint=%s", bucket, endpoint_url)

    @classmethod
    def from_settings(cls, settings: S3Settings) -> DocumentStore:
        return cls(
            settings.bucket,
            endpoint_url=settings.endpoint,
            access_key=settings.access_key.get_secret_value(),
            secret_key=settings.secret_key.get_secret_value(),
            region=settings.region,
        )

    def ensure_bucket(self) -> bool:
        """Ensure the documents bucket exists, creating it if necessary.

        Returns:
            True if the bucket was created, False if it already existed.

        Raises:
            StorageError: If the bucket cannot be checked or created.
        """
        try:
            self._client.head_bucket(Bucket=self.bucket)
            return False
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code not in {"404", "NoSuchBucket"}:
                raise StorageError(
                    f"Failed to check bucket existence: {e}",
                    operation="head_bucket",
                ) from e

        try:
            # us-east-1 rejects an explicit LocationConstraint
            if self._region == "us-east-1":
                self._client.create_bucket(Bucket=self.bucket)
            else:
                self._client.create_bucket(
                    Bucket=self.bucket,
                    CreateBucketConfiguration={"LocationConstraint": self._region},
                )
        except ClientError as e:
            raise StorageError(
                f"Failed to create bucket: {e}",
                operation="create_bucket",
            ) from e

        logger.info("Created bucket: %s", self.bucket)
        return True

    def put(
        self,
        shipment_id: UUID | str,
        data: bytes,
        *,
        extension: str,
        content_type: str,
        file_name: str | None = None,
    ) -> StoredObject:
        """Store a document file under a new key for the shipment.

        Raises:
            StorageError: If the upload fails.
        """
        key = document_key(shipment_id, extension)
        sha256_digest = hashlib.sha256(data).hexdigest()

        metadata = {self.DIGEST_METADATA_KEY: sha256_digest}
        if file_name:
            # S3 metadata must be ASCII
            metadata["original-name"] = file_name.encode("ascii", "replace").decode("ascii")

        try:
            response = self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata,
            )
        except ClientError as e:
            raise StorageError(f"Upload failed: {e}", key=key, operation="upload") from e

        logger.debug(
            "Stored %s (%d bytes, sha256=%s...)",
            key,
            len(data),
            sha256_digest[:16],
        )

        return StoredObject(
            key=key,
            sha256_digest=sha256_digest,
            size_bytes=len(data),
            etag=response.get("ETag", ""),
        )

    def get(self, key: str, *, expected_digest: str | None = None) -> tuple[bytes, str]:
        """Fetch a document file and verify its digest.

        ``expected_digest`` takes precedence over the digest stored in
        object metadata.

        Returns:
            Tuple of (content bytes, content type).

        Raises:
            ObjectNotFoundError: If the object does not exist.
            IntegrityError: If the digest does not match.
            StorageError: If the download fails.
        """
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in {"NoSuchKey", "404"}:
                raise ObjectNotFoundError(
                    f"Object does not exist: {key}", key=key, operation="download"
                ) from e
            raise StorageError(f"Download failed: {e}", key=key, operation="download") from e

        data = response["Body"].read()
        stored_digest = response.get("Metadata", {}).get(self.DIGEST_METADATA_KEY)
        digest_to_check = expected_digest or stored_digest

        if digest_to_check:
            computed = hashlib.sha256(data).hexdigest()
            if computed != digest_to_check:
                raise IntegrityError(
                    f"Content integrity check failed: expected {digest_to_check[:16]}..., "
                    f"got {computed[:16]}...",
                    key=key,
                    operation="download",
                )

        return data, response.get("ContentType", "application/octet-stream")

    def delete(self, key: str) -> None:
        """Delete a document file. Deleting a missing key is not an error.

        Raises:
            StorageError: If the delete fails.
        """
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise StorageError(f"Delete failed: {e}", key=key, operation="delete") from e
        logger.debug("Deleted %s", key)

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in {"404", "NoSuchKey"}:
                return False
            raise StorageError(
                f"Existence check failed: {e}", key=key, operation="exists"
            ) from e
