"""
Attachment storage.

WHAT: Stores proposal attachment bytes and returns a FileReference, the
dict appended to ``Proposal.attached_files``.

WHY: The engine never reads attachment bytes; it only needs a stable
reference (id, filename, url, size, mime_type, uploaded_at). Keeping the
store behind a small protocol lets routes depend on ``get_file_store``
and tests substitute an in-memory store.

HOW: S3FileStore uploads with boto3 under
``proposals/{proposal_id}/{uuid}_{filename}`` and returns a presigned
download URL. botocore ClientError becomes FileStorageError (502).
"""

import io
import logging
import uuid
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from homebid.core.config import settings
from homebid.core.exceptions import FileStorageError


logger = logging.getLogger(__name__)

FileReference = Dict[str, Any]


def sanitize_filename(filename: str) -> str:
    """
    Remove path separators and null bytes, and cap the length.

    WHY: Filenames end up inside object keys; a "../" must not escape
    the proposal's prefix.
    """
    filename = filename.replace("/", "_").replace("\\", "_").replace("\x00", "")
    filename = filename.strip() or "attachment"

    if len(filename) > 200:
        name, ext = filename.rsplit(".", 1) if "." in filename else (filename, "")
        filename = f"{name[:190]}.{ext}" if ext else name[:200]

    return filename


def build_file_reference(
    file_id: str,
    filename: str,
    url: str,
    size: int,
    mime_type: str,
    uploaded_at: datetime,
) -> FileReference:
    return {
        "id": file_id,
        "filename": filename,
        "url": url,
        "size": size,
        "mime_type": mime_type,
        "uploaded_at": uploaded_at.isoformat(),
    }


class FileStore(Protocol):
    """Where attachment bytes go."""

    def store(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        proposal_id: int,
        uploaded_by: int,
    ) -> FileReference:
        ...

    def delete(self, file_id: str) -> None:
        ...


class S3FileStore:
    """
    S3-backed attachment store.

    Example:
        store = S3FileStore()
        ref = store.store(b"%PDF...", "quote.pdf", "application/pdf", 12, 7)
        ref["url"]  # presigned GET URL
    """

    def __init__(self, client: Optional[Any] = None, bucket_name: Optional[str] = None):
        """
        Initialize S3FileStore.

        Args:
            client: boto3 S3 client (built from settings when omitted)
            bucket_name: Target bucket (default S3_BUCKET_NAME)
        """
        self.s3_client = client or boto3.client(
            "s3",
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
            endpoint_url=settings.S3_ENDPOINT,
        )
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME

    def _key_for(self, proposal_id: int, filename: str) -> str:
        unique_id = str(uuid.uuid4())[:8]
        return f"proposals/{proposal_id}/{unique_id}_{filename}"

    def store(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        proposal_id: int,
        uploaded_by: int,
    ) -> FileReference:
        """
        Upload bytes and return a FileReference.

        Raises:
            FileStorageError: If the upload or URL signing fails
        """
        safe_filename = sanitize_filename(filename)
        key = self._key_for(proposal_id, safe_filename)

        try:
            self.s3_client.upload_fileobj(
                io.BytesIO(data),
                self.bucket_name,
                key,
                ExtraArgs={
                    "ContentType": mime_type,
                    "Metadata": {
                        "proposal_id": str(proposal_id),
                        "uploaded_by": str(uploaded_by),
                    },
                },
            )
            url = self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=settings.S3_PRESIGNED_URL_EXPIRY_SECONDS,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to store attachment for proposal {proposal_id}: {e}")
            raise FileStorageError(
                message="Failed to upload file to storage",
                error=str(e),
            )

        return build_file_reference(
            file_id=key,
            filename=safe_filename,
            url=url,
            size=len(data),
            mime_type=mime_type,
            uploaded_at=datetime.utcnow(),
        )

    def delete(self, file_id: str) -> None:
        """
        Delete a stored object.

        Raises:
            FileStorageError: If S3 rejects the delete
        """
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=file_id)
        except (ClientError, BotoCoreError) as e:
            raise FileStorageError(
                message="Failed to delete file from storage",
                error=str(e),
            )


@lru_cache
def get_file_store() -> FileStore:
    """FastAPI dependency returning the process-wide S3 store."""
    return S3FileStore()
