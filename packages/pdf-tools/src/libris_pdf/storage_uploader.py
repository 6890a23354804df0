"""Idempotent PDF upload to object storage.

Objects live at ``internet_archive/{filename}.pdf`` in the ``books``
bucket and are never overwritten: an existing object short-circuits the
upload, and a concurrent writer's "already exists" conflict counts as
success. Talks to the storage REST API directly over httpx.
"""

from typing import Optional

import httpx
from libris_common import StorageError, get_logger, retry_on_exception

logger = get_logger(__name__)

DEFAULT_BUCKET = "books"
IA_PATH_PREFIX = "internet_archive"
DEFAULT_TIMEOUT_SECONDS = 60.0

_OBJECT_ENDPOINT = "/storage/v1/object"


def storage_path_for(filename: str) -> str:
    """Storage path for a sanitized filename (without extension).

    Raises:
        ValueError: If the filename is empty
    """
    if not filename:
        raise ValueError("Invalid filename: must be a non-empty string")
    return f"{IA_PATH_PREFIX}/{filename}.pdf"


def _is_already_exists(response: httpx.Response) -> bool:
    if response.status_code == 409:
        return True
    body = response.text.lower()
    return "already exists" in body or "duplicate" in body


class StorageUploader:
    """Client for the ``books`` bucket.

    Example:
        >>> uploader = StorageUploader(client, settings.storage_url, settings.storage_service_key)
        >>> url = await uploader.upload_pdf(pdf.content, sanitize_filename(identifier))
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        service_key: Optional[str],
        bucket: str = DEFAULT_BUCKET,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._timeout = timeout
        self._headers = {}
        if service_key:
            self._headers = {"Authorization": f"Bearer {service_key}", "apikey": service_key}

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}{_OBJECT_ENDPOINT}/{self.bucket}/{path}"

    def public_url(self, path: str) -> str:
        """Public download URL for a storage path."""
        return f"{self.base_url}{_OBJECT_ENDPOINT}/public/{self.bucket}/{path}"

    async def exists(self, path: str) -> bool:
        """Check whether an object exists; lookup failures count as absent."""
        if not path:
            return False
        try:
            response = await self._client.head(
                self._object_url(path), headers=self._headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            logger.warning("storage_exists_check_failed", path=path, error=str(e))
            return False
        return response.status_code == 200

    @retry_on_exception((httpx.TransportError,), max_attempts=3)
    async def _post_object(self, path: str, content: bytes) -> httpx.Response:
        return await self._client.post(
            self._object_url(path),
            content=content,
            headers={
                **self._headers,
                "Content-Type": "application/pdf",
                "x-upsert": "false",
            },
            timeout=self._timeout,
        )

    async def upload_pdf(self, content: bytes, filename: str) -> str:
        """Upload a validated PDF unless it is already stored.

        Args:
            content: PDF bytes
            filename: Sanitized filename without extension

        Returns:
            Public URL of the stored object

        Raises:
            StorageError: If the upload fails for any reason other than the
                object already existing
        """
        if not content:
            raise StorageError("Invalid PDF buffer: must be non-empty")
        try:
            path = storage_path_for(filename)
        except ValueError as e:
            raise StorageError(str(e)) from e

        if await self.exists(path):
            logger.info("storage_object_exists", path=path)
            return self.public_url(path)

        try:
            response = await self._post_object(path, content)
        except httpx.HTTPError as e:
            logger.error("storage_upload_failed", path=path, error=str(e))
            raise StorageError(f"Storage upload failed: {e}") from e

        if response.is_success:
            logger.info("storage_upload_complete", path=path, size=len(content))
            return self.public_url(path)

        if _is_already_exists(response):
            logger.info("storage_object_exists_concurrent", path=path)
            return self.public_url(path)

        logger.error("storage_upload_failed", path=path, status=response.status_code)
        raise StorageError(f"Storage upload failed: {response.status_code} {response.text[:200]}")

    async def delete_file(self, path: str) -> bool:
        """Remove an object; returns False on any failure."""
        if not path:
            return False
        try:
            response = await self._client.request(
                "DELETE",
                f"{self.base_url}{_OBJECT_ENDPOINT}/{self.bucket}",
                json={"prefixes": [path]},
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("storage_delete_failed", path=path, error=str(e))
            return False

        if not response.is_success:
            logger.warning("storage_delete_failed", path=path, status=response.status_code)
            return False

        logger.info("storage_object_deleted", path=path)
        return True
