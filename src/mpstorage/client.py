"""
StorageClient - presigned-URL object storage for Mon partenaire
"""

import asyncio
import logging
from datetime import datetime, timedelta, UTC
from typing import Callable, Iterable, Mapping, Optional, Union, BinaryIO

import httpx

from ._http import HttpClient
from ._signer import AwsSignatureV4Signer, DEFAULT_EXPIRES_IN
from .error import ConfigurationException, StorageException, TransferException
from .keys import (
    DOCUMENT_ROUTE_PREFIX,
    IMAGE_ROUTE_PREFIX,
    build_route_path,
    is_absolute_url,
    resolve_object_key,
)
from .models import ObjectPayload, PresignedUrl, StorageConfig

SUPPORTED_METHODS = ("PUT", "GET", "DELETE")

Payload = Union[ObjectPayload, bytes, bytearray, BinaryIO]
DeleteErrorHandler = Callable[[str, Exception], None]


class StorageClient:
    """
    Client for an S3-compatible bucket reached through presigned URLs.

    Configuration is either injected or read from the S3_* environment
    variables on every call, so a changed environment takes effect on the
    next operation.

    Example:
        async with StorageClient() as storage:
            key = await storage.upload_object(
                ObjectPayload(content=data, content_type="image/png"),
                "owner/project/images/1-cover.png",
            )
            response = await storage.fetch_object(key)
            try:
                async for chunk in response.aiter_bytes():
                    ...
            finally:
                await response.aclose()
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        environ: Optional[Mapping[str, str]] = None,
        request_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize StorageClient.

        Args:
            config: Fixed configuration; when omitted the environment is read per call
            environ: Mapping to read S3_* variables from instead of os.environ
            request_timeout: Request timeout in seconds, httpx default when None
            transport: Custom httpx transport
        """
        self._config = config
        self._environ = environ
        self._http = HttpClient(timeout=request_timeout, transport=transport)
        self._logger = logging.getLogger(__name__)

    def get_config(self) -> StorageConfig:
        """Return the active configuration, raising ConfigurationException if incomplete."""
        if self._config is not None:
            return self._config
        return StorageConfig.from_env(self._environ)

    # Signing

    def create_presigned_url(
        self,
        method: str,
        key: str,
        timestamp: Optional[datetime] = None,
    ) -> str:
        """Sign a URL for PUT, GET or DELETE on ``key``, valid for 900 seconds."""
        if method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")

        config = self.get_config()
        url = AwsSignatureV4Signer(config).generate_presigned_url(
            method, key, timestamp=timestamp
        )

        self._logger.debug(
            "[Storage][PresignedUrl] method=%s host=%s bucket=%s key=%s expirySeconds=%s",
            method,
            config.host,
            config.bucket,
            key,
            DEFAULT_EXPIRES_IN,
        )
        return url

    def presigned_url(self, method: str, key: str) -> PresignedUrl:
        """Sign a URL and report when it expires."""
        now = datetime.now(UTC).replace(microsecond=0)
        return PresignedUrl(
            url=self.create_presigned_url(method, key, timestamp=now),
            method=method,
            key=key,
            expires_at=now + timedelta(seconds=DEFAULT_EXPIRES_IN),
        )

    # Object operations

    async def upload_object(self, payload: Payload, key: str) -> str:
        """
        Upload ``payload`` under ``key`` and return the key unchanged.

        The content-type header is sent only when the payload declares one.
        """
        url = self.create_presigned_url("PUT", key)
        content, content_type = _read_payload(payload)
        headers = {"content-type": content_type} if content_type else None

        response = await self._http.put(url, content=content, headers=headers)

        if not response.is_success:
            self._logger.warning(
                "[Storage][Upload] key=%s status=%s", key, response.status_code
            )
            raise TransferException("upload", key, response.status_code, _safe_text(response))

        self._logger.info("[Storage][Upload] key=%s bytes=%s", key, len(content))
        return key

    async def fetch_object(self, key: str) -> httpx.Response:
        """
        Open a streamed GET on ``key``.

        Status, headers and the unread body are handed to the caller, who
        must close the response.
        """
        url = self.create_presigned_url("GET", key)
        response = await self._http.stream_get(url)

        if not response.is_success:
            try:
                await response.aread()
                details = _safe_text(response)
            except httpx.HTTPError:
                details = ""
            finally:
                await response.aclose()
            self._logger.warning(
                "[Storage][Fetch] key=%s status=%s", key, response.status_code
            )
            raise TransferException("fetch", key, response.status_code, details)

        return response

    async def delete_objects(
        self,
        keys: Iterable[str],
        on_error: Optional[DeleteErrorHandler] = None,
    ) -> None:
        """
        Delete every key concurrently, best effort.

        Individual failures are logged and reported to ``on_error(key, exc)``
        but never raised. An incomplete configuration still raises before
        any request is made.
        """
        keys = list(keys)
        if not keys:
            return

        config = self.get_config()
        await asyncio.gather(*(self._delete_one(config, key, on_error) for key in keys))

    async def _delete_one(
        self,
        config: StorageConfig,
        key: str,
        on_error: Optional[DeleteErrorHandler],
    ) -> None:
        try:
            url = AwsSignatureV4Signer(config).generate_presigned_url("DELETE", key)
            response = await self._http.delete(url)
            if not response.is_success:
                raise TransferException("delete", key, response.status_code, _safe_text(response))
        except Exception as ex:
            self._logger.warning("[Storage][Delete] key=%s error=%s", key, ex)
            if on_error is not None:
                try:
                    on_error(key, ex)
                except Exception:
                    self._logger.exception("[Storage][Delete] on_error handler failed for key=%s", key)

    # Key resolution

    def _bucket_or_none(self) -> Optional[str]:
        try:
            return self.get_config().bucket
        except ConfigurationException:
            return None

    def resolve_object_key(self, value: Optional[str]) -> Optional[str]:
        """Recover the bucket key from a bare key or URL, None if it cannot be determined."""
        if value and not is_absolute_url(value):
            return resolve_object_key(value, None)
        return resolve_object_key(value, self._bucket_or_none())

    def image_route(self, value: Optional[str]) -> Optional[str]:
        """Internal image download path for a stored value."""
        return self._route(value, IMAGE_ROUTE_PREFIX)

    def document_route(self, value: Optional[str]) -> Optional[str]:
        """Internal document download path for a stored value."""
        return self._route(value, DOCUMENT_ROUTE_PREFIX)

    def _route(self, value: Optional[str], prefix: str) -> Optional[str]:
        if value and not is_absolute_url(value):
            return build_route_path(value, prefix, None)
        return build_route_path(value, prefix, self._bucket_or_none())

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        await self._http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _read_payload(payload: Payload):
    if isinstance(payload, ObjectPayload):
        return bytes(payload.content), payload.content_type
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload), None
    if hasattr(payload, "read"):
        return payload.read(), getattr(payload, "content_type", None)
    raise StorageException(f"Unsupported payload type: {type(payload).__name__}")


def _safe_text(response: httpx.Response) -> str:
    try:
        return response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""
