"""
Project image and document storage built on StorageClient
"""

import logging
import re
import uuid
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .client import StorageClient
from .error import InvalidObjectException
from .models import ObjectPayload, StoredDocument

MAX_PROJECT_IMAGES = 10
MAX_IMAGE_SIZE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/svg+xml",
})

MAX_PROJECT_DOCUMENTS = 20
MAX_DOCUMENT_SIZE_BYTES = 20 * 1024 * 1024
ALLOWED_DOCUMENT_MIME_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    "application/json",
})
ALLOWED_DOCUMENT_EXTENSIONS = frozenset({
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".csv", ".txt", ".json",
})

IMAGE_CACHE_CONTROL = "public, max-age=3600"
DOCUMENT_CACHE_CONTROL = "private, max-age=300"

_RELAYED_HEADERS = ("content-type", "content-length", "etag", "last-modified")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_UNSAFE_FILENAME_CHARS = re.compile(r'[\r\n"]')

logger = logging.getLogger(__name__)


def file_extension(filename: Optional[str]) -> str:
    """Return a short sanitized extension such as '.pdf', or '' if there is none."""
    if not filename or "." not in filename:
        return ""
    extension = "." + _NON_ALNUM.sub("", filename.rsplit(".", 1)[1].lower())
    return extension if len(extension) <= 12 else ""


def _build_key(owner_id: str, project_id: str, folder: str, filename: Optional[str], index: int) -> str:
    return f"{owner_id}/{project_id}/{folder}/{index + 1}-{uuid.uuid4()}{file_extension(filename)}"


def build_image_key(owner_id: str, project_id: str, filename: Optional[str], index: int) -> str:
    return _build_key(owner_id, project_id, "images", filename, index)


def build_document_key(owner_id: str, project_id: str, filename: Optional[str], index: int) -> str:
    return _build_key(owner_id, project_id, "documents", filename, index)


def is_supported_document(payload: ObjectPayload) -> bool:
    if payload.content_type and payload.content_type.lower() in ALLOWED_DOCUMENT_MIME_TYPES:
        return True
    extension = file_extension(payload.filename)
    return bool(extension) and extension in ALLOWED_DOCUMENT_EXTENSIONS


def validate_images(payloads: Sequence[ObjectPayload], current_count: int = 0) -> None:
    if current_count + len(payloads) > MAX_PROJECT_IMAGES:
        if current_count > 0:
            message = (
                f"Limit of {MAX_PROJECT_IMAGES} images reached. "
                f"This project already has {current_count} image(s)."
            )
        else:
            message = f"You can upload at most {MAX_PROJECT_IMAGES} images."
        raise InvalidObjectException(message, field="projectImages")
    if any(not p.content_type or p.content_type not in ALLOWED_IMAGE_MIME_TYPES for p in payloads):
        raise InvalidObjectException(
            "Accepted image formats: JPG, PNG, WEBP, SVG.", field="projectImages"
        )
    if any(p.size > MAX_IMAGE_SIZE_BYTES for p in payloads):
        raise InvalidObjectException("Each image must be 5 MB or smaller.", field="projectImages")


def validate_documents(payloads: Sequence[ObjectPayload], current_count: int = 0) -> None:
    if current_count + len(payloads) > MAX_PROJECT_DOCUMENTS:
        if current_count > 0:
            message = (
                f"Limit of {MAX_PROJECT_DOCUMENTS} documents reached. "
                f"This project already has {current_count} document(s)."
            )
        else:
            message = f"You can upload at most {MAX_PROJECT_DOCUMENTS} documents."
        raise InvalidObjectException(message, field="projectDocuments")
    if any(not is_supported_document(p) for p in payloads):
        raise InvalidObjectException(
            "Accepted document formats: PDF, Word, Excel, PowerPoint, TXT, CSV, JSON.",
            field="projectDocuments",
        )
    if any(p.size > MAX_DOCUMENT_SIZE_BYTES for p in payloads):
        raise InvalidObjectException("Each document must be 20 MB or smaller.", field="projectDocuments")


def sanitize_file_name(name: Optional[str]) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", name or "").strip() or "document"


def _copy_headers(upstream: Mapping[str, str]) -> Tuple[Dict[str, str], Dict[str, str]]:
    lowered = {k.lower(): v for k, v in upstream.items()}
    return {name: lowered[name] for name in _RELAYED_HEADERS if lowered.get(name)}, lowered


def image_relay_headers(upstream: Mapping[str, str]) -> Dict[str, str]:
    """Headers to send downstream when relaying a stored image."""
    headers, lowered = _copy_headers(upstream)
    headers["cache-control"] = lowered.get("cache-control") or IMAGE_CACHE_CONTROL
    return headers


def document_relay_headers(
    upstream: Mapping[str, str],
    file_name: Optional[str],
    preview: bool = False,
) -> Dict[str, str]:
    """
    Headers to send downstream when relaying a stored document.

    Previews are served inline; downloads keep the upstream disposition
    when it has one.
    """
    headers, lowered = _copy_headers(upstream)
    fallback = sanitize_file_name(file_name)
    if preview:
        headers["content-disposition"] = f'inline; filename="{fallback}"'
    else:
        headers["content-disposition"] = (
            lowered.get("content-disposition") or f'attachment; filename="{fallback}"'
        )
    headers["cache-control"] = lowered.get("cache-control") or DOCUMENT_CACHE_CONTROL
    return headers


class ProjectMediaStore:
    """
    Uploads and removes the images and documents attached to a project.

    A batch upload is all or nothing: when one file fails, the files already
    stored by that batch are deleted before the error propagates.
    """

    def __init__(self, client: StorageClient):
        self.client = client

    async def upload_images(
        self,
        owner_id: str,
        project_id: str,
        payloads: Sequence[ObjectPayload],
        start_index: int = 0,
    ) -> List[str]:
        keys = []
        try:
            for index, payload in enumerate(payloads):
                key = build_image_key(owner_id, project_id, payload.filename, start_index + index)
                keys.append(await self.client.upload_object(payload, key))
        except Exception:
            await self._rollback(keys)
            raise
        return keys

    async def upload_documents(
        self,
        owner_id: str,
        project_id: str,
        payloads: Sequence[ObjectPayload],
        start_index: int = 0,
    ) -> List[StoredDocument]:
        documents = []
        try:
            for index, payload in enumerate(payloads):
                key = build_document_key(owner_id, project_id, payload.filename, start_index + index)
                documents.append(StoredDocument(
                    storage_path=await self.client.upload_object(payload, key),
                    original_name=payload.filename,
                    mime_type=payload.content_type or None,
                    size_bytes=payload.size,
                ))
        except Exception:
            await self._rollback([d.storage_path for d in documents])
            raise
        return documents

    async def delete_images(self, keys: Sequence[str]) -> None:
        await self.client.delete_objects(keys)

    async def delete_documents(self, keys: Sequence[str]) -> None:
        await self.client.delete_objects(keys)

    async def _rollback(self, keys: List[str]) -> None:
        if not keys:
            return
        logger.warning("[Storage][Rollback] removing %s uploaded object(s)", len(keys))
        try:
            await self.client.delete_objects(keys)
        except Exception:
            logger.exception("[Storage][Rollback] cleanup failed")
