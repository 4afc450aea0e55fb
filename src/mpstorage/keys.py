"""
Resolution of stored object references back to bucket keys.

Stored values come in three shapes: a bare key (``projects/1/cover.png``),
a URL pointing straight at the bucket path
(``https://minio.example/assets/projects/1/cover.png``), or a Supabase
storage URL (``https://x.supabase.co/storage/v1/object/public/assets/doc.pdf``).
"""

import re
from typing import List, Optional
from urllib.parse import unquote, urlsplit

from ._signer import encode_path

IMAGE_ROUTE_PREFIX = "/api/project-images"
DOCUMENT_ROUTE_PREFIX = "/api/project-documents"

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def is_absolute_url(value: str) -> bool:
    return bool(_ABSOLUTE_URL.match(value))


def decode_segment(segment: str) -> str:
    """Strictly percent-decode one path segment, raising ValueError on malformed input."""
    if _BAD_ESCAPE.search(segment):
        raise ValueError(f"Malformed percent escape in '{segment}'")
    return unquote(segment, errors="strict")


def _path_segments(url: str) -> List[str]:
    path = urlsplit(url).path
    return [decode_segment(segment) for segment in path.split("/") if segment]


def resolve_object_key(value: Optional[str], bucket: Optional[str]) -> Optional[str]:
    """
    Recover the object key from a stored value.

    Bare keys are returned with leading slashes stripped. URLs are searched
    for the bucket segment, then for the Supabase ``storage/v1/object/<mode>/<bucket>``
    layout. Returns None when no key can be determined.
    """
    if not value:
        return None

    if not is_absolute_url(value):
        return value.lstrip("/")

    if not bucket:
        return None

    try:
        segments = _path_segments(value)
    except ValueError:
        return None

    if bucket in segments:
        index = segments.index(bucket)
        if len(segments) > index + 1:
            return "/".join(segments[index + 1:])

    if segments[:2] == ["storage", "v1"] and "object" in segments:
        bucket_index = segments.index("object") + 2
        if (
            len(segments) > bucket_index + 1
            and segments[bucket_index] == bucket
        ):
            return "/".join(segments[bucket_index + 1:])

    return None


def build_route_path(value: Optional[str], route_prefix: str, bucket: Optional[str]) -> Optional[str]:
    """Turn a stored value into an internal download route, or None."""
    key = resolve_object_key(value, bucket)
    if not key:
        return None
    return f"{route_prefix}/{encode_path(key)}"


def key_from_route_segments(segments: Optional[List[str]]) -> Optional[str]:
    """Rebuild an object key from the percent-encoded segments of a download route."""
    if not segments:
        return None
    try:
        return "/".join(decode_segment(segment) for segment in segments)
    except ValueError:
        return None
