"""
Exception classes for the Mon partenaire storage client
"""

import re
from typing import Optional


class StorageException(Exception):
    """
    Base exception for all storage client errors.
    """

    def __init__(self, message: str, status_code: int = None, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code


class ConfigurationException(StorageException):
    """Thrown when the S3 environment is incomplete or invalid."""

    def __init__(self, message: str = None):
        super().__init__(
            message or (
                "Incomplete S3 configuration. Required variables: "
                "S3_ENDPOINT, S3_ACCESS_KEY, S3_SECRET_KEY, S3_BUCKET."
            ),
            error_code="InvalidConfiguration",
        )


class TransferException(StorageException):
    """Thrown when the storage endpoint answers an upload or fetch with a non-2xx status."""

    def __init__(self, operation: str, key: str, status_code: int, details: str = ""):
        self.operation = operation
        self.key = key
        self.details = details
        super().__init__(
            f"S3 {operation} failed for '{key}' ({status_code}). {details}".strip(),
            status_code=status_code,
            error_code=_parse_error_code(details),
        )


class InvalidObjectException(StorageException):
    """Thrown when a project media file is rejected before upload."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message, status_code=400, error_code="InvalidObject")
        self.field = field


_ERROR_CODE_PATTERN = re.compile(r"<Code>\s*([^<\s]+)\s*</Code>")

_FAILURE_HINTS = (
    (
        re.compile(r"NoSuchBucket", re.IGNORECASE),
        "The configured S3/MinIO bucket does not exist. Create the bucket named by S3_BUCKET and retry.",
    ),
    (
        re.compile(r"SignatureDoesNotMatch|AccessDenied|InvalidAccessKeyId", re.IGNORECASE),
        "S3/MinIO authentication failed. Check S3_ACCESS_KEY, S3_SECRET_KEY, S3_REGION and S3_ENDPOINT.",
    ),
    (
        re.compile(r"ECONNREFUSED|ENOTFOUND|EAI_AGAIN|ConnectError|Connection refused|Name or service not known", re.IGNORECASE),
        "Cannot reach the storage endpoint. Check S3_ENDPOINT (host/port), the MinIO container and the network.",
    ),
)


def _parse_error_code(details: str) -> Optional[str]:
    if not details:
        return None
    match = _ERROR_CODE_PATTERN.search(details)
    return match.group(1) if match else None


def describe_failure(reason) -> Optional[str]:
    """
    Map a raw storage failure to an operator-facing hint.

    Accepts an exception or a message string. Returns None when the
    failure does not match a known misconfiguration.
    """
    if isinstance(reason, BaseException):
        text = f"{type(reason).__name__}: {reason}"
        code = getattr(reason, "error_code", None)
        if code:
            text = f"{code} {text}"
    else:
        text = str(reason or "")

    for pattern, hint in _FAILURE_HINTS:
        if pattern.search(text):
            return hint
    return None
