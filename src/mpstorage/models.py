"""
Data models for the Mon partenaire storage client
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional
from urllib.parse import urlsplit

from .error import ConfigurationException

DEFAULT_REGION = "us-east-1"

_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class StorageConfig:
    """Connection settings for the S3-compatible endpoint."""
    endpoint: str
    access_key: str
    secret_key: str
    bucket: str
    region: str = DEFAULT_REGION

    def __post_init__(self):
        for name in ("endpoint", "access_key", "secret_key", "bucket", "region"):
            object.__setattr__(self, name, (getattr(self, name) or "").strip())
        if not self.region:
            object.__setattr__(self, "region", DEFAULT_REGION)

        if not all((self.endpoint, self.access_key, self.secret_key, self.bucket)):
            raise ConfigurationException()

        try:
            parts = urlsplit(self.endpoint)
            parts.port
        except ValueError:
            parts = None
        if parts is None or parts.scheme.lower() not in _DEFAULT_PORTS or not parts.hostname:
            raise ConfigurationException(
                f"S3_ENDPOINT must be an absolute http(s) URL, got '{self.endpoint}'."
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StorageConfig":
        """
        Build a config from S3_* environment variables.

        Values are trimmed. A blank S3_REGION falls back to us-east-1 the
        same way an absent one does.
        """
        env = os.environ if environ is None else environ

        def read(name: str) -> str:
            return (env.get(name) or "").strip()

        return cls(
            endpoint=read("S3_ENDPOINT"),
            access_key=read("S3_ACCESS_KEY"),
            secret_key=read("S3_SECRET_KEY"),
            bucket=read("S3_BUCKET"),
            region=read("S3_REGION") or DEFAULT_REGION,
        )

    @property
    def scheme(self) -> str:
        return urlsplit(self.endpoint).scheme.lower()

    @property
    def host(self) -> str:
        """Endpoint host with the port only when it is not the scheme default."""
        parts = urlsplit(self.endpoint)
        hostname = parts.hostname
        if ":" in hostname:
            hostname = f"[{hostname}]"
        port = parts.port
        if port is None or port == _DEFAULT_PORTS[self.scheme]:
            return hostname
        return f"{hostname}:{port}"

    @property
    def base_path(self) -> str:
        path = urlsplit(self.endpoint).path
        return path[:-1] if path.endswith("/") else path


@dataclass
class ObjectPayload:
    """Binary content to upload, with its declared MIME type."""
    content: bytes
    content_type: Optional[str] = None
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class PresignedUrl:
    """Represents a presigned URL and the instant it stops being valid."""
    url: str
    method: str
    key: str
    expires_at: datetime


@dataclass
class StoredDocument:
    """Represents an uploaded project document."""
    storage_path: str
    original_name: Optional[str]
    mime_type: Optional[str]
    size_bytes: int
