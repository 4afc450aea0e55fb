"""
Mon partenaire storage - presigned S3 object storage for project media
"""

__version__ = "1.0.0"

from .client import StorageClient
from .keys import resolve_object_key, build_route_path, key_from_route_segments
from .media import (
    ProjectMediaStore,
    image_relay_headers,
    document_relay_headers,
    validate_images,
    validate_documents,
)
from .models import (
    StorageConfig,
    ObjectPayload,
    PresignedUrl,
    StoredDocument,
)
from .error import (
    StorageException,
    ConfigurationException,
    TransferException,
    InvalidObjectException,
    describe_failure,
)

__all__ = [
    "StorageClient",
    "ProjectMediaStore",
    "resolve_object_key",
    "build_route_path",
    "key_from_route_segments",
    "image_relay_headers",
    "document_relay_headers",
    "validate_images",
    "validate_documents",
    "StorageConfig",
    "ObjectPayload",
    "PresignedUrl",
    "StoredDocument",
    "StorageException",
    "ConfigurationException",
    "TransferException",
    "InvalidObjectException",
    "describe_failure",
]
