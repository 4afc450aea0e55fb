"""
AWS Signature V4 query-string signer for S3-compatible endpoints
"""

import hashlib
import hmac
from datetime import datetime, UTC
from typing import Dict, Optional
from urllib.parse import quote

from .models import StorageConfig

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
DEFAULT_EXPIRES_IN = 900
MAX_EXPIRES_IN = 604800


def encode_rfc3986(value: str) -> str:
    """Percent-encode everything outside the RFC 3986 unreserved set."""
    return quote(value, safe="~")


def encode_path(value: str) -> str:
    """Encode each non-empty path segment and rejoin them with '/'."""
    return "/".join(
        encode_rfc3986(segment) for segment in value.split("/") if segment
    )


def to_amz_date(timestamp: datetime) -> str:
    """Format as YYYYMMDDThhmmssZ; naive timestamps are taken as UTC."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")


def _hmac(key: bytes, value: str) -> bytes:
    return hmac.new(key, value.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, datestamp: str, region: str, service: str = SERVICE) -> bytes:
    """Derive the signing key for AWS Signature V4."""
    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), datestamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "aws4_request")


class AwsSignatureV4Signer:
    """
    Signs object URLs using AWS Signature Version 4 query authentication.

    Only the host header is signed and the payload is left unsigned, so a
    URL works for any body sent with the method it was signed for.
    """

    def __init__(self, config: StorageConfig):
        self.config = config

    def canonical_uri(self, key: str) -> str:
        return f"{self.config.base_path}/{encode_path(f'{self.config.bucket}/{key}')}"

    def _build_canonical_querystring(self, params: Dict[str, str]) -> str:
        """Build canonical query string for signing."""
        return "&".join(
            f"{encode_rfc3986(k)}={encode_rfc3986(v)}"
            for k, v in sorted(params.items())
        )

    def build_canonical_request(self, method: str, canonical_uri: str, canonical_querystring: str) -> str:
        return "\n".join([
            method,
            canonical_uri,
            canonical_querystring,
            f"host:{self.config.host}\n",
            "host",
            UNSIGNED_PAYLOAD,
        ])

    def generate_presigned_url(
        self,
        method: str,
        key: str,
        timestamp: Optional[datetime] = None,
        expires_in: int = DEFAULT_EXPIRES_IN,
    ) -> str:
        """
        Generate a presigned URL for one operation on one object.

        Args:
            method: HTTP method the URL will be used with
            key: Object key inside the configured bucket
            timestamp: Signing instant, defaults to now
            expires_in: Validity window in seconds

        Returns:
            The absolute URL, signature appended as the last query parameter.
        """
        if expires_in < 1 or expires_in > MAX_EXPIRES_IN:
            raise ValueError(
                "Expiry must be between 1 second and 604800 seconds (7 days) per AWS S3 specification."
            )

        if timestamp is None:
            timestamp = datetime.now(UTC)

        amz_date = to_amz_date(timestamp)
        datestamp = amz_date[:8]
        region = self.config.region
        credential_scope = f"{datestamp}/{region}/{SERVICE}/aws4_request"

        canonical_uri = self.canonical_uri(key)
        canonical_querystring = self._build_canonical_querystring({
            "X-Amz-Algorithm": ALGORITHM,
            "X-Amz-Credential": f"{self.config.access_key}/{credential_scope}",
            "X-Amz-Date": amz_date,
            "X-Amz-Expires": str(expires_in),
            "X-Amz-SignedHeaders": "host",
        })

        canonical_request = self.build_canonical_request(
            method, canonical_uri, canonical_querystring
        )

        string_to_sign = "\n".join([
            ALGORITHM,
            amz_date,
            credential_scope,
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ])

        signing_key = derive_signing_key(self.config.secret_key, datestamp, region)
        signature = hmac.new(
            signing_key,
            string_to_sign.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        origin = f"{self.config.scheme}://{self.config.host}"
        return f"{origin}{canonical_uri}?{canonical_querystring}&X-Amz-Signature={signature}"
