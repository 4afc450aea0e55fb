from datetime import datetime, UTC

import httpx
import pytest

from mpstorage.client import StorageClient


ENDPOINT = "https://storage.example.com"
ACCESS_KEY = "AKIATESAFEKEY0000001"
SECRET_KEY = "wJalrXUtnFEMIaKkMDENGbPxRfIcxAmPlEkEyZaB"
BUCKET = "assets"
FROZEN_AT = datetime(2024, 5, 1, 12, 30, 45, 123000, tzinfo=UTC)


@pytest.fixture
def s3_env(monkeypatch):
    monkeypatch.setenv("S3_ENDPOINT", ENDPOINT)
    monkeypatch.setenv("S3_ACCESS_KEY", ACCESS_KEY)
    monkeypatch.setenv("S3_SECRET_KEY", SECRET_KEY)
    monkeypatch.setenv("S3_BUCKET", BUCKET)
    monkeypatch.delenv("S3_REGION", raising=False)
    return monkeypatch


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it was handed."""

    def __init__(self, handler=None):
        self.requests = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if handler is None:
                return httpx.Response(200)
            return handler(request)

        super().__init__(record)


@pytest.fixture
def make_client():
    def factory(handler=None, **kwargs):
        recorder = RecordingTransport(handler)
        return StorageClient(transport=recorder, **kwargs), recorder

    return factory
