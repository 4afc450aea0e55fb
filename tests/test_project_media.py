import re

import httpx
import pytest

from mpstorage.error import InvalidObjectException, TransferException, describe_failure
from mpstorage.media import (
    MAX_IMAGE_SIZE_BYTES,
    ProjectMediaStore,
    build_document_key,
    build_image_key,
    document_relay_headers,
    file_extension,
    image_relay_headers,
    sanitize_file_name,
    validate_documents,
    validate_images,
)
from mpstorage.models import ObjectPayload

UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


def _image(name="photo.png", content_type="image/png", size=10):
    return ObjectPayload(content=b"x" * size, content_type=content_type, filename=name)


def _document(name="plan.pdf", content_type="application/pdf"):
    return ObjectPayload(content=b"%PDF", content_type=content_type, filename=name)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("photo.PNG", ".png"),
        ("archive.tar.gz", ".gz"),
        ("weird.p-d_f", ".pdf"),
        ("noextension", ""),
        ("too.longextension123", ""),
        (None, ""),
    ],
)
def test_file_extension(name, expected):
    assert file_extension(name) == expected


def test_keys_are_scoped_by_owner_and_project():
    image_key = build_image_key("owner-1", "project-9", "Cover.JPG", 0)
    document_key = build_document_key("owner-1", "project-9", "Budget.xlsx", 4)

    assert re.fullmatch(rf"owner-1/project-9/images/1-{UUID}\.jpg", image_key)
    assert re.fullmatch(rf"owner-1/project-9/documents/5-{UUID}\.xlsx", document_key)


def test_image_validation():
    validate_images([_image(), _image("b.webp", "image/webp")], current_count=8)

    with pytest.raises(InvalidObjectException, match="already has 9"):
        validate_images([_image(), _image()], current_count=9)
    with pytest.raises(InvalidObjectException, match="at most 10"):
        validate_images([_image()] * 11)
    with pytest.raises(InvalidObjectException, match="formats"):
        validate_images([_image("a.gif", "image/gif")])
    with pytest.raises(InvalidObjectException, match="formats"):
        validate_images([_image(content_type=None)])
    with pytest.raises(InvalidObjectException, match="5 MB"):
        validate_images([_image(size=MAX_IMAGE_SIZE_BYTES + 1)])


def test_document_validation_accepts_mime_or_extension():
    validate_documents([
        _document(),
        _document("notes.TXT", None),
        _document("data.bin", "application/json"),
    ])

    with pytest.raises(InvalidObjectException) as exc_info:
        validate_documents([_document("tool.exe", "application/octet-stream")])
    assert exc_info.value.field == "projectDocuments"
    assert exc_info.value.status_code == 400

    with pytest.raises(InvalidObjectException, match="at most 20"):
        validate_documents([_document()] * 21)


def test_image_relay_headers_default_cache_control():
    headers = image_relay_headers({
        "Content-Type": "image/png",
        "Content-Length": "42",
        "ETag": '"e1"',
        "X-Amz-Request-Id": "ignored",
    })

    assert headers == {
        "content-type": "image/png",
        "content-length": "42",
        "etag": '"e1"',
        "cache-control": "public, max-age=3600",
    }


def test_document_relay_headers():
    upstream = httpx.Headers({
        "content-type": "application/pdf",
        "last-modified": "Wed, 01 May 2024 12:00:00 GMT",
        "cache-control": "no-store",
    })

    download = document_relay_headers(upstream, 'bad"name\r\n.pdf')
    preview = document_relay_headers(upstream, "plan.pdf", preview=True)

    assert download["content-disposition"] == 'attachment; filename="bad_name__.pdf"'
    assert download["cache-control"] == "no-store"
    assert download["last-modified"] == "Wed, 01 May 2024 12:00:00 GMT"
    assert preview["content-disposition"] == 'inline; filename="plan.pdf"'


def test_document_relay_keeps_upstream_disposition():
    headers = document_relay_headers(
        {"content-disposition": 'attachment; filename="orig.pdf"'}, "other.pdf"
    )

    assert headers["content-disposition"] == 'attachment; filename="orig.pdf"'
    assert headers["cache-control"] == "private, max-age=300"


def test_sanitize_file_name_falls_back():
    assert sanitize_file_name("  ") == "document"
    assert sanitize_file_name(None) == "document"


@pytest.mark.asyncio
async def test_upload_images_returns_generated_keys(s3_env, make_client):
    client, transport = make_client()
    store = ProjectMediaStore(client)

    keys = await store.upload_images("o", "p", [_image("a.png"), _image("b.png")], start_index=2)

    assert [k.split("/")[3].split("-")[0] for k in keys] == ["3", "4"]
    assert [r.url.path for r in transport.requests] == [f"/assets/{k}" for k in keys]


@pytest.mark.asyncio
async def test_upload_documents_describe_stored_files(s3_env, make_client):
    client, _ = make_client()
    store = ProjectMediaStore(client)

    documents = await store.upload_documents("o", "p", [_document("Plan.pdf")])

    assert documents[0].storage_path.startswith("o/p/documents/1-")
    assert documents[0].original_name == "Plan.pdf"
    assert documents[0].mime_type == "application/pdf"
    assert documents[0].size_bytes == 4


@pytest.mark.asyncio
async def test_failed_batch_removes_already_uploaded_objects(s3_env, make_client):
    puts = []

    def handler(request):
        if request.method == "PUT":
            puts.append(request.url.path)
            return httpx.Response(200 if len(puts) == 1 else 500, text="InternalError")
        return httpx.Response(204)

    client, transport = make_client(handler)
    store = ProjectMediaStore(client)

    with pytest.raises(TransferException):
        await store.upload_images("o", "p", [_image("a.png"), _image("b.png")])

    deletes = [r.url.path for r in transport.requests if r.method == "DELETE"]
    assert deletes == [puts[0]]


@pytest.mark.asyncio
async def test_delete_helpers_delegate_to_client(s3_env, make_client):
    client, transport = make_client(lambda request: httpx.Response(204))
    store = ProjectMediaStore(client)

    await store.delete_images(["o/p/images/1.png"])
    await store.delete_documents(["o/p/documents/1.pdf"])

    assert sorted(r.url.path for r in transport.requests) == [
        "/assets/o/p/documents/1.pdf",
        "/assets/o/p/images/1.png",
    ]


@pytest.mark.parametrize(
    "reason, fragment",
    [
        ("S3 upload failed (404). <Code>NoSuchBucket</Code>", "S3_BUCKET"),
        ("SignatureDoesNotMatch", "S3_SECRET_KEY"),
        (httpx.ConnectError("[Errno 111] Connection refused"), "S3_ENDPOINT"),
    ],
)
def test_describe_failure_hints(reason, fragment):
    assert fragment in describe_failure(reason)


def test_describe_failure_unknown_reason():
    assert describe_failure("something else") is None
