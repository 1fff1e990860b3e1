"""Tests for the receipt upload client."""

from __future__ import annotations

import httpx
import pytest
import respx

from expense_flow.api.uploads import FileStorageClient
from expense_flow.errors import UploadError
from expense_flow.models import UploadConfig

UPLOAD_URL = "http://files.test/api/v1/files/upload"
PDF = b"%PDF-1.4 test receipt"


@pytest.fixture
def storage() -> FileStorageClient:
    return FileStorageClient(UploadConfig(url=UPLOAD_URL))


@pytest.mark.asyncio
@respx.mock
async def test_upload_receipt(storage: FileStorageClient):
    route = respx.post(UPLOAD_URL).mock(
        return_value=httpx.Response(
            201,
            json={
                "originalname": "receipt.pdf",
                "filename": "a1b2.pdf",
                "location": "http://files.test/api/v1/files/a1b2.pdf",
            },
        )
    )

    async with storage:
        ref = await storage.upload_receipt(PDF, "application/pdf", "receipt.pdf")

    assert ref.url == "http://files.test/api/v1/files/a1b2.pdf"
    assert ref.filename == "a1b2.pdf"
    request = route.calls.last.request
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b'filename="receipt.pdf"' in request.content


@pytest.mark.asyncio
@respx.mock
async def test_upload_non_2xx(storage: FileStorageClient):
    respx.post(UPLOAD_URL).mock(return_value=httpx.Response(500))

    async with storage:
        with pytest.raises(UploadError, match="Upload failed: 500"):
            await storage.upload_receipt(PDF, "application/pdf", "receipt.pdf")


@pytest.mark.asyncio
@respx.mock
async def test_upload_network_failure(storage: FileStorageClient):
    respx.post(UPLOAD_URL).mock(side_effect=httpx.ConnectError("connection refused"))

    async with storage:
        with pytest.raises(UploadError, match="Upload failed"):
            await storage.upload_receipt(PDF, "application/pdf", "receipt.pdf")


@pytest.mark.asyncio
@respx.mock
async def test_upload_unexpected_body(storage: FileStorageClient):
    respx.post(UPLOAD_URL).mock(return_value=httpx.Response(200, json={"ok": True}))

    async with storage:
        with pytest.raises(UploadError, match="unexpected response"):
            await storage.upload_receipt(PDF, "application/pdf", "receipt.pdf")


@pytest.mark.asyncio
@respx.mock
async def test_rejected_type_is_never_sent(storage: FileStorageClient):
    route = respx.post(UPLOAD_URL)

    async with storage:
        with pytest.raises(UploadError, match="Only JPEG, PNG, and PDF"):
            await storage.upload_receipt(b"GIF89a", "image/gif", "receipt.gif")

    assert not route.called


@pytest.mark.asyncio
@respx.mock
async def test_oversized_file_is_never_sent(storage: FileStorageClient):
    route = respx.post(UPLOAD_URL)

    async with storage:
        with pytest.raises(UploadError, match="5MB"):
            await storage.upload_receipt(b"x" * (5 * 1024 * 1024 + 1), "image/png", "big.png")

    assert not route.called


@pytest.mark.asyncio
@respx.mock
async def test_upload_to_state_records_failure(storage: FileStorageClient):
    respx.post(UPLOAD_URL).mock(return_value=httpx.Response(503))

    async with storage:
        state = await storage.upload_to_state(PDF, "application/pdf", "receipt.pdf")

    assert state.url is None
    assert state.filename == "receipt.pdf"
    assert "503" in state.error
    assert not state.is_complete


@pytest.mark.asyncio
@respx.mock
async def test_upload_to_state_success(storage: FileStorageClient):
    respx.post(UPLOAD_URL).mock(
        return_value=httpx.Response(
            201, json={"originalname": "r.png", "filename": "f.png", "location": "http://files.test/f.png"}
        )
    )

    async with storage:
        state = await storage.upload_to_state(b"\x89PNG", "image/png", "r.png")

    assert state.is_complete
    assert state.to_ref().url == "http://files.test/f.png"
