# tests/test_upload.py
import json

import httpx
import pytest

from conftest import UPLOAD, file_item
from drivegate.exceptions import (
    AuthError,
    InvalidArgument,
    UploadSessionError,
    UploadTransferError,
)
from drivegate.upload import ResumableUpload, UploadState

SESSION_PATH = "/upload/drive/v3/files"
SESSION_URL = f"{UPLOAD}/files?uploadType=resumable&upload_id=session-1"


def session_opened():
    return httpx.Response(200, headers={"Location": SESSION_URL})


@pytest.mark.asyncio
async def test_upload_text_file(gateway, drive):
    """A 10-byte text payload goes through both phases and yields a FileRecord."""
    drive.add("POST", SESSION_PATH, session_opened())
    drive.add(
        "PUT",
        SESSION_PATH,
        httpx.Response(200, json=file_item("f1", "note.txt", "text/plain")),
    )

    record = await gateway.upload(b"0123456789", "text/plain", "note.txt")

    assert record.id == "f1"
    assert record.name == "note.txt"
    assert record.content_type == "text/plain"
    assert record.size_bytes is None

    session_request, transfer_request = drive.requests
    assert session_request.url.params["uploadType"] == "resumable"
    assert json.loads(session_request.content) == {"name": "note.txt"}
    assert session_request.headers["X-Upload-Content-Type"] == "text/plain"
    assert session_request.headers["X-Upload-Content-Length"] == "10"
    assert transfer_request.url.params["upload_id"] == "session-1"
    assert transfer_request.content == b"0123456789"
    assert transfer_request.headers["Content-Type"] == "text/plain"


@pytest.mark.asyncio
async def test_upload_into_container(gateway, drive):
    drive.add("POST", SESSION_PATH, session_opened())
    drive.add("PUT", SESSION_PATH, httpx.Response(200, json=file_item()))

    await gateway.upload(b"x", "text/plain", "note.txt", container_id="folder-1")

    assert json.loads(drive.requests[0].content) == {
        "name": "note.txt",
        "parents": ["folder-1"],
    }


@pytest.mark.asyncio
async def test_upload_then_list_shows_file(gateway, drive):
    drive.add("POST", SESSION_PATH, session_opened())
    drive.add("PUT", SESSION_PATH, httpx.Response(200, json=file_item("f1")))
    drive.add(
        "GET",
        "/drive/v3/files",
        httpx.Response(200, json={"files": [file_item("f1"), file_item("f0", "old.txt")]}),
    )

    uploaded = await gateway.upload(b"x", "text/plain", "note.txt")
    listed = await gateway.list_files()

    assert uploaded.id in {record.id for record in listed}


@pytest.mark.asyncio
async def test_upload_missing_location_header(gateway, drive):
    """Without a session URL the remote did not commit; no transfer is attempted."""
    drive.add("POST", SESSION_PATH, httpx.Response(200))

    with pytest.raises(UploadSessionError) as exc_info:
        await gateway.upload(b"x", "text/plain", "note.txt")

    assert exc_info.value.status == 200
    assert len(drive.requests) == 1


@pytest.mark.asyncio
async def test_upload_session_refused(gateway, drive):
    drive.add("POST", SESSION_PATH, httpx.Response(403, text="insufficient permissions"))

    with pytest.raises(UploadSessionError) as exc_info:
        await gateway.upload(b"x", "text/plain", "note.txt")

    assert exc_info.value.status == 403


@pytest.mark.asyncio
async def test_upload_session_unauthorized(gateway, drive):
    drive.add("POST", SESSION_PATH, httpx.Response(401))

    with pytest.raises(AuthError):
        await gateway.upload(b"x", "text/plain", "note.txt")


@pytest.mark.asyncio
async def test_upload_transfer_failure_is_not_retried(gateway, drive):
    drive.add("POST", SESSION_PATH, session_opened())
    drive.add("PUT", SESSION_PATH, httpx.Response(500, text="transfer broke"))

    with pytest.raises(UploadTransferError) as exc_info:
        await gateway.upload(b"x", "text/plain", "note.txt")

    assert exc_info.value.status == 500
    assert exc_info.value.body == "transfer broke"
    assert len(drive.calls("PUT", SESSION_PATH)) == 1


@pytest.mark.asyncio
async def test_upload_transfer_unusable_body(gateway, drive):
    drive.add("POST", SESSION_PATH, session_opened())
    drive.add("PUT", SESSION_PATH, httpx.Response(200, text="not json"))

    with pytest.raises(UploadTransferError):
        await gateway.upload(b"x", "text/plain", "note.txt")


@pytest.mark.asyncio
async def test_upload_empty_name(gateway, drive):
    with pytest.raises(InvalidArgument):
        await gateway.upload(b"x", "text/plain", "")

    assert drive.requests == []


@pytest.mark.asyncio
async def test_upload_state_transitions(gateway, drive):
    drive.add("POST", SESSION_PATH, session_opened())
    drive.add("PUT", SESSION_PATH, httpx.Response(200, json=file_item()))
    upload = ResumableUpload(gateway.transport, UPLOAD, b"x", "", "note.txt")

    assert upload.state is UploadState.NO_SESSION
    assert await upload.open_session() == SESSION_URL
    assert upload.state is UploadState.SESSION_OPEN
    record = await upload.transfer()
    assert upload.state is UploadState.TRANSFERRED
    assert upload.result == record
    # Missing content type falls back to a generic binary type.
    assert drive.requests[1].headers["Content-Type"] == "application/octet-stream"


@pytest.mark.asyncio
async def test_failed_upload_cannot_be_resumed(gateway, drive):
    drive.add("POST", SESSION_PATH, session_opened())
    drive.add("PUT", SESSION_PATH, httpx.ReadTimeout("timed out"))
    upload = ResumableUpload(gateway.transport, UPLOAD, b"x", "text/plain", "note.txt")

    with pytest.raises(UploadTransferError) as exc_info:
        await upload.run()

    assert exc_info.value.status is None
    assert upload.state is UploadState.FAILED
    with pytest.raises(RuntimeError):
        await upload.transfer()


@pytest.mark.asyncio
async def test_transfer_before_session_is_rejected(gateway, drive):
    upload = ResumableUpload(gateway.transport, UPLOAD, b"x", "text/plain", "note.txt")

    with pytest.raises(RuntimeError):
        await upload.transfer()

    assert drive.requests == []


@pytest.mark.asyncio
async def test_upload_session_request_error(gateway, drive):
    drive.add("POST", SESSION_PATH, httpx.TooManyRedirects("redirect loop"))

    with pytest.raises(UploadSessionError) as exc_info:
        await gateway.upload(b"x", "text/plain", "note.txt")

    assert exc_info.value.status is None
