# upload.py
import logging
from enum import Enum
from typing import Optional

import httpx

from .exceptions import UploadSessionError, UploadTransferError, error_for_status
from .storage.dto import DEFAULT_CONTENT_TYPE, FILE_FIELDS, FileRecord
from .transport import AuthorizedTransport


class UploadState(Enum):
    NO_SESSION = "no_session"
    SESSION_OPEN = "session_open"
    TRANSFERRED = "transferred"
    FAILED = "failed"


class ResumableUpload:
    """
    A single run of the two-phase resumable upload protocol.

    NO_SESSION -> SESSION_OPEN -> TRANSFERRED, or FAILED from either phase.
    A failed upload is never resumed or retried; the only recourse is a new
    ResumableUpload with the full payload. The remote may keep an orphaned
    partial object after a failed transfer.
    """

    def __init__(
        self,
        transport: AuthorizedTransport,
        upload_base_url: str,
        content: bytes,
        content_type: str,
        name: str,
        container_id: Optional[str] = None,
    ):
        self.transport = transport
        self.upload_base_url = upload_base_url
        self.content = content
        self.content_type = content_type or DEFAULT_CONTENT_TYPE
        self.name = name
        self.container_id = container_id
        self.state = UploadState.NO_SESSION
        self.session_url: Optional[str] = None
        self.result: Optional[FileRecord] = None

    def _fail(self, error: Exception) -> Exception:
        self.state = UploadState.FAILED
        logging.error(f"Upload of '{self.name}' failed: {error}")
        return error

    def _require(self, state: UploadState):
        if self.state is not state:
            raise RuntimeError(
                f"Upload of '{self.name}' is {self.state.value}, expected {state.value}."
            )

    async def open_session(self) -> str:
        """Posts the file metadata and returns the session URL from the Location header."""
        self._require(UploadState.NO_SESSION)

        metadata = {"name": self.name}
        if self.container_id:
            metadata["parents"] = [self.container_id]

        try:
            logging.info(
                f"Opening upload session for '{self.name}' ({len(self.content)} bytes)..."
            )
            response = await self.transport.request(
                "POST",
                f"{self.upload_base_url}/files",
                params={"uploadType": "resumable", "fields": FILE_FIELDS},
                json=metadata,
                headers={
                    "X-Upload-Content-Type": self.content_type,
                    "X-Upload-Content-Length": str(len(self.content)),
                },
            )
        except httpx.RequestError as e:
            raise self._fail(
                UploadSessionError(f"Could not reach the upload session endpoint: {e}")
            ) from e

        if not response.is_success:
            raise self._fail(
                error_for_status(
                    UploadSessionError,
                    f"Upload session for '{self.name}' was refused.",
                    response.status_code,
                    response.text,
                )
            )

        session_url = response.headers.get("Location")
        if not session_url:
            raise self._fail(
                UploadSessionError(
                    f"Upload session response for '{self.name}' carried no Location header.",
                    status=response.status_code,
                    body=response.text,
                )
            )

        self.session_url = session_url
        self.state = UploadState.SESSION_OPEN
        return session_url

    async def transfer(self) -> FileRecord:
        """Puts the whole payload to the open session and parses the resulting record."""
        self._require(UploadState.SESSION_OPEN)

        try:
            response = await self.transport.request(
                "PUT",
                self.session_url,
                content=self.content,
                headers={"Content-Type": self.content_type},
            )
        except httpx.RequestError as e:
            raise self._fail(
                UploadTransferError(f"Transfer of '{self.name}' was interrupted: {e}")
            ) from e

        if not response.is_success:
            raise self._fail(
                error_for_status(
                    UploadTransferError,
                    f"Transfer of '{self.name}' was rejected.",
                    response.status_code,
                    response.text,
                )
            )

        try:
            record = FileRecord.from_api(response.json())
        except (ValueError, AttributeError) as e:
            raise self._fail(
                UploadTransferError(
                    f"Transfer of '{self.name}' returned an unusable file descriptor: {e}",
                    status=response.status_code,
                    body=response.text,
                )
            ) from e

        self.result = record
        self.state = UploadState.TRANSFERRED
        logging.info(f"Successfully uploaded '{self.name}' as file ID '{record.id}'.")
        return record

    async def run(self) -> FileRecord:
        await self.open_session()
        return await self.transfer()
