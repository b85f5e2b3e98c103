# storage/dto.py
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Literal, Mapping, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import DownloadError

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Field set requested from the remote store for every FileRecord.
FILE_FIELDS = "id,name,mimeType,size,modifiedTime,thumbnailLink,webViewLink"


class FileRecord(BaseModel):
    """
    The canonical, immutable representation of a remote file.
    Operations produce new records instead of mutating existing ones.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    content_type: str = Field(DEFAULT_CONTENT_TYPE, min_length=1)
    size_bytes: Optional[int] = None
    modified_at: datetime
    thumbnail_ref: Optional[str] = None
    view_ref: Optional[str] = None

    @classmethod
    def from_api(cls, item: Mapping[str, Any]) -> "FileRecord":
        """
        Builds a record from a remote file descriptor.
        Raises pydantic.ValidationError if id, name or modifiedTime are missing.
        """
        return cls(
            id=item.get("id"),
            name=item.get("name"),
            content_type=item.get("mimeType") or DEFAULT_CONTENT_TYPE,
            size_bytes=item.get("size"),
            modified_at=item.get("modifiedTime"),
            thumbnail_ref=item.get("thumbnailLink") or None,
            view_ref=item.get("webViewLink") or None,
        )

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    @property
    def display_size(self) -> str:
        # The remote omits size for some types; that is not the same as empty.
        if self.size_bytes is None:
            return "unknown"
        return f"{self.size_bytes} B"


class Thumbnail(BaseModel):
    """Thumbnail bytes and where they came from."""

    model_config = ConfigDict(frozen=True)

    content: bytes
    content_type: str
    source: Literal["thumbnail", "original"]


class DownloadStream:
    """
    Pass-through byte stream over an open HTTP response.
    The bytes are forwarded untouched; the caller must close the stream,
    either explicitly with aclose() or by using it as an async context manager.
    """

    content_type = DEFAULT_CONTENT_TYPE
    content_disposition = "attachment"

    def __init__(self, file_id: str, response: httpx.Response):
        self.file_id = file_id
        self._response = response

    @property
    def content_length(self) -> Optional[int]:
        value = self._response.headers.get("Content-Length")
        return int(value) if value and value.isdigit() else None

    @property
    def headers(self) -> dict:
        """Headers a caller should set on an outward response."""
        headers = {
            "Content-Type": self.content_type,
            "Content-Disposition": self.content_disposition,
        }
        if self.content_length is not None:
            headers["Content-Length"] = str(self.content_length)
        return headers

    async def aiter_bytes(self, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes(chunk_size):
                yield chunk
        except httpx.RequestError as e:
            logging.error(f"Download of file ID '{self.file_id}' broke off: {e}")
            raise DownloadError(f"Download of file '{self.file_id}' was interrupted: {e}") from e

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.aiter_bytes()

    async def read(self) -> bytes:
        """Reads the remaining body into memory. Only for payloads known to be small."""
        try:
            return b"".join([chunk async for chunk in self.aiter_bytes()])
        finally:
            await self.aclose()

    async def aclose(self):
        await self._response.aclose()

    async def __aenter__(self) -> "DownloadStream":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
