# gateway.py
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from .config import Settings, get_settings
from .exceptions import (
    AuthError,
    DeleteError,
    DownloadError,
    FileLookupError,
    GatewayError,
    InvalidArgument,
    ListError,
    RenameError,
    ThumbnailUnavailable,
    error_for_status,
)
from .storage.base import StorageGateway
from .storage.dto import DownloadStream, FILE_FIELDS, FileRecord, Thumbnail
from .transport import AuthorizedTransport
from .upload import ResumableUpload

DEFAULT_THUMBNAIL_TYPE = "image/jpeg"

ThumbnailStrategy = Callable[[str, dict], Awaitable[Optional[Thumbnail]]]


def _quote(value: str) -> str:
    """Escapes a value for use inside a single-quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveGateway(StorageGateway):
    """
    Storage gateway for the Google Drive v3 REST API.

    Each call builds its own requests and keeps nothing between calls, so
    concurrent operations on one gateway do not interfere. The bearer
    credential is fixed at construction; a rejected credential surfaces as
    AuthError and is never refreshed here.
    """

    def __init__(
        self,
        access_token: str,
        default_container_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.transport = AuthorizedTransport(
            access_token, settings=self.settings, transport=http_transport
        )
        self.default_container_id = default_container_id
        self.api_url = self.settings.DRIVE_API_BASE_URL
        self.upload_url = self.settings.DRIVE_UPLOAD_BASE_URL

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "DriveGateway":
        if not settings.DRIVE_ACCESS_TOKEN:
            raise AuthError("DRIVE_ACCESS_TOKEN is not configured.")
        return cls(
            settings.DRIVE_ACCESS_TOKEN,
            default_container_id=settings.DRIVE_FOLDER_ID,
            settings=settings,
            **kwargs,
        )

    async def aclose(self):
        await self.transport.aclose()

    async def __aenter__(self) -> "DriveGateway":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def _file_url(self, file_id: str) -> str:
        return f"{self.api_url}/files/{file_id}"

    async def _send(
        self, error_cls: type, action: str, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Sends a request, turning transport failures into `error_cls` with no status."""
        try:
            return await self.transport.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logging.error(f"Network error while trying to {action}: {e}")
            raise error_cls(f"Failed to {action}: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, error_cls: type, action: str):
        if response.is_success:
            return
        logging.error(
            f"Failed to {action}. Status: {response.status_code}, body: {response.text[:500]}"
        )
        raise error_for_status(
            error_cls,
            f"Failed to {action} (HTTP {response.status_code}).",
            response.status_code,
            response.text,
        )

    # --- list ---

    async def list_files(self, container_id: Optional[str] = None) -> List[FileRecord]:
        """
        Lists non-deleted files, newest first, capped at LIST_PAGE_SIZE.
        Only the first page is fetched.
        """
        container_id = container_id or self.default_container_id
        if container_id:
            query = f"'{_quote(container_id)}' in parents and trashed=false"
        else:
            query = "trashed=false"

        action = f"list files in '{container_id or 'all'}'"
        logging.info(f"Listing files in container '{container_id or 'all'}'...")
        response = await self._send(
            ListError,
            action,
            "GET",
            f"{self.api_url}/files",
            params={
                "q": query,
                "fields": f"files({FILE_FIELDS})",
                "orderBy": "modifiedTime desc",
                "pageSize": self.settings.LIST_PAGE_SIZE,
            },
        )
        self._raise_for_status(response, ListError, action)

        try:
            items = response.json().get("files", [])
        except (ValueError, AttributeError) as e:
            raise ListError(
                f"Failed to {action}: malformed listing: {e}",
                status=response.status_code,
                body=response.text,
            ) from e

        unique = {}
        for item in items:
            try:
                record = FileRecord.from_api(item)
            except (ValidationError, AttributeError) as e:
                logging.warning(f"Skipping unusable descriptor in listing: {e}")
                continue
            if record.id in unique:
                logging.warning(f"Dropping duplicate file ID '{record.id}' from listing.")
                continue
            unique[record.id] = record
        return list(unique.values())

    # --- lookup ---

    async def get_file(self, file_id: str) -> FileRecord:
        """Fetches the metadata of one file. Read-only."""
        action = f"fetch file '{file_id}'"
        response = await self._send(
            FileLookupError,
            action,
            "GET",
            self._file_url(file_id),
            params={"fields": FILE_FIELDS},
        )
        self._raise_for_status(response, FileLookupError, action)
        try:
            return FileRecord.from_api(response.json())
        except (ValueError, AttributeError) as e:
            raise FileLookupError(
                f"Failed to {action}: unusable file descriptor: {e}",
                status=response.status_code,
                body=response.text,
            ) from e

    # --- upload ---

    async def upload(
        self,
        content: bytes,
        content_type: str,
        name: str,
        container_id: Optional[str] = None,
    ) -> FileRecord:
        if not name or not name.strip():
            raise InvalidArgument("Upload name must not be empty.")
        upload = ResumableUpload(
            self.transport,
            self.upload_url,
            content,
            content_type,
            name,
            container_id or self.default_container_id,
        )
        return await upload.run()

    # --- rename ---

    @staticmethod
    def _parse_record(response: httpx.Response) -> Optional[FileRecord]:
        try:
            return FileRecord.from_api(response.json())
        except (ValueError, AttributeError):
            return None

    async def rename(self, file_id: str, new_name: str) -> FileRecord:
        """
        Renames a file.

        The remote sometimes answers a rename with a 5xx although the rename
        took effect. In that case, and only then, the file is read back and
        the rename counts as successful if the stored name matches. The
        PATCH itself is never re-sent.
        """
        if not new_name or not new_name.strip():
            raise InvalidArgument("New file name must not be empty.")

        action = f"rename file '{file_id}'"
        logging.info(f"Renaming file ID '{file_id}' to '{new_name}'...")
        response = await self._send(
            RenameError,
            action,
            "PATCH",
            self._file_url(file_id),
            params={"fields": FILE_FIELDS},
            json={"name": new_name},
        )
        status, body = response.status_code, response.text

        record = self._parse_record(response)
        if response.is_success and record is not None and record.name == new_name:
            logging.info(f"Successfully renamed file ID '{file_id}' to '{new_name}'.")
            return record

        if status >= 500:
            logging.warning(
                f"Rename of file ID '{file_id}' answered HTTP {status}. Verifying by reading it back..."
            )
            try:
                verified = await self.get_file(file_id)
            except GatewayError as e:
                logging.error(f"Verification read for file ID '{file_id}' failed: {e}")
            else:
                if verified.name == new_name:
                    logging.info(
                        f"Rename of file ID '{file_id}' took effect despite HTTP {status}."
                    )
                    return verified
                logging.error(
                    f"Verification shows file ID '{file_id}' is still named '{verified.name}'."
                )
            raise RenameError(
                f"Failed to {action} (HTTP {status}).", status=status, body=body
            )

        if response.is_success:
            raise RenameError(
                f"Failed to {action}: the response did not describe the renamed file.",
                status=status,
                body=body,
            )
        self._raise_for_status(response, RenameError, action)

    # --- delete ---

    async def delete(self, file_id: str) -> None:
        action = f"delete file '{file_id}'"
        logging.info(f"Deleting file with ID '{file_id}'...")
        response = await self._send(DeleteError, action, "DELETE", self._file_url(file_id))
        self._raise_for_status(response, DeleteError, action)

    # --- download ---

    async def download(self, file_id: str) -> DownloadStream:
        """
        Opens the raw byte stream of a file. The body is not read here; the
        returned DownloadStream must be closed by the caller.
        """
        action = f"download file '{file_id}'"
        logging.info(f"Downloading file with ID '{file_id}'...")
        try:
            response = await self.transport.open_stream(
                "GET", self._file_url(file_id), params={"alt": "media"}
            )
        except httpx.RequestError as e:
            logging.error(f"Network error while trying to {action}: {e}")
            raise DownloadError(f"Failed to {action}: {e}") from e

        if not response.is_success:
            try:
                await response.aread()
            finally:
                await response.aclose()
            self._raise_for_status(response, DownloadError, action)
        return DownloadStream(file_id, response)

    # --- thumbnails ---

    async def _thumbnail_metadata(self, file_id: str) -> dict:
        action = f"fetch thumbnail metadata for '{file_id}'"
        response = await self._send(
            ThumbnailUnavailable,
            action,
            "GET",
            self._file_url(file_id),
            params={"fields": "thumbnailLink,mimeType"},
        )
        self._raise_for_status(response, ThumbnailUnavailable, action)
        try:
            return dict(response.json())
        except (ValueError, TypeError) as e:
            raise ThumbnailUnavailable(
                f"Failed to {action}: {e}", status=response.status_code, body=response.text
            ) from e

    async def _from_thumbnail_link(self, file_id: str, metadata: dict) -> Optional[Thumbnail]:
        link = metadata.get("thumbnailLink")
        if not link:
            return None
        try:
            response = await self.transport.request("GET", link)
        except httpx.RequestError as e:
            logging.warning(f"Thumbnail fetch for '{file_id}' failed: {e}")
            return None
        if not response.is_success:
            logging.warning(
                f"Thumbnail fetch for '{file_id}' answered HTTP {response.status_code}."
            )
            return None
        return Thumbnail(
            content=response.content,
            content_type=response.headers.get("Content-Type") or DEFAULT_THUMBNAIL_TYPE,
            source="thumbnail",
        )

    async def _from_original_image(self, file_id: str, metadata: dict) -> Optional[Thumbnail]:
        # Whole-file fetch is only acceptable for images, which are small enough.
        content_type = metadata.get("mimeType") or ""
        if not content_type.startswith("image/"):
            return None
        logging.info(f"Using the original image bytes as thumbnail for '{file_id}'.")
        try:
            response = await self.transport.request(
                "GET", self._file_url(file_id), params={"alt": "media"}
            )
        except httpx.RequestError as e:
            logging.warning(f"Original image fetch for '{file_id}' failed: {e}")
            return None
        if not response.is_success:
            logging.warning(
                f"Original image fetch for '{file_id}' answered HTTP {response.status_code}."
            )
            return None
        return Thumbnail(content=response.content, content_type=content_type, source="original")

    def thumbnail_strategies(self) -> Sequence[ThumbnailStrategy]:
        """Ordered thumbnail sources; the dedicated thumbnail always comes first."""
        return (self._from_thumbnail_link, self._from_original_image)

    async def resolve_thumbnail(self, file_id: str) -> Thumbnail:
        metadata = await self._thumbnail_metadata(file_id)
        for strategy in self.thumbnail_strategies():
            thumbnail = await strategy(file_id, metadata)
            if thumbnail is not None:
                return thumbnail
        raise ThumbnailUnavailable(f"No thumbnail available for file '{file_id}'.")
