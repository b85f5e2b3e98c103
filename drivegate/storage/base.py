from abc import ABC, abstractmethod
from typing import List, Optional
from .dto import DownloadStream, FileRecord, Thumbnail


class StorageGateway(ABC):
    """
    Abstract base class for the storage gateway.
    Defines the operations the rest of the application may call; every
    operation is a coroutine returning a normalized result or raising a
    GatewayError subclass.
    """

    @abstractmethod
    async def list_files(self, container_id: Optional[str] = None) -> List[FileRecord]:
        """
        Lists non-deleted files, most recently modified first.

        :param container_id: Optional folder ID to scope the listing to.
        :return: A list of FileRecord DTOs (first page only).
        """
        pass

    @abstractmethod
    async def upload(
        self,
        content: bytes,
        content_type: str,
        name: str,
        container_id: Optional[str] = None,
    ) -> FileRecord:
        """
        Uploads a payload using the resumable upload protocol.

        :param content: The raw bytes to upload.
        :param content_type: The declared MIME type of the payload.
        :param name: The name for the uploaded file.
        :param container_id: Optional ID of the destination folder.
        """
        pass

    @abstractmethod
    async def rename(self, file_id: str, new_name: str) -> FileRecord:
        """
        Renames a file, verifying ambiguous server errors with a read.

        :param file_id: The ID of the file to rename.
        :param new_name: The new, non-empty name.
        """
        pass

    @abstractmethod
    async def delete(self, file_id: str) -> None:
        """
        Deletes a file from the storage.

        :param file_id: The ID of the file to delete.
        """
        pass

    @abstractmethod
    async def download(self, file_id: str) -> DownloadStream:
        """
        Opens a pass-through byte stream for a file.

        :param file_id: The ID of the file to download.
        """
        pass

    @abstractmethod
    async def resolve_thumbnail(self, file_id: str) -> Thumbnail:
        """
        Produces thumbnail bytes for a file, falling back to the original
        bytes for images. Raises ThumbnailUnavailable when nothing works.

        :param file_id: The ID of the file.
        """
        pass
