# collection.py
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .exceptions import GatewayError
from .storage.base import StorageGateway
from .storage.dto import FileRecord


class PendingUpload(BaseModel):
    """One file the user asked to upload."""

    model_config = ConfigDict(frozen=True)

    content: bytes
    content_type: str
    name: str


class FileCollection:
    """
    In-memory view of the remote files, keyed by file ID.
    Iteration yields records newest first.
    """

    def __init__(self, records: Iterable[FileRecord] = ()):
        self._records: Dict[str, FileRecord] = {}
        self.replace_all(records)

    def replace_all(self, records: Iterable[FileRecord]):
        self._records = {record.id: record for record in records}

    def add(self, record: FileRecord):
        """Inserts or replaces a record."""
        self._records[record.id] = record

    def replace(self, record: FileRecord):
        if record.id not in self._records:
            logging.warning(f"Replacing unknown file ID '{record.id}'; adding it instead.")
        self._records[record.id] = record

    def discard(self, file_id: str) -> Optional[FileRecord]:
        return self._records.pop(file_id, None)

    def get(self, file_id: str) -> Optional[FileRecord]:
        return self._records.get(file_id)

    def __contains__(self, file_id: object) -> bool:
        return file_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(sorted(self._records.values(), key=lambda r: r.modified_at, reverse=True))


def _is_ambiguous(error: GatewayError) -> bool:
    # No status (network) or a server error: the write may or may not have happened.
    return error.status is None or error.status >= 500


class ViewStateSynchronizer:
    """
    Applies gateway results to a FileCollection.
    Successful results update the collection in place; ambiguous failures
    trigger a full re-fetch before the error is re-raised to the caller.
    """

    def __init__(
        self,
        gateway: StorageGateway,
        collection: Optional[FileCollection] = None,
        container_id: Optional[str] = None,
    ):
        self.gateway = gateway
        self.collection = collection if collection is not None else FileCollection()
        self.container_id = container_id

    async def refresh(self) -> FileCollection:
        records = await self.gateway.list_files(self.container_id)
        self.collection.replace_all(records)
        logging.info(f"View refreshed with {len(records)} files.")
        return self.collection

    async def _refresh_after(self, error: GatewayError, action: str):
        if not _is_ambiguous(error):
            return
        logging.warning(f"Outcome of {action} is ambiguous ({error}). Re-fetching files...")
        try:
            await self.refresh()
        except GatewayError as refresh_error:
            logging.error(f"Re-fetch after ambiguous {action} failed: {refresh_error}")

    async def upload_many(
        self, uploads: Iterable[PendingUpload]
    ) -> Tuple[List[FileRecord], List[Tuple[PendingUpload, GatewayError]]]:
        """
        Uploads files one after another in submission order.
        A failed upload is reported and the remaining ones still run.
        """
        uploaded: List[FileRecord] = []
        failures: List[Tuple[PendingUpload, GatewayError]] = []
        for item in uploads:
            try:
                record = await self.gateway.upload(
                    item.content, item.content_type, item.name, self.container_id
                )
            except GatewayError as e:
                logging.error(f"Upload of '{item.name}' failed: {e}")
                failures.append((item, e))
                await self._refresh_after(e, f"upload of '{item.name}'")
                continue
            self.collection.add(record)
            uploaded.append(record)
        return uploaded, failures

    async def rename(self, file_id: str, new_name: str) -> FileRecord:
        try:
            record = await self.gateway.rename(file_id, new_name)
        except GatewayError as e:
            await self._refresh_after(e, f"rename of '{file_id}'")
            raise
        self.collection.replace(record)
        return record

    async def delete(self, file_id: str):
        try:
            await self.gateway.delete(file_id)
        except GatewayError as e:
            await self._refresh_after(e, f"delete of '{file_id}'")
            raise
        self.collection.discard(file_id)
