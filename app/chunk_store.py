"""In-memory staging of chunks for files that are still being uploaded."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from app.exceptions import InvalidIndex, MetadataConflict, StagingEntryNotFound
from app.models import StagingSnapshot

logger = logging.getLogger(__name__)


class FileStagingEntry:
    """
    Chunks received so far for one file-id, keyed by 1-based chunk number.

    A chunk number is only present once its fully buffered chunk has been
    committed, so memory grows with what was received, not with total_chunks.
    """

    def __init__(self, file_id: str, total_chunks: int, extension: str):
        self.file_id = file_id
        self.total_chunks = total_chunks
        self.extension = extension
        self.slots: Dict[int, bytes] = {}
        self.last_updated = time.monotonic()
        self.lock = asyncio.Lock()
        self.evicted = False

    def put(self, chunk_number: int, data: bytes) -> None:
        if not 1 <= chunk_number <= self.total_chunks:
            raise InvalidIndex(chunk_number, self.total_chunks)
        # last write wins for a resubmitted chunk number
        self.slots[chunk_number] = bytes(data)
        self.last_updated = time.monotonic()

    def is_complete(self) -> bool:
        return len(self.slots) == self.total_chunks

    def received(self) -> List[int]:
        return sorted(self.slots)

    def release(self) -> None:
        self.evicted = True
        self.slots.clear()


class ChunkStore:
    """
    Process-wide map of file-id to FileStagingEntry.

    The map lock guards creation and removal of entries. Each entry's own
    lock guards its slots and is held for the whole check-and-assemble
    sequence (see exclusive()). Lock order is entry lock, then map lock.
    """

    def __init__(self):
        self._entries: Dict[str, FileStagingEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, file_id: str) -> bool:
        return file_id in self._entries

    async def ensure(self, file_id: str, total_chunks: int, extension: str) -> FileStagingEntry:
        """
        Return the staging entry for file_id, creating it on first use.

        Raises:
            MetadataConflict: an entry exists with another total_chunks or extension
        """
        async with self._lock:
            entry = self._entries.get(file_id)
            if entry is None:
                entry = FileStagingEntry(file_id, total_chunks, extension)
                self._entries[file_id] = entry
                logger.debug(f"Staging {file_id}: expecting {total_chunks} chunks")
                return entry

        if entry.total_chunks != total_chunks:
            raise MetadataConflict(
                f"total-chunks {total_chunks} does not match {entry.total_chunks} "
                f"already declared for file-id {file_id}"
            )
        if entry.extension != extension:
            raise MetadataConflict(
                f"file-extension {extension} does not match {entry.extension} "
                f"already declared for file-id {file_id}"
            )
        return entry

    async def append_chunk(self, file_id: str, chunk_number: int, data: bytes) -> None:
        """
        Commit a fully buffered chunk to its slot.

        Raises:
            InvalidIndex: chunk_number is outside 1..total_chunks
            StagingEntryNotFound: the entry was never created or already evicted
        """
        entry = self._entries.get(file_id)
        if entry is None:
            raise StagingEntryNotFound(file_id)

        async with entry.lock:
            if entry.evicted:
                raise StagingEntryNotFound(file_id)
            entry.put(chunk_number, data)

    @asynccontextmanager
    async def exclusive(self, file_id: str) -> AsyncIterator[bool]:
        """
        Hold the entry lock of file_id for the duration of the block.

        Yields False when there is nothing staged for file_id, including
        when the entry was evicted while waiting for the lock.
        """
        entry = self._entries.get(file_id)
        if entry is None:
            yield False
            return

        async with entry.lock:
            yield not entry.evicted and self._entries.get(file_id) is entry

    def is_complete(self, file_id: str) -> bool:
        entry = self._entries.get(file_id)
        return entry is not None and not entry.evicted and entry.is_complete()

    def ordered_chunks(self, file_id: str) -> List[bytes]:
        entry = self._entries.get(file_id)
        if entry is None:
            raise StagingEntryNotFound(file_id)
        return [entry.slots[number] for number in entry.received()]

    async def evict(self, file_id: str) -> None:
        async with self._lock:
            entry = self._entries.pop(file_id, None)
            if entry is not None:
                entry.release()

    async def evict_expired(self, max_age: float) -> List[str]:
        """
        Drop entries not updated for max_age seconds.

        Entries whose lock is held are skipped: a chunk is being appended or
        the file is being assembled.
        """
        cutoff = time.monotonic() - max_age
        expired = []
        async with self._lock:
            for file_id, entry in list(self._entries.items()):
                if entry.last_updated > cutoff or entry.lock.locked():
                    continue
                del self._entries[file_id]
                entry.release()
                expired.append(file_id)

        for file_id in expired:
            logger.info(f"Discarded incomplete upload {file_id} after {max_age}s of inactivity")
        return expired

    def snapshot(self, file_id: str) -> Optional[StagingSnapshot]:
        entry = self._entries.get(file_id)
        if entry is None:
            return None
        return StagingSnapshot(
            file_id=entry.file_id,
            total_chunks=entry.total_chunks,
            extension=entry.extension,
            received=entry.received(),
        )
