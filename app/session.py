import logging
from enum import Enum
from typing import AsyncIterator

from app.assembly import AssemblyCoordinator
from app.chunk_store import ChunkStore
from app.exceptions import InvalidIndex, StagingEntryNotFound
from app.models import ChunkMetadata, UploadOutcome, UploadStatus

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    RECEIVING = "receiving"
    ABORTED = "aborted"
    BUFFERED = "buffered"
    APPENDED = "appended"
    ASSEMBLED = "assembled"
    CHUNK_ACCEPTED = "chunk_accepted"
    ASSEMBLY_FAILED = "assembly_failed"


class UploadSession:
    """
    Binds one request body to one chunk slot.

    The body is buffered in full before anything touches the staging
    entry, so an aborted or oversized request never leaves a partial chunk
    behind.
    """

    def __init__(self, store: ChunkStore, coordinator: AssemblyCoordinator, max_chunk_size: int):
        self.store = store
        self.coordinator = coordinator
        self.max_chunk_size = max_chunk_size
        self.state = SessionState.RECEIVING

    async def accept(self, metadata: ChunkMetadata, byte_stream: AsyncIterator[bytes]) -> UploadOutcome:
        file_id = metadata.file_id
        chunk_number = metadata.chunk_number

        buffer = bytearray()
        async for piece in byte_stream:
            if len(buffer) + len(piece) > self.max_chunk_size:
                self.state = SessionState.ABORTED
                logger.warning(
                    f"Chunk {chunk_number} for file {file_id} exceeds {self.max_chunk_size} bytes, discarded"
                )
                return UploadOutcome(
                    status=UploadStatus.TOO_LARGE,
                    file_id=file_id,
                    chunk_number=chunk_number,
                    reason=f"Chunk size exceeds the maximum allowed size of {self.max_chunk_size} bytes",
                )
            buffer.extend(piece)
        self.state = SessionState.BUFFERED

        try:
            await self._commit(metadata, bytes(buffer))
        except InvalidIndex as e:
            self.state = SessionState.ABORTED
            return UploadOutcome(
                status=UploadStatus.INVALID_INDEX,
                file_id=file_id,
                chunk_number=chunk_number,
                reason=str(e),
            )
        self.state = SessionState.APPENDED

        outcome = await self.coordinator.maybe_assemble(file_id)
        outcome.chunk_number = chunk_number
        if outcome.status == UploadStatus.ASSEMBLED:
            self.state = SessionState.ASSEMBLED
        elif outcome.status == UploadStatus.ASSEMBLY_FAILED:
            self.state = SessionState.ASSEMBLY_FAILED
        else:
            self.state = SessionState.CHUNK_ACCEPTED
            outcome.status = UploadStatus.CHUNK_ACCEPTED
            staged = self.store.snapshot(file_id)
            progress = f" ({len(staged.received)}/{staged.total_chunks})" if staged else ""
            logger.info(f"Received chunk {chunk_number} for file {file_id}{progress}")
        return outcome

    async def _commit(self, metadata: ChunkMetadata, data: bytes) -> None:
        await self.store.ensure(metadata.file_id, metadata.total_chunks, metadata.file_extension)
        try:
            await self.store.append_chunk(metadata.file_id, metadata.chunk_number, data)
        except StagingEntryNotFound:
            # assembled or expired since ensure(); this chunk starts a new upload
            await self.store.ensure(metadata.file_id, metadata.total_chunks, metadata.file_extension)
            await self.store.append_chunk(metadata.file_id, metadata.chunk_number, data)
