"""Assembly of fully staged uploads into files on disk."""

import logging
import os
from typing import Callable, Optional
from uuid import uuid4

import aiofiles
import aiofiles.os

from app.chunk_store import ChunkStore
from app.exceptions import SinkWriteFailure, UploadError, ValidationError
from app.models import UploadOutcome, UploadStatus

logger = logging.getLogger(__name__)


class FileSink:
    """
    Output file for one assembled upload.

    Bytes go to a uniquely named "<name>.<hex>.part" file that is renamed
    to its final name only on commit.
    """

    def __init__(self, upload_dir: str, file_id: str, extension: str):
        root = os.path.abspath(upload_dir)
        self.path = os.path.normpath(os.path.join(root, f"{file_id}.{extension}"))
        if os.path.dirname(self.path) != root:
            raise ValidationError("file-id or file-extension are not valid")
        self.partial_path = f"{self.path}.{uuid4().hex}.part"
        self._file = None

    async def open(self) -> None:
        try:
            self._file = await aiofiles.open(self.partial_path, mode="wb")
        except OSError as e:
            raise SinkWriteFailure(f"cannot open {self.partial_path}: {e}") from e

    async def write(self, data: bytes) -> None:
        try:
            await self._file.write(data)
        except OSError as e:
            raise SinkWriteFailure(f"cannot write {self.partial_path}: {e}") from e

    async def commit(self) -> str:
        try:
            await self._file.close()
            self._file = None
            await aiofiles.os.replace(self.partial_path, self.path)
        except OSError as e:
            raise SinkWriteFailure(f"cannot finalize {self.path}: {e}") from e
        return self.path

    async def abort(self) -> None:
        if self._file is not None:
            try:
                await self._file.close()
            except OSError:
                logger.warning(f"Could not close {self.partial_path}", exc_info=True)
            self._file = None
        try:
            await aiofiles.os.remove(self.partial_path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning(f"Could not remove {self.partial_path}", exc_info=True)


SinkFactory = Callable[[str, str], FileSink]


class AssemblyCoordinator:
    """
    Turns a complete staging entry into a file, once.

    The entry lock is held from the completeness re-check until the entry
    is evicted, so concurrent calls for the same file-id assemble once.
    """

    def __init__(self, store: ChunkStore, upload_dir: str, sink_factory: Optional[SinkFactory] = None):
        self.store = store
        self.upload_dir = upload_dir
        self.sink_factory = sink_factory or (
            lambda file_id, extension: FileSink(self.upload_dir, file_id, extension)
        )

    async def maybe_assemble(self, file_id: str) -> UploadOutcome:
        async with self.store.exclusive(file_id) as staged:
            # not staged after the wait: another request already assembled it
            if not staged or not self.store.is_complete(file_id):
                return UploadOutcome(status=UploadStatus.PENDING, file_id=file_id)

            staging = self.store.snapshot(file_id)
            sink = None
            try:
                sink = self.sink_factory(file_id, staging.extension)
                await sink.open()
                for data in self.store.ordered_chunks(file_id):
                    await sink.write(data)
                path = await sink.commit()
            except UploadError as e:
                logger.error(f"Error writing chunks for file {file_id}: {e}")
                if sink is not None:
                    await sink.abort()
                return UploadOutcome(
                    status=UploadStatus.ASSEMBLY_FAILED,
                    file_id=file_id,
                    reason=str(e),
                )
            finally:
                await self.store.evict(file_id)

        logger.info(f"File {file_id} uploaded successfully ({staging.total_chunks} chunks, {path})")
        return UploadOutcome(status=UploadStatus.ASSEMBLED, file_id=file_id, path=path)
