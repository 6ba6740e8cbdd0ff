from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from app.assembly import AssemblyCoordinator
from app.chunk_store import ChunkStore
from app.config import Settings
from app.exceptions import PayloadTooLarge, SinkWriteFailure, ValidationError
from app.models import ChunkMetadata, UploadStatus
from app.session import UploadSession

router = APIRouter()

store = ChunkStore()
coordinator = AssemblyCoordinator(store, Settings.UPLOAD_DIR)


def get_session() -> UploadSession:
    return UploadSession(store, coordinator, Settings.MAX_CHUNK_SIZE)


@router.put("/upload", response_class=PlainTextResponse)
async def upload_chunk(request: Request, session: UploadSession = Depends(get_session)):
    metadata = ChunkMetadata.from_headers(request.headers, Settings.MAX_TOTAL_CHUNKS)

    # reject before reading when the client declares an oversized body
    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > session.max_chunk_size:
        raise PayloadTooLarge(session.max_chunk_size)

    outcome = await session.accept(metadata, request.stream())

    if outcome.status == UploadStatus.ASSEMBLED:
        return PlainTextResponse("Upload completed")
    if outcome.status == UploadStatus.CHUNK_ACCEPTED:
        return PlainTextResponse("Chunk received successfully")
    if outcome.status == UploadStatus.TOO_LARGE:
        raise PayloadTooLarge(session.max_chunk_size)
    if outcome.status == UploadStatus.INVALID_INDEX:
        raise ValidationError(outcome.reason)
    raise SinkWriteFailure(outcome.reason or f"assembly of {metadata.file_id} failed")
