import re
from enum import Enum
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field

from app.config import Settings
from app.exceptions import InvalidIndex, ValidationError

NAME_PATTERN = r"^[a-zA-Z0-9_.\-]+$"
NAME_RE = re.compile(NAME_PATTERN)

REQUIRED_HEADERS = ("chunk-number", "total-chunks", "file-id", "file-extension")


class ChunkMetadata(BaseModel):
    file_id: str = Field(..., pattern=NAME_PATTERN)
    chunk_number: int = Field(..., gt=0)  # 1-based
    total_chunks: int = Field(..., gt=0)
    file_extension: str = Field(..., pattern=NAME_PATTERN)

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], max_total_chunks: Optional[int] = None) -> "ChunkMetadata":
        """Build chunk metadata from request headers, raising ValidationError on bad input."""
        max_total_chunks = max_total_chunks or Settings.MAX_TOTAL_CHUNKS
        values = {name: headers.get(name) for name in REQUIRED_HEADERS}
        if not all(values.values()):
            raise ValidationError("Missing required headers")

        numbers = [values["chunk-number"].strip(), values["total-chunks"].strip()]
        # plain ASCII digits only: int() would also take "1_0", "+1" or "-1"
        if not all(n.isascii() and n.isdigit() for n in numbers):
            raise ValidationError("chunk-number or total-chunks are not valid numbers")
        try:
            chunk_number, total_chunks = int(numbers[0]), int(numbers[1])
        except ValueError:
            # more digits than int() converts
            raise ValidationError("chunk-number or total-chunks are not valid numbers")

        if not NAME_RE.match(values["file-id"]) or not NAME_RE.match(values["file-extension"]):
            raise ValidationError("file-id or file-extension are not valid")

        if total_chunks < 1:
            raise ValidationError("total-chunks must be a positive number")
        if total_chunks > max_total_chunks:
            raise ValidationError(f"total-chunks exceeds the maximum of {max_total_chunks}")
        if not 1 <= chunk_number <= total_chunks:
            raise InvalidIndex(chunk_number, total_chunks)

        return cls(
            file_id=values["file-id"],
            chunk_number=chunk_number,
            total_chunks=total_chunks,
            file_extension=values["file-extension"],
        )


class UploadStatus(str, Enum):
    ASSEMBLED = "assembled"
    CHUNK_ACCEPTED = "chunk_accepted"
    PENDING = "pending"  # coordinator only: file not complete yet
    TOO_LARGE = "too_large"
    INVALID_INDEX = "invalid_index"
    ASSEMBLY_FAILED = "assembly_failed"


class UploadOutcome(BaseModel):
    status: UploadStatus
    file_id: str
    chunk_number: Optional[int] = None
    path: Optional[str] = None  # set once the file is assembled
    reason: Optional[str] = None


class StagingSnapshot(BaseModel):
    file_id: str
    total_chunks: int
    extension: str
    received: List[int]
