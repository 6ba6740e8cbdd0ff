"""Errors raised while receiving and assembling chunked uploads."""


class UploadError(Exception):
    """
    Base exception for upload failures.
    """
    pass


class ValidationError(UploadError):
    """
    Raised when chunk metadata is missing or malformed. Client fault.
    """
    pass


class InvalidIndex(ValidationError):
    """
    Raised when a chunk number falls outside [1, total_chunks].
    """

    def __init__(self, chunk_number: int, total_chunks: int):
        self.chunk_number = chunk_number
        self.total_chunks = total_chunks
        super().__init__(f"chunk-number {chunk_number} is out of range 1..{total_chunks}")


class MetadataConflict(ValidationError):
    """
    Raised when a chunk disagrees with the total-chunks or file-extension
    pinned by the first chunk of the same file-id.
    """
    pass


class PayloadTooLarge(UploadError):
    """
    Raised when a chunk body exceeds the configured maximum size.
    """

    def __init__(self, max_size: int):
        self.max_size = max_size
        super().__init__(f"Chunk size exceeds the maximum allowed size of {max_size} bytes")


class SinkWriteFailure(UploadError):
    """
    Raised when the assembled file cannot be written. Server fault.
    """
    pass


class StagingEntryNotFound(UploadError):
    """
    Raised when a chunk targets a file-id that is no longer staged.
    """
    pass
