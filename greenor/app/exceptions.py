"""Error taxonomy for the document pipeline."""

from uuid import UUID


class GreenorError(Exception):
    """Base class for pipeline errors."""


class ParseError(GreenorError):
    """Document bytes cannot be chunked (unsupported or corrupt format)."""

    def __init__(self, message: str, media_type: str | None = None, unsupported: bool = False):
        super().__init__(message)
        self.media_type = media_type
        self.unsupported = unsupported


class UploadTooLarge(GreenorError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"Upload of {size} bytes exceeds the {limit} byte limit")
        self.size = size
        self.limit = limit


class DocumentNotFound(GreenorError):
    def __init__(self, document_id: UUID):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class EmbeddingInProgress(GreenorError):
    """Another enable run currently holds the document's embedding claim."""

    def __init__(self, document_id: UUID):
        super().__init__(f"Embeddings for document {document_id} are already being generated")
        self.document_id = document_id


class BatchWriteFailure(GreenorError):
    """A batch of chunk records could not be written; remaining batches were skipped."""

    def __init__(self, batch_number: int, batches_written: int, records_written: int):
        super().__init__(
            f"Writing batch {batch_number} failed after {batches_written} batches "
            f"({records_written} records) were committed"
        )
        self.batch_number = batch_number
        self.batches_written = batches_written
        self.records_written = records_written


class StorageUnavailable(GreenorError):
    """The object store could not be reached or rejected the request."""
