"""Error taxonomy for the extraction pipeline.

Text recovery errors are converted into ``failed`` extraction records at
the orchestrator boundary. Persistence errors propagate to the caller,
since there is no fallback store.
"""


class ExtractionError(Exception):
    """Base class for errors that end a single pipeline run."""


class UnsupportedFileType(ExtractionError):
    """Raised when a file extension has no text recovery backend."""

    def __init__(self, extension: str) -> None:
        self.extension = extension
        super().__init__(f"Unsupported file type: {extension}")


class RecoveryFailure(ExtractionError):
    """Raised when OCR or PDF text extraction fails."""


class PersistenceFailure(Exception):
    """Raised when the extraction record store rejects a read or write."""


class AttachmentNotFound(LookupError):
    """Raised when a retry names an attachment the store does not know."""

    def __init__(self, attachment_id: int) -> None:
        self.attachment_id = attachment_id
        super().__init__(f"Attachment not found: {attachment_id}")
