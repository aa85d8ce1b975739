"""
Standardised error handling for MeetingNotes.

Every failure that crosses a component boundary is a PipelineError subclass
carrying a stable code, a human message, and a retryable flag.
"""

from meetnotes.core.constants import ErrorCode, RETRYABLE_ERRORS


class PipelineError(Exception):
    """Raised when a pipeline stage encounters a known error condition."""

    default_code = "ERR_PIPELINE"

    def __init__(self, message: str, code: str | None = None,
                 retryable: bool | None = None):
        self.code = code or self.default_code
        self.message = message
        # auto-detect retryable from code if not explicitly set
        self.retryable = retryable if retryable is not None else (self.code in RETRYABLE_ERRORS)
        super().__init__(f"[{self.code}] {message}")


class StoreError(PipelineError):
    """Artifact store connectivity or permission failure."""
    default_code = ErrorCode.STORE


class NotFound(PipelineError):
    """Expected miss: the requested artifact does not exist."""
    default_code = ErrorCode.NOT_FOUND


class TranscriptMissing(NotFound):
    """No transcript exists for a video, so notes cannot be generated."""
    default_code = ErrorCode.TRANSCRIPT_MISSING


class SubmitError(PipelineError):
    default_code = ErrorCode.SUBMIT


class TranscriptionStatusError(PipelineError):
    """The status of a transcription job could not be determined."""
    default_code = ErrorCode.TRANSCRIPTION_STATUS


class GenerationError(PipelineError):
    """Notes generation failed or produced output that must not be cached."""
    default_code = ErrorCode.GENERATION


class DecodeError(PipelineError):
    """Transcript document does not match the expected shape."""
    default_code = ErrorCode.DECODE


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS
