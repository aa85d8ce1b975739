"""
Contracts between the pipeline coordinator and its external collaborators.

The coordinator only ever talks to these interfaces; concrete backends
(filesystem, S3, AWS Transcribe, Deepgram, Bedrock) live in their own modules.
"""

from abc import ABC, abstractmethod

from meetnotes.core.models import StoredObject


class ArtifactStore(ABC):
    """Blob storage addressed by hierarchical "/"-separated paths."""

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str) -> None:
        """Write data at path, replacing anything already there. Raises StoreError."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Read path. Raises NotFound when absent, StoreError otherwise."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove path. Deleting a missing path is not an error."""

    @abstractmethod
    def list(self, prefix: str) -> list[StoredObject]:
        """Every object whose path starts with prefix."""


class TranscriptionJobClient(ABC):
    """Asynchronous speech-to-text behind a submit/poll contract."""

    @abstractmethod
    def submit(self, video_id: str, media_path: str, output_path: str) -> str:
        """
        Start transcribing the media at media_path into output_path.
        Returns the job name. Acceptance only; raises SubmitError.
        """

    @abstractmethod
    def poll_status(self, job_name: str) -> str:
        """
        Current VideoStatus of a job. Side-effect free and safe to repeat.
        Raises TranscriptionStatusError when the status cannot be read.
        """

    def delete(self, job_name: str) -> None:
        """Forget a job. Best effort; backends without job cleanup do nothing."""


class NotesGenerationClient(ABC):
    """One-shot transcript → notes text completion."""

    @abstractmethod
    def generate(self, transcript_text: str) -> str:
        """
        Returns note text that contains at least the mandatory summary
        markers. Raises GenerationError otherwise.
        """
