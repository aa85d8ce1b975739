"""
Backend wiring: builds a PipelineCoordinator from AppConfig.
"""

import logging
from pathlib import Path

from meetnotes.core.artifact_store import LocalArtifactStore, S3ArtifactStore
from meetnotes.core.config import AppConfig
from meetnotes.core.constants import ErrorCode, StorageBackend, TranscriptionBackend
from meetnotes.core.db_sqlite import Database
from meetnotes.core.error_codes import PipelineError
from meetnotes.core.notes_bedrock import BedrockNotesClient
from meetnotes.core.pipeline import PipelineCoordinator
from meetnotes.core.transcribe_aws import AwsTranscribeClient
from meetnotes.core.transcribe_deepgram import DeepgramJobClient

logger = logging.getLogger(__name__)


class Backends:
    """The coordinator plus whatever needs closing when the session ends."""

    def __init__(self, coordinator: PipelineCoordinator, db: Database | None = None,
                 runner: DeepgramJobClient | None = None):
        self.coordinator = coordinator
        self.db = db
        self.runner = runner

    def close(self):
        self.coordinator.shutdown()
        if self.runner:
            self.runner.close()
        if self.db:
            self.db.close()


def build_backends(config: AppConfig) -> Backends:
    storage = config.storage_backend
    transcription = config.transcription_backend
    region = config.get('aws_region')
    timeout = config.get('request_timeout_sec')

    if transcription == TranscriptionBackend.AWS and storage != StorageBackend.S3:
        raise PipelineError("Amazon Transcribe reads media from S3; set storage_backend to s3",
                            code=ErrorCode.INVALID_INPUT)

    if storage == StorageBackend.S3:
        store = S3ArtifactStore(config.get('s3_bucket'), region=region, timeout_sec=timeout)
    else:
        store = LocalArtifactStore(config.storage_root)

    db = None
    runner = None
    if transcription == TranscriptionBackend.AWS:
        transcriber = AwsTranscribeClient(
            config.get('s3_bucket'), region=region,
            language_code=config.get('language_code'),
            max_speaker_labels=config.get('max_speaker_labels'),
            timeout_sec=timeout,
        )
    else:
        db = Database(Path(config.get('job_db_path')).expanduser())
        runner = DeepgramJobClient(store, db)
        runner.resume()
        transcriber = runner

    generator = BedrockNotesClient(
        region=region,
        model_id=config.get('bedrock_model_id'),
        max_tokens=config.get('max_tokens'),
        temperature=config.get('temperature'),
        timeout_sec=timeout,
    )

    coordinator = PipelineCoordinator(
        store, transcriber, generator,
        poll_interval_sec=config.get('poll_interval_sec'),
        max_poll_attempts=config.get('max_poll_attempts'),
    )
    logger.info("Backends: storage=%s transcription=%s", storage, transcription)
    return Backends(coordinator, db=db, runner=runner)
