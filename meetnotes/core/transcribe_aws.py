"""
Amazon Transcribe integration.
Batch jobs read media straight from the S3 artifact store and write the
transcript document back into the same bucket.
"""

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from meetnotes.core.constants import (
    RemoteJobStatus, VideoStatus,
    TRANSCRIBE_LANGUAGE_CODE, TRANSCRIBE_MAX_SPEAKER_LABELS,
)
from meetnotes.core.contracts import TranscriptionJobClient
from meetnotes.core.error_codes import SubmitError, TranscriptionStatusError
from meetnotes.core.storage_layout import job_name_for

logger = logging.getLogger(__name__)


def map_remote_status(remote_status: str | None) -> str:
    """Collapse a remote job status onto the three video states."""
    if remote_status == RemoteJobStatus.COMPLETED:
        return VideoStatus.COMPLETED
    if remote_status == RemoteJobStatus.FAILED:
        return VideoStatus.FAILED
    return VideoStatus.PROCESSING


class AwsTranscribeClient(TranscriptionJobClient):
    """Submits and polls Amazon Transcribe batch jobs."""

    def __init__(self, bucket: str, client=None, region: str | None = None,
                 language_code: str = TRANSCRIBE_LANGUAGE_CODE,
                 max_speaker_labels: int = TRANSCRIBE_MAX_SPEAKER_LABELS,
                 timeout_sec: int = 60):
        self.bucket = bucket
        self.language_code = language_code
        self.max_speaker_labels = max_speaker_labels
        self.client = client or boto3.client(
            "transcribe",
            region_name=region,
            config=Config(connect_timeout=10, read_timeout=timeout_sec),
        )

    def submit(self, video_id: str, media_path: str, output_path: str) -> str:
        """
        Start the job, or leave an existing one with the same name alone.
        A FAILED job of that name is deleted and started again.
        """
        job_name = job_name_for(video_id)
        try:
            self._start_job(job_name, media_path, output_path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ConflictException":
                raise SubmitError(f"Transcribe rejected job {job_name}: {e}")
            if self._remote_status(job_name) != RemoteJobStatus.FAILED:
                logger.info("Transcription job %s already exists", job_name)
                return job_name
            self._restart_failed_job(job_name, media_path, output_path)
        except BotoCoreError as e:
            raise SubmitError(f"Could not reach Transcribe for job {job_name}: {e}")

        logger.info("Started transcription job %s", job_name)
        return job_name

    def _start_job(self, job_name: str, media_path: str, output_path: str):
        self.client.start_transcription_job(
            TranscriptionJobName=job_name,
            Media={"MediaFileUri": f"s3://{self.bucket}/{media_path}"},
            OutputBucketName=self.bucket,
            OutputKey=output_path,
            LanguageCode=self.language_code,
            Settings={
                "ShowSpeakerLabels": True,
                "MaxSpeakerLabels": self.max_speaker_labels,
            },
        )

    def _remote_status(self, job_name: str) -> str | None:
        try:
            resp = self.client.get_transcription_job(TranscriptionJobName=job_name)
        except (ClientError, BotoCoreError) as e:
            raise SubmitError(f"Could not look up existing job {job_name}: {e}")
        return (resp.get("TranscriptionJob") or {}).get("TranscriptionJobStatus")

    def _restart_failed_job(self, job_name: str, media_path: str, output_path: str):
        logger.info("Restarting failed transcription job %s", job_name)
        try:
            self.client.delete_transcription_job(TranscriptionJobName=job_name)
            self._start_job(job_name, media_path, output_path)
        except (ClientError, BotoCoreError) as e:
            raise SubmitError(f"Could not restart failed job {job_name}: {e}")

    def poll_status(self, job_name: str) -> str:
        try:
            resp = self.client.get_transcription_job(TranscriptionJobName=job_name)
        except (ClientError, BotoCoreError) as e:
            raise TranscriptionStatusError(f"Could not read status of {job_name}: {e}")

        job = resp.get("TranscriptionJob") or {}
        remote = job.get("TranscriptionJobStatus")
        if remote == RemoteJobStatus.FAILED:
            logger.warning("Transcription job %s failed: %s",
                           job_name, job.get("FailureReason", "no reason given"))
        return map_remote_status(remote)

    def delete(self, job_name: str) -> None:
        try:
            self.client.delete_transcription_job(TranscriptionJobName=job_name)
        except (ClientError, BotoCoreError) as e:
            logger.info("Could not delete transcription job %s: %s", job_name, e)
