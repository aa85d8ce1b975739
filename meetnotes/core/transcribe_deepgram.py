"""
Deepgram Speech-to-Text integration.
Uses Nova-3 pre-recorded mode with speaker diarization.
Includes exponential backoff for rate-limit (429) responses.

Deepgram answers synchronously, so DeepgramJobClient runs each request on a
background worker and records job state in SQLite. That gives local mode the
same submit/poll contract as Amazon Transcribe.
"""

import json
import logging
import mimetypes
import queue
import random
import threading
import time
from typing import Callable, Optional

import requests

from meetnotes.core.constants import (
    ErrorCode, RemoteJobStatus, TRANSCRIPT_CONTENT_TYPE,
    DEEPGRAM_API_BASE, DEEPGRAM_MODEL, DEEPGRAM_LANGUAGE,
)
from meetnotes.core.contracts import ArtifactStore, TranscriptionJobClient
from meetnotes.core.db_sqlite import Database
from meetnotes.core.error_codes import (
    PipelineError, SubmitError, TranscriptionStatusError,
)
from meetnotes.core.security_utils import get_deepgram_api_key
from meetnotes.core.storage_layout import job_name_for
from meetnotes.core.transcribe_aws import map_remote_status

logger = logging.getLogger(__name__)

DEEPGRAM_PRERECORDED_URL = f"{DEEPGRAM_API_BASE}/listen"

_MAX_RATE_LIMIT_RETRIES = 4
_RATE_LIMIT_BASE_DELAY = 2.0   # seconds, doubles each retry with jitter


def transcribe_audio(audio: bytes, api_key: str, content_type: str = "audio/*",
                     sleep: Callable[[float], None] = time.sleep) -> dict:
    """
    Transcribe audio bytes using Deepgram Nova-3 (pre-recorded, diarized).
    Retries up to 4 times with exponential backoff on 429 rate-limit responses.
    Returns the Deepgram response dict.
    """
    headers = {
        "Authorization": f"Token {api_key}",
        "Content-Type": content_type,
    }

    params = {
        "model": DEEPGRAM_MODEL,
        "language": DEEPGRAM_LANGUAGE,
        "smart_format": "true",
        "punctuate": "true",
        "diarize": "true",
    }

    # Adaptive timeout: ~1 min per 10MB, minimum 120s
    timeout_sec = max(120, int(len(audio) / (10 * 1024 * 1024) * 60) + 60)

    for attempt in range(_MAX_RATE_LIMIT_RETRIES + 1):
        try:
            resp = requests.post(
                DEEPGRAM_PRERECORDED_URL,
                headers=headers,
                params=params,
                data=audio,
                timeout=timeout_sec,
            )
        except requests.exceptions.Timeout:
            raise PipelineError("Deepgram request timed out",
                                code=ErrorCode.DEEPGRAM_TIMEOUT)
        except requests.exceptions.ConnectionError:
            raise PipelineError("Network error connecting to Deepgram",
                                code=ErrorCode.NETWORK_TRANSIENT)
        except requests.exceptions.RequestException as e:
            raise PipelineError(f"Deepgram request failed: {e}",
                                code=ErrorCode.DEEPGRAM_TRANSCRIBE_FAILED)

        if resp.status_code == 504:
            raise PipelineError("Deepgram returned 504 Gateway Timeout",
                                code=ErrorCode.DEEPGRAM_TIMEOUT)

        if resp.status_code == 429:
            if attempt < _MAX_RATE_LIMIT_RETRIES:
                # Exponential backoff with jitter: 2s, 4s, 8s, 16s (+/- 10%)
                delay = _RATE_LIMIT_BASE_DELAY * (2 ** attempt)
                delay *= 1 + random.uniform(-0.1, 0.1)
                logger.warning(
                    "Deepgram rate limited (429), retrying in %.1fs (attempt %d/%d)",
                    delay, attempt + 1, _MAX_RATE_LIMIT_RETRIES,
                )
                sleep(delay)
                continue
            raise PipelineError(
                f"Deepgram rate limited (429) after {_MAX_RATE_LIMIT_RETRIES} retries",
                code=ErrorCode.NETWORK_TRANSIENT)

        if resp.status_code != 200:
            # Never echo request headers; they carry the API key
            error_body = resp.text[:300] if resp.text else "No response body"
            raise PipelineError(f"Deepgram returned {resp.status_code}: {error_body}",
                                code=ErrorCode.DEEPGRAM_TRANSCRIBE_FAILED)

        try:
            return resp.json()
        except ValueError:
            raise PipelineError("Failed to parse Deepgram response JSON",
                                code=ErrorCode.DEEPGRAM_TRANSCRIBE_FAILED)

    raise PipelineError("Deepgram request exhausted retries",
                        code=ErrorCode.NETWORK_TRANSIENT)


def to_transcript_document(deepgram_response: dict) -> dict:
    """
    Convert a Deepgram response into the stored transcript document shape:
    one plain transcript, word items with time ranges, and speaker segments
    built from runs of consecutive words by the same speaker.
    """
    try:
        alt = deepgram_response['results']['channels'][0]['alternatives'][0]
    except (KeyError, IndexError, TypeError):
        raise PipelineError("Deepgram response has no transcript",
                            code=ErrorCode.DEEPGRAM_TRANSCRIBE_FAILED)

    results: dict = {'transcripts': [{'transcript': alt.get('transcript', '')}]}

    words = alt.get('words') or []
    if not words:
        return {'results': results}

    results['items'] = [
        {
            'start_time': str(w.get('start', 0.0)),
            'end_time': str(w.get('end', 0.0)),
            'alternatives': [{'content': w.get('punctuated_word') or w.get('word', '')}],
            'type': 'pronunciation',
        }
        for w in words
    ]

    if all('speaker' in w for w in words):
        segments = []
        for w in words:
            label = f"spk_{w['speaker']}"
            if segments and segments[-1]['speaker_label'] == label:
                segments[-1]['end_time'] = str(w.get('end', 0.0))
            else:
                segments.append({
                    'speaker_label': label,
                    'start_time': str(w.get('start', 0.0)),
                    'end_time': str(w.get('end', 0.0)),
                })
        results['speaker_labels'] = {
            'speakers': len({s['speaker_label'] for s in segments}),
            'segments': segments,
        }

    return {'results': results}


class DeepgramJobClient(TranscriptionJobClient):
    """
    Local transcription runner with a submit/poll contract.
    Jobs are processed one at a time by a daemon worker thread.
    """

    def __init__(self, store: ArtifactStore, db: Database,
                 api_key_provider: Callable[[], Optional[str]] = get_deepgram_api_key):
        self.store = store
        self.db = db
        self.api_key_provider = api_key_provider
        self._queue: "queue.Queue[str]" = queue.Queue()
        self._stop_event = threading.Event()
        self._worker_thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    # ── Contract ──────────────────────────────────────────────────────

    def submit(self, video_id: str, media_path: str, output_path: str) -> str:
        if not self.api_key_provider():
            raise SubmitError("Deepgram API key not available", retryable=False)

        job_name = job_name_for(video_id)
        _, queued = self.db.upsert_job(job_name, video_id, media_path, output_path)
        if queued:
            self._enqueue(job_name)
            logger.info("Queued transcription job %s", job_name)
        else:
            logger.info("Transcription job %s already exists", job_name)
        return job_name

    def poll_status(self, job_name: str) -> str:
        job = self.db.get_job(job_name)
        if job is None:
            raise TranscriptionStatusError(f"Unknown transcription job {job_name}")
        return map_remote_status(job.status)

    def delete(self, job_name: str) -> None:
        self.db.delete_job(job_name)

    # ── Worker ────────────────────────────────────────────────────────

    def resume(self):
        """Re-queue jobs left unfinished by a previous run."""
        for job in self.db.get_unfinished_jobs():
            logger.info("Resuming transcription job %s", job.job_name)
            self._enqueue(job.job_name)

    def close(self):
        self._stop_event.set()
        if self._worker_thread:
            self._worker_thread.join(timeout=5)

    def _enqueue(self, job_name: str):
        self._queue.put(job_name)
        with self._start_lock:
            if self._worker_thread is None or not self._worker_thread.is_alive():
                self._stop_event.clear()
                self._worker_thread = threading.Thread(
                    target=self._worker_loop, name="deepgram-worker", daemon=True)
                self._worker_thread.start()

    def _worker_loop(self):
        """Main worker loop: processes one job at a time."""
        while not self._stop_event.is_set():
            try:
                job_name = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                self.process_job(job_name)
            except Exception as e:
                logger.error("Worker loop error on %s: %s", job_name, e, exc_info=True)
            finally:
                self._queue.task_done()

    def process_job(self, job_name: str):
        """Run one job to a terminal state."""
        job = self.db.get_job(job_name)
        if job is None:
            return  # deleted while queued
        if job.status in (RemoteJobStatus.COMPLETED, RemoteJobStatus.FAILED):
            return

        self.db.update_job_status(job_name, RemoteJobStatus.IN_PROGRESS)
        try:
            api_key = self.api_key_provider()
            if not api_key:
                raise PipelineError("Deepgram API key not available",
                                    code=ErrorCode.DEEPGRAM_TRANSCRIBE_FAILED)

            audio = self.store.get(job.media_path)
            content_type = mimetypes.guess_type(job.media_path)[0] or "audio/*"
            response = transcribe_audio(audio, api_key, content_type)
            document = to_transcript_document(response)
            self.store.put(job.output_path,
                           json.dumps(document, indent=2).encode('utf-8'),
                           TRANSCRIPT_CONTENT_TYPE)
        except PipelineError as e:
            logger.warning("Transcription job %s failed: %s", job_name, e)
            self.db.update_job_status(job_name, RemoteJobStatus.FAILED,
                                      error_code=e.code,
                                      error_message=e.message[:2000])
            return
        except Exception as e:
            logger.error("Unexpected error in transcription job %s: %s",
                         job_name, e, exc_info=True)
            self.db.update_job_status(job_name, RemoteJobStatus.FAILED,
                                      error_code="ERR_UNEXPECTED",
                                      error_message=str(e)[:2000])
            return

        self.db.update_job_status(job_name, RemoteJobStatus.COMPLETED)
        logger.info("Transcription job %s completed", job_name)
