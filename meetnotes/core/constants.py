"""
Shared constants for MeetingNotes.
Imported by every other module.
"""

import os
import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "MeetingNotes"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_SUPPORT_DIR = pathlib.Path(
    os.environ.get("MEETNOTES_HOME", str(HOME / ".config" / APP_NAME))
)
APP_STATE_DIR = HOME / ".local" / "state" / APP_NAME
CONFIG_PATH = pathlib.Path(
    os.environ.get("MEETNOTES_CONFIG", str(APP_SUPPORT_DIR / "config.json"))
)
LOG_DIR = pathlib.Path(os.environ.get("MEETNOTES_LOG_DIR", str(APP_STATE_DIR)))
DEFAULT_STORAGE_ROOT = HOME / "MeetingNotes" / "store"
DEFAULT_EXPORT_ROOT = HOME / "Documents" / "Meeting Notes"
DEFAULT_JOB_DB_PATH = APP_SUPPORT_DIR / "jobs.db"

# ── Keychain identifiers ─────────────────────────────────────────────
KEYCHAIN_SERVICE = "MeetingNotes:Deepgram"
KEYCHAIN_ACCOUNT = "default"
DEEPGRAM_API_KEY_ENV = "DEEPGRAM_API_KEY"

# ── Video status values (as seen by consumers) ───────────────────────
class VideoStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

TERMINAL_STATUSES = {VideoStatus.COMPLETED, VideoStatus.FAILED}

# ── Remote transcription job status values ───────────────────────────
class RemoteJobStatus:
    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

# ── Backends ──────────────────────────────────────────────────────────
class StorageBackend:
    LOCAL = "local"
    S3 = "s3"

class TranscriptionBackend:
    AWS = "aws"
    DEEPGRAM = "deepgram"

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Non-retryable
    NOT_FOUND = "ERR_NOT_FOUND"
    TRANSCRIPT_MISSING = "ERR_TRANSCRIPT_MISSING"
    DECODE = "ERR_DECODE"
    INVALID_INPUT = "ERR_INVALID_INPUT"
    TRANSCRIPTION_STATUS = "ERR_TRANSCRIPTION_STATUS"

    # Retryable
    STORE = "ERR_STORE"
    SUBMIT = "ERR_SUBMIT"
    GENERATION = "ERR_GENERATION"
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"
    DEEPGRAM_TIMEOUT = "ERR_DEEPGRAM_TIMEOUT"
    DEEPGRAM_TRANSCRIBE_FAILED = "ERR_DEEPGRAM_TRANSCRIBE_FAILED"

RETRYABLE_ERRORS = {
    ErrorCode.STORE,
    ErrorCode.SUBMIT,
    ErrorCode.GENERATION,
    ErrorCode.NETWORK_TRANSIENT,
    ErrorCode.DEEPGRAM_TIMEOUT,
    ErrorCode.DEEPGRAM_TRANSCRIBE_FAILED,
}

# ── Storage layout ────────────────────────────────────────────────────
VIDEOS_PREFIX = "videos/"
TRANSCRIPTS_PREFIX = "transcripts/"
NOTES_PREFIX = "notes/"
TRANSCRIPT_FILENAME = "transcript.json"
NOTES_FILENAME = "notes.txt"
JOB_NAME_PREFIX = "transcription-"
VIDEO_ID_PREFIX = "video-"
NOTES_CONTENT_TYPE = "text/plain"
TRANSCRIPT_CONTENT_TYPE = "application/json"

# ── Polling ───────────────────────────────────────────────────────────
POLL_INTERVAL_SEC = 10
MAX_POLL_ATTEMPTS = 360        # ~1 hour at the default interval; 0 = unbounded
LIST_STATUS_WORKERS = 8

# ── AWS ───────────────────────────────────────────────────────────────
DEFAULT_AWS_REGION = "us-east-1"
TRANSCRIBE_LANGUAGE_CODE = "en-US"
TRANSCRIBE_MAX_SPEAKER_LABELS = 10
BEDROCK_MODEL_ID = "anthropic.claude-v2"
BEDROCK_ANTHROPIC_VERSION = "bedrock-2023-05-31"
NOTES_MAX_TOKENS = 2500
NOTES_TEMPERATURE = 0.1
REQUEST_TIMEOUT_SEC = 120

# ── Deepgram ──────────────────────────────────────────────────────────
DEEPGRAM_API_BASE = "https://api.deepgram.com/v1"
DEEPGRAM_MODEL = "nova-3"
DEEPGRAM_LANGUAGE = "en"

# ── Notes document markers ───────────────────────────────────────────
QUICK_SUMMARY_MARKER = "QUICK SUMMARY:"
DETAILED_SUMMARY_MARKER = "DETAILED SUMMARY:"
REQUIRED_NOTE_MARKERS = (QUICK_SUMMARY_MARKER, DETAILED_SUMMARY_MARKER)

ACTION_ITEMS_HEADER = "ACTION ITEMS"
KEY_DECISIONS_HEADER = "KEY DECISIONS"

# Decision lines the model emits when there is nothing to report
DECISION_PLACEHOLDERS = ("[no clear", "no decisions", "[skip section")

# ── Misc ──────────────────────────────────────────────────────────────
# Characters forbidden in display names (path separators + control chars)
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_DISPLAY_NAME_LEN = 200
