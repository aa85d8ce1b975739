"""
Application configuration manager.
Stores settings in a JSON file under the app support directory.
Environment variables override saved values for the current process only.
"""

import json
import logging
import os
from pathlib import Path

from meetnotes.core.constants import (
    CONFIG_PATH, DEFAULT_STORAGE_ROOT, DEFAULT_EXPORT_ROOT, DEFAULT_JOB_DB_PATH,
    DEFAULT_AWS_REGION, StorageBackend, TranscriptionBackend,
    TRANSCRIBE_LANGUAGE_CODE, TRANSCRIBE_MAX_SPEAKER_LABELS,
    POLL_INTERVAL_SEC, MAX_POLL_ATTEMPTS,
    BEDROCK_MODEL_ID, NOTES_MAX_TOKENS, NOTES_TEMPERATURE, REQUEST_TIMEOUT_SEC,
)

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'storage_backend': StorageBackend.LOCAL,
    'storage_root': str(DEFAULT_STORAGE_ROOT),
    's3_bucket': '',
    'aws_region': DEFAULT_AWS_REGION,
    'transcription_backend': TranscriptionBackend.DEEPGRAM,
    'language_code': TRANSCRIBE_LANGUAGE_CODE,
    'max_speaker_labels': TRANSCRIBE_MAX_SPEAKER_LABELS,
    'poll_interval_sec': POLL_INTERVAL_SEC,
    'max_poll_attempts': MAX_POLL_ATTEMPTS,
    'bedrock_model_id': BEDROCK_MODEL_ID,
    'max_tokens': NOTES_MAX_TOKENS,
    'temperature': NOTES_TEMPERATURE,
    'request_timeout_sec': REQUEST_TIMEOUT_SEC,
    'export_root': str(DEFAULT_EXPORT_ROOT),
    'job_db_path': str(DEFAULT_JOB_DB_PATH),
}

# Validation bounds: key -> (type, min, max)
_BOUNDS = {
    'max_speaker_labels': (int, 2, 10),
    'poll_interval_sec': (float, 1, 300),
    'max_poll_attempts': (int, 0, 100000),
    'max_tokens': (int, 256, 8000),
    'temperature': (float, 0.0, 1.0),
    'request_timeout_sec': (int, 5, 600),
}

_CHOICES = {
    'storage_backend': (StorageBackend.LOCAL, StorageBackend.S3),
    'transcription_backend': (TranscriptionBackend.AWS, TranscriptionBackend.DEEPGRAM),
}

_ENV_OVERRIDES = {
    'MEETNOTES_STORAGE_BACKEND': 'storage_backend',
    'MEETNOTES_STORAGE_ROOT': 'storage_root',
    'MEETNOTES_BUCKET': 's3_bucket',
    'AWS_REGION': 'aws_region',
    'MEETNOTES_TRANSCRIPTION_BACKEND': 'transcription_backend',
    'MEETNOTES_BEDROCK_MODEL_ID': 'bedrock_model_id',
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None, environ: dict | None = None):
        self.path = Path(config_path or CONFIG_PATH)
        self._environ = os.environ if environ is None else environ
        self._data: dict = {}
        self._overrides: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults, then apply env overrides."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                if isinstance(saved, dict):
                    for key, value in saved.items():
                        if key in _DEFAULTS:
                            self._data[key] = self._validate(key, value)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load config: %s", e)

        self._overrides = {}
        for env_name, key in _ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            if value:
                self._overrides[key] = self._validate(key, value)

    def save(self):
        """Persist config to disk. Environment overrides are not written."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        if key in self._overrides:
            return self._overrides[key]
        return self._data.get(key, default)

    def set(self, key: str, value):
        if key not in _DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key in _BOUNDS:
            kind, low, high = _BOUNDS[key]
            try:
                value = kind(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r; using default", key, value)
                return _DEFAULTS[key]
            return max(low, min(high, value))

        if key in _CHOICES:
            value = str(value).strip().lower()
            if value not in _CHOICES[key]:
                logger.warning("Invalid %s %r; using %s", key, value, _DEFAULTS[key])
                return _DEFAULTS[key]
            return value

        return value

    def as_dict(self) -> dict:
        merged = dict(self._data)
        merged.update(self._overrides)
        return merged

    @property
    def storage_backend(self) -> str:
        return self.get('storage_backend')

    @property
    def transcription_backend(self) -> str:
        return self.get('transcription_backend')

    @property
    def storage_root(self) -> Path:
        return Path(self.get('storage_root')).expanduser()

    @property
    def export_root(self) -> Path:
        return Path(self.get('export_root')).expanduser()

    @export_root.setter
    def export_root(self, value: str):
        self.set('export_root', str(value))
