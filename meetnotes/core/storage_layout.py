"""
Storage layout conventions and id derivation.

All artifacts for one recording share its video id:

    videos/<id>/<display name>        raw media
    transcripts/<id>/transcript.json  transcription output
    notes/<id>/notes.txt              cached notes

Nothing outside the pipeline coordinator should build these paths by hand.
"""

import threading
import time

from meetnotes.core.constants import (
    VIDEOS_PREFIX, TRANSCRIPTS_PREFIX, NOTES_PREFIX,
    TRANSCRIPT_FILENAME, NOTES_FILENAME,
    JOB_NAME_PREFIX, VIDEO_ID_PREFIX,
)

_id_lock = threading.Lock()
_last_id_millis = 0


def new_video_id(now_millis: int | None = None) -> str:
    """
    Generate a time-based video id ("video-<epoch millis>").
    Ids handed out by this process are strictly increasing even when two
    uploads land in the same millisecond.
    """
    global _last_id_millis
    millis = now_millis if now_millis is not None else int(time.time() * 1000)
    with _id_lock:
        if millis <= _last_id_millis:
            millis = _last_id_millis + 1
        _last_id_millis = millis
    return f"{VIDEO_ID_PREFIX}{millis}"


def job_name_for(video_id: str) -> str:
    """Remote transcription job name for a video. Used for submit and poll alike."""
    return f"{JOB_NAME_PREFIX}{video_id}"


def media_path(video_id: str, display_name: str) -> str:
    return f"{VIDEOS_PREFIX}{video_id}/{display_name}"


def transcript_path(video_id: str) -> str:
    return f"{TRANSCRIPTS_PREFIX}{video_id}/{TRANSCRIPT_FILENAME}"


def notes_path(video_id: str) -> str:
    return f"{NOTES_PREFIX}{video_id}/{NOTES_FILENAME}"


def artifact_paths(video_id: str, display_name: str) -> list[str]:
    """Every artifact a video may own, in deletion order."""
    return [
        media_path(video_id, display_name),
        transcript_path(video_id),
        notes_path(video_id),
    ]


def split_media_path(path: str) -> tuple[str, str] | None:
    """
    Split "videos/<id>/<name>" into (id, name).
    Returns None for keys with any other shape (e.g. nested folders).
    """
    parts = path.split('/')
    if len(parts) != 3 or parts[0] + '/' != VIDEOS_PREFIX:
        return None
    video_id, name = parts[1], parts[2]
    if not video_id or not name:
        return None
    return video_id, name
