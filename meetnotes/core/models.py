"""
Data models (plain dataclasses) for MeetingNotes.
"""

from dataclasses import dataclass, field
from typing import Optional

from meetnotes.core.constants import VideoStatus


@dataclass
class Video:
    id: str                          # video-<epoch millis>
    display_name: str
    upload_timestamp: str            # ISO-8601, UTC
    status: str = VideoStatus.PROCESSING
    notes: Optional[str] = None


@dataclass
class StoredObject:
    path: str
    last_modified: str               # ISO-8601, UTC


@dataclass
class TranscriptionJob:
    job_name: str                    # transcription-<video id>
    video_id: str
    media_path: str
    output_path: str
    status: str = "QUEUED"
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None


@dataclass
class Section:
    header: str
    items: list[str] = field(default_factory=list)


@dataclass
class ActionItem:
    text: str
    urgent: bool = False
    owner: Optional[str] = None
    due: Optional[str] = None
    priority: str = "Normal"
