"""
In-memory collection of the videos a session is tracking.

Owned by the pipeline coordinator and injected into it, so tests can hand in
a pre-filled collection without touching any backend.
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, Optional

from meetnotes.core.constants import VideoStatus
from meetnotes.core.models import Video

logger = logging.getLogger(__name__)


class VideoCollection:
    """Thread-safe map of video id → Video, preserving insertion order."""

    def __init__(self, videos: list[Video] | None = None):
        self._lock = threading.RLock()
        self._videos: dict[str, Video] = {}
        for video in videos or []:
            self._videos[video.id] = video

    # ── Lifecycle ─────────────────────────────────────────────────────

    def init(self, loader: Callable[[], list[Video]]):
        """Replace the contents with whatever loader returns (normally list_videos)."""
        videos = loader()
        with self._lock:
            self._videos = {v.id: v for v in videos}
        logger.info("Loaded %d videos", len(videos))

    def teardown(self):
        pass

    # ── Access ────────────────────────────────────────────────────────

    def all(self) -> list[Video]:
        with self._lock:
            return [replace(v) for v in self._videos.values()]

    def get(self, video_id: str) -> Optional[Video]:
        with self._lock:
            video = self._videos.get(video_id)
            return replace(video) if video else None

    def __contains__(self, video_id: str) -> bool:
        with self._lock:
            return video_id in self._videos

    def __len__(self) -> int:
        with self._lock:
            return len(self._videos)

    # ── Mutation (coordinator only) ───────────────────────────────────

    def add(self, video: Video):
        with self._lock:
            self._videos[video.id] = video

    def update_status(self, video_id: str, status: str) -> bool:
        """Returns False when the video is no longer tracked."""
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return False
            video.status = status
            if status != VideoStatus.COMPLETED:
                video.notes = None
            return True

    def set_notes(self, video_id: str, notes: str) -> bool:
        with self._lock:
            video = self._videos.get(video_id)
            if video is None or video.status != VideoStatus.COMPLETED:
                return False
            video.notes = notes
            return True

    def remove(self, video_id: str) -> Optional[Video]:
        with self._lock:
            return self._videos.pop(video_id, None)
