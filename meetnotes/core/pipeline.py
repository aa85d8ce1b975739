"""
Pipeline coordinator.

Drives each recording through upload → transcription → status polling →
notes generation, and owns both the tracked video collection and the
existence of cached notes artifacts.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional

from meetnotes.core.constants import (
    ErrorCode, VideoStatus, TERMINAL_STATUSES,
    VIDEOS_PREFIX, NOTES_CONTENT_TYPE,
    POLL_INTERVAL_SEC, MAX_POLL_ATTEMPTS, LIST_STATUS_WORKERS,
)
from meetnotes.core.contracts import (
    ArtifactStore, TranscriptionJobClient, NotesGenerationClient,
)
from meetnotes.core.error_codes import PipelineError, NotFound, TranscriptMissing
from meetnotes.core.models import Video
from meetnotes.core.security_utils import sanitize_display_name
from meetnotes.core.storage_layout import (
    new_video_id, job_name_for, media_path, transcript_path, notes_path,
    artifact_paths, split_media_path,
)
from meetnotes.core.transcript_format import decode_transcript
from meetnotes.core.video_store import VideoCollection

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


class PollHandle:
    """Handle on one background status poll. cancel() stops it re-arming."""

    def __init__(self, video_id: str):
        self.video_id = video_id
        self.attempts = 0
        self.last_status: Optional[str] = None
        self.exhausted = False
        self._callbacks: list[StatusCallback] = []
        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def cancel(self):
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: float | None = None):
        if self._thread:
            self._thread.join(timeout)

    def _sleep(self, seconds: float) -> bool:
        """Wait between polls. Returns True if cancelled meanwhile."""
        return self._cancel_event.wait(seconds)


class PipelineCoordinator:
    """
    Coordinates the artifact store, transcription jobs and notes generation.
    Status-change callbacks run on background poll threads.
    """

    def __init__(self, store: ArtifactStore,
                 transcriber: TranscriptionJobClient,
                 generator: NotesGenerationClient,
                 videos: VideoCollection | None = None,
                 poll_interval_sec: float = POLL_INTERVAL_SEC,
                 max_poll_attempts: int = MAX_POLL_ATTEMPTS):
        self.store = store
        self.transcriber = transcriber
        self.generator = generator
        self.videos = videos if videos is not None else VideoCollection()
        self.poll_interval_sec = poll_interval_sec
        self.max_poll_attempts = max_poll_attempts

        self._polls: dict[str, PollHandle] = {}
        self._polls_lock = threading.Lock()
        self._notes_locks: dict[str, threading.Lock] = {}
        self._notes_locks_guard = threading.Lock()
        # Ids deleted this session; hidden from listings even if media deletion failed
        self._deleted_ids: set[str] = set()

    # ── Session lifecycle ─────────────────────────────────────────────

    def load(self):
        """Fill the tracked collection from the store."""
        self.videos.init(self.list_videos)

    def shutdown(self):
        """Cancel every running poll."""
        with self._polls_lock:
            handles = list(self._polls.values())
            self._polls.clear()
        for handle in handles:
            handle.cancel()
        for handle in handles:
            handle.join(timeout=1)
        self.videos.teardown()

    # ── Upload & transcription ────────────────────────────────────────

    def upload(self, display_name: str, media_bytes: bytes,
               content_type: str | None = None) -> Video:
        """
        Store a recording and start transcribing it.
        The returned Video is tracked in 'processing' state. If submission
        fails the SubmitError propagates, but the stored media and tracked
        video are kept so retry_transcription() can resubmit.
        """
        name = sanitize_display_name(display_name)
        if not name:
            raise PipelineError("Meeting name is required", code=ErrorCode.INVALID_INPUT)
        if not media_bytes:
            raise PipelineError("Recording is empty", code=ErrorCode.INVALID_INPUT)

        video_id = new_video_id()
        path = media_path(video_id, name)
        self.store.put(path, media_bytes, content_type or "application/octet-stream")
        logger.info("Uploaded %s (%d bytes)", path, len(media_bytes))

        video = Video(
            id=video_id,
            display_name=name,
            upload_timestamp=datetime.now(timezone.utc).isoformat(),
            status=VideoStatus.PROCESSING,
        )
        self.videos.add(video)

        self.transcriber.submit(video_id, path, transcript_path(video_id))
        return video

    def retry_transcription(self, video_id: str) -> Video:
        """Resubmit the transcription job for a tracked video."""
        video = self.videos.get(video_id)
        if video is None:
            raise NotFound(f"Video {video_id} is not tracked")
        self.transcriber.submit(video_id, media_path(video_id, video.display_name),
                                transcript_path(video_id))
        self.videos.update_status(video_id, VideoStatus.PROCESSING)
        video.status = VideoStatus.PROCESSING
        return video

    def check_status(self, video_id: str) -> str:
        """
        One status observation. A job whose status cannot be read counts as
        failed.
        """
        job_name = job_name_for(video_id)
        try:
            return self.transcriber.poll_status(job_name)
        except PipelineError as e:
            logger.warning("Status check for %s failed: %s", job_name, e)
            return VideoStatus.FAILED

    # ── Polling ───────────────────────────────────────────────────────

    def poll_until_terminal(self, video_id: str,
                            on_status_change: StatusCallback | None = None) -> PollHandle:
        """
        Poll a tracked video's job in the background until it completes or
        fails. on_status_change receives every status observed after it was
        registered, the terminal one included. A poll already running for the
        id is reused and the callback is attached to it.
        """
        if video_id not in self.videos:
            raise NotFound(f"Video {video_id} is not tracked")

        with self._polls_lock:
            existing = self._polls.get(video_id)
            # a handle is unregistered before its terminal status is delivered
            if existing and not existing.cancelled:
                logger.debug("Reusing running poll for %s", video_id)
                if on_status_change:
                    existing._callbacks.append(on_status_change)
                return existing

            handle = PollHandle(video_id)
            if on_status_change:
                handle._callbacks.append(on_status_change)
            handle._thread = threading.Thread(
                target=self._poll_loop, args=(handle,),
                name=f"poll-{video_id}", daemon=True,
            )
            self._polls[video_id] = handle
        handle._thread.start()
        return handle

    def _poll_loop(self, handle: PollHandle):
        video_id = handle.video_id
        try:
            while not handle.cancelled:
                if video_id not in self.videos:
                    logger.info("Video %s no longer tracked; stopping poll", video_id)
                    break

                status = self.check_status(video_id)
                handle.attempts += 1
                handle.last_status = status
                if handle.cancelled or not self.videos.update_status(video_id, status):
                    break

                with self._polls_lock:
                    if status in TERMINAL_STATUSES and self._polls.get(video_id) is handle:
                        del self._polls[video_id]
                    callbacks = list(handle._callbacks)
                for callback in callbacks:
                    try:
                        callback(status)
                    except Exception as e:
                        logger.error("Status callback for %s raised: %s",
                                     video_id, e, exc_info=True)

                if status in TERMINAL_STATUSES:
                    logger.info("Transcription for %s finished: %s", video_id, status)
                    break

                if self.max_poll_attempts and handle.attempts >= self.max_poll_attempts:
                    handle.exhausted = True
                    logger.warning("Giving up polling %s after %d attempts",
                                   video_id, handle.attempts)
                    break

                if handle._sleep(self.poll_interval_sec):
                    break
        finally:
            with self._polls_lock:
                if self._polls.get(video_id) is handle:
                    del self._polls[video_id]

    def active_poll(self, video_id: str) -> Optional[PollHandle]:
        with self._polls_lock:
            return self._polls.get(video_id)

    # ── Notes ─────────────────────────────────────────────────────────

    def _notes_lock(self, video_id: str) -> threading.Lock:
        with self._notes_locks_guard:
            lock = self._notes_locks.get(video_id)
            if lock is None:
                lock = self._notes_locks[video_id] = threading.Lock()
            return lock

    def get_transcript(self, video_id: str) -> str:
        """Decoded transcript text, speaker-labelled when labels exist."""
        try:
            raw = self.store.get(transcript_path(video_id))
        except NotFound:
            raise TranscriptMissing(
                f"No transcript for {video_id}; failed to generate notes, retry "
                f"once transcription has completed")
        return decode_transcript(raw)

    def fetch_notes(self, video_id: str) -> str:
        """
        Cached notes for a video, generating and caching them on first use.
        Cached text is returned as stored, without re-validation.
        """
        with self._notes_lock(video_id):
            notes = None
            try:
                notes = self.store.get(notes_path(video_id)).decode('utf-8', errors='replace')
            except NotFound:
                logger.info("No cached notes for %s, generating", video_id)

            if notes:
                logger.info("Retrieved cached notes for %s", video_id)
            else:
                notes = self._generate_and_cache(video_id)

        self.videos.set_notes(video_id, notes)
        return notes

    def regenerate_notes(self, video_id: str) -> str:
        """Generate fresh notes and overwrite the cached artifact."""
        with self._notes_lock(video_id):
            notes = self._generate_and_cache(video_id)
        self.videos.set_notes(video_id, notes)
        return notes

    def _generate_and_cache(self, video_id: str) -> str:
        transcript = self.get_transcript(video_id)
        logger.info("Generating notes for %s from %d characters of transcript",
                    video_id, len(transcript))
        notes = self.generator.generate(transcript)
        self.store.put(notes_path(video_id), notes.encode('utf-8'), NOTES_CONTENT_TYPE)
        logger.info("Stored notes for %s", video_id)
        return notes

    # ── Deletion & listing ────────────────────────────────────────────

    def delete_video(self, video_id: str, display_name: str | None = None):
        """
        Remove a video and its artifacts. Best effort: each artifact deletion
        failure is logged and skipped, and the video is dropped regardless.
        """
        with self._polls_lock:
            handle = self._polls.pop(video_id, None)
        if handle:
            handle.cancel()

        if display_name is None:
            tracked = self.videos.get(video_id)
            display_name = tracked.display_name if tracked else None

        paths = artifact_paths(video_id, display_name) if display_name else [
            transcript_path(video_id), notes_path(video_id)]
        for path in paths:
            try:
                self.store.delete(path)
            except PipelineError as e:
                logger.warning("Failed to delete %s: %s", path, e)

        try:
            self.transcriber.delete(job_name_for(video_id))
        except PipelineError as e:
            logger.warning("Failed to delete transcription job for %s: %s", video_id, e)

        self._deleted_ids.add(video_id)
        self.videos.remove(video_id)
        with self._notes_locks_guard:
            self._notes_locks.pop(video_id, None)
        logger.info("Deleted video %s", video_id)

    def list_videos(self) -> list[Video]:
        """
        Videos found under videos/, one per id, each with a fresh status.
        Order is unspecified.
        """
        grouped: dict[str, tuple[str, str]] = {}
        for obj in self.store.list(VIDEOS_PREFIX):
            parts = split_media_path(obj.path)
            if parts is None:
                continue
            video_id, name = parts
            if video_id in self._deleted_ids:
                continue
            grouped[video_id] = (name, obj.last_modified)

        if not grouped:
            return []

        ids = list(grouped)
        with ThreadPoolExecutor(max_workers=min(LIST_STATUS_WORKERS, len(ids))) as pool:
            statuses = list(pool.map(self.check_status, ids))

        return [
            Video(id=video_id, display_name=grouped[video_id][0],
                  upload_timestamp=grouped[video_id][1], status=status)
            for video_id, status in zip(ids, statuses)
        ]
