#!/usr/bin/env python3
"""
Unit tests for MeetingNotes core modules.
Tests cover: storage layout, security utils, error codes, transcript decoding,
notes parsing, configuration, the job database, the local store and exports.
"""

import sys
import os
import json
import tempfile
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from meetnotes.core.constants import (
    ErrorCode, RemoteJobStatus, StorageBackend, TranscriptionBackend,
)
from meetnotes.core.storage_layout import (
    new_video_id, job_name_for, media_path, transcript_path, notes_path,
    artifact_paths, split_media_path,
)
from meetnotes.core.security_utils import sanitize_display_name, safe_output_path
from meetnotes.core.error_codes import (
    PipelineError, StoreError, NotFound, TranscriptMissing, DecodeError,
    GenerationError, is_retryable,
)
from meetnotes.core.transcript_format import decode_transcript
from meetnotes.core.notes_parser import (
    parse, filter_decisions, parse_action_item, normalize_item, render_markdown,
)
from meetnotes.core.artifact_store import LocalArtifactStore
from meetnotes.core.output_writer import write_notes, notes_exported


SAMPLE_NOTES = """QUICK SUMMARY:
• The team agreed to ship v2 on Friday.

DETAILED SUMMARY:
• Release scope - v2 limited to the reporting module
• QA status -   regression suite green

KEY DECISIONS:
• Decision: ship v2 - Approved by Bob

ACTION ITEMS:
• [URGENT] Task: ship report @alice by Friday
• Task: update changelog @carol by Monday, end of day

BLOCKERS:
• Blocker: staging is down - Needs: ops ticket resolved
"""


class TestStorageLayout(unittest.TestCase):
    """Test artifact path conventions."""

    def test_paths(self):
        self.assertEqual(media_path("video-1", "Standup"), "videos/video-1/Standup")
        self.assertEqual(transcript_path("video-1"), "transcripts/video-1/transcript.json")
        self.assertEqual(notes_path("video-1"), "notes/video-1/notes.txt")

    def test_job_name(self):
        self.assertEqual(job_name_for("video-1700000000000"),
                         "transcription-video-1700000000000")

    def test_artifact_paths_order(self):
        self.assertEqual(artifact_paths("video-1", "Standup"), [
            "videos/video-1/Standup",
            "transcripts/video-1/transcript.json",
            "notes/video-1/notes.txt",
        ])

    def test_split_media_path(self):
        self.assertEqual(split_media_path("videos/video-1/Standup"), ("video-1", "Standup"))
        self.assertIsNone(split_media_path("videos/video-1"))
        self.assertIsNone(split_media_path("videos/video-1/nested/file"))
        self.assertIsNone(split_media_path("notes/video-1/notes.txt"))
        self.assertIsNone(split_media_path("videos//Standup"))

    def test_video_ids_are_monotonic(self):
        first = new_video_id(now_millis=5_000_000_000_000)
        second = new_video_id(now_millis=5_000_000_000_000)
        third = new_video_id(now_millis=4_000_000_000_000)
        self.assertEqual(first, "video-5000000000000")
        self.assertEqual(second, "video-5000000000001")
        self.assertEqual(third, "video-5000000000002")

    def test_video_id_format(self):
        self.assertRegex(new_video_id(), r"^video-\d{13,}$")


class TestSecurityUtils(unittest.TestCase):
    """Test display name sanitization."""

    def test_plain_name(self):
        self.assertEqual(sanitize_display_name("Weekly Standup"), "Weekly Standup")

    def test_separators_removed(self):
        result = sanitize_display_name("Q3/Q4 planning")
        self.assertNotIn("/", result)
        self.assertEqual(result, "Q3 Q4 planning")

    def test_traversal(self):
        result = sanitize_display_name("../../etc/passwd")
        self.assertNotIn("..", result)
        self.assertNotIn("/", result)

    def test_empty(self):
        self.assertEqual(sanitize_display_name(""), "")
        self.assertEqual(sanitize_display_name("   "), "")
        self.assertEqual(sanitize_display_name("..."), "")

    def test_long_name_truncated(self):
        self.assertLessEqual(len(sanitize_display_name("A" * 300)), 200)

    def test_safe_output_path(self):
        root = Path(tempfile.gettempdir()) / "meetnotes_exports"
        result = safe_output_path(root, "../../etc", "video-1")
        self.assertTrue(str(result.resolve()).startswith(str(root.resolve())))

    def test_safe_output_path_empty_title(self):
        root = Path(tempfile.gettempdir()) / "meetnotes_exports"
        self.assertIn("video_video-1", str(safe_output_path(root, "", "video-1")))


class TestErrorCodes(unittest.TestCase):
    """Test error code handling."""

    def test_default_codes(self):
        self.assertEqual(StoreError("x").code, ErrorCode.STORE)
        self.assertEqual(NotFound("x").code, ErrorCode.NOT_FOUND)
        self.assertEqual(DecodeError("x").code, ErrorCode.DECODE)

    def test_transcript_missing_is_not_found(self):
        err = TranscriptMissing("gone")
        self.assertIsInstance(err, NotFound)
        self.assertEqual(err.code, ErrorCode.TRANSCRIPT_MISSING)

    def test_retryable_from_code(self):
        self.assertTrue(StoreError("x").retryable)
        self.assertTrue(GenerationError("x").retryable)
        self.assertFalse(NotFound("x").retryable)
        self.assertFalse(DecodeError("x").retryable)

    def test_explicit_retryable_wins(self):
        self.assertFalse(GenerationError("x", retryable=False).retryable)

    def test_message_format(self):
        err = PipelineError("boom", code=ErrorCode.INVALID_INPUT)
        self.assertEqual(str(err), "[ERR_INVALID_INPUT] boom")

    def test_is_retryable(self):
        self.assertTrue(is_retryable(ErrorCode.SUBMIT))
        self.assertFalse(is_retryable(ErrorCode.TRANSCRIPT_MISSING))


class TestTranscriptFormat(unittest.TestCase):
    """Test transcript decoding and speaker reassembly."""

    @staticmethod
    def _doc(results: dict) -> bytes:
        return json.dumps({"results": results}).encode("utf-8")

    def test_plain_transcript(self):
        raw = self._doc({"transcripts": [{"transcript": "Hello everyone."}]})
        self.assertEqual(decode_transcript(raw), "Hello everyone.")

    def test_speaker_reconstruction(self):
        raw = self._doc({
            "transcripts": [{"transcript": "Hi there"}],
            "speaker_labels": {"segments": [
                {"speaker_label": "spk_0", "start_time": "0", "end_time": "2"},
            ]},
            "items": [
                {"start_time": "0", "end_time": "1", "alternatives": [{"content": "Hi"}]},
                {"start_time": "1", "end_time": "2", "alternatives": [{"content": "there"}]},
            ],
        })
        self.assertEqual(decode_transcript(raw), "\nspk_0: Hi there ")

    def test_speaker_changes(self):
        raw = self._doc({
            "transcripts": [{"transcript": "..."}],
            "speaker_labels": {"segments": [
                {"speaker_label": "spk_0", "start_time": "0.0", "end_time": "1.0"},
                {"speaker_label": "spk_0", "start_time": "1.0", "end_time": "2.0"},
                {"speaker_label": "spk_1", "start_time": "2.0", "end_time": "12.5"},
            ]},
            "items": [
                {"start_time": "0.1", "end_time": "0.9", "alternatives": [{"content": "Morning"}]},
                {"start_time": "1.1", "end_time": "1.9", "alternatives": [{"content": "all"}]},
                {"type": "punctuation", "alternatives": [{"content": "."}]},
                {"start_time": "2.5", "end_time": "3.0", "alternatives": [{"content": "Hey"}]},
                {"start_time": "10.0", "end_time": "12.0", "alternatives": [{"content": "ok"}]},
            ],
        })
        self.assertEqual(decode_transcript(raw), "\nspk_0: Morning all \nspk_1: Hey ok ")

    def test_times_compared_numerically(self):
        # "9.5" > "10.0" as strings; numerically the item belongs to the segment
        raw = self._doc({
            "transcripts": [{"transcript": "x"}],
            "speaker_labels": {"segments": [
                {"speaker_label": "spk_0", "start_time": "9.0", "end_time": "11.0"},
            ]},
            "items": [
                {"start_time": "9.5", "end_time": "10.0", "alternatives": [{"content": "yes"}]},
                {"start_time": "10.0", "end_time": "10.5", "alternatives": [{"content": "indeed"}]},
            ],
        })
        self.assertEqual(decode_transcript(raw), "\nspk_0: yes indeed ")

    def test_invalid_json(self):
        with self.assertRaises(DecodeError):
            decode_transcript(b"not json")

    def test_missing_transcripts(self):
        with self.assertRaises(DecodeError):
            decode_transcript(self._doc({"transcripts": []}))
        with self.assertRaises(DecodeError):
            decode_transcript(json.dumps({"jobName": "x"}).encode())

    def test_bad_segment_times(self):
        raw = self._doc({
            "transcripts": [{"transcript": "x"}],
            "speaker_labels": {"segments": [{"speaker_label": "spk_0", "start_time": "soon"}]},
            "items": [{"start_time": "0", "end_time": "1", "alternatives": [{"content": "a"}]}],
        })
        with self.assertRaises(DecodeError):
            decode_transcript(raw)


class TestNotesParser(unittest.TestCase):
    """Test the notes document parser."""

    def test_quick_summary_single_item(self):
        doc = parse("QUICK SUMMARY:\n• Budget approved for Q3")
        self.assertEqual(doc.quick_summary.items, ["Budget approved for Q3"])

    def test_no_headers_yields_no_sections(self):
        doc = parse("just some text\nand more text")
        self.assertTrue(doc.is_empty())
        self.assertIsNone(doc.quick_summary)
        self.assertEqual(doc.decisions, [])
        self.assertEqual(doc.action_items, [])

    def test_empty_input(self):
        self.assertTrue(parse("").is_empty())

    def test_full_document(self):
        doc = parse(SAMPLE_NOTES)
        headers = [s.header for s in doc.sections]
        self.assertEqual(headers, ["QUICK SUMMARY", "DETAILED SUMMARY",
                                   "KEY DECISIONS", "ACTION ITEMS", "BLOCKERS"])
        self.assertEqual(doc.detailed_summary.items[1], "QA status - regression suite green")
        self.assertEqual(doc.decisions, ["Decision: ship v2 - Approved by Bob"])
        self.assertEqual(len(doc.action_items), 2)
        self.assertEqual(doc.blockers,
                         ["Blocker: staging is down - Needs: ops ticket resolved"])

    def test_headers_case_insensitive(self):
        doc = parse("Quick Summary:\n- one\naction items: \n- do it\nKey Decisions:\n- agreed")
        self.assertEqual(doc.quick_summary.items, ["one"])
        self.assertEqual(doc.action_items[0].text, "do it")
        self.assertEqual(doc.decisions, ["agreed"])

    def test_lines_before_header_dropped(self):
        doc = parse("Here are your notes\nQUICK SUMMARY:\n• kept")
        self.assertEqual(len(doc.sections), 1)
        self.assertEqual(doc.quick_summary.items, ["kept"])

    def test_unknown_sections_are_kept_but_unrecognised(self):
        doc = parse("ATTENDEES:\n• Bob\n• Alice")
        self.assertEqual(doc.sections[0].header, "ATTENDEES")
        self.assertIsNone(doc.quick_summary)

    def test_normalize_item(self):
        self.assertEqual(normalize_item("•   spaced    out  "), "spaced out")
        self.assertEqual(normalize_item("- dash"), "dash")
        self.assertEqual(normalize_item("  • indented"), "indented")
        self.assertEqual(normalize_item("plain line"), "plain line")

    def test_decision_filtering(self):
        items = ["[No clear decisions made]", "Decision: ship v2 - Approved by Bob"]
        self.assertEqual(filter_decisions(items), ["Decision: ship v2 - Approved by Bob"])

    def test_decision_filtering_other_placeholders(self):
        items = ["No decisions were recorded", "[Skip section - none]", "  ", "Keep this"]
        self.assertEqual(filter_decisions(items), ["Keep this"])

    def test_urgent_action_item(self):
        item = parse_action_item("[URGENT] Task: ship report @alice by Friday")
        self.assertEqual(item.text, "Task: ship report @alice by Friday")
        self.assertTrue(item.urgent)
        self.assertEqual(item.owner, "alice")
        self.assertEqual(item.due, "Friday")
        self.assertEqual(item.priority, "High")

    def test_plain_action_item(self):
        item = parse_action_item("Task: update changelog @carol by Monday, end of day")
        self.assertFalse(item.urgent)
        self.assertEqual(item.owner, "carol")
        self.assertEqual(item.due, "Monday")
        self.assertEqual(item.priority, "Normal")

    def test_action_item_without_owner_or_due(self):
        item = parse_action_item("Task: follow up soon")
        self.assertIsNone(item.owner)
        self.assertIsNone(item.due)
        self.assertEqual(item.priority, "Medium")

    def test_lowercase_urgent_tag(self):
        item = parse_action_item("[urgent] fix build")
        self.assertTrue(item.urgent)
        self.assertEqual(item.text, "fix build")

    def test_render_markdown(self):
        md = render_markdown(parse(SAMPLE_NOTES), title="Release sync")
        self.assertTrue(md.startswith("# Release sync\n"))
        self.assertIn("## Quick Summary", md)
        self.assertIn("- [ ] **URGENT** Task: ship report @alice by Friday", md)
        self.assertIn("## Blockers", md)

    def test_render_markdown_empty(self):
        self.assertEqual(render_markdown(parse("nothing here")), "")


class TestLocalArtifactStore(unittest.TestCase):
    """Test the filesystem artifact store."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = LocalArtifactStore(Path(self.tmp.name))

    def tearDown(self):
        self.tmp.cleanup()

    def test_put_get(self):
        self.store.put("notes/video-1/notes.txt", b"hello", "text/plain")
        self.assertEqual(self.store.get("notes/video-1/notes.txt"), b"hello")

    def test_overwrite(self):
        self.store.put("a/b", b"one", "text/plain")
        self.store.put("a/b", b"two", "text/plain")
        self.assertEqual(self.store.get("a/b"), b"two")

    def test_get_missing(self):
        with self.assertRaises(NotFound):
            self.store.get("notes/video-1/notes.txt")

    def test_delete_idempotent(self):
        self.store.put("videos/video-1/Standup", b"x", "video/mp4")
        self.store.delete("videos/video-1/Standup")
        self.store.delete("videos/video-1/Standup")
        with self.assertRaises(NotFound):
            self.store.get("videos/video-1/Standup")
        # empty folders are pruned
        self.assertFalse((Path(self.tmp.name) / "videos" / "video-1").exists())

    def test_list_prefix(self):
        self.store.put("videos/video-1/A", b"1", "video/mp4")
        self.store.put("videos/video-2/B", b"2", "video/mp4")
        self.store.put("notes/video-1/notes.txt", b"n", "text/plain")
        paths = [o.path for o in self.store.list("videos/")]
        self.assertEqual(paths, ["videos/video-1/A", "videos/video-2/B"])
        self.assertTrue(self.store.list("videos/")[0].last_modified)

    def test_rejects_escape(self):
        with self.assertRaises(StoreError):
            self.store.put("../outside", b"x", "text/plain")
        with self.assertRaises(StoreError):
            self.store.get("/etc/passwd")


class TestConfig(unittest.TestCase):
    """Test configuration loading and validation."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "config.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_defaults(self):
        from meetnotes.core.config import AppConfig
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.storage_backend, StorageBackend.LOCAL)
        self.assertEqual(config.get('poll_interval_sec'), 10)

    def test_set_persists_and_clamps(self):
        from meetnotes.core.config import AppConfig
        config = AppConfig(self.path, environ={})
        config.set('poll_interval_sec', 0)
        config.set('max_speaker_labels', 50)
        reloaded = AppConfig(self.path, environ={})
        self.assertEqual(reloaded.get('poll_interval_sec'), 1)
        self.assertEqual(reloaded.get('max_speaker_labels'), 10)

    def test_invalid_choice_falls_back(self):
        from meetnotes.core.config import AppConfig
        config = AppConfig(self.path, environ={})
        config.set('storage_backend', 'ftp')
        self.assertEqual(config.storage_backend, StorageBackend.LOCAL)

    def test_unknown_key(self):
        from meetnotes.core.config import AppConfig
        config = AppConfig(self.path, environ={})
        with self.assertRaises(KeyError):
            config.set('nonsense', 1)

    def test_env_override_not_saved(self):
        from meetnotes.core.config import AppConfig
        config = AppConfig(self.path, environ={
            'MEETNOTES_STORAGE_BACKEND': 'S3',
            'MEETNOTES_BUCKET': 'team-meetings',
            'MEETNOTES_TRANSCRIPTION_BACKEND': 'aws',
        })
        self.assertEqual(config.storage_backend, StorageBackend.S3)
        self.assertEqual(config.transcription_backend, TranscriptionBackend.AWS)
        self.assertEqual(config.get('s3_bucket'), 'team-meetings')
        config.set('temperature', 0.3)
        with open(self.path) as f:
            saved = json.load(f)
        self.assertEqual(saved['storage_backend'], StorageBackend.LOCAL)
        self.assertEqual(saved['temperature'], 0.3)

    def test_corrupt_file_uses_defaults(self):
        from meetnotes.core.config import AppConfig
        self.path.write_text("{not json")
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.storage_backend, StorageBackend.LOCAL)


class TestDatabase(unittest.TestCase):
    """Test SQLite job table operations."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        from meetnotes.core.db_sqlite import Database
        self.db = Database(Path(self.tmp.name) / "jobs.db")

    def tearDown(self):
        self.db.close()
        self.tmp.cleanup()

    def _create(self, name="transcription-video-1"):
        return self.db.upsert_job(name, "video-1", "videos/video-1/A",
                                  "transcripts/video-1/transcript.json")

    def test_create_job(self):
        job, queued = self._create()
        self.assertTrue(queued)
        self.assertEqual(job.status, RemoteJobStatus.QUEUED)
        self.assertEqual(job.video_id, "video-1")

    def test_upsert_existing_not_requeued(self):
        self._create()
        self.db.update_job_status("transcription-video-1", RemoteJobStatus.IN_PROGRESS)
        job, queued = self._create()
        self.assertFalse(queued)
        self.assertEqual(job.status, RemoteJobStatus.IN_PROGRESS)

    def test_upsert_failed_is_reset(self):
        self._create()
        self.db.update_job_status("transcription-video-1", RemoteJobStatus.FAILED,
                                  error_code="ERR_X", error_message="boom")
        job, queued = self._create()
        self.assertTrue(queued)
        self.assertEqual(job.status, RemoteJobStatus.QUEUED)
        self.assertIsNone(job.error_code)

    def test_terminal_sets_completed_at(self):
        self._create()
        self.db.update_job_status("transcription-video-1", RemoteJobStatus.COMPLETED)
        self.assertIsNotNone(self.db.get_job("transcription-video-1").completed_at)

    def test_unfinished_jobs(self):
        self._create("transcription-a")
        self._create("transcription-b")
        self.db.update_job_status("transcription-b", RemoteJobStatus.COMPLETED)
        names = [j.job_name for j in self.db.get_unfinished_jobs()]
        self.assertEqual(names, ["transcription-a"])

    def test_delete_job(self):
        self._create()
        self.db.delete_job("transcription-video-1")
        self.assertIsNone(self.db.get_job("transcription-video-1"))


class TestOutputWriter(unittest.TestCase):
    """Test Markdown export."""

    def test_write_notes(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            path = write_notes(SAMPLE_NOTES, root, "Release sync", "video-1")
            self.assertEqual(path, root / "Release sync" / "video-1.md")
            self.assertIn("## Action Items", path.read_text(encoding="utf-8"))
            self.assertTrue(notes_exported(root, "video-1"))
            self.assertFalse(notes_exported(root, "video-2"))

    def test_unstructured_notes_written_raw(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_notes("free text", Path(tmpdir), "Chat", "video-9")
            self.assertEqual(path.read_text(encoding="utf-8"), "free text\n")


if __name__ == "__main__":
    unittest.main()
