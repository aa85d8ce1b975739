#!/usr/bin/env python3
"""
MeetingNotes v1.0.0: command-line entry point.
Uploads recordings, follows transcription, and prints or exports notes.
"""

import sys
import logging
import argparse
import mimetypes
import traceback
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from meetnotes.core.config import AppConfig
from meetnotes.core.constants import APP_NAME, APP_VERSION, LOG_DIR, VideoStatus
from meetnotes.core.error_codes import PipelineError
from meetnotes.core.factory import build_backends
from meetnotes.core.notes_parser import parse, render_markdown
from meetnotes.core.output_writer import write_notes, notes_exported
from meetnotes.core.security_utils import keychain_set_api_key

logger = logging.getLogger("meetnotes")


def setup_logging(verbose: bool = False):
    """File log always; stderr too when verbose."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = [
        logging.FileHandler(LOG_DIR / "app.log", encoding="utf-8"),
    ]
    if verbose:
        handlers.append(logging.StreamHandler(sys.stderr))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _print_video(video):
    print(f"{video.id}\t{video.status}\t{video.upload_timestamp}\t{video.display_name}")


def _find_video(coordinator, video_id: str):
    coordinator.load()
    video = coordinator.videos.get(video_id)
    if video is None:
        raise PipelineError(f"Video {video_id} not found", code="ERR_NOT_FOUND")
    return video


def _watch(coordinator, video_id: str) -> str:
    handle = coordinator.poll_until_terminal(
        video_id, lambda status: print(f"{video_id}: {status}", flush=True))
    try:
        while handle.is_alive():
            handle.join(timeout=0.5)
    except KeyboardInterrupt:
        handle.cancel()
        print("Stopped watching.")
    return handle.last_status or VideoStatus.PROCESSING


# ── Commands ──────────────────────────────────────────────────────────

def cmd_upload(args, coordinator, config):
    media = Path(args.file)
    content_type = args.content_type or mimetypes.guess_type(media.name)[0]
    video = coordinator.upload(args.name, media.read_bytes(), content_type)
    _print_video(video)
    if args.wait:
        _watch(coordinator, video.id)
    return 0


def cmd_list(args, coordinator, config):
    coordinator.load()
    videos = sorted(coordinator.videos.all(), key=lambda v: v.upload_timestamp)
    if not videos:
        print("No videos uploaded.")
    for video in videos:
        _print_video(video)
    return 0


def cmd_status(args, coordinator, config):
    print(coordinator.check_status(args.video_id))
    return 0


def cmd_watch(args, coordinator, config):
    _find_video(coordinator, args.video_id)
    status = _watch(coordinator, args.video_id)
    return 0 if status == VideoStatus.COMPLETED else 1


def cmd_notes(args, coordinator, config):
    if args.regenerate:
        text = coordinator.regenerate_notes(args.video_id)
    else:
        text = coordinator.fetch_notes(args.video_id)

    if args.export:
        video = _find_video(coordinator, args.video_id)
        if notes_exported(config.export_root, video.id):
            print(f"Replacing existing export for {video.id}")
        path = write_notes(text, config.export_root, video.display_name, video.id)
        print(f"Exported to {path}")
    elif args.raw:
        print(text)
    else:
        rendered = render_markdown(parse(text))
        print(rendered or text)
    return 0


def cmd_transcript(args, coordinator, config):
    print(coordinator.get_transcript(args.video_id))
    return 0


def cmd_delete(args, coordinator, config):
    name = args.name
    if name is None:
        name = _find_video(coordinator, args.video_id).display_name
    coordinator.delete_video(args.video_id, name)
    print(f"Deleted {args.video_id}")
    return 0


def cmd_retry(args, coordinator, config):
    _find_video(coordinator, args.video_id)
    _print_video(coordinator.retry_transcription(args.video_id))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="meetnotes",
                                     description="Turn meeting recordings into structured notes.")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="log to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("upload", help="upload a recording and start transcription")
    p.add_argument("name", help="meeting name")
    p.add_argument("file", help="recording to upload")
    p.add_argument("--content-type", help="override the detected media type")
    p.add_argument("--wait", action="store_true", help="follow transcription until it finishes")
    p.set_defaults(func=cmd_upload)

    p = sub.add_parser("list", help="list uploaded videos with their status")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("status", help="check one video's transcription status")
    p.add_argument("video_id")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("watch", help="poll a video until transcription finishes")
    p.add_argument("video_id")
    p.set_defaults(func=cmd_watch)

    p = sub.add_parser("notes", help="show meeting notes (generated on first use)")
    p.add_argument("video_id")
    p.add_argument("--regenerate", action="store_true", help="ignore cached notes")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--raw", action="store_true", help="print the notes text as stored")
    group.add_argument("--export", action="store_true", help="write Markdown to the export folder")
    p.set_defaults(func=cmd_notes)

    p = sub.add_parser("transcript", help="print the speaker-labelled transcript")
    p.add_argument("video_id")
    p.set_defaults(func=cmd_transcript)

    p = sub.add_parser("retry", help="resubmit transcription for a video")
    p.add_argument("video_id")
    p.set_defaults(func=cmd_retry)

    p = sub.add_parser("delete", help="delete a video and everything derived from it")
    p.add_argument("video_id")
    p.add_argument("name", nargs="?", help="meeting name (looked up when omitted)")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("config", help="show or change settings")
    p.add_argument("key", nargs="?")
    p.add_argument("value", nargs="?")

    p = sub.add_parser("set-deepgram-key", help="store the Deepgram API key in the Keychain")
    p.add_argument("api_key")

    return parser


def run_config(args, config: AppConfig) -> int:
    if args.key is None:
        for key, value in sorted(config.as_dict().items()):
            print(f"{key} = {value}")
    elif args.value is None:
        print(config.get(args.key))
    else:
        config.set(args.key, args.value)
        print(f"{args.key} = {config.get(args.key)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    logger.info("%s v%s starting at %s (command=%s)",
                APP_NAME, APP_VERSION, datetime.now().isoformat(), args.command)

    config = AppConfig()
    if args.command == "config":
        try:
            return run_config(args, config)
        except KeyError as e:
            print(f"Error: {e.args[0]}", file=sys.stderr)
            return 1

    if args.command == "set-deepgram-key":
        if keychain_set_api_key(args.api_key):
            print("Deepgram API key stored.")
            return 0
        print("Error: could not write to the Keychain", file=sys.stderr)
        return 1

    backends = None
    try:
        backends = build_backends(config)
        return args.func(args, backends.coordinator, config)
    except PipelineError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.critical("Fatal error: %s\n%s", e, traceback.format_exc())
        print(f"Unexpected error: {type(e).__name__}: {e}", file=sys.stderr)
        return 2
    finally:
        if backends:
            backends.close()


if __name__ == "__main__":
    sys.exit(main())
