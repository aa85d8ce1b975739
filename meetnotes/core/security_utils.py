"""
Security utilities for MeetingNotes.
- Display name sanitization (names become storage path segments)
- Path containment checks for the local store and note exports
- Safe subprocess execution (argument arrays only)
- Keychain integration (macOS) for the Deepgram API key
"""

import os
import re
import subprocess
import pathlib
import logging

from meetnotes.core.constants import (
    UNSAFE_FILENAME_CHARS,
    MAX_DISPLAY_NAME_LEN,
    KEYCHAIN_SERVICE,
    KEYCHAIN_ACCOUNT,
    DEEPGRAM_API_KEY_ENV,
)

logger = logging.getLogger(__name__)


# ── Display name / path safety ────────────────────────────────────────

def sanitize_display_name(name: str) -> str:
    """
    Sanitize a meeting name for use as the final segment of a storage path.
    Returns "" when nothing usable is left.
    """
    if not name:
        return ""
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', name)
    safe = safe.replace('..', '')
    # Collapse runs of underscores/whitespace left by the replacements
    safe = re.sub(r'[_\s]+', ' ', safe).strip()
    if len(safe) > MAX_DISPLAY_NAME_LEN:
        safe = safe[:MAX_DISPLAY_NAME_LEN].rstrip()
    # No leading/trailing dots (hidden files, "." and "..")
    safe = safe.strip('.').strip()
    return safe


def is_within(root: pathlib.Path, candidate: pathlib.Path) -> bool:
    """True when candidate resolves to root or somewhere beneath it."""
    real_root = root.resolve(strict=False)
    real_candidate = candidate.resolve(strict=False)
    return real_candidate == real_root or real_root in real_candidate.parents


def safe_output_path(output_root: pathlib.Path, title: str, video_id: str) -> pathlib.Path:
    """
    Build a safe export folder path.  Enforces that the result stays inside
    output_root.  Falls back to 'video_<video_id>' on failure.
    """
    sanitized = sanitize_display_name(title)
    if not sanitized:
        sanitized = f"video_{video_id}"

    candidate = output_root / sanitized
    if not is_within(output_root, candidate):
        candidate = output_root / f"video_{video_id}"

    return candidate


# ── Subprocess safety ─────────────────────────────────────────────────

def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.
    """
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")

    kwargs.pop('shell', None)

    logger.debug("Running subprocess: %s", args[0])
    return subprocess.run(args, shell=False, **kwargs)


def run_subprocess_capture(args: list[str], timeout: int = 30, **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr."""
    return run_subprocess(
        args,
        capture_output=True,
        text=True,
        timeout=timeout,
        **kwargs,
    )


# ── Deepgram API key ──────────────────────────────────────────────────

def get_deepgram_api_key() -> str | None:
    """Environment variable first, then the macOS Keychain."""
    key = os.environ.get(DEEPGRAM_API_KEY_ENV, "").strip()
    if key:
        return key
    return keychain_get_api_key()


def keychain_get_api_key() -> str | None:
    """Retrieve the Deepgram API key from macOS Keychain."""
    try:
        result = run_subprocess_capture([
            "security", "find-generic-password",
            "-s", KEYCHAIN_SERVICE,
            "-a", KEYCHAIN_ACCOUNT,
            "-w",  # print password only
        ], timeout=10)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (subprocess.TimeoutExpired, FileNotFoundError):
        pass
    except OSError as e:
        logger.warning("Keychain read failed: %s", type(e).__name__)
    return None


def keychain_set_api_key(api_key: str) -> bool:
    """Store or update the Deepgram API key in macOS Keychain."""
    try:
        result = run_subprocess_capture([
            "security", "add-generic-password",
            "-s", KEYCHAIN_SERVICE,
            "-a", KEYCHAIN_ACCOUNT,
            "-w", api_key,
            "-U",  # update if exists
        ], timeout=10)
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.error("Keychain write failed: %s", type(e).__name__)
        return False
