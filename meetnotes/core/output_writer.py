"""
Output writer: exports meeting notes as Markdown files.
"""

import logging
from pathlib import Path

from meetnotes.core.notes_parser import parse, render_markdown
from meetnotes.core.security_utils import safe_output_path

logger = logging.getLogger(__name__)


def write_notes(note_text: str, output_root: Path, title: str, video_id: str) -> Path:
    """
    Write notes to <OutputRoot>/<SanitizedTitle>/<video_id>.md
    Falls back to the raw text when no section is recognised.
    Returns the path to the written file.
    """
    folder = safe_output_path(output_root, title, video_id)
    folder.mkdir(parents=True, exist_ok=True)

    body = render_markdown(parse(note_text), title=title)
    if not body:
        body = note_text if note_text.endswith("\n") else note_text + "\n"

    output_file = folder / f"{video_id}.md"
    output_file.write_text(body, encoding='utf-8')

    logger.info("Wrote notes: %s", output_file)
    return output_file


def notes_exported(output_root: Path, video_id: str) -> bool:
    """True if <OutputRoot>/**/<video_id>.md already exists."""
    return any(output_root.glob(f"**/{video_id}.md"))
