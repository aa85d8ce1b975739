"""
Notes document parser.

Turns generated note text into an ordered list of sections. Section identity
comes only from header text, so reordered, missing or extra sections degrade
gracefully instead of failing.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from meetnotes.core.constants import (
    ACTION_ITEMS_HEADER, KEY_DECISIONS_HEADER, DECISION_PLACEHOLDERS,
)
from meetnotes.core.models import ActionItem, Section

_BULLETS = ('•', '-')
_URGENT_TAG = re.compile(r'\[urgent\]', re.IGNORECASE)
_OWNER = re.compile(r'@(\w+)')
_DUE = re.compile(r'\bby\s+([^,.]+)', re.IGNORECASE)


@dataclass
class NotesDocument:
    sections: list[Section] = field(default_factory=list)

    def find(self, predicate: Callable[[str], bool]) -> Optional[Section]:
        """First section whose header satisfies predicate."""
        for section in self.sections:
            if predicate(section.header):
                return section
        return None

    def _items(self, predicate: Callable[[str], bool]) -> list[str]:
        section = self.find(predicate)
        return list(section.items) if section else []

    @property
    def quick_summary(self) -> Optional[Section]:
        return self.find(lambda h: 'quick summary' in h.lower())

    @property
    def detailed_summary(self) -> Optional[Section]:
        return self.find(lambda h: 'detailed summary' in h.lower())

    @property
    def decisions(self) -> list[str]:
        return filter_decisions(self._items(lambda h: h == KEY_DECISIONS_HEADER))

    @property
    def action_items(self) -> list[ActionItem]:
        return [parse_action_item(i) for i in self._items(lambda h: h == ACTION_ITEMS_HEADER)]

    @property
    def blockers(self) -> list[str]:
        return self._items(lambda h: 'blocker' in h.lower())

    def is_empty(self) -> bool:
        return not self.sections


def _header_for(line: str) -> Optional[str]:
    upper = line.upper()
    if 'ACTION ITEMS:' in upper:
        return ACTION_ITEMS_HEADER
    if 'KEY DECISIONS:' in upper:
        return KEY_DECISIONS_HEADER
    if line.endswith(':'):
        return line.replace(':', '', 1).strip()
    return None


def normalize_item(line: str) -> str:
    """Strip one leading bullet and collapse internal whitespace."""
    text = line.strip()
    if text.startswith(_BULLETS):
        text = text[1:]
    return re.sub(r'\s+', ' ', text).strip()


def parse(note_text: str) -> NotesDocument:
    """
    Parse generated note text into sections.

    A line opens a section when it contains "ACTION ITEMS:" or
    "KEY DECISIONS:" (case-insensitive), or otherwise ends with ":".
    Other lines become items of the open section; lines before the first
    header have nowhere to go and are dropped.
    """
    document = NotesDocument()
    if not note_text:
        return document

    current: Optional[Section] = None
    for raw in note_text.splitlines():
        line = raw.strip()
        if not line:
            continue

        header = _header_for(line)
        if header is not None:
            current = Section(header=header)
            document.sections.append(current)
            continue

        if current is None:
            continue
        item = normalize_item(line)
        if item:
            current.items.append(item)

    return document


def filter_decisions(items: list[str]) -> list[str]:
    """Drop the placeholder lines models emit when there were no decisions."""
    kept = []
    for item in items:
        lowered = item.strip().lower()
        if not lowered:
            continue
        if any(p in lowered for p in DECISION_PLACEHOLDERS):
            continue
        kept.append(item)
    return kept


def priority_of(text: str) -> str:
    lowered = text.lower()
    if 'urgent' in lowered or 'asap' in lowered:
        return 'High'
    if 'soon' in lowered:
        return 'Medium'
    return 'Normal'


def parse_action_item(line: str) -> ActionItem:
    """Split an action-item line into task text, urgency, owner and due date."""
    urgent = bool(_URGENT_TAG.search(line))
    text = _URGENT_TAG.sub('', line, count=1).strip()
    text = re.sub(r'\s+', ' ', text)

    owner_match = _OWNER.search(text)
    due_match = _DUE.search(text)
    due = due_match.group(1).strip() if due_match else None

    return ActionItem(
        text=text,
        urgent=urgent,
        owner=owner_match.group(1) if owner_match else None,
        due=due or None,
        priority=priority_of(line),
    )


def render_markdown(document: NotesDocument, title: str | None = None) -> str:
    """Render the recognised sections as Markdown. Unrecognised sections are skipped."""
    lines: list[str] = []
    if title:
        lines += [f"# {title}", ""]

    for heading, section in (("Quick Summary", document.quick_summary),
                             ("Detailed Summary", document.detailed_summary)):
        if section and section.items:
            lines += [f"## {heading}", ""]
            lines += [f"- {item}" for item in section.items]
            lines.append("")

    decisions = document.decisions
    if decisions:
        lines += ["## Key Decisions", ""]
        lines += [f"- {d}" for d in decisions]
        lines.append("")

    actions = document.action_items
    if actions:
        lines += ["## Action Items", ""]
        for action in actions:
            prefix = "**URGENT** " if action.urgent else ""
            lines.append(f"- [ ] {prefix}{action.text}")
        lines.append("")

    blockers = document.blockers
    if blockers:
        lines += ["## Blockers", ""]
        lines += [f"- {b}" for b in blockers]
        lines.append("")

    return "\n".join(lines).rstrip() + "\n" if lines else ""
