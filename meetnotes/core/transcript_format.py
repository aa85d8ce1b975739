"""
Transcript documents: decoding and speaker-labelled reassembly.

A transcript document has the shape

    {"results": {"transcripts": [{"transcript": "..."}],
                 "speaker_labels": {"segments": [{"speaker_label", "start_time", "end_time"}]},
                 "items": [{"start_time", "end_time", "alternatives": [{"content"}]}]}}

where speaker_labels and items are optional.
"""

import bisect
import json
import logging

from meetnotes.core.error_codes import DecodeError

logger = logging.getLogger(__name__)


def decode_transcript(raw: bytes) -> str:
    """
    Decode a stored transcript document into the text used for notes.
    When speaker labels and word items are both present the text is rebuilt
    as speaker runs; otherwise the plain transcript is returned.
    """
    try:
        data = json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Transcript is not valid JSON: {e}")

    results = data.get('results') if isinstance(data, dict) else None
    if not isinstance(results, dict):
        raise DecodeError("Transcript has no 'results' object")

    transcripts = results.get('transcripts')
    if not isinstance(transcripts, list) or not transcripts:
        raise DecodeError("Invalid transcript format: no transcripts")

    first = transcripts[0]
    text = first.get('transcript') if isinstance(first, dict) else None
    if not isinstance(text, str):
        raise DecodeError("Invalid transcript format: transcript is not text")

    if results.get('speaker_labels') and results.get('items'):
        return format_transcript_with_speakers(results)
    return text


def _seconds(value, what: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise DecodeError(f"Invalid {what}: {value!r}")


def _timed_words(items: list) -> tuple[list[float], list[tuple[float, float, str]]]:
    """
    Collect (start, end, word) for every timed item, ordered by start time.
    Untimed items (punctuation) have no range and are dropped.
    """
    words = []
    for item in items:
        if not isinstance(item, dict):
            raise DecodeError("Invalid transcript item")
        if item.get('start_time') is None or item.get('end_time') is None:
            continue
        alternatives = item.get('alternatives') or []
        if not alternatives or not isinstance(alternatives[0], dict):
            raise DecodeError("Transcript item has no alternatives")
        content = alternatives[0].get('content', '')
        words.append((
            _seconds(item['start_time'], "item start_time"),
            _seconds(item['end_time'], "item end_time"),
            str(content),
        ))
    # stable: items sharing a start time keep their document order
    words.sort(key=lambda w: w[0])
    return [w[0] for w in words], words


def format_transcript_with_speakers(results: dict) -> str:
    """
    Rebuild the transcript as "\\n<label>: word word ..." runs.

    Each segment owns the items whose time range lies inside its own
    (item.start >= segment.start and item.end <= segment.end). A new
    "<label>: " prefix is written only when the speaker changes.
    """
    labels = results.get('speaker_labels')
    segments = labels.get('segments') if isinstance(labels, dict) else None
    if not isinstance(segments, list):
        raise DecodeError("Invalid speaker_labels: no segments")
    items = results.get('items')
    if not isinstance(items, list):
        raise DecodeError("Invalid transcript items")

    starts, words = _timed_words(items)

    parts = []
    current_speaker = None
    for segment in segments:
        if not isinstance(segment, dict):
            raise DecodeError("Invalid speaker segment")
        label = segment.get('speaker_label')
        seg_start = _seconds(segment.get('start_time'), "segment start_time")
        seg_end = _seconds(segment.get('end_time'), "segment end_time")

        if label != current_speaker:
            current_speaker = label
            parts.append(f"\n{current_speaker}: ")

        idx = bisect.bisect_left(starts, seg_start)
        while idx < len(words) and words[idx][0] <= seg_end:
            _, end, content = words[idx]
            if end <= seg_end:
                parts.append(content + ' ')
            idx += 1

    logger.debug("Rebuilt transcript from %d segments, %d words", len(segments), len(words))
    return ''.join(parts)
