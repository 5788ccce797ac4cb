"""Cursor/timestamp mapping and timeline insertion/rebuild logic.

WHY: The editor works in character offsets, the player in milliseconds,
and the snippet list in take order. These functions translate between
them and restore the "snippet n starts where snippet n-1 ends" invariant
after content moves.

HOW: Cursor mapping walks words in document order with a running
character counter (len(word) + 1 per word). Insertion and rebuild are
expressed with shift_timestamps() from the time-range algebra.

RULES:
- Cursor mapping is word-granular: the two directions are not exact
  inverses at word boundaries, each maps to a point inside the owning word
- insert_segment_at_position() takes a *timeline time* in ms, not a
  character offset
- rebuild_from_snippets() expects well-formed snippets (non-negative
  durations, one segment list per snippet); anything else is undefined
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping

from cassette_deck.core.ir import AudioSnippet, TranscriptSegment
from cassette_deck.core.timeline import iter_words, shift_timestamps


def timestamp_for_cursor(segments: List[TranscriptSegment], cursor_position: int) -> int:
    """Return the timeline time (ms) for a character offset in the transcript.

    HOW: Returns the start_time of the first word whose span, including
    its trailing space, contains cursor_position. A cursor past the end of
    the text maps to the last segment's end_time (0 for an empty
    transcript).
    """
    position = 0

    for word in iter_words(segments):
        word_length = len(word.word)
        if position <= cursor_position <= position + word_length + 1:
            return word.start_time
        position += word_length + 1

    if not segments:
        return 0
    return segments[-1].end_time


def cursor_for_timestamp(segments: List[TranscriptSegment], timestamp: int) -> int:
    """Return the character offset of the word playing at ``timestamp``.

    HOW: Returns the offset of the first word whose [start_time, end_time]
    contains timestamp; when none does (gaps, past the end) the total
    character length of the transcript is returned.
    """
    position = 0

    for word in iter_words(segments):
        if word.start_time <= timestamp <= word.end_time:
            return position
        position += len(word.word) + 1

    return position


def insert_segment_at_position(
    segments: List[TranscriptSegment],
    new_segment: TranscriptSegment,
    insert_time: int,
) -> List[TranscriptSegment]:
    """Splice new_segment into the transcript at a timeline time.

    WHY: Recording a take in the middle of a cassette inserts audio at a
    point and pushes everything after it later.

    HOW: Finds the first segment whose start_time is greater than
    insert_time and places new_segment immediately before it. That
    segment and all following ones are shifted forward by new_segment's
    duration (end_time - start_time). When no segment starts after
    insert_time, new_segment is appended and nothing moves.

    RULES:
    - insert_time is a timeline time in ms; callers that only have an
      editor cursor must convert it first (see timestamp_for_cursor)
    - new_segment itself is not re-timed
    """
    insert_index = next(
        (i for i, segment in enumerate(segments) if segment.start_time > insert_time),
        None,
    )

    if insert_index is None:
        return [*segments, new_segment]

    offset = new_segment.end_time - new_segment.start_time
    return [
        *segments[:insert_index],
        new_segment,
        *shift_timestamps(segments[insert_index:], offset),
    ]


def rebuild_from_snippets(
    snippets: Iterable[AudioSnippet],
    segments_by_snippet: Mapping[str, List[TranscriptSegment]],
) -> List[TranscriptSegment]:
    """Rebuild the transcript timeline from snippets in their new order.

    WHY: After a drag-reorder, each snippet's transcript must move to the
    position its snippet now occupies on the global timeline.

    HOW: Walks snippets sorted by order with a running current_time
    starting at 0. Each snippet's segments are shifted by
    (current_time - snippet.start_time), where snippet.start_time is the
    position the segments were recorded at; current_time then advances by
    the snippet's duration.

    RULES:
    - Snippets with no entry in segments_by_snippet contribute no segments
      but still occupy their duration on the timeline
    - Pair with restack_snippets() to update the snippets themselves
    """
    result: List[TranscriptSegment] = []
    current_time = 0

    for snippet in sorted(snippets, key=lambda s: s.order):
        segments = segments_by_snippet.get(snippet.id, [])
        result.extend(shift_timestamps(segments, current_time - snippet.start_time))
        current_time += snippet.duration

    return result


def restack_snippets(snippets: Iterable[AudioSnippet]) -> List[AudioSnippet]:
    """Reassign order and start_time so snippets sit back to back.

    The input sequence order is authoritative: the first snippet gets
    order 0 and start_time 0, each next one starts where the previous ends.
    """
    result: List[AudioSnippet] = []
    current_time = 0

    for order, snippet in enumerate(snippets):
        result.append(AudioSnippet(
            id=snippet.id,
            filename=snippet.filename,
            start_time=current_time,
            duration=snippet.duration,
            order=order,
        ))
        current_time += snippet.duration

    return result


def group_segments_by_snippet(segments: List[TranscriptSegment]) -> Dict[str, List[TranscriptSegment]]:
    """Group segments under the snippet id of their first word.

    Segments without words cannot be attributed and are left out.
    """
    grouped: Dict[str, List[TranscriptSegment]] = {}
    for segment in segments:
        if not segment.words:
            continue
        grouped.setdefault(segment.words[0].snippet_id, []).append(segment)
    return grouped
