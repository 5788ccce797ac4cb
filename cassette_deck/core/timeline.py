"""Time-range algebra over transcript segments.

WHY: Every editing gesture (select, cut, copy, delete, paste, move) is a
question about which words fall inside a time range and what the
transcript looks like once those words are removed, kept, or moved.
Keeping the answers in one set of pure functions lets the session layer
compose them without re-deriving text or bounds by hand.

HOW: Each function walks the segments in order and rebuilds any segment
it touches via TranscriptSegment.from_words(), which re-establishes the
text and bounds invariants. Segments a function does not touch are
returned as the same objects.

RULES:
- Pure functions: no I/O, no mutation of inputs
- Segments that lose every word are dropped
- Empty results are valid outcomes, never errors
- delete_time_range treats the range end as exclusive, extract_time_range
  as inclusive; a zero-length word sitting exactly on the end boundary
  survives a delete *and* is part of an extract
- Malformed input (start > end, overlapping snippets) is the caller's
  responsibility; behavior is undefined
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from cassette_deck.core.ir import TranscriptSegment, TranscriptWord


@dataclass
class WordSelection:
    """Words covered by a character-offset selection.

    RULES:
    - words is empty and both times are 0 when nothing overlaps
    - start_time/end_time are the first/last selected word bounds
    """

    words: List[TranscriptWord] = field(default_factory=list)
    start_time: int = 0
    end_time: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.words


@dataclass
class SplitResult:
    """The two halves produced by split_at_time()."""

    before: List[TranscriptSegment] = field(default_factory=list)
    after: List[TranscriptSegment] = field(default_factory=list)


def iter_words(segments: List[TranscriptSegment]):
    """Yield every word of every segment in document order."""
    for segment in segments:
        yield from segment.words


def words_in_selection(
    segments: List[TranscriptSegment],
    char_start: int,
    char_end: int,
) -> WordSelection:
    """Map an editor selection (character offsets) to the underlying words.

    WHY: Text editors report selections as character offsets into the
    flattened transcript. Audio operations need the words, and thereby
    the time range, behind that selection.

    HOW: A running character cursor advances by len(word) + 1 for the
    joining space. A word is selected when its span [start, start+len]
    overlaps [char_start, char_end] (both ends inclusive).

    Args:
        segments: Transcript segments in document order.
        char_start: Selection start offset.
        char_end: Selection end offset.

    Returns:
        WordSelection with the overlapping words and their time bounds.
    """
    selected: List[TranscriptWord] = []
    position = 0

    for word in iter_words(segments):
        word_start = position
        word_end = position + len(word.word)

        if word_end >= char_start and word_start <= char_end:
            selected.append(word)

        position = word_end + 1  # +1 for the joining space

    if not selected:
        return WordSelection()

    return WordSelection(
        words=selected,
        start_time=selected[0].start_time,
        end_time=selected[-1].end_time,
    )


def split_at_time(segments: List[TranscriptSegment], split_time: int) -> SplitResult:
    """Partition segments into the parts before and after split_time.

    WHY: Pasting or inserting content in the middle of the timeline needs
    the transcript cut into two halves at the insertion time.

    HOW: Segments ending at or before split_time go to ``before``;
    segments starting at or after it go to ``after``. A straddling
    segment is split by word: words ending by split_time go before, words
    starting at or after it go after.

    RULES:
    - A word that itself straddles split_time belongs to neither half
    - Both halves of a split segment keep the original segment id
    - A half with no words contributes nothing
    """
    result = SplitResult()

    for segment in segments:
        if segment.end_time <= split_time:
            result.before.append(segment)
        elif segment.start_time >= split_time:
            result.after.append(segment)
        else:
            before_words = [w for w in segment.words if w.end_time <= split_time]
            after_words = [w for w in segment.words if w.start_time >= split_time]

            if before_words:
                result.before.append(TranscriptSegment.from_words(segment.id, before_words))
            if after_words:
                result.after.append(TranscriptSegment.from_words(segment.id, after_words))

    return result


def delete_time_range(
    segments: List[TranscriptSegment],
    start_time: int,
    end_time: int,
) -> List[TranscriptSegment]:
    """Remove every word lying entirely inside [start_time, end_time).

    HOW: Segments entirely before or after the range pass through as the
    same objects. Overlapping segments keep the words that are not
    contained in the range and are rebuilt; if none remain they are
    dropped.

    RULES:
    - Containment: word.start_time >= start_time, word.end_time <= end_time
      and word.start_time < end_time (the range end is exclusive)
    - Words only partially inside the range are kept
    """
    result: List[TranscriptSegment] = []

    for segment in segments:
        if segment.end_time <= start_time or segment.start_time >= end_time:
            result.append(segment)
            continue

        remaining = [
            w for w in segment.words
            if not _inside_half_open(w, start_time, end_time)
        ]

        if len(remaining) == len(segment.words):
            result.append(segment)
        elif remaining:
            result.append(TranscriptSegment.from_words(segment.id, remaining))

    return result


def extract_time_range(
    segments: List[TranscriptSegment],
    start_time: int,
    end_time: int,
) -> List[TranscriptSegment]:
    """Keep only the words lying entirely inside [start_time, end_time].

    WHY: Copy and cut need the transcript payload for a time range as a
    standalone list of segments.

    RULES:
    - Containment: word.start_time >= start_time and word.end_time <= end_time
      (the range end is inclusive, unlike delete_time_range)
    - Segments entirely outside the range are skipped without inspection
    """
    result: List[TranscriptSegment] = []

    for segment in segments:
        if segment.end_time <= start_time or segment.start_time >= end_time:
            continue

        inside = [
            w for w in segment.words
            if w.start_time >= start_time and w.end_time <= end_time
        ]
        if inside:
            result.append(TranscriptSegment.from_words(segment.id, inside))

    return result


def shift_timestamps(segments: List[TranscriptSegment], offset_ms: int) -> List[TranscriptSegment]:
    """Move every segment and word by offset_ms; text is untouched."""
    return [
        TranscriptSegment(
            id=segment.id,
            text=segment.text,
            words=[w.shifted(offset_ms) for w in segment.words],
            start_time=segment.start_time + offset_ms,
            end_time=segment.end_time + offset_ms,
        )
        for segment in segments
    ]


def _inside_half_open(word: TranscriptWord, start_time: int, end_time: int) -> bool:
    return (
        word.start_time >= start_time
        and word.end_time <= end_time
        and word.start_time < end_time
    )
