"""
SRT subtitle timelines: parse, write, crop and slice.
Times are held as integer milliseconds so writes are byte-stable.
"""

import re
import logging
from pathlib import Path
from typing import Iterable

from learnclip.core.constants import MIN_CAPTION_MS
from learnclip.core.models import SubtitleEntry

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2}):(\d{2}),(\d{3})$')
_INDEX_RE = re.compile(r'^\d+$')
_BLOCK_SPLIT_RE = re.compile(r'\n[ \t]*\n')


# ── Time helpers ──────────────────────────────────────────────────────

def parse_timestamp(text: str) -> int:
    """'HH:MM:SS,mmm' → milliseconds. Raises ValueError on bad input."""
    m = _TIME_RE.match(text.strip())
    if not m:
        raise ValueError(f"Invalid SRT timestamp: {text!r}")
    hh, mm, ss, ms = (int(g) for g in m.groups())
    if mm > 59 or ss > 59:
        raise ValueError(f"Invalid SRT timestamp: {text!r}")
    return ((hh * 60 + mm) * 60 + ss) * 1000 + ms


def format_timestamp(ms: int) -> str:
    """Milliseconds → 'HH:MM:SS,mmm'."""
    ms = max(0, int(ms))
    hh = ms // 3_600_000
    mm = (ms % 3_600_000) // 60_000
    ss = (ms % 60_000) // 1_000
    return f"{hh:02d}:{mm:02d}:{ss:02d},{ms % 1_000:03d}"


def seconds_to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))


def count_words(text: str) -> int:
    """Whitespace-delimited token count."""
    return len(text.split()) if text else 0


# ── Parse / write ─────────────────────────────────────────────────────

def parse_srt(content: str) -> list[SubtitleEntry]:
    """
    Parse SRT text into entries, preserving input order.

    Each block: optional index line, 'start --> end' line, one or more text
    lines. Malformed index lines are ignored; a block whose time line fails
    to parse (or that has no text) is skipped.
    """
    content = content.replace('\r\n', '\n').replace('\r', '\n').lstrip('\ufeff')
    entries: list[SubtitleEntry] = []
    skipped = 0

    for block in _BLOCK_SPLIT_RE.split(content):
        lines = [ln.rstrip() for ln in block.split('\n')]
        # drop leading blank lines left over from runs of whitespace
        while lines and not lines[0].strip():
            lines.pop(0)
        if not lines:
            continue

        if '-->' in lines[0]:
            time_line, text_lines = lines[0], lines[1:]
        elif len(lines) >= 2:
            if not _INDEX_RE.match(lines[0].strip()):
                logger.debug("Ignoring malformed index line: %r", lines[0])
            time_line, text_lines = lines[1], lines[2:]
        else:
            skipped += 1
            continue

        start_text, sep, end_text = time_line.partition('-->')
        try:
            if not sep:
                raise ValueError("missing '-->'")
            start_ms = parse_timestamp(start_text)
            # tolerate trailing cue settings after the end time
            end_ms = parse_timestamp(end_text.strip().split(' ')[0])
        except ValueError as e:
            logger.debug("Skipping block with bad time line %r: %s", time_line, e)
            skipped += 1
            continue

        text_lines = [ln for ln in text_lines if ln.strip()]
        if not text_lines:
            skipped += 1
            continue

        try:
            entry = SubtitleEntry(index=len(entries) + 1, start_ms=start_ms,
                                  end_ms=end_ms, lines=text_lines)
        except ValueError as e:
            logger.debug("Skipping block: %s", e)
            skipped += 1
            continue
        entries.append(entry)

    if skipped:
        logger.info("Skipped %d malformed subtitle block(s)", skipped)
    return entries


def parse_srt_file(path: Path) -> list[SubtitleEntry]:
    """Read and parse an SRT file. A missing file is a fatal read error."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"SRT file not found: {path}")
    return parse_srt(path.read_text(encoding='utf-8-sig', errors='replace'))


def format_srt(entries: Iterable[SubtitleEntry]) -> str:
    """Serialize entries with sequential 1-based indices."""
    parts = []
    for i, entry in enumerate(entries, start=1):
        parts.append(str(i))
        parts.append(f"{format_timestamp(entry.start_ms)} --> {format_timestamp(entry.end_ms)}")
        parts.extend(entry.lines)
        parts.append('')
    return '\n'.join(parts)


def write_srt(entries: Iterable[SubtitleEntry], destination: Path) -> Path:
    """Write an SRT file as UTF-8 without BOM, '\\n' line endings."""
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    with open(destination, 'w', encoding='utf-8', newline='\n') as f:
        f.write(format_srt(entries))
    return destination


# ── Windowing ─────────────────────────────────────────────────────────

def _window_ms(range_start: float, range_end: float) -> tuple[int, int]:
    start_ms = max(0, seconds_to_ms(range_start))
    end_ms = max(start_ms, seconds_to_ms(range_end))
    return start_ms, end_ms


def crop_and_shift(entries: list[SubtitleEntry], range_start: float,
                   range_end: float) -> list[SubtitleEntry]:
    """
    Keep entries overlapping [range_start, range_end), clip them to the
    window and shift so the window starts at zero. Entries whose clipped
    duration is not positive are dropped. Output is renumbered from 1.
    """
    win_start, win_end = _window_ms(range_start, range_end)
    result: list[SubtitleEntry] = []

    for entry in entries:
        if entry.end_ms <= win_start or entry.start_ms >= win_end:
            continue
        start = max(entry.start_ms, win_start)
        end = min(entry.end_ms, win_end)
        if end <= start:
            continue
        result.append(SubtitleEntry(
            index=len(result) + 1,
            start_ms=start - win_start,
            end_ms=end - win_start,
            lines=list(entry.lines),
        ))

    return result


def slice_and_shift(entries: list[SubtitleEntry], segment_start: float,
                    segment_end: float,
                    min_caption_ms: int = MIN_CAPTION_MS) -> list[SubtitleEntry]:
    """
    Align a full-video timeline to one segment's local clock.

    Same window semantics as crop_and_shift, except that entries touching a
    segment boundary are kept: an entry squeezed to zero length is stretched
    to min_caption_ms (kept inside the segment) instead of being dropped, so
    the renderer never receives an empty cue.
    """
    win_start, win_end = _window_ms(segment_start, segment_end)
    length = win_end - win_start
    if length <= 0:
        return []

    result: list[SubtitleEntry] = []
    for entry in entries:
        if entry.end_ms < win_start or entry.start_ms > win_end:
            continue
        start = max(entry.start_ms, win_start) - win_start
        end = min(entry.end_ms, win_end) - win_start

        if end <= start:
            end = start + min_caption_ms
            if end > length:
                end = length
                start = max(0, length - min_caption_ms)

        result.append(SubtitleEntry(
            index=len(result) + 1,
            start_ms=start,
            end_ms=end,
            lines=list(entry.lines),
        ))

    return result


def to_bilingual(english: list[SubtitleEntry], translate) -> list[SubtitleEntry]:
    """
    Two-line entries: English, then translate(english). An empty result or
    an exception from translate leaves the English text in both lines.
    """
    result: list[SubtitleEntry] = []
    for entry in english:
        text = ' '.join(ln.strip() for ln in entry.lines).strip()
        if not text:
            continue
        try:
            translated = (translate(text) or '').strip() or text
        except Exception:
            logger.warning("Translation failed, keeping English for entry %d",
                           entry.index, exc_info=True)
            translated = text
        result.append(SubtitleEntry(
            index=len(result) + 1,
            start_ms=entry.start_ms,
            end_ms=entry.end_ms,
            lines=[text, translated],
        ))
    return result
