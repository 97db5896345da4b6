"""
Learning-segment selection (rule-based).

Scores every window built from consecutive subtitle entries and keeps the
best one. Policy (weighted sum, higher is better):
1. Sentence completeness: text ends in . ? !            weight 2.0
2. Speech rate close to 2.2 words/sec                    weight 1.5
3. Duration close to the target duration                 weight 1.0
4. Midpoint close to the middle of the video             weight 0.3

Ties keep the first window seen. Deterministic for identical inputs.
"""

import logging
from typing import Iterator, Protocol

from learnclip.core.constants import (
    MIN_CLIP_SEC, MAX_CLIP_SEC, TARGET_CLIP_SEC,
    FALLBACK_TARGET_SEC, FALLBACK_MIN_SEC, MIN_WORDS,
    IDEAL_SPEECH_RATE, SENTENCE_TERMINALS,
    WEIGHT_PUNCTUATION, WEIGHT_SPEECH_RATE, WEIGHT_LENGTH, WEIGHT_CENTER,
)
from learnclip.core.models import SubtitleEntry, SegmentCandidate
from learnclip.core.subtitles import count_words

logger = logging.getLogger(__name__)


class SegmentSelector(Protocol):
    def select(self, timeline: list[SubtitleEntry],
               total_duration: float) -> tuple[float, float]:
        ...


def iter_windows(timeline: list[SubtitleEntry], min_duration: float,
                 max_duration: float,
                 min_words: int = MIN_WORDS) -> Iterator[SegmentCandidate]:
    """
    Yield windows formed by concatenating consecutive entries.

    For each start entry the window grows one entry at a time; windows
    shorter than min_duration are skipped, and growth stops as soon as the
    window exceeds max_duration. Windows with fewer than min_words words
    are skipped. Candidate indices are 1-based in yield order.
    """
    produced = 0
    for i, first in enumerate(timeline):
        start = first.start
        lines: list[str] = []
        for j in range(i, len(timeline)):
            entry = timeline[j]
            end = entry.end
            lines.extend(entry.lines)

            duration = end - start
            if duration < min_duration:
                continue
            if duration > max_duration:
                break

            text = ' '.join(ln.strip() for ln in lines).strip()
            if not text:
                continue

            words = count_words(text)
            if words < min_words:
                continue

            produced += 1
            yield SegmentCandidate(
                index=produced,
                start=start,
                end=end,
                text=text,
                word_count=words,
            )


def score_window(candidate: SegmentCandidate, total_duration: float,
                 target_duration: float) -> float:
    duration = candidate.duration

    speech_rate = candidate.word_count / max(duration, 0.1)
    speech_rate_score = -abs(speech_rate - IDEAL_SPEECH_RATE)

    ends_sentence = candidate.text.rstrip().endswith(SENTENCE_TERMINALS)
    punctuation_score = 1.0 if ends_sentence else 0.0

    length_score = -abs(duration - target_duration) / target_duration

    midpoint = (candidate.start + candidate.end) / 2.0
    center_score = -abs(midpoint / total_duration - 0.5)

    return (WEIGHT_PUNCTUATION * punctuation_score
            + WEIGHT_SPEECH_RATE * speech_rate_score
            + WEIGHT_LENGTH * length_score
            + WEIGHT_CENTER * center_score)


def pick_best_segment(timeline: list[SubtitleEntry], total_duration: float,
                      min_duration: float = MIN_CLIP_SEC,
                      max_duration: float = MAX_CLIP_SEC,
                      target_duration: float = FALLBACK_TARGET_SEC) -> tuple[float, float]:
    """
    Choose one contiguous (start, end) range suitable for learning.
    Returns seconds, clamped to [0, total_duration].
    """
    total_duration = max(total_duration, 1.0)

    if not timeline:
        # No subtitles: use the opening target_duration seconds
        end = min(target_duration if target_duration > 0 else total_duration,
                  total_duration)
        return 0.0, end

    if min_duration <= 0:
        min_duration = FALLBACK_MIN_SEC
    if max_duration <= 0 or max_duration > total_duration:
        max_duration = total_duration
    if target_duration <= 0:
        target_duration = min(FALLBACK_TARGET_SEC, max_duration)

    best_score = float('-inf')
    best_start = 0.0
    best_end = min(target_duration, total_duration)
    found = False

    for candidate in iter_windows(timeline, min_duration, max_duration):
        score = score_window(candidate, total_duration, target_duration)
        if score > best_score:
            best_score = score
            best_start, best_end = candidate.start, candidate.end
            found = True

    if not found:
        logger.info("No window passed the filters, using the full subtitle span")
        best_start = timeline[0].start
        best_end = timeline[-1].end

    best_start = max(0.0, best_start)
    if best_start >= total_duration:
        best_start = max(0.0, total_duration - min(target_duration, max_duration))
    best_end = min(total_duration, best_end)

    if best_end <= best_start:
        best_end = min(total_duration,
                       best_start + min(target_duration, max_duration))

    return best_start, best_end


class HeuristicSegmentSelector:
    """
    Rule-based selector with tunable duration bounds. Targets 18s by
    default; pick_best_segment on its own targets 15s.
    """

    def __init__(self, min_duration: float = MIN_CLIP_SEC,
                 max_duration: float = MAX_CLIP_SEC,
                 target_duration: float = TARGET_CLIP_SEC):
        self.min_duration = min_duration
        self.max_duration = max_duration
        self.target_duration = target_duration

    def select(self, timeline: list[SubtitleEntry],
               total_duration: float) -> tuple[float, float]:
        if total_duration <= 0:
            total_duration = 1.0
        start, end = pick_best_segment(
            timeline,
            total_duration,
            min_duration=self.min_duration,
            max_duration=min(total_duration, self.max_duration),
            target_duration=self.target_duration,
        )
        logger.info("Heuristic selector chose %.2fs - %.2fs", start, end)
        return start, end
