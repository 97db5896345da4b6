"""
AI-assisted learning-segment selection.

Builds a bounded list of candidate windows locally, asks an OpenAI chat model
to pick one by index, and falls back to the rule-based selector whenever the
model cannot give a usable answer. An AI failure never fails the task.
"""

import json
import logging
from typing import Optional

import requests

from learnclip.core.constants import (
    MAX_CANDIDATES, MIN_CLIP_SEC, MAX_CLIP_SEC,
    OPENAI_API_BASE, OPENAI_MODEL, OPENAI_TIMEOUT_SEC,
)
from learnclip.core.models import SubtitleEntry, SegmentCandidate
from learnclip.core.segment_select import HeuristicSegmentSelector, iter_windows

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = f"{OPENAI_API_BASE}/chat/completions"

SYSTEM_PROMPT = (
    "You are a JSON-only engine that chooses the best learning segment from candidates. "
    "You MUST respond with a single JSON object and nothing else."
)


def build_candidates(timeline: list[SubtitleEntry], total_duration: float,
                     max_candidates: int = MAX_CANDIDATES) -> list[SegmentCandidate]:
    """Up to max_candidates windows of 4-45s (capped at the video length)."""
    max_duration = min(total_duration, MAX_CLIP_SEC)
    result = []
    for candidate in iter_windows(timeline, MIN_CLIP_SEC, max_duration):
        result.append(candidate)
        if len(result) >= max_candidates:
            break
    return result


def build_prompt(candidates: list[SegmentCandidate], total_duration: float) -> str:
    lines = [
        "You are selecting the best single learning segment from an English video.",
        f"The total video duration is about {total_duration:.1f} seconds.",
        "",
        "You are given a list of candidate segments. Each candidate has:",
        "- index",
        "- start time (seconds)",
        "- end time (seconds)",
        "- duration (seconds)",
        "- transcript text",
        "",
        "Your goal: choose EXACTLY ONE candidate that is best for an intermediate "
        "English learner to study.",
        "Guidelines:",
        "- Prefer complete sentences with natural, everyday language.",
        "- Prefer segments with 10-40 words and 5-40 seconds of duration.",
        "- Avoid segments that are obviously cut off in the middle of a sentence.",
        "- Avoid segments that are mostly filler words or noises.",
        "- Do not create a new segment. You must pick one of the candidates by its index.",
        "",
        "Return ONLY a single JSON object in this exact format "
        "(no markdown, no explanation):",
        '{"index": <the integer index of the best candidate>}',
        "",
        "Candidates:",
    ]
    for c in candidates:
        lines.append(
            f"[{c.index}] start={c.start:.1f}s, end={c.end:.1f}s, "
            f"duration={c.duration:.1f}s, words={c.word_count}"
        )
        lines.append(f"text: {c.text}")
        lines.append("----")
    return '\n'.join(lines) + '\n'


def parse_index(content: Optional[str]) -> Optional[int]:
    """
    Extract the chosen index from a model reply.
    Accepts a bare integer ("3") or a JSON object ({"index": 3}).
    Returns None for anything else.
    """
    if not content or not content.strip():
        return None
    trimmed = content.strip()

    try:
        return int(trimmed)
    except ValueError:
        pass

    try:
        data = json.loads(trimmed)
    except json.JSONDecodeError:
        return None

    if isinstance(data, dict):
        value = data.get('index')
        # bool is an int subclass; reject it explicitly
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


class OpenAiSegmentSelector:
    """Chat-model selector with a heuristic fallback."""

    def __init__(self, api_key: str,
                 fallback: Optional[HeuristicSegmentSelector] = None,
                 model: str = OPENAI_MODEL,
                 max_candidates: int = MAX_CANDIDATES,
                 timeout: int = OPENAI_TIMEOUT_SEC):
        self.api_key = api_key
        self.fallback = fallback or HeuristicSegmentSelector()
        self.model = model
        self.max_candidates = max_candidates if max_candidates > 0 else MAX_CANDIDATES
        self.timeout = timeout

    def select(self, timeline: list[SubtitleEntry],
               total_duration: float) -> tuple[float, float]:
        if not timeline or total_duration <= 0:
            return self.fallback.select(timeline, total_duration)

        candidates = build_candidates(timeline, total_duration, self.max_candidates)
        if not candidates:
            logger.info("No AI candidates, using heuristic selector")
            return self.fallback.select(timeline, total_duration)

        try:
            content = self.complete(build_prompt(candidates, total_duration))
            index = parse_index(content)
        except Exception:
            # AI selection never fails the task
            logger.warning("AI selector failed, falling back", exc_info=True)
            return self.fallback.select(timeline, total_duration)

        if index is not None:
            for candidate in candidates:
                if candidate.index == index:
                    logger.info("AI selector chose candidate %d (%.2fs - %.2fs)",
                                index, candidate.start, candidate.end)
                    return candidate.start, candidate.end
            logger.warning("AI selector returned unknown index %d, falling back", index)
        else:
            logger.warning("AI selector gave no usable answer, falling back")

        return self.fallback.select(timeline, total_duration)

    def complete(self, prompt: str) -> Optional[str]:
        """
        One chat completion. Returns the reply text, or None on any
        transport or protocol failure.
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(OPENAI_CHAT_URL, headers=headers,
                                 json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("OpenAI request failed: %s", type(e).__name__)
            return None

        if resp.status_code != 200:
            body = resp.text[:300] if resp.text else "No response body"
            logger.warning("OpenAI returned %d: %s", resp.status_code, body)
            return None

        try:
            data = resp.json()
            return data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Unexpected OpenAI response shape: %s", e)
            return None
