"""
Transcription: English and bilingual subtitle generation.

SubtitleGenerator holds the file-writing contract shared by every speech
backend; DeepgramTranscriber fills in transcribe() with Deepgram Nova-3
(pre-recorded mode, utterance segmentation). Includes exponential backoff
for rate-limit (429) responses.
"""

import logging
import time
import random
from pathlib import Path
from typing import Callable, Optional

import requests

from learnclip.core.error_codes import ExternalToolError
from learnclip.core.constants import (
    ErrorCode, DEEPGRAM_API_BASE, DEEPGRAM_MODEL, DEEPGRAM_LANGUAGE,
)
from learnclip.core.models import SubtitleEntry
from learnclip.core.subtitles import seconds_to_ms, to_bilingual, write_srt

logger = logging.getLogger(__name__)

DEEPGRAM_PRERECORDED_URL = f"{DEEPGRAM_API_BASE}/listen"

TranslateFn = Callable[[str], str]


class SubtitleGenerator:
    """
    Base transcriber. Subclasses implement transcribe(); this class turns
    its timeline into '<base>.en.srt' and '<base>.en-zh.srt'.
    """

    def transcribe(self, audio_path: Path) -> list[SubtitleEntry]:
        raise NotImplementedError

    def generate_english_and_bilingual(self, audio_path: Path, out_dir: Path,
                                       base_name: str,
                                       translate_fn: Optional[TranslateFn] = None
                                       ) -> tuple[Path, Path]:
        """
        Write the English timeline and its bilingual companion.

        Without translate_fn the bilingual file is the English timeline
        verbatim. Raises ExternalToolError(NO_SPEECH) when nothing was
        recognised.
        """
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        english = self.transcribe(Path(audio_path))
        if not english:
            raise ExternalToolError(ErrorCode.NO_SPEECH,
                                    f"No speech recognised in {audio_path}")

        english_path = write_srt(english, out_dir / f"{base_name}.en.srt")

        if translate_fn is None:
            bilingual = english
        else:
            bilingual = to_bilingual(english, translate_fn)
        bilingual_path = write_srt(bilingual, out_dir / f"{base_name}.en-zh.srt")

        logger.info("Wrote %d subtitle entries to %s and %s",
                    len(english), english_path.name, bilingual_path.name)
        return english_path, bilingual_path


# ── Deepgram ──────────────────────────────────────────────────────────

def verify_api_key(api_key: str) -> tuple[bool, str]:
    """
    Verify a Deepgram API key with a lightweight request.
    Returns (success: bool, message: str).
    """
    try:
        resp = requests.get(
            f"{DEEPGRAM_API_BASE}/projects",
            headers={"Authorization": f"Token {api_key}"},
            timeout=10,
        )
    except requests.exceptions.ConnectionError:
        return False, "Network error: could not reach Deepgram"
    except requests.exceptions.Timeout:
        return False, "Network error: request timed out"
    except requests.exceptions.RequestException as e:
        return False, f"Network error: {e}"

    if resp.status_code == 200:
        return True, "Key verified"
    if resp.status_code in (401, 403):
        return False, "Key invalid or rejected"
    return False, f"Unexpected response: {resp.status_code}"


def timeline_from_response(deepgram_response: dict) -> list[SubtitleEntry]:
    """
    Build subtitle entries from a Deepgram response.
    Uses utterances if present, falls back to paragraph sentences.
    """
    segments: list[tuple[float, float, str]] = []
    results = deepgram_response.get('results') or {}

    for utt in results.get('utterances') or []:
        segments.append((utt.get('start', 0.0), utt.get('end', 0.0),
                         utt.get('transcript', '')))

    if not segments:
        try:
            alt = results.get('channels', [{}])[0].get('alternatives', [{}])[0]
            paragraphs = (alt.get('paragraphs') or {}).get('paragraphs') or []
        except (IndexError, AttributeError) as e:
            logger.warning("Unexpected Deepgram response shape: %s", e)
            paragraphs = []
        for para in paragraphs:
            for sentence in para.get('sentences', []):
                segments.append((sentence.get('start', 0.0), sentence.get('end', 0.0),
                                 sentence.get('text', '')))

    entries: list[SubtitleEntry] = []
    for start, end, text in segments:
        text = (text or '').strip()
        start_ms, end_ms = seconds_to_ms(start), seconds_to_ms(end)
        if not text or end_ms <= start_ms:
            continue
        entries.append(SubtitleEntry(index=len(entries) + 1, start_ms=start_ms,
                                     end_ms=end_ms, lines=[text]))
    return entries


_MAX_RATE_LIMIT_RETRIES = 4
_RATE_LIMIT_BASE_DELAY = 2.0   # seconds, doubles each retry with jitter


class DeepgramTranscriber(SubtitleGenerator):
    """Deepgram Nova-3 English transcription (pre-recorded)."""

    def __init__(self, api_key: str, model: str = DEEPGRAM_MODEL,
                 language: str = DEEPGRAM_LANGUAGE):
        if not api_key:
            raise ExternalToolError(ErrorCode.TRANSCRIBE_FAILED,
                                    "Deepgram API key not configured")
        self.api_key = api_key
        self.model = model
        self.language = language

    def transcribe(self, audio_path: Path) -> list[SubtitleEntry]:
        response = self.request(Path(audio_path))
        return timeline_from_response(response)

    def request(self, audio_path: Path) -> dict:
        """
        POST the audio file to Deepgram and return the response dict.
        Retries up to 4 times with exponential backoff on 429 responses.
        """
        headers = {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": "audio/wav",
        }
        params = {
            "model": self.model,
            "language": self.language,
            "smart_format": "true",
            "punctuate": "true",
            "utterances": "true",
            "paragraphs": "true",
        }

        file_size = audio_path.stat().st_size
        # Adaptive timeout: ~1 min per 10MB, minimum 120s
        timeout_sec = max(120, int(file_size / (10 * 1024 * 1024) * 60) + 60)

        for attempt in range(_MAX_RATE_LIMIT_RETRIES + 1):
            try:
                with open(audio_path, 'rb') as f:
                    resp = requests.post(
                        DEEPGRAM_PRERECORDED_URL,
                        headers=headers,
                        params=params,
                        data=f,
                        timeout=timeout_sec,
                    )
            except requests.exceptions.Timeout:
                raise ExternalToolError(ErrorCode.NETWORK, "Deepgram request timed out")
            except requests.exceptions.ConnectionError:
                raise ExternalToolError(ErrorCode.NETWORK,
                                        "Network error connecting to Deepgram")
            except requests.exceptions.RequestException as e:
                raise ExternalToolError(ErrorCode.TRANSCRIBE_FAILED,
                                        f"Deepgram request failed: {e}")

            if resp.status_code == 429:
                if attempt < _MAX_RATE_LIMIT_RETRIES:
                    # 2s, 4s, 8s, 16s (+/- 10%)
                    delay = _RATE_LIMIT_BASE_DELAY * (2 ** attempt)
                    delay *= 1 + random.uniform(-0.1, 0.1)
                    logger.warning(
                        "Deepgram rate limited (429), retrying in %.1fs (attempt %d/%d)",
                        delay, attempt + 1, _MAX_RATE_LIMIT_RETRIES,
                    )
                    time.sleep(delay)
                    continue
                raise ExternalToolError(
                    ErrorCode.NETWORK,
                    f"Deepgram rate limited (429) after {_MAX_RATE_LIMIT_RETRIES} retries")

            if resp.status_code != 200:
                # response body only, never the key
                raise ExternalToolError(
                    ErrorCode.TRANSCRIBE_FAILED,
                    f"Deepgram returned {resp.status_code}",
                    diagnostics=resp.text or "No response body")

            try:
                return resp.json()
            except ValueError:
                raise ExternalToolError(ErrorCode.TRANSCRIBE_FAILED,
                                        "Failed to parse Deepgram response JSON",
                                        diagnostics=resp.text[:2000])

        raise ExternalToolError(ErrorCode.NETWORK, "Deepgram request exhausted retries")
