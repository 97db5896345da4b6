"""
Application configuration manager.
Stores settings in a JSON file under Application Support.
"""

import json
import logging
from pathlib import Path

from learnclip.core.constants import (
    CONFIG_PATH, DEFAULT_OUTPUT_ROOT,
    SELECTOR_HEURISTIC, SELECTOR_OPENAI,
    CAPTION_ALIGN_CROP, CAPTION_ALIGN_SLICE,
    MIN_CLIP_SEC, MAX_CLIP_SEC, TARGET_CLIP_SEC, MAX_CANDIDATES,
    TITLE_CARD_SEC, OPENAI_MODEL,
)

logger = logging.getLogger(__name__)

# Validation bounds: key -> (type, min, max)
_BOUNDS = {
    'min_clip_sec': (float, 1.0, 60.0),
    'max_clip_sec': (float, 5.0, 600.0),
    'target_clip_sec': (float, 2.0, 600.0),
    'max_candidates': (int, 1, 200),
    'min_video_sec': (float, 0.0, 3600.0),
    'title_card_sec': (float, 0.5, 10.0),
}

_CHOICES = {
    'selector': (SELECTOR_HEURISTIC, SELECTOR_OPENAI),
    'caption_align': (CAPTION_ALIGN_CROP, CAPTION_ALIGN_SLICE),
}

_BOOLS = ('title_cards', 'translate', 'keep_debug_artifacts')

_DEFAULTS = {
    'output_root': str(DEFAULT_OUTPUT_ROOT),
    'selector': SELECTOR_HEURISTIC,
    'min_clip_sec': MIN_CLIP_SEC,
    'max_clip_sec': MAX_CLIP_SEC,
    'target_clip_sec': TARGET_CLIP_SEC,
    'max_candidates': MAX_CANDIDATES,
    'min_video_sec': 0.0,
    'title_cards': True,
    'title_card_sec': TITLE_CARD_SEC,
    'caption_align': CAPTION_ALIGN_CROP,
    'translate': True,
    'openai_model': OPENAI_MODEL,
    'keep_debug_artifacts': False,
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None):
        self.path = Path(config_path or CONFIG_PATH)
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging validated values over defaults."""
        self._data = dict(_DEFAULTS)
        if not self.path.exists():
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                saved = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load config: %s", e)
            return
        if not isinstance(saved, dict):
            logger.warning("Ignoring config file %s: not a JSON object", self.path)
            return
        for key, value in saved.items():
            self._data[key] = self._validate(key, value)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        self._data[key] = self._validate(key, value)
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key in _BOUNDS:
            kind, low, high = _BOUNDS[key]
            try:
                value = kind(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r, using default", key, value)
                return _DEFAULTS[key]
            clamped = max(low, min(high, value))
            if clamped != value:
                logger.warning("%s %r out of range, clamped to %r", key, value, clamped)
            return clamped

        if key in _CHOICES:
            if value not in _CHOICES[key]:
                logger.warning("Invalid %s %r, using %r", key, value, _DEFAULTS[key])
                return _DEFAULTS[key]
            return value

        if key in _BOOLS:
            return bool(value)

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    @property
    def output_root(self) -> str:
        return self._data.get('output_root', str(DEFAULT_OUTPUT_ROOT))

    @output_root.setter
    def output_root(self, value: str):
        self._data['output_root'] = value
        self.save()

    @property
    def selector(self) -> str:
        return self._data.get('selector', SELECTOR_HEURISTIC)

    @property
    def keep_debug_artifacts(self) -> bool:
        return self._data.get('keep_debug_artifacts', False)

    @keep_debug_artifacts.setter
    def keep_debug_artifacts(self, value: bool):
        self._data['keep_debug_artifacts'] = bool(value)
        self.save()
