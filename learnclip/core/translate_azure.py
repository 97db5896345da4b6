"""
Azure Translator (REST v3) English -> Simplified Chinese.
Failures return None; callers fall back to the English text.
"""

import logging
from typing import Callable, Optional

import requests

from learnclip.core.constants import (
    AZURE_TRANSLATOR_ENDPOINT, AZURE_TRANSLATOR_API_VERSION,
    TRANSLATE_FROM, TRANSLATE_TO, TRANSLATE_TIMEOUT_SEC,
)

logger = logging.getLogger(__name__)


class AzureTranslator:

    def __init__(self, api_key: str, region: str,
                 endpoint: Optional[str] = None,
                 source_lang: str = TRANSLATE_FROM,
                 target_lang: str = TRANSLATE_TO,
                 timeout: int = TRANSLATE_TIMEOUT_SEC):
        if not api_key or not region:
            raise ValueError("Azure Translator needs both a key and a region")
        self.api_key = api_key
        self.region = region
        self.endpoint = (endpoint or AZURE_TRANSLATOR_ENDPOINT).rstrip('/')
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.endpoint}/translate"

    def translate(self, text: str) -> Optional[str]:
        """Translated text, or None on an empty input or any failure."""
        if not text or not text.strip():
            return None

        params = {
            "api-version": AZURE_TRANSLATOR_API_VERSION,
            "from": self.source_lang,
            "to": self.target_lang,
        }
        headers = {
            "Ocp-Apim-Subscription-Key": self.api_key,
            "Ocp-Apim-Subscription-Region": self.region,
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(self.url, params=params, headers=headers,
                                 json=[{"Text": text}], timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("Translation request failed: %s", type(e).__name__)
            return None

        if resp.status_code != 200:
            logger.warning("Translator returned %d: %s", resp.status_code,
                           resp.text[:300] if resp.text else "No response body")
            return None

        try:
            translated = resp.json()[0]['translations'][0]['text']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Unexpected translator response shape: %s", e)
            return None
        return translated.strip() or None


def make_translate_fn(translator: Optional[AzureTranslator]) -> Optional[Callable[[str], str]]:
    """
    Adapt a translator to the str -> str hook used by subtitle generation:
    a failed translation yields the English text unchanged.
    """
    if translator is None:
        return None

    def translate_or_passthrough(english: str) -> str:
        return translator.translate(english) or english

    return translate_or_passthrough
