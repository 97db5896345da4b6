"""
Diagnostics: tool version detection and credential checks.
"""

import shutil
import logging
import subprocess

from learnclip.core.security_utils import run_subprocess_capture, get_api_key
from learnclip.core.constants import (
    FFMPEG_BIN, FFPROBE_BIN,
    KEYCHAIN_SERVICE_DEEPGRAM, KEYCHAIN_SERVICE_OPENAI, KEYCHAIN_SERVICE_AZURE,
    ENV_DEEPGRAM_KEY, ENV_OPENAI_KEY, ENV_AZURE_KEY,
)

logger = logging.getLogger(__name__)


def get_tool_version(binary: str) -> str:
    """Return the first line of '<binary> -version', or an error message."""
    try:
        result = run_subprocess_capture([binary, "-version"], timeout=10)
    except FileNotFoundError:
        return "Not installed"
    except subprocess.TimeoutExpired:
        return "Error: timed out"
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip().splitlines()[0]
    return f"Error (rc={result.returncode})"


def missing_tools() -> list[str]:
    """Names of required command-line tools not found on PATH."""
    return [b for b in (FFMPEG_BIN, FFPROBE_BIN) if shutil.which(b) is None]


def get_diagnostics() -> dict:
    """Gather all diagnostic information. Reports key presence only."""
    return {
        "ffmpeg_version": get_tool_version(FFMPEG_BIN),
        "ffprobe_version": get_tool_version(FFPROBE_BIN),
        "deepgram_key": get_api_key(KEYCHAIN_SERVICE_DEEPGRAM, ENV_DEEPGRAM_KEY) is not None,
        "openai_key": get_api_key(KEYCHAIN_SERVICE_OPENAI, ENV_OPENAI_KEY) is not None,
        "azure_translator_key": get_api_key(KEYCHAIN_SERVICE_AZURE, ENV_AZURE_KEY) is not None,
    }
