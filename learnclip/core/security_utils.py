"""
Security utilities for LearnClip.
- Filename sanitization
- Safe subprocess execution (argument arrays only)
- API key lookup: macOS Keychain first, then the environment
"""

import os
import re
import subprocess
import logging
from typing import Optional

from learnclip.core.constants import (
    UNSAFE_FILENAME_CHARS,
    MAX_FILE_NAME_LEN,
    KEYCHAIN_ACCOUNT,
)

logger = logging.getLogger(__name__)


# ── Filename safety ───────────────────────────────────────────────────

def sanitize_title(title: str, fallback: str = "video") -> str:
    """Sanitize a task name for use inside a file name."""
    if not title:
        return fallback
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', title)
    # Remove path traversal sequences
    safe = safe.replace('..', '')
    # Collapse runs of underscores/whitespace into one underscore
    safe = re.sub(r'[_\s]+', '_', safe).strip('_')
    if len(safe) > MAX_FILE_NAME_LEN:
        safe = safe[:MAX_FILE_NAME_LEN].rstrip('_')
    # Leading dots make hidden files on macOS
    safe = safe.strip('.')
    return safe if safe else fallback


# ── Subprocess safety ─────────────────────────────────────────────────

def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.
    """
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")

    kwargs.pop('shell', None)

    logger.debug("Running subprocess: %s", ' '.join(str(a) for a in args))
    return subprocess.run(args, shell=False, **kwargs)


def run_subprocess_capture(args: list[str], timeout: int = 300, **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr as text."""
    return run_subprocess(
        args,
        capture_output=True,
        text=True,
        encoding='utf-8',
        errors='replace',
        timeout=timeout,
        **kwargs,
    )


# ── Credentials ───────────────────────────────────────────────────────

def keychain_get_api_key(service: str) -> Optional[str]:
    """Retrieve a secret from the macOS Keychain, or None."""
    try:
        result = run_subprocess_capture([
            "security", "find-generic-password",
            "-s", service,
            "-a", KEYCHAIN_ACCOUNT,
            "-w",  # print password only
        ], timeout=10)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (subprocess.TimeoutExpired, FileNotFoundError):
        # not on macOS, or keychain locked
        pass
    except OSError as e:
        logger.warning("Keychain read failed: %s", type(e).__name__)
    return None


def get_api_key(service: str, env_var: str) -> Optional[str]:
    """Keychain entry for service, else the env_var environment variable."""
    key = keychain_get_api_key(service)
    if key:
        return key
    value = os.environ.get(env_var, '').strip()
    return value or None
