"""
Standardised error handling for LearnClip.
"""

from learnclip.core.constants import ErrorCode, INPUT_ERRORS, CANCELLED_MESSAGE


class TaskError(Exception):
    """Raised when a task encounters a known error condition."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class InputError(TaskError):
    """Missing/invalid input file or invalid configuration."""


class ExternalToolError(TaskError):
    """ffmpeg, ffprobe or a remote service failed. Keeps the raw diagnostics."""

    def __init__(self, code: str, message: str, diagnostics: str = ""):
        self.diagnostics = diagnostics or ""
        if self.diagnostics:
            message = f"{message}\n{self.diagnostics}"
        super().__init__(code, message)


class TaskCancelled(TaskError):
    """Cooperative cancellation observed between stages."""

    def __init__(self, message: str = CANCELLED_MESSAGE):
        super().__init__(ErrorCode.CANCELLED, message)


def is_input_error(code: str) -> bool:
    return code in INPUT_ERRORS
