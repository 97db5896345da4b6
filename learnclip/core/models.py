"""
Data models (plain dataclasses) for LearnClip.
"""

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from learnclip.core.constants import (
    TaskStatus, TaskPhase, TERMINAL_STATUSES, LINE_SEPARATOR,
)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Task:
    """
    Immutable snapshot of one unit of work.
    Mutations go through evolve(), which returns a new snapshot, so a reader
    holding a Task never sees a half-applied update.
    """
    id: str                          # UUID
    input_path: str
    output_directory: str
    name: str
    status: str = TaskStatus.PENDING
    phase: str = TaskPhase.PENDING
    progress: int = 0
    output_file_path: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def new(cls, input_path: str, output_directory: str, name: str) -> "Task":
        now = utc_now()
        return cls(
            id=str(uuid.uuid4()),
            input_path=input_path,
            output_directory=output_directory,
            name=name,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def evolve(self, **changes) -> "Task":
        changes['updated_at'] = utc_now()
        return dataclasses.replace(self, **changes)


@dataclass
class SubtitleEntry:
    index: int
    start_ms: int
    end_ms: int
    lines: list[str] = field(default_factory=list)

    def __post_init__(self):
        if self.end_ms <= self.start_ms:
            raise ValueError(
                f"Subtitle entry must end after it starts "
                f"(start={self.start_ms}ms, end={self.end_ms}ms)"
            )

    @property
    def start(self) -> float:
        return self.start_ms / 1000.0

    @property
    def end(self) -> float:
        return self.end_ms / 1000.0

    @property
    def duration(self) -> float:
        return (self.end_ms - self.start_ms) / 1000.0

    @property
    def text(self) -> str:
        return LINE_SEPARATOR.join(self.lines)


@dataclass
class SegmentCandidate:
    index: int                       # 1-based
    start: float
    end: float
    text: str
    word_count: int

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class SegmentConfig:
    index: int                       # 1-based ordinal
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start
