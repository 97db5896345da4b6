"""
Pipeline coordinator.
Drives one task at a time per call through the full pipeline:
probe -> audio -> subtitles -> selection -> cut -> captions -> passes -> merge.
Many tasks may run concurrently, each on its own thread.
"""

import os
import shutil
import logging
import threading
import traceback
from pathlib import Path
from typing import Callable, Optional

from learnclip.core.constants import (
    TaskStatus, TaskPhase, ErrorCode, PHASE_ORDER,
    OUTPUT_SUFFIX, TITLE_CARD_TEXTS, TITLE_CARD_SEC,
    CAPTION_ALIGN_CROP, CAPTION_ALIGN_SLICE,
    PROGRESS_PROCESSING, PROGRESS_AUDIO, PROGRESS_SUBTITLES, PROGRESS_SELECTED,
    PROGRESS_BASE_CLIP, PROGRESS_CAPTIONS_ALIGNED, PROGRESS_PASS1,
    PROGRESS_PASS2, PROGRESS_PASS3, PROGRESS_TITLE_CARDS, PROGRESS_MERGED,
    PROGRESS_DONE,
)
from learnclip.core.models import Task, SegmentConfig
from learnclip.core.error_codes import TaskError, InputError, TaskCancelled
from learnclip.core.subtitles import (
    parse_srt_file, write_srt, crop_and_shift, slice_and_shift,
)
from learnclip.core.cleanup import cleanup_artifacts
from learnclip.core.security_utils import sanitize_title

logger = logging.getLogger(__name__)

TaskListener = Callable[[Task], None]


class PipelineCoordinator:
    """
    Runs tasks through the pipeline and publishes every state change.

    Collaborators: a TaskStore (insert/update/get_by_id), a MediaTool, a
    Transcriber (SubtitleGenerator) and a SegmentSelector. translate_fn is
    optional; without it the bilingual captions repeat the English ones.
    """

    def __init__(self, store, media, transcriber, selector,
                 translate_fn: Optional[Callable[[str], str]] = None,
                 config: dict | None = None):
        self.store = store
        self.media = media
        self.transcriber = transcriber
        self.selector = selector
        self.translate_fn = translate_fn
        self.config = config or {}

        self._lock = threading.Lock()
        self._cancel_events: dict[str, threading.Event] = {}
        self._listeners: list[TaskListener] = []
        self._output_lock = threading.Lock()

    # ── Config helpers ────────────────────────────────────────────────

    @property
    def title_cards(self) -> bool:
        return self.config.get('title_cards', True)

    @property
    def title_card_sec(self) -> float:
        return self.config.get('title_card_sec', TITLE_CARD_SEC)

    @property
    def caption_align(self) -> str:
        return self.config.get('caption_align', CAPTION_ALIGN_CROP)

    @property
    def min_video_sec(self) -> float:
        return self.config.get('min_video_sec', 0)

    @property
    def keep_debug(self) -> bool:
        return self.config.get('keep_debug_artifacts', False)

    # ── Public surface ────────────────────────────────────────────────

    def subscribe(self, callback: TaskListener):
        """Register a listener called with every published Task snapshot."""
        with self._lock:
            self._listeners.append(callback)

    def create_task(self, input_path, output_dir, name: str | None = None) -> Task:
        input_path = Path(input_path)
        task = Task.new(
            input_path=str(input_path),
            output_directory=str(output_dir),
            name=name or input_path.stem,
        )
        self.store.insert(task)
        self._cancel_event(task.id)
        self._notify(task)
        logger.info("Created task %s for %s", task.id, input_path)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.store.get_by_id(task_id)

    def cancel(self, task_id: str) -> bool:
        """
        Request cooperative cancellation. Takes effect at the next stage
        boundary. Returns False if the task is unknown or already finished.
        """
        with self._lock:
            event = self._cancel_events.get(task_id)
        if event is None:
            return False
        event.set()
        logger.info("Cancellation requested for task %s", task_id)
        return True

    def create_and_run(self, input_path, output_dir,
                       clip_range: tuple[float, float] | None = None) -> Task:
        task = self.create_task(input_path, output_dir)
        return self.run_task(task, clip_range)

    def start_task(self, input_path, output_dir,
                   clip_range: tuple[float, float] | None = None
                   ) -> tuple[Task, threading.Thread]:
        """Create a task and run it on a daemon thread."""
        task = self.create_task(input_path, output_dir)
        thread = threading.Thread(
            target=self.run_task,
            args=(task, clip_range),
            name=f"task-{task.id[:8]}",
            daemon=True,
        )
        thread.start()
        return task, thread

    # ── State publishing ──────────────────────────────────────────────

    def _cancel_event(self, task_id: str) -> threading.Event:
        with self._lock:
            return self._cancel_events.setdefault(task_id, threading.Event())

    def _check_cancelled(self, task_id: str):
        with self._lock:
            event = self._cancel_events.get(task_id)
        if event is not None and event.is_set():
            raise TaskCancelled()

    def _notify(self, task: Task):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(task)
            except Exception as e:
                logger.error("Task listener failed: %s", e, exc_info=True)

    def _publish(self, task: Task) -> Task:
        self.store.update(task)
        self._notify(task)
        return task

    def _update_progress(self, task: Task, progress: int | None = None,
                         phase: str | None = None, **changes) -> Task:
        """
        Publish a new snapshot. Progress never decreases and the phase only
        moves forward along PHASE_ORDER.
        """
        if progress is not None:
            changes['progress'] = max(task.progress, progress)
        if phase is not None and phase != task.phase:
            if PHASE_ORDER.index(phase) < PHASE_ORDER.index(task.phase):
                raise ValueError(f"Phase cannot move back from {task.phase} to {phase}")
            changes['phase'] = phase
            logger.info("Task %s: %s", task.id, phase)
        return self._publish(task.evolve(**changes))

    def _fail(self, task: Task, message: str) -> Task:
        return self._publish(task.evolve(
            status=TaskStatus.FAILED,
            phase=TaskPhase.FAILED,
            error_message=message,
        ))

    # ── Pipeline ──────────────────────────────────────────────────────

    def run_task(self, task: Task,
                 clip_range: tuple[float, float] | None = None) -> Task:
        """
        Run a task to a terminal state and return the final snapshot.
        Every failure ends as a Failed task, never as a raised exception.
        """
        self._cancel_event(task.id)
        try:
            task = self._process_task(task, clip_range)
        except TaskCancelled as e:
            logger.info("Task %s cancelled", task.id)
            task = self._fail(self.store.get_by_id(task.id) or task, e.message)
        except TaskError as e:
            logger.error("Task %s failed: %s", task.id, e)
            task = self._fail(self.store.get_by_id(task.id) or task,
                              traceback.format_exc())
        except Exception as e:
            logger.error("Unexpected error processing task %s: %s", task.id, e,
                         exc_info=True)
            task = self._fail(self.store.get_by_id(task.id) or task,
                              traceback.format_exc())
        finally:
            with self._lock:
                self._cancel_events.pop(task.id, None)
        return task

    def _preflight(self, task: Task,
                   clip_range: tuple[float, float] | None) -> float:
        """Checks that run before the task enters Processing."""
        input_path = Path(task.input_path)
        if not input_path.is_file():
            raise InputError(ErrorCode.INPUT_NOT_FOUND,
                             f"Input video not found: {input_path}")

        output_dir = Path(task.output_directory)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InputError(ErrorCode.OUTPUT_DIR,
                             f"Cannot create output directory {output_dir}: {e}")

        duration = self.media.probe_duration(input_path)
        if duration <= 0:
            raise InputError(ErrorCode.INVALID_DURATION,
                             f"Video has no playable duration: {input_path}")
        if self.min_video_sec and duration < self.min_video_sec:
            raise InputError(ErrorCode.VIDEO_TOO_SHORT,
                             f"Video is {duration:.1f}s long; at least "
                             f"{self.min_video_sec:.0f}s is required: {input_path}")

        if clip_range is not None:
            start, end = clip_range
            if not (0 <= start < end <= duration):
                raise InputError(ErrorCode.INVALID_RANGE,
                                 f"Clip range {start:.2f}s - {end:.2f}s is outside "
                                 f"the video (0 - {duration:.2f}s)")
        return duration

    def _publish_output(self, merged: Path, output_dir: Path, base_name: str) -> Path:
        """
        Move the merged file to <name>_LearnClip.mp4, or <name>_LearnClip_N.mp4
        when an earlier task already wrote that name.
        """
        stem = f"{base_name}{Path(OUTPUT_SUFFIX).stem}"
        suffix = Path(OUTPUT_SUFFIX).suffix
        with self._output_lock:
            final_path = output_dir / f"{stem}{suffix}"
            n = 2
            while final_path.exists():
                final_path = output_dir / f"{stem}_{n}{suffix}"
                n += 1
            os.replace(merged, final_path)
        return final_path

    def _process_task(self, task: Task,
                      clip_range: tuple[float, float] | None) -> Task:
        self._check_cancelled(task.id)
        duration = self._preflight(task, clip_range)

        input_path = Path(task.input_path)
        output_dir = Path(task.output_directory)
        base_name = sanitize_title(task.name)
        workspace = output_dir / f".{base_name}_{task.id[:8]}_work"
        artifacts: list[Path] = []

        # ── Stage 1: Extract audio ──
        task = self._update_progress(task, PROGRESS_PROCESSING,
                                     phase=TaskPhase.EXTRACTING_AUDIO,
                                     status=TaskStatus.PROCESSING)
        logger.info("Task %s: %s is %.1fs long", task.id, input_path.name, duration)
        audio_path = self.media.extract_audio(input_path, workspace, base_name)
        artifacts.append(audio_path)
        task = self._update_progress(task, PROGRESS_AUDIO)
        self._check_cancelled(task.id)

        # ── Stage 2: Subtitles ──
        task = self._update_progress(task, phase=TaskPhase.GENERATING_SUBTITLES)
        english_path, bilingual_path = self.transcriber.generate_english_and_bilingual(
            audio_path, workspace, base_name, self.translate_fn,
        )
        artifacts.extend([english_path, bilingual_path])
        task = self._update_progress(task, PROGRESS_SUBTITLES)
        self._check_cancelled(task.id)

        # ── Stage 3: Segment selection ──
        english = parse_srt_file(english_path)
        bilingual = parse_srt_file(bilingual_path)
        if clip_range is not None:
            clip_start, clip_end = clip_range
            logger.info("Task %s: using manual range %.2fs - %.2fs",
                        task.id, clip_start, clip_end)
        else:
            clip_start, clip_end = self.selector.select(english, duration)
        if clip_end <= clip_start:
            raise TaskError(ErrorCode.INVALID_RANGE,
                            f"Selected range is empty ({clip_start:.3f}s - {clip_end:.3f}s)")
        task = self._update_progress(task, PROGRESS_SELECTED)
        self._check_cancelled(task.id)

        # ── Stage 4: Base clip, captions, silent passes ──
        task = self._update_progress(task, phase=TaskPhase.SPLITTING_VIDEO)
        clip_paths = self.media.cut_segments(
            input_path, [SegmentConfig(index=1, start=clip_start, end=clip_end)], workspace,
        )
        base_clip = Path(clip_paths[0])
        artifacts.append(base_clip)
        task = self._update_progress(task, PROGRESS_BASE_CLIP)
        self._check_cancelled(task.id)

        align = slice_and_shift if self.caption_align == CAPTION_ALIGN_SLICE else crop_and_shift
        english_clip_srt = write_srt(align(english, clip_start, clip_end),
                                     workspace / f"{base_name}.clip.en.srt")
        bilingual_clip_srt = write_srt(align(bilingual, clip_start, clip_end),
                                       workspace / f"{base_name}.clip.en-zh.srt")
        artifacts.extend([english_clip_srt, bilingual_clip_srt])
        task = self._update_progress(task, PROGRESS_CAPTIONS_ALIGNED)

        pass1 = workspace / f"{base_name}_pass1.mp4"
        pass4 = workspace / f"{base_name}_pass4.mp4"
        shutil.copyfile(base_clip, pass1)
        shutil.copyfile(base_clip, pass4)
        artifacts.extend([pass1, pass4])
        task = self._update_progress(task, PROGRESS_PASS1)
        self._check_cancelled(task.id)

        # ── Stage 5: English captions ──
        task = self._update_progress(task, phase=TaskPhase.BURNING_PASS2)
        pass2 = Path(self.media.burn_captions(base_clip, english_clip_srt,
                                              workspace / f"{base_name}_pass2.mp4"))
        artifacts.append(pass2)
        task = self._update_progress(task, PROGRESS_PASS2)
        self._check_cancelled(task.id)

        # ── Stage 6: Bilingual captions ──
        task = self._update_progress(task, phase=TaskPhase.BURNING_PASS3)
        pass3 = Path(self.media.burn_captions(base_clip, bilingual_clip_srt,
                                              workspace / f"{base_name}_pass3.mp4"))
        artifacts.append(pass3)
        task = self._update_progress(task, PROGRESS_PASS3)
        self._check_cancelled(task.id)

        # ── Stage 7: Title cards + merge ──
        task = self._update_progress(task, phase=TaskPhase.MERGING_SEGMENTS)
        passes = [pass1, pass2, pass3, pass4]
        sequence: list[Path] = []
        for i, (text, pass_path) in enumerate(zip(TITLE_CARD_TEXTS, passes), start=1):
            if self.title_cards:
                card = Path(self.media.make_title_card(
                    text, workspace, f"{base_name}_title{i}.mp4", self.title_card_sec,
                ))
                artifacts.append(card)
                sequence.append(card)
            sequence.append(pass_path)
        task = self._update_progress(task, PROGRESS_TITLE_CARDS)
        self._check_cancelled(task.id)

        merged = Path(self.media.merge_clips(sequence, workspace,
                                             f"{base_name}{OUTPUT_SUFFIX}"))
        final_path = self._publish_output(merged, output_dir, base_name)
        task = self._update_progress(task, PROGRESS_MERGED)

        # ── Done ──
        task = self._update_progress(task, PROGRESS_DONE,
                                     phase=TaskPhase.COMPLETED,
                                     status=TaskStatus.COMPLETED,
                                     output_file_path=str(final_path))
        logger.info("Task %s completed: %s", task.id, final_path)

        cleanup_artifacts(artifacts, workspace, self.keep_debug)
        return task
