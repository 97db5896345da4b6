#!/usr/bin/env python3
"""
Unit tests for LearnClip core modules.
Tests cover: subtitle timelines, segment selection, security utils, error codes,
task stores, configuration, cleanup.
"""

import sys
import os
import json
import tempfile
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from learnclip.core.constants import (
    TaskStatus, TaskPhase, ErrorCode, CANCELLED_MESSAGE,
    SELECTOR_HEURISTIC, CAPTION_ALIGN_CROP,
)
from learnclip.core.models import Task, SubtitleEntry
from learnclip.core.subtitles import (
    parse_timestamp, format_timestamp, parse_srt, parse_srt_file, format_srt,
    write_srt, crop_and_shift, slice_and_shift, count_words, to_bilingual,
)
from learnclip.core.segment_select import (
    pick_best_segment, iter_windows, HeuristicSegmentSelector,
)
from learnclip.core.security_utils import sanitize_title, run_subprocess, get_api_key
from learnclip.core.error_codes import (
    TaskError, InputError, ExternalToolError, TaskCancelled, is_input_error,
)
from learnclip.core.task_store import InMemoryTaskStore
from learnclip.core.config import AppConfig
from learnclip.core.cleanup import cleanup_artifacts


def entry(start: float, end: float, *lines: str) -> SubtitleEntry:
    return SubtitleEntry(index=0, start_ms=int(round(start * 1000)),
                         end_ms=int(round(end * 1000)), lines=list(lines))


SAMPLE_SRT = (
    "1\n"
    "00:00:01,000 --> 00:00:03,500\n"
    "Hello there.\n"
    "\n"
    "2\n"
    "00:00:04,000 --> 00:00:06,250\n"
    "How are you\n"
    "doing today?\n"
    "\n"
    "3\n"
    "00:01:02,003 --> 01:00:00,000\n"
    "Fine, thanks!\n"
)


class TestSubtitleTimeline(unittest.TestCase):
    """Test SRT parsing, writing, cropping and slicing."""

    def test_timestamp_round_trip(self):
        self.assertEqual(parse_timestamp("01:02:03,004"), 3723004)
        self.assertEqual(format_timestamp(3723004), "01:02:03,004")
        self.assertEqual(format_timestamp(0), "00:00:00,000")

    def test_bad_timestamp(self):
        with self.assertRaises(ValueError):
            parse_timestamp("00:00:01.000")
        with self.assertRaises(ValueError):
            parse_timestamp("00:61:00,000")

    def test_parse(self):
        entries = parse_srt(SAMPLE_SRT)
        self.assertEqual(len(entries), 3)
        self.assertEqual(entries[0].start_ms, 1000)
        self.assertEqual(entries[0].end_ms, 3500)
        self.assertEqual(entries[1].lines, ["How are you", "doing today?"])
        self.assertEqual(entries[1].text, "How are you\ndoing today?")
        self.assertEqual(entries[2].end_ms, 3600000)

    def test_round_trip_is_byte_stable(self):
        self.assertEqual(format_srt(parse_srt(SAMPLE_SRT)), SAMPLE_SRT)
        once = format_srt(parse_srt(SAMPLE_SRT))
        self.assertEqual(format_srt(parse_srt(once)), once)

    def test_renumbers_indices(self):
        content = SAMPLE_SRT.replace("2\n00:00:04", "7\n00:00:04")
        out = format_srt(parse_srt(content))
        self.assertIn("2\n00:00:04,000", out)
        self.assertNotIn("7\n", out)

    def test_malformed_index_line_is_tolerated(self):
        content = "abc\n00:00:01,000 --> 00:00:02,000\nHello\n"
        entries = parse_srt(content)
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].lines, ["Hello"])

    def test_missing_index_line(self):
        entries = parse_srt("00:00:01,000 --> 00:00:02,000\nHello\n")
        self.assertEqual(len(entries), 1)

    def test_bad_time_line_skips_block(self):
        content = (
            "1\n00:00:01,000 --> 00:00:02,000\nGood one\n\n"
            "2\nnot a time line\nBroken\n\n"
            "3\n00:00:05,000 --> 00:00:04,000\nBackwards\n\n"
            "4\n00:00:06,000 --> 00:00:07,000\nGood two\n"
        )
        entries = parse_srt(content)
        self.assertEqual([e.lines[0] for e in entries], ["Good one", "Good two"])

    def test_crlf_and_bom(self):
        content = "\ufeff" + SAMPLE_SRT.replace("\n", "\r\n")
        self.assertEqual(len(parse_srt(content)), 3)

    def test_write_has_no_bom(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_srt(parse_srt(SAMPLE_SRT), Path(tmpdir) / "out.srt")
            data = path.read_bytes()
            self.assertFalse(data.startswith(b"\xef\xbb\xbf"))
            self.assertNotIn(b"\r\n", data)
            self.assertEqual(data.decode("utf-8"), SAMPLE_SRT)

    def test_missing_file_is_fatal(self):
        with self.assertRaises(FileNotFoundError):
            parse_srt_file(Path(tempfile.gettempdir()) / "does-not-exist-learnclip.srt")

    def test_entry_requires_positive_duration(self):
        with self.assertRaises(ValueError):
            SubtitleEntry(index=1, start_ms=1000, end_ms=1000, lines=["x"])

    def test_crop_and_shift(self):
        timeline = [
            entry(0, 2, "a"),
            entry(1.5, 4, "b"),
            entry(5, 6, "c"),
            entry(9, 10, "d"),
        ]
        result = crop_and_shift(timeline, 2, 6)
        self.assertEqual([e.lines[0] for e in result], ["b", "c"])
        self.assertEqual([e.index for e in result], [1, 2])
        self.assertEqual((result[0].start_ms, result[0].end_ms), (0, 2000))
        self.assertEqual((result[1].start_ms, result[1].end_ms), (3000, 4000))

    def test_crop_entries_stay_inside_window(self):
        timeline = [entry(i * 0.7, i * 0.7 + 1.3, f"w{i}") for i in range(40)]
        start, end = 3.2, 11.9
        length_ms = int(round((end - start) * 1000))
        for e in crop_and_shift(timeline, start, end):
            self.assertTrue(0 <= e.start_ms < e.end_ms <= length_ms)

    def test_slice_keeps_boundary_entries(self):
        timeline = [entry(1, 2, "before"), entry(3, 4, "inside"), entry(5, 6, "after")]
        result = slice_and_shift(timeline, 2, 5)
        self.assertEqual([e.lines[0] for e in result], ["before", "inside", "after"])
        # stretched at the start, clamped at the end
        self.assertEqual((result[0].start_ms, result[0].end_ms), (0, 500))
        self.assertEqual((result[1].start_ms, result[1].end_ms), (1000, 2000))
        self.assertEqual((result[2].start_ms, result[2].end_ms), (2500, 3000))

    def test_slice_never_produces_empty_entries(self):
        timeline = [entry(i * 0.5, i * 0.5 + 0.5, f"w{i}") for i in range(30)]
        for start, end in [(0, 1), (2.5, 2.9), (4, 15), (14.5, 14.6)]:
            for e in slice_and_shift(timeline, start, end):
                self.assertGreater(e.end_ms, e.start_ms)

    def test_slice_empty_window(self):
        self.assertEqual(slice_and_shift([entry(0, 1, "x")], 3, 3), [])

    def test_to_bilingual(self):
        result = to_bilingual([entry(0, 1, "Hello", "world")], lambda t: "你好")
        self.assertEqual(result[0].lines, ["Hello world", "你好"])
        fallback = to_bilingual([entry(0, 1, "Hello")], lambda t: "")
        self.assertEqual(fallback[0].lines, ["Hello", "Hello"])

    def test_count_words(self):
        self.assertEqual(count_words("  one two\tthree\nfour "), 4)
        self.assertEqual(count_words(""), 0)


class TestSegmentSelection(unittest.TestCase):
    """Test the rule-based segment selector."""

    @staticmethod
    def _timeline():
        words = "alpha beta gamma delta epsilon zeta eta theta iota kappa"
        return [
            entry(40, 50, words),
            entry(50, 60, words + "."),
        ]

    def test_empty_timeline(self):
        self.assertEqual(pick_best_segment([], 100), (0.0, 15.0))
        self.assertEqual(pick_best_segment([], 10), (0.0, 10.0))

    def test_empty_timeline_uses_selector_target(self):
        # the selector's own target (18s) applies, not the scorer's 15s default
        self.assertEqual(HeuristicSegmentSelector().select([], 100), (0.0, 18.0))
        self.assertEqual(HeuristicSegmentSelector(target_duration=15).select([], 100),
                         (0.0, 15.0))
        self.assertEqual(HeuristicSegmentSelector().select([], 12), (0.0, 12.0))

    def test_prefers_complete_sentence(self):
        start, end = pick_best_segment(self._timeline(), 100, min_duration=4,
                                       max_duration=10, target_duration=10)
        self.assertEqual((start, end), (50.0, 60.0))

    def test_deterministic(self):
        timeline = [entry(i * 3, i * 3 + 2.8, f"Line number {i} is spoken here now.")
                    for i in range(50)]
        selector = HeuristicSegmentSelector()
        first = selector.select(timeline, 150)
        for _ in range(5):
            self.assertEqual(selector.select(timeline, 150), first)

    def test_result_inside_video(self):
        timeline = [entry(i * 3, i * 3 + 2.8, f"Line number {i} is spoken here now.")
                    for i in range(50)]
        start, end = HeuristicSegmentSelector().select(timeline, 150)
        self.assertGreaterEqual(start, 0.0)
        self.assertLessEqual(end, 150.0)
        self.assertGreater(end, start)
        self.assertGreaterEqual(end - start, 4.0)
        self.assertLessEqual(end - start, 45.0)

    def test_fallback_to_full_span(self):
        # Too few words for any window to qualify
        timeline = [entry(1, 3, "hi there"), entry(3.5, 6, "ok")]
        self.assertEqual(pick_best_segment(timeline, 100), (1.0, 6.0))

    def test_clamped_to_total_duration(self):
        timeline = [entry(1, 3, "hi there"), entry(3.5, 80, "ok")]
        self.assertEqual(pick_best_segment(timeline, 50), (1.0, 50.0))

    def test_windows_respect_filters(self):
        timeline = [entry(i * 2, i * 2 + 2, "one two three") for i in range(20)]
        windows = list(iter_windows(timeline, 4, 10))
        self.assertTrue(windows)
        self.assertEqual([w.index for w in windows], list(range(1, len(windows) + 1)))
        for w in windows:
            self.assertGreaterEqual(w.duration, 4)
            self.assertLessEqual(w.duration, 10)
            self.assertGreaterEqual(w.word_count, 5)


class TestSecurityUtils(unittest.TestCase):
    """Test security utilities."""

    def test_sanitize_path_traversal(self):
        result = sanitize_title("../../etc/passwd")
        self.assertNotIn("..", result)
        self.assertNotIn("/", result)

    def test_sanitize_unsafe_chars(self):
        self.assertEqual(sanitize_title("My Video: Part 1"), "My_Video_Part_1")

    def test_sanitize_empty(self):
        self.assertEqual(sanitize_title(""), "video")
        self.assertEqual(sanitize_title("..."), "video")

    def test_sanitize_long_name(self):
        self.assertLessEqual(len(sanitize_title("a" * 500)), 120)

    def test_subprocess_rejects_string(self):
        with self.assertRaises(TypeError):
            run_subprocess("echo hello")

    @mock.patch("learnclip.core.security_utils.keychain_get_api_key", return_value=None)
    def test_api_key_from_environment(self, _keychain):
        with mock.patch.dict(os.environ, {"LEARNCLIP_TEST_KEY": " secret "}):
            self.assertEqual(get_api_key("svc", "LEARNCLIP_TEST_KEY"), "secret")
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertIsNone(get_api_key("svc", "LEARNCLIP_TEST_KEY"))

    @mock.patch("learnclip.core.security_utils.keychain_get_api_key", return_value="from-keychain")
    def test_keychain_wins(self, _keychain):
        with mock.patch.dict(os.environ, {"LEARNCLIP_TEST_KEY": "from-env"}):
            self.assertEqual(get_api_key("svc", "LEARNCLIP_TEST_KEY"), "from-keychain")


class TestErrorCodes(unittest.TestCase):
    """Test error code handling."""

    def test_task_error(self):
        e = TaskError(ErrorCode.FFMPEG, "ffmpeg failed")
        self.assertEqual(e.code, ErrorCode.FFMPEG)
        self.assertEqual(str(e), "[ERR_FFMPEG] ffmpeg failed")

    def test_external_tool_error_keeps_diagnostics(self):
        e = ExternalToolError(ErrorCode.FFMPEG, "ffmpeg failed", diagnostics="stderr text")
        self.assertEqual(e.diagnostics, "stderr text")
        self.assertIn("stderr text", str(e))

    def test_cancelled(self):
        e = TaskCancelled()
        self.assertEqual(e.code, ErrorCode.CANCELLED)
        self.assertEqual(e.message, CANCELLED_MESSAGE)

    def test_input_errors(self):
        self.assertTrue(is_input_error(ErrorCode.INPUT_NOT_FOUND))
        self.assertTrue(is_input_error(ErrorCode.VIDEO_TOO_SHORT))
        self.assertFalse(is_input_error(ErrorCode.FFMPEG))
        self.assertIsInstance(InputError(ErrorCode.INPUT_NOT_FOUND, "x"), TaskError)


class TestTaskModel(unittest.TestCase):
    """Test Task snapshots."""

    def test_new_task(self):
        task = Task.new("/in/video.mp4", "/out", "video")
        self.assertEqual(task.status, TaskStatus.PENDING)
        self.assertEqual(task.phase, TaskPhase.PENDING)
        self.assertEqual(task.progress, 0)
        self.assertIsNotNone(task.created_at)

    def test_evolve_returns_new_snapshot(self):
        task = Task.new("/in/video.mp4", "/out", "video")
        updated = task.evolve(progress=15, phase=TaskPhase.EXTRACTING_AUDIO)
        self.assertEqual(task.progress, 0)
        self.assertEqual(updated.progress, 15)
        self.assertEqual(updated.id, task.id)
        with self.assertRaises(Exception):
            task.progress = 50


class StoreContract:
    """Shared TaskStore checks; mixed into a TestCase with self.store set."""

    def test_insert_and_get(self):
        task = self.store.insert(Task.new("/in/a.mp4", "/out", "a"))
        self.assertEqual(self.store.get_by_id(task.id), task)
        self.assertIsNone(self.store.get_by_id("missing"))

    def test_update_replaces_snapshot(self):
        task = self.store.insert(Task.new("/in/a.mp4", "/out", "a"))
        done = task.evolve(status=TaskStatus.COMPLETED, phase=TaskPhase.COMPLETED,
                           progress=100, output_file_path="/out/a_LearnClip.mp4")
        self.store.update(done)
        fetched = self.store.get_by_id(task.id)
        self.assertEqual(fetched.status, TaskStatus.COMPLETED)
        self.assertEqual(fetched.progress, 100)
        self.assertEqual(fetched.output_file_path, "/out/a_LearnClip.mp4")

    def test_update_unknown_raises(self):
        with self.assertRaises(KeyError):
            self.store.update(Task.new("/in/a.mp4", "/out", "a"))

    def test_get_all_newest_first(self):
        first = Task.new("/in/a.mp4", "/out", "a")
        second = Task.new("/in/b.mp4", "/out", "b")
        first = first.evolve(created_at="2024-01-01T00:00:00+00:00")
        second = second.evolve(created_at="2024-01-02T00:00:00+00:00")
        self.store.insert(first)
        self.store.insert(second)
        self.assertEqual([t.name for t in self.store.get_all()], ["b", "a"])


class TestInMemoryStore(StoreContract, unittest.TestCase):
    """Test the in-memory task store."""

    def setUp(self):
        self.store = InMemoryTaskStore()


class TestDatabase(StoreContract, unittest.TestCase):
    """Test SQLite task store."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        from learnclip.core.db_sqlite import Database
        self.store = Database(Path(self.tmpdir.name) / "test.db")

    def tearDown(self):
        self.store.close()
        self.tmpdir.cleanup()

    def test_reopen_keeps_tasks(self):
        from learnclip.core.db_sqlite import Database
        task = self.store.insert(Task.new("/in/a.mp4", "/out", "a"))
        db_path = self.store.db_path
        self.store.close()
        self.store = Database(db_path)
        self.assertEqual(self.store.get_by_id(task.id), task)


class TestConfig(unittest.TestCase):
    """Test configuration loading and validation."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_defaults(self):
        config = AppConfig(self.path)
        self.assertEqual(config.selector, SELECTOR_HEURISTIC)
        self.assertEqual(config.get('caption_align'), CAPTION_ALIGN_CROP)
        self.assertEqual(config.get('min_clip_sec'), 4.0)
        self.assertEqual(config.get('max_clip_sec'), 45.0)
        self.assertEqual(config.get('target_clip_sec'), 18.0)
        self.assertTrue(config.get('title_cards'))
        self.assertFalse(config.keep_debug_artifacts)

    def test_values_are_clamped(self):
        self.path.write_text(json.dumps({
            "min_clip_sec": 0,
            "max_candidates": 5000,
            "title_card_sec": "abc",
            "selector": "magic",
        }))
        config = AppConfig(self.path)
        self.assertEqual(config.get('min_clip_sec'), 1.0)
        self.assertEqual(config.get('max_candidates'), 200)
        self.assertEqual(config.get('title_card_sec'), 2.0)
        self.assertEqual(config.selector, SELECTOR_HEURISTIC)

    def test_malformed_file_uses_defaults(self):
        self.path.write_text("{not json")
        config = AppConfig(self.path)
        self.assertEqual(config.get('max_clip_sec'), 45.0)

    def test_set_persists(self):
        config = AppConfig(self.path)
        config.set('caption_align', 'slice')
        config.set('min_video_sec', 60)
        reloaded = AppConfig(self.path)
        self.assertEqual(reloaded.get('caption_align'), 'slice')
        self.assertEqual(reloaded.get('min_video_sec'), 60.0)


class TestCleanup(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.tmpdir.name) / ".clip_work"
        self.workspace.mkdir()
        self.files = [self.workspace / "a.wav", self.workspace / "b.mp4"]
        for f in self.files:
            f.write_bytes(b"x")
        (self.workspace / "stray.log").write_text("tool output")

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_removes_files_and_workspace(self):
        missing = self.workspace / "never_written.srt"
        deleted = cleanup_artifacts(self.files + [missing], workspace=self.workspace)
        self.assertEqual(deleted, 2)
        self.assertFalse(self.workspace.exists())

    def test_keep_debug_touches_nothing(self):
        self.assertEqual(cleanup_artifacts(self.files, self.workspace, keep_debug=True), 0)
        self.assertTrue(all(f.exists() for f in self.files))

    def test_delete_failure_is_not_raised(self):
        with mock.patch.object(Path, "unlink", side_effect=PermissionError("busy")):
            self.assertEqual(cleanup_artifacts(self.files), 0)


if __name__ == "__main__":
    unittest.main()
