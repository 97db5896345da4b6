"""
MediaTool backed by the ffmpeg / ffprobe command-line tools.

Every rendered clip (base clip, burned passes, title cards) is encoded to
the same frame size, frame rate, pixel format and audio layout so the final
merge is a stream copy through the concat demuxer.
"""

import logging
import subprocess
from pathlib import Path

from learnclip.core.security_utils import run_subprocess_capture
from learnclip.core.error_codes import ExternalToolError, InputError
from learnclip.core.models import SegmentConfig
from learnclip.core.constants import (
    ErrorCode, FFMPEG_BIN, FFPROBE_BIN, FFPROBE_TIMEOUT_SEC, FFMPEG_TIMEOUT_SEC,
    AUDIO_SAMPLE_RATE, AUDIO_CHANNELS, AUDIO_CODEC,
    VIDEO_CODEC, VIDEO_PRESET, VIDEO_CRF, PIXEL_FORMAT,
    AUDIO_OUT_CODEC, AUDIO_OUT_RATE, AUDIO_OUT_CHANNELS,
    FRAME_WIDTH, FRAME_HEIGHT, FRAME_RATE, TITLE_CARD_FONT_SIZE,
)

logger = logging.getLogger(__name__)

CONCAT_LIST_NAME = "concat_list.txt"


def drawtext_escape(text: str) -> str:
    """Escape text for an ffmpeg drawtext filter argument."""
    return (
        text.replace("\\", r"\\\\")
        .replace(":", r"\:")
        .replace("'", r"\'")
        .replace(",", r"\,")
        .replace("[", r"\[")
        .replace("]", r"\]")
        .replace("%", r"\%")
        .replace("\n", r"\n")
    )


def subtitles_filter_escape(name: str) -> str:
    """Escape a file name for the subtitles filter (quoted form)."""
    return name.replace("\\", "/").replace("'", r"\'").replace(":", r"\:")


def concat_list_line(path: Path) -> str:
    # concat demuxer quoting: a single quote is written as ''
    return "file '" + str(path).replace("'", "''") + "'"


def _normalize_video_filter() -> str:
    return (
        f"scale={FRAME_WIDTH}:{FRAME_HEIGHT}:force_original_aspect_ratio=decrease,"
        f"pad={FRAME_WIDTH}:{FRAME_HEIGHT}:(ow-iw)/2:(oh-ih)/2,"
        f"setsar=1,fps={FRAME_RATE}"
    )


def _video_encode_args() -> list[str]:
    return [
        "-c:v", VIDEO_CODEC,
        "-preset", VIDEO_PRESET,
        "-crf", str(VIDEO_CRF),
        "-pix_fmt", PIXEL_FORMAT,
    ]


def _audio_encode_args() -> list[str]:
    return [
        "-c:a", AUDIO_OUT_CODEC,
        "-ar", str(AUDIO_OUT_RATE),
        "-ac", str(AUDIO_OUT_CHANNELS),
    ]


class FfmpegMediaTool:
    """ffmpeg-backed implementation of every media operation the pipeline uses."""

    def __init__(self, ffmpeg_bin: str = FFMPEG_BIN, ffprobe_bin: str = FFPROBE_BIN,
                 timeout: int = FFMPEG_TIMEOUT_SEC):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout

    # ── Process helpers ───────────────────────────────────────────────

    def _run(self, args: list[str], code: str, timeout: int,
             cwd: Path | None = None) -> subprocess.CompletedProcess:
        tool = Path(args[0]).name
        try:
            result = run_subprocess_capture(args, timeout=timeout, cwd=cwd)
        except FileNotFoundError:
            raise ExternalToolError(code, f"{tool} not found. Install it and make sure it is on PATH.")
        except subprocess.TimeoutExpired:
            raise ExternalToolError(code, f"{tool} timed out after {timeout}s",
                                    diagnostics=f"Arguments: {' '.join(args[1:])}")

        if result.returncode != 0:
            raise ExternalToolError(
                code,
                f"{tool} failed with exit code {result.returncode}",
                diagnostics=f"Arguments: {' '.join(args[1:])}\n{result.stderr.strip()}",
            )
        return result

    def _ffmpeg(self, args: list[str], cwd: Path | None = None):
        self._run([self.ffmpeg_bin, "-hide_banner", "-y"] + args,
                  ErrorCode.FFMPEG, self.timeout, cwd=cwd)

    # ── Operations ────────────────────────────────────────────────────

    def probe_duration(self, video_path: Path) -> float:
        """Container duration in seconds."""
        result = self._run([
            self.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "csv=p=0",
            str(video_path),
        ], ErrorCode.FFPROBE, FFPROBE_TIMEOUT_SEC)

        text = result.stdout.strip()
        try:
            duration = float(text)
        except ValueError:
            raise InputError(ErrorCode.INVALID_DURATION,
                             f"Could not read a duration from {video_path} (ffprobe printed {text!r})")
        if duration <= 0:
            raise InputError(ErrorCode.INVALID_DURATION,
                             f"Video has no playable duration: {video_path}")
        return duration

    def extract_audio(self, video_path: Path, out_dir: Path, base_name: str) -> Path:
        """16 kHz mono PCM WAV, '<base_name>_16k_mono.wav'."""
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        audio_path = out_dir / f"{base_name}_16k_mono.wav"
        self._ffmpeg([
            "-i", str(video_path),
            "-vn",
            "-acodec", AUDIO_CODEC,
            "-ar", str(AUDIO_SAMPLE_RATE),
            "-ac", str(AUDIO_CHANNELS),
            str(audio_path),
        ])
        logger.info("Extracted audio: %s", audio_path.name)
        return audio_path

    def cut_segments(self, video_path: Path, segments: list[SegmentConfig],
                     out_dir: Path) -> list[Path]:
        """
        Cut each segment to '<stem>_Part<index>.mp4'. Re-encodes so cuts are
        frame-accurate and every part has the common output format.
        """
        video_path = Path(video_path)
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        outputs = []
        for seg in segments:
            if seg.duration <= 0:
                raise InputError(ErrorCode.INVALID_RANGE,
                                 f"Segment {seg.index} has non-positive duration "
                                 f"({seg.start:.3f}s - {seg.end:.3f}s)")
            out_path = out_dir / f"{video_path.stem}_Part{seg.index}.mp4"
            self._ffmpeg([
                "-ss", f"{seg.start:.3f}",
                "-i", str(video_path),
                "-t", f"{seg.duration:.3f}",
                "-vf", _normalize_video_filter(),
                *_video_encode_args(),
                *_audio_encode_args(),
                "-movflags", "+faststart",
                str(out_path),
            ])
            logger.info("Cut segment %d (%.2fs - %.2fs) to %s",
                        seg.index, seg.start, seg.end, out_path.name)
            outputs.append(out_path)
        return outputs

    def burn_captions(self, video_path: Path, subtitle_path: Path,
                      out_path: Path) -> Path:
        """
        Render subtitle_path into the picture. ffmpeg runs inside the
        subtitle's directory so the filter only sees a bare file name.
        """
        subtitle_path = Path(subtitle_path).resolve()
        out_path = Path(out_path).resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)

        vf = f"subtitles='{subtitles_filter_escape(subtitle_path.name)}':charenc=UTF-8"
        self._ffmpeg([
            "-i", str(Path(video_path).resolve()),
            "-vf", vf,
            *_video_encode_args(),
            "-c:a", "copy",
            "-movflags", "+faststart",
            str(out_path),
        ], cwd=subtitle_path.parent)
        logger.info("Burned %s into %s", subtitle_path.name, out_path.name)
        return out_path

    def make_title_card(self, text: str, out_dir: Path, file_name: str,
                        duration_seconds: float) -> Path:
        """Black card with centred white text and a silent audio track."""
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        out_path = out_dir / file_name

        drawtext = (
            f"drawtext=text='{drawtext_escape(text)}':"
            f"fontcolor=white:fontsize={TITLE_CARD_FONT_SIZE}:"
            "x=(w-text_w)/2:y=(h-text_h)/2"
        )
        channel_layout = "stereo" if AUDIO_OUT_CHANNELS == 2 else "mono"
        self._ffmpeg([
            "-f", "lavfi",
            "-i", f"color=c=black:s={FRAME_WIDTH}x{FRAME_HEIGHT}:r={FRAME_RATE}:d={duration_seconds:.3f}",
            "-f", "lavfi",
            "-i", f"anullsrc=channel_layout={channel_layout}:sample_rate={AUDIO_OUT_RATE}",
            "-vf", drawtext,
            "-t", f"{duration_seconds:.3f}",
            *_video_encode_args(),
            *_audio_encode_args(),
            "-shortest",
            "-movflags", "+faststart",
            str(out_path),
        ])
        logger.info("Made title card %s", out_path.name)
        return out_path

    def merge_clips(self, clip_paths: list[Path], out_dir: Path,
                    out_file_name: str) -> Path:
        """
        Concatenate clips in order via the concat demuxer. The list file is
        written as UTF-8 without BOM and left beside the output.
        """
        if not clip_paths:
            raise ExternalToolError(ErrorCode.FFMPEG, "No clips to merge")

        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        list_path = out_dir / CONCAT_LIST_NAME
        out_path = out_dir / out_file_name

        with open(list_path, 'w', encoding='utf-8', newline='\n') as f:
            for clip in clip_paths:
                f.write(concat_list_line(Path(clip).resolve()) + '\n')

        self._ffmpeg([
            "-f", "concat",
            "-safe", "0",
            "-i", str(list_path),
            "-c", "copy",
            "-movflags", "+faststart",
            str(out_path),
        ])
        logger.info("Merged %d clips into %s", len(clip_paths), out_path.name)
        return out_path
