#!/usr/bin/env python3
"""
LearnClip v1.0.0: command-line entry point.

    python main.py run VIDEO [-o DIR] [--start S --end E] [--selector heuristic|openai]
    python main.py list
    python main.py show TASK_ID
    python main.py diagnose [--verify-key]
"""

import sys
import os
import argparse
import logging
import shutil
from pathlib import Path
from datetime import datetime

# ── Ensure Homebrew paths are in PATH ────────────────────────────────
# Shells started outside a login session may not have Homebrew's bin
# directories on PATH, which is where ffmpeg usually lives on macOS.
HOMEBREW_PATHS = [
    "/opt/homebrew/bin",          # Apple Silicon default
    "/usr/local/bin",             # Intel Mac default
]

current_path = os.environ.get("PATH", "")
for p in HOMEBREW_PATHS:
    if os.path.isdir(p) and p not in current_path.split(os.pathsep):
        current_path = p + os.pathsep + current_path
os.environ["PATH"] = current_path

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from learnclip.core.constants import (
    APP_NAME, APP_VERSION, LOG_DIR, DB_PATH, PHASE_LABELS, TaskStatus,
    SELECTOR_HEURISTIC, SELECTOR_OPENAI,
    KEYCHAIN_SERVICE_DEEPGRAM, KEYCHAIN_SERVICE_OPENAI, KEYCHAIN_SERVICE_AZURE,
    ENV_DEEPGRAM_KEY, ENV_OPENAI_KEY, ENV_AZURE_KEY, ENV_AZURE_REGION,
    ENV_AZURE_ENDPOINT,
)
from learnclip.core.config import AppConfig
from learnclip.core.db_sqlite import Database
from learnclip.core.coordinator import PipelineCoordinator
from learnclip.core.media_ffmpeg import FfmpegMediaTool
from learnclip.core.transcribe_deepgram import DeepgramTranscriber, verify_api_key
from learnclip.core.translate_azure import AzureTranslator, make_translate_fn
from learnclip.core.segment_select import HeuristicSegmentSelector
from learnclip.core.segment_select_openai import OpenAiSegmentSelector
from learnclip.core.security_utils import get_api_key
from learnclip.core.diagnostics import get_diagnostics, missing_tools

logger = logging.getLogger(APP_NAME)


def setup_logging(verbose: bool = False, log_dir: Path = LOG_DIR):
    """File log at INFO (DEBUG when verbose), console at WARNING (DEBUG when verbose)."""
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "app.log", encoding="utf-8")
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)
    except OSError as e:
        print(f"Warning: cannot write log file in {log_dir}: {e}", file=sys.stderr)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(console)


def check_prerequisites() -> bool:
    """Check that ffmpeg and ffprobe are available."""
    missing = missing_tools()
    if missing:
        logger.error("Missing tools. PATH = %s", os.environ.get("PATH", ""))
        print("Missing required tools: " + ", ".join(missing)
              + " (install with: brew install ffmpeg)", file=sys.stderr)
        return False
    logger.info("ffmpeg found at: %s", shutil.which("ffmpeg"))
    logger.info("ffprobe found at: %s", shutil.which("ffprobe"))
    return True


def build_selector(config: AppConfig, selector_name: str):
    heuristic = HeuristicSegmentSelector(
        min_duration=config.get('min_clip_sec'),
        max_duration=config.get('max_clip_sec'),
        target_duration=config.get('target_clip_sec'),
    )
    if selector_name != SELECTOR_OPENAI:
        return heuristic

    api_key = get_api_key(KEYCHAIN_SERVICE_OPENAI, ENV_OPENAI_KEY)
    if not api_key:
        logger.warning("OpenAI selector requested but no API key found, using heuristic")
        return heuristic
    return OpenAiSegmentSelector(
        api_key,
        fallback=heuristic,
        model=config.get('openai_model'),
        max_candidates=config.get('max_candidates'),
    )


def build_translate_fn(config: AppConfig):
    if not config.get('translate'):
        return None
    key = get_api_key(KEYCHAIN_SERVICE_AZURE, ENV_AZURE_KEY)
    region = os.environ.get(ENV_AZURE_REGION, '').strip()
    if not key or not region:
        logger.info("No translator configured; bilingual captions repeat the English text")
        return None
    endpoint = os.environ.get(ENV_AZURE_ENDPOINT, '').strip() or None
    return make_translate_fn(AzureTranslator(key, region, endpoint=endpoint))


def print_task(task):
    print(f"Task     {task.id}")
    print(f"Name     {task.name}")
    print(f"Input    {task.input_path}")
    print(f"Status   {task.status} ({PHASE_LABELS.get(task.phase, task.phase)}, {task.progress}%)")
    print(f"Created  {task.created_at}")
    if task.output_file_path:
        print(f"Output   {task.output_file_path}")
    if task.error_message:
        print("Error:")
        print(task.error_message)


# ── Commands ──────────────────────────────────────────────────────────

def cmd_run(args, config: AppConfig, db: Database) -> int:
    if not check_prerequisites():
        return 1

    api_key = get_api_key(KEYCHAIN_SERVICE_DEEPGRAM, ENV_DEEPGRAM_KEY)
    if not api_key:
        print(f"No Deepgram API key. Set {ENV_DEEPGRAM_KEY} or add the Keychain "
              f"item '{KEYCHAIN_SERVICE_DEEPGRAM}'.", file=sys.stderr)
        return 1

    clip_range = None
    if args.start is not None or args.end is not None:
        if args.start is None or args.end is None:
            print("--start and --end must be given together", file=sys.stderr)
            return 1
        clip_range = (args.start, args.end)

    settings = config.as_dict()
    if args.no_title_cards:
        settings["title_cards"] = False
    if args.keep_debug:
        settings["keep_debug_artifacts"] = True

    output_dir = Path(args.output or config.output_root).expanduser()
    coordinator = PipelineCoordinator(
        store=db,
        media=FfmpegMediaTool(),
        transcriber=DeepgramTranscriber(api_key),
        selector=build_selector(config, args.selector or config.selector),
        translate_fn=build_translate_fn(config),
        config=settings,
    )

    last_phase = [None]

    def on_update(task):
        if task.phase != last_phase[0]:
            last_phase[0] = task.phase
            print(f"[{task.progress:3d}%] {PHASE_LABELS.get(task.phase, task.phase)}")

    coordinator.subscribe(on_update)

    try:
        task = coordinator.create_and_run(Path(args.video).expanduser(), output_dir, clip_range)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 1

    if task.status == TaskStatus.COMPLETED:
        print(f"Done: {task.output_file_path}")
        return 0
    print(f"Failed ({task.id}):", file=sys.stderr)
    print(task.error_message, file=sys.stderr)
    return 1


def cmd_list(args, config: AppConfig, db: Database) -> int:
    tasks = db.get_all()
    if not tasks:
        print("No tasks.")
        return 0
    for task in tasks:
        print(f"{task.id[:8]}  {task.status:<10}  {task.progress:3d}%  {task.name}")
    return 0


def cmd_show(args, config: AppConfig, db: Database) -> int:
    task = db.get_by_id(args.task_id)
    if task is None:
        matches = [t for t in db.get_all() if t.id.startswith(args.task_id)]
        task = matches[0] if len(matches) == 1 else None
    if task is None:
        print(f"Task not found: {args.task_id}", file=sys.stderr)
        return 1
    print_task(task)
    return 0


def cmd_diagnose(args, config: AppConfig, db: Database) -> int:
    info = get_diagnostics()
    print(f"{APP_NAME} {APP_VERSION}")
    print(f"ffmpeg:           {info['ffmpeg_version']}")
    print(f"ffprobe:          {info['ffprobe_version']}")
    for label, key in (("Deepgram key", "deepgram_key"),
                       ("OpenAI key", "openai_key"),
                       ("Translator key", "azure_translator_key")):
        print(f"{label + ':':<18}{'found' if info[key] else 'missing'}")
    rc = 0
    if args.verify_key:
        api_key = get_api_key(KEYCHAIN_SERVICE_DEEPGRAM, ENV_DEEPGRAM_KEY)
        if api_key:
            ok, message = verify_api_key(api_key)
        else:
            ok, message = False, "No key to verify"
        print(f"Deepgram check:   {message}")
        rc = 0 if ok else 1
    print(f"Database:         {db.db_path}")
    print(f"Config:           {config.path}")
    return rc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="learnclip",
                                     description="Turn a video into a four-pass language-learning clip.")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging on the console")
    parser.add_argument("--db", type=Path, default=DB_PATH, help=argparse.SUPPRESS)
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="process one video")
    run.add_argument("video")
    run.add_argument("-o", "--output", help="output directory (default: config output_root)")
    run.add_argument("--start", type=float, help="manual clip start in seconds")
    run.add_argument("--end", type=float, help="manual clip end in seconds")
    run.add_argument("--selector", choices=[SELECTOR_HEURISTIC, SELECTOR_OPENAI])
    run.add_argument("--no-title-cards", action="store_true")
    run.add_argument("--keep-debug", action="store_true", help="keep intermediate files")
    run.set_defaults(func=cmd_run)

    sub.add_parser("list", help="list tasks").set_defaults(func=cmd_list)

    show = sub.add_parser("show", help="show one task")
    show.add_argument("task_id")
    show.set_defaults(func=cmd_show)

    diagnose = sub.add_parser("diagnose", help="tool versions and credentials")
    diagnose.add_argument("--verify-key", action="store_true",
                          help="check the Deepgram key against the API")
    diagnose.set_defaults(func=cmd_diagnose)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("=" * 60)

    config = AppConfig()
    db = Database(args.db)
    try:
        return args.func(args, config, db)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
