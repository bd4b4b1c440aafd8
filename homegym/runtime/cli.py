from __future__ import annotations
import argparse
import logging
import sys
import time
from typing import List, Optional

from homegym.common.config import Settings
from homegym.counter.rules import CATALOG, UnknownExerciseError, ExerciseId
from homegym.counter.session import RepSessionManager


def _print_event(ev: dict):
    kind = ev.get("type")
    if kind == "rep":
        print(f"reps: {ev['count']}", flush=True)
    elif kind == "form_warning":
        print(f"form: {ev['message']}", flush=True)
    elif kind == "session_ended":
        print(f"ended: {ev['reason']} {ev.get('message', '')}".rstrip(), flush=True)
    elif kind == "trace":
        print(ev.get("msg", ""), file=sys.stderr, flush=True)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="homegym", description="Count reps from the webcam.")
    p.add_argument("exercise", nargs="?", help="exercise id or name, e.g. push_ups or 'Basic Squats'")
    p.add_argument("--list", action="store_true", help="list supported exercises and exit")
    p.add_argument("--no-voice", action="store_true", help="do not speak counts and cues")
    p.add_argument("--camera", type=int, default=None, help="capture device index")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list or not args.exercise:
        for ex, info in CATALOG.items():
            print(f"{ex.value:<16} {info.display_name}")
        return 0

    try:
        exercise = ExerciseId.parse(args.exercise)
    except UnknownExerciseError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    settings = Settings.from_env()
    overrides = {"enable_tutorials": False}
    if args.no_voice:
        overrides["enable_voice"] = False
    if args.camera is not None:
        overrides["camera_index"] = args.camera
    settings = settings.model_copy(update=overrides)

    mgr = RepSessionManager(settings)
    mgr.set_event_sink(_print_event)
    print(exercise.instructions, flush=True)
    print("Press Ctrl+C to finish.", flush=True)
    mgr.start(exercise, camera=True)

    try:
        while mgr.status().state != "ended":
            time.sleep(0.2)
    except KeyboardInterrupt:
        print("\nExiting…", flush=True)

    summary = mgr.stop()
    mgr.tts.wait_until_idle(timeout=3.0)
    print(f"{exercise.display_name}: {summary.total_reps} reps in {summary.elapsed_s:.0f}s", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
