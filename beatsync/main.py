"""
BeatSync command line.

    python -m beatsync.main analyze song.wav
    python -m beatsync.main score song.wav --taps taps.txt
    python -m beatsync.main listen --seconds 60
"""

import argparse
import queue
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

from .config import EngineConfig, load_config
from .events import MICROPHONE_TRUST
from .hit_judge import Tier
from .logging_utils import log_event, set_log_level
from .onset_detector import estimate_bpm
from .session import BeatTrackingSession
from .track_loader import load_track

TICK_SECONDS = 1.0 / 60.0


def _read_taps(path: Path) -> List[float]:
    taps = []
    with open(path, 'r') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                taps.append(float(line))
    return sorted(taps)


def cmd_analyze(session: BeatTrackingSession, args) -> int:
    samples, sample_rate, channels = load_track(args.path)
    beat_map = session.analyze(samples, sample_rate, channels)
    bpm = estimate_bpm(beat_map.beats)

    print(f"{args.path}: {len(beat_map)} onsets, "
          f"{'tempo unknown' if bpm == 0 else f'{bpm:.1f} BPM'}")
    if args.list:
        for t in beat_map.beats:
            print(f"{t:.3f}")
    return 0


def cmd_score(session: BeatTrackingSession, args) -> int:
    samples, sample_rate, channels = load_track(args.path)
    beat_map = session.analyze(samples, sample_rate, channels)
    judge = session.load_beat_map(beat_map)

    for tap in _read_taps(args.taps):
        session.update_playback(tap)
        result = session.on_tap(tap)
        if result is not None:
            print(f"{tap:8.3f}  {result.tier.value:8s} {result.error_ms:+7.1f}ms  combo {result.combo_after}")
    session.finish_track()

    score = judge.score
    print(f"perfect {score.perfect_count}  good {score.good_count}  ok {score.ok_count}  "
          f"miss {score.miss_count}  max combo {score.max_combo}  accuracy {score.accuracy:.1%}")
    return 0


def _tap_reader(taps: "queue.Queue[str]") -> None:
    for line in sys.stdin:
        taps.put(line.strip().lower())


def cmd_listen(session: BeatTrackingSession, args) -> int:
    # PortAudio is only needed for live capture
    from .audio_capture import AudioCapture, CaptureConfig
    from .audio_source import SourceConfig

    if args.list_devices:
        for dev in AudioCapture.list_devices():
            marker = "*" if dev["default"] else " "
            print(f"{marker} {dev['id']:3d}  {dev['name']}  ({dev['channels']} ch, {dev['sample_rate']:.0f} Hz)")
        return 0

    source = session.add_source_config(SourceConfig(
        name="microphone", trust=args.trust, sample_rate=args.sample_rate,
    ))
    capture = AudioCapture(source, CaptureConfig(device=args.device))

    def on_judgement(tier: Tier, error_ms: float, combo: int):
        print(f"{tier.value:8s} {error_ms:+7.1f}ms  combo {combo}")

    session.add_judgement_callback(on_judgement)
    session.add_grid_locked_callback(lambda bpm: print(f"Locked at {bpm:.0f} BPM"))
    session.add_grid_reset_callback(lambda: print("Reset, tap to calibrate"))

    taps: "queue.Queue[str]" = queue.Queue()
    threading.Thread(target=_tap_reader, args=(taps,), daemon=True).start()

    print("Press Enter on each beat; 'r' + Enter resets. Ctrl+C to stop.")
    capture.start(time.perf_counter())
    deadline = time.perf_counter() + args.seconds if args.seconds else None
    try:
        while deadline is None or time.perf_counter() < deadline:
            while not taps.empty():
                command = taps.get_nowait()
                if command == 'r':
                    session.on_reset()
                else:
                    session.on_tap(time.perf_counter())
            session.tick()
            time.sleep(TICK_SECONDS)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        capture.stop()

    print(session.get_status())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tap-tempo beat tracking with onset-based drift correction")
    parser.add_argument('--config', type=Path, help='JSON engine configuration')
    parser.add_argument('--log-level', default='INFO', help='DEBUG, INFO, WARNING or ERROR')
    sub = parser.add_subparsers(dest='command', required=True)

    analyze = sub.add_parser('analyze', help='Detect onsets and tempo of an audio file')
    analyze.add_argument('path', type=Path)
    analyze.add_argument('--list', action='store_true', help='Print every onset time')

    score = sub.add_parser('score', help='Score tap times against an audio file')
    score.add_argument('path', type=Path)
    score.add_argument('--taps', type=Path, required=True, help='File with one tap time (seconds) per line')

    listen = sub.add_parser('listen', help='Live calibration and judging with microphone drift correction')
    listen.add_argument('--device', type=int, default=None)
    listen.add_argument('--sample-rate', type=int, default=22050)
    listen.add_argument('--trust', type=float, default=MICROPHONE_TRUST)
    listen.add_argument('--seconds', type=float, default=0.0, help='Stop after this long (0 = until Ctrl+C)')
    listen.add_argument('--list-devices', action='store_true', help='Print input devices and exit')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    set_log_level(args.log_level)

    try:
        config = load_config(args.config) if args.config else EngineConfig()
        session = BeatTrackingSession(config)
        handler = {'analyze': cmd_analyze, 'score': cmd_score, 'listen': cmd_listen}[args.command]
        return handler(session, args)
    except (OSError, ValueError) as e:
        log_event("error", "CLI", str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
