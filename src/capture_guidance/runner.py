"""Replay runner for recorded capture tracks.

Feeds a recorded ARKit pose track through a guidance session and reports how
many checkpoints the operator would have covered.

Usage:
    # Replay with default ring settings
    python -m capture_guidance.runner --poses raw/arkit/poses.jsonl

    # Replay with a session config and write a report
    python -m capture_guidance.runner --poses poses.jsonl --config session.yaml --output report.json

    # Config from the environment
    GUIDANCE_CONFIG='{"radius": 0.25, "ring_count": 2}' python -m capture_guidance.runner --poses poses.jsonl
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .capture import CaptureSink
from .geometry import build_checkpoints
from .models import CameraPose, CaptureError, CheckpointStatus, GuidanceConfig, InvalidConfiguration
from .pose_track import MotionSample, load_motion_samples, load_pose_track, motion_at
from .session import GuidanceSession
from .utils.io import load_structured, save_json
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

CONFIG_ENV_VAR = "GUIDANCE_CONFIG"


class RecordingCaptureSink(CaptureSink):
    """Capture sink that records which checkpoints were captured."""

    def __init__(self):
        self.captured: List[int] = []

    def capture(self, checkpoint_index: int) -> bool:
        self.captured.append(checkpoint_index)
        return True


@dataclass
class ReplayResult:
    """Outcome of replaying one pose track."""
    frames: int = 0
    capturable_frames: int = 0
    captures_requested: int = 0
    error_counts: Dict[str, int] = field(default_factory=dict)
    captured_indices: List[int] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frames": self.frames,
            "capturable_frames": self.capturable_frames,
            "captures_requested": self.captures_requested,
            "error_counts": self.error_counts,
            "captured_indices": self.captured_indices,
            "summary": self.summary,
        }


def load_config(config_path: Optional[Path] = None) -> GuidanceConfig:
    """Load a session config from a file, the environment, or defaults.

    Supports JSON and YAML files. A file takes precedence over the
    ``GUIDANCE_CONFIG`` environment variable. The ring layout is built once
    here so every layout error surfaces before a session starts.

    Raises:
        InvalidConfiguration: If the settings cannot produce checkpoints.
    """
    if config_path is not None:
        data = load_structured(config_path)
    else:
        payload = os.environ.get(CONFIG_ENV_VAR)
        data = json.loads(payload) if payload else {}

    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Config must be a mapping, got {type(data).__name__}")

    config = GuidanceConfig.from_dict(data)
    build_checkpoints(config.ring_geometry())
    return config


def replay_track(
    session: GuidanceSession,
    poses: List[CameraPose],
    motion: Optional[List[MotionSample]] = None,
) -> ReplayResult:
    """Replay poses through ``session`` in manual capture mode.

    Every capturable frame whose checkpoint is not yet captured triggers one
    capture, which is awaited before the next frame so the replay is
    deterministic.
    """
    result = ReplayResult()
    errors: Counter = Counter()
    session.mark_ready()

    for pose in poses:
        if motion:
            session.update_motion(motion_at(motion, pose.timestamp))

        resolution = session.resolve(pose)
        result.frames += 1
        errors[resolution.error.value] += 1

        if not resolution.capturable:
            continue
        result.capturable_frames += 1

        if session.store.status(resolution.index) is CheckpointStatus.CAPTURED:
            continue
        if session.capture_now() is not None:
            result.captures_requested += 1
            session.wait_for_captures()

    result.error_counts = dict(errors)
    result.summary = session.summary()
    return result


def print_summary(result: ReplayResult) -> None:
    summary = result.summary
    print(f"\n{'='*60}")
    print(f"Frames: {result.frames} ({result.capturable_frames} capturable)")
    print(
        f"Captured: {summary.get('captured', 0)}/{summary.get('total_checkpoints', 0)} "
        f"({summary.get('coverage', 0.0) * 100:.1f}%)"
    )
    for ring, counts in summary.get("rings", {}).items():
        print(f"  Ring {ring}: {counts['captured']}/{counts['total']}")
    for error in CaptureError:
        count = result.error_counts.get(error.value, 0)
        if count and error is not CaptureError.NONE:
            print(f"  {error.message}: {count} frame(s)")
    print(f"{'='*60}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Replay a recorded pose track through the capture guidance engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Replay with default ring settings
    python -m capture_guidance.runner --poses poses.jsonl

    # Replay with motion gating and a two-ring config
    python -m capture_guidance.runner --poses poses.jsonl --motion motion.jsonl --config rings.yaml
        """,
    )

    parser.add_argument(
        "--poses",
        type=str,
        required=True,
        help="Path to poses.jsonl (ARKit camera-to-world transforms)",
    )

    parser.add_argument(
        "--motion",
        type=str,
        help="Optional motion.jsonl used for the acceleration gate",
    )

    parser.add_argument(
        "--config",
        type=str,
        help=f"Session config (JSON or YAML); falls back to ${CONFIG_ENV_VAR}",
    )

    parser.add_argument(
        "--output",
        type=str,
        help="Write the replay report as JSON",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON log lines",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(Path(args.config) if args.config else None)
    except (InvalidConfiguration, OSError, ValueError, TypeError, yaml.YAMLError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        session_id=config.session_id,
        cloud_logging=args.json_logs,
    )

    try:
        poses = load_pose_track(Path(args.poses))
    except (OSError, ValueError) as e:
        logger.error(f"Could not load pose track: {e}")
        return 1
    motion = load_motion_samples(Path(args.motion)) if args.motion else None

    sink = RecordingCaptureSink()
    with GuidanceSession(config, sink) as session:
        result = replay_track(session, poses, motion)
    result.captured_indices = sorted(sink.captured)

    print_summary(result)

    if args.output:
        path = save_json(result.to_dict(), Path(args.output))
        logger.info(f"Saved replay report to: {path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
