"""Loaders for recorded ARKit tracking data.

A recorded capture provides:
- Camera poses in poses.jsonl (4x4 camera-to-world ``transform`` per line)
- Motion samples in motion.jsonl (``userAcceleration`` in g)

Replaying these through a guidance session reproduces what the operator saw
during capture.
"""
from __future__ import annotations

import bisect
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .models import CameraPose
from .utils.io import load_jsonl
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MotionSample:
    """Device motion sample."""
    timestamp: float
    user_acceleration: Tuple[float, float, float]  # (x, y, z) g, gravity removed

    @property
    def acceleration_g(self) -> float:
        """Magnitude of user acceleration in g."""
        return math.sqrt(sum(a * a for a in self.user_acceleration))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MotionSample":
        """Parse a motion.jsonl entry."""
        if not isinstance(data, dict):
            raise ValueError(f"Motion entry must be an object, got {type(data).__name__}")
        accel = data.get("userAcceleration", {"x": 0, "y": 0, "z": 0})
        if not isinstance(accel, dict):
            raise ValueError("userAcceleration must be an object")
        return cls(
            timestamp=float(data.get("timestamp", 0)),
            user_acceleration=(
                float(accel.get("x", 0)),
                float(accel.get("y", 0)),
                float(accel.get("z", 0)),
            ),
        )


def load_pose_track(poses_path: Path) -> List[CameraPose]:
    """Load camera poses from poses.jsonl, ordered by timestamp.

    Entries that cannot be turned into a pose are skipped with a warning.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    if not poses_path.exists():
        raise FileNotFoundError(f"Pose track not found: {poses_path}")

    poses = []
    for line_no, entry in enumerate(load_jsonl(poses_path), start=1):
        try:
            poses.append(CameraPose.from_dict(entry))
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping pose entry {line_no} in {poses_path.name}: {e}")

    poses.sort(key=lambda p: p.timestamp)
    logger.info(f"Loaded {len(poses)} poses from {poses_path}")
    return poses


def load_motion_samples(motion_path: Path) -> List[MotionSample]:
    """Load motion samples from motion.jsonl, ordered by timestamp.

    A missing file yields an empty list; motion data is optional. Entries
    that cannot be parsed are skipped with a warning.
    """
    if not motion_path.exists():
        return []

    samples = []
    for line_no, entry in enumerate(load_jsonl(motion_path), start=1):
        try:
            samples.append(MotionSample.from_dict(entry))
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping motion entry {line_no} in {motion_path.name}: {e}")
    samples.sort(key=lambda s: s.timestamp)
    return samples


def motion_at(samples: List[MotionSample], timestamp: float) -> Optional[MotionSample]:
    """Latest motion sample at or before ``timestamp``."""
    position = bisect.bisect_right(samples, timestamp, key=lambda s: s.timestamp)
    return samples[position - 1] if position else None
