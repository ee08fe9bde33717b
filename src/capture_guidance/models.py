"""Core data models for the capture guidance engine.

This module defines the data structures shared by every component:

    RingGeometry ──> CheckpointPose[]  (generated once per session)
    CameraPose ──> Resolution(index, CaptureError)  (once per tracking update)
    CheckpointStatus  (per checkpoint, mutated by the session)
    CaptureMode  (manual / automatic with interval)

Coordinate conventions follow ARKit world space: Y up, rings lie in planes of
constant Y around the anchor, azimuth is measured from +X towards +Z.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

# Ring 1 sits just above the anchor plane
FIRST_RING_HEIGHT_OFFSET = 0.035

MAX_RING_COUNT = 3

# 120 frames over one 108 s turn around the object
DEFAULT_AUTO_CAPTURE_INTERVAL_SECS = 108.0 / 120.0
DEFAULT_UPDATE_INTERVAL_SECS = 1.0 / 30.0


class InvalidConfiguration(ValueError):
    """Raised when ring or session configuration cannot produce checkpoints."""


def as_vector3(value: Any, name: str = "vector") -> np.ndarray:
    """Coerce a 3-sequence into a float64 numpy vector."""
    vec = np.asarray(value, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"{name} must have 3 components, got shape {vec.shape}")
    return vec


class CheckpointStatus(Enum):
    """Capture status of a single checkpoint."""
    UNINITIALIZED = "uninitialized"
    POINTED = "pointed"      # Currently targeted by the camera
    CAPTURED = "captured"    # Terminal


class CaptureError(Enum):
    """Why the current camera pose did not resolve to a checkpoint."""
    NONE = "none"
    TOO_FAR = "too_far"
    BAD_ELEVATION = "bad_elevation"
    NOT_ALIGNED = "not_aligned"

    @property
    def message(self) -> str:
        """Operator-facing guidance text."""
        return _CAPTURE_ERROR_MESSAGES[self]


_CAPTURE_ERROR_MESSAGES = {
    CaptureError.NONE: "",
    CaptureError.TOO_FAR: "Camera is too far",
    CaptureError.BAD_ELEVATION: "Camera is too high/low",
    CaptureError.NOT_ALIGNED: "Camera direction does not align with the point",
}


class CaptureModeKind(Enum):
    """Capture trigger modes."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"


@dataclass(frozen=True)
class CaptureMode:
    """Selected capture mode.

    Manual mode captures one image per button press; automatic mode captures
    one image every ``interval_seconds`` while its timer is running.
    """
    kind: CaptureModeKind = CaptureModeKind.MANUAL
    interval_seconds: Optional[float] = None

    def __post_init__(self):
        if self.kind is CaptureModeKind.AUTOMATIC:
            if self.interval_seconds is None or not self.interval_seconds > 0:
                raise ValueError(
                    f"Automatic capture needs a positive interval, got {self.interval_seconds}"
                )
        elif self.interval_seconds is not None:
            raise ValueError("Manual capture mode takes no interval")

    @classmethod
    def manual(cls) -> "CaptureMode":
        return cls(CaptureModeKind.MANUAL)

    @classmethod
    def automatic(cls, interval_seconds: float) -> "CaptureMode":
        return cls(CaptureModeKind.AUTOMATIC, float(interval_seconds))

    @property
    def is_automatic(self) -> bool:
        return self.kind is CaptureModeKind.AUTOMATIC

    def __str__(self) -> str:
        if self.is_automatic:
            return f"automatic({self.interval_seconds:.2f}s)"
        return "manual"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "interval_seconds": self.interval_seconds}


@dataclass(frozen=True, eq=False)
class CheckpointPose:
    """A fixed viewpoint on a capture ring.

    Attributes:
        position: World position of the checkpoint (3,)
        direction: Unit vector facing the ring center, horizontal plane only (3,)
        ring: Ring number, 1-based
        index: Global sequence index across all rings
    """
    position: np.ndarray
    direction: np.ndarray
    ring: int
    index: int

    def __post_init__(self):
        position = as_vector3(self.position, "position")
        direction = as_vector3(self.direction, "direction")
        position.setflags(write=False)
        direction.setflags(write=False)
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "direction", direction)

    @property
    def height(self) -> float:
        return float(self.position[1])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "ring": self.ring,
            "position": self.position.tolist(),
            "direction": self.direction.tolist(),
        }


@dataclass
class CameraPose:
    """Camera pose delivered by the tracking subsystem for one frame."""
    position: np.ndarray  # (3,) world position
    forward: np.ndarray  # (3,) viewing direction, need not be normalized
    timestamp: float = 0.0

    def __post_init__(self):
        self.position = as_vector3(self.position, "position")
        self.forward = as_vector3(self.forward, "forward")

    @classmethod
    def from_transform(cls, transform: Any, timestamp: float = 0.0) -> "CameraPose":
        """Build from a 4x4 camera-to-world transform.

        ARKit cameras look down their local -Z axis, so forward is the
        negated third rotation column.
        """
        matrix = np.asarray(transform, dtype=np.float64)
        if matrix.shape != (4, 4):
            matrix = matrix.reshape(4, 4)
        return cls(
            position=matrix[:3, 3].copy(),
            forward=-matrix[:3, 2],
            timestamp=timestamp,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CameraPose":
        """Parse a poses.jsonl entry.

        Accepts either explicit ``position``/``forward`` keys or an ARKit
        ``transform`` matrix.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Pose entry must be an object, got {type(data).__name__}")
        timestamp = float(data.get("timestamp", 0.0))
        if "position" in data and "forward" in data:
            return cls(
                position=data["position"],
                forward=data["forward"],
                timestamp=timestamp,
            )
        if "transform" not in data:
            raise ValueError("Pose entry needs 'transform' or 'position'/'forward'")
        return cls.from_transform(data["transform"], timestamp=timestamp)

    @property
    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.position)) and np.all(np.isfinite(self.forward)))


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one camera pose against the checkpoints."""
    index: Optional[int] = None
    error: CaptureError = CaptureError.NONE

    @property
    def capturable(self) -> bool:
        """True only when a checkpoint is satisfied right now."""
        return self.index is not None and self.error is CaptureError.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "error": self.error.value}


@dataclass
class GuidanceThresholds:
    """Gating thresholds for checkpoint resolution."""
    distance_threshold: float = 0.4  # meters from ring center
    elevation_angle_threshold: float = 15.0  # degrees
    alignment_angle_threshold: float = 10.0  # degrees

    def validate(self) -> None:
        for name in (
            "distance_threshold",
            "elevation_angle_threshold",
            "alignment_angle_threshold",
        ):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise InvalidConfiguration(f"{name} must be positive, got {value}")


@dataclass
class RingGeometry:
    """Session-scoped ring configuration.

    Fixed once guidance starts. Changing ``point_count`` or the number of
    heights means rebuilding the checkpoint collection.
    """
    center: np.ndarray
    radius: float
    scale: float  # marker scale, used by renderers
    point_count: int
    heights: Tuple[float, ...]
    radius_scales: Optional[Tuple[float, ...]] = None

    def __post_init__(self):
        self.center = as_vector3(self.center, "center")
        self.heights = tuple(float(h) for h in self.heights)
        if self.radius_scales is not None:
            self.radius_scales = tuple(float(s) for s in self.radius_scales)

    @property
    def ring_count(self) -> int:
        return len(self.heights)

    @classmethod
    def from_anchor(
        cls,
        anchor: Sequence[float],
        radius: float,
        scale: float,
        point_count: int,
        ring_count: int = 1,
        dome_height: float = 0.0,
        radius_scales: Optional[Sequence[float]] = None,
    ) -> "RingGeometry":
        """Derive ring heights from the anchor and the guide dome height.

        Ring 1 sits slightly above the anchor plane and ring 2 at half the
        dome height. A third ring has no default height and must be
        configured explicitly.
        """
        center = as_vector3(anchor, "anchor")
        if ring_count not in (1, 2):
            raise InvalidConfiguration(
                f"Anchor-derived heights cover 1 or 2 rings, got {ring_count}"
            )
        heights: List[float] = [float(center[1]) + FIRST_RING_HEIGHT_OFFSET]
        if ring_count == 2:
            heights.append(float(center[1]) + dome_height * 0.5)
        return cls(
            center=center,
            radius=radius,
            scale=scale,
            point_count=point_count,
            heights=tuple(heights),
            radius_scales=tuple(radius_scales) if radius_scales else None,
        )


@dataclass
class GuidanceConfig:
    """Configuration for a guidance session.

    This can be serialized to JSON/YAML and handed to the replay runner.
    """

    session_id: str = "capture"

    # Ring geometry
    center: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    radius: float = 0.21
    scale: float = 0.02
    point_count: int = 20
    ring_count: int = 1
    heights: Optional[List[float]] = None  # Derived from center when omitted
    dome_height: float = 0.3
    radius_scales: Optional[List[float]] = None

    # Gating
    distance_threshold: float = 0.4
    elevation_angle_threshold: float = 15.0
    alignment_angle_threshold: float = 10.0

    # Capture
    auto_capture_interval_seconds: float = DEFAULT_AUTO_CAPTURE_INTERVAL_SECS
    update_interval_seconds: float = DEFAULT_UPDATE_INTERVAL_SECS
    max_in_flight_captures: int = 2
    max_acceleration_g: Optional[float] = None  # None disables the motion gate

    def validate(self) -> None:
        """Check settings that would otherwise fail later.

        Raises:
            InvalidConfiguration: If any setting is out of range.
        """
        if not 1 <= self.ring_count <= MAX_RING_COUNT:
            raise InvalidConfiguration(
                f"ring_count must be between 1 and {MAX_RING_COUNT}, got {self.ring_count}"
            )
        if self.point_count <= 0:
            raise InvalidConfiguration(f"point_count must be positive, got {self.point_count}")
        if self.heights is not None and len(self.heights) != self.ring_count:
            raise InvalidConfiguration(
                f"Expected {self.ring_count} ring heights, got {len(self.heights)}"
            )
        if self.heights is None and self.ring_count > 2:
            raise InvalidConfiguration("A third ring needs explicit heights")
        if not (math.isfinite(self.radius) and self.radius > 0):
            raise InvalidConfiguration(f"radius must be positive, got {self.radius}")
        if self.radius_scales is not None:
            if len(self.radius_scales) < self.ring_count:
                raise InvalidConfiguration(
                    f"Expected {self.ring_count} radius scales, got {len(self.radius_scales)}"
                )
            if not all(math.isfinite(s) and s > 0 for s in self.radius_scales):
                raise InvalidConfiguration(f"Radius scales must be positive, got {self.radius_scales}")
        elif self.ring_count > 2:
            raise InvalidConfiguration("A third ring needs explicit radius_scales")
        if self.auto_capture_interval_seconds <= 0 or self.update_interval_seconds <= 0:
            raise InvalidConfiguration("Capture intervals must be positive")
        if self.max_in_flight_captures < 1:
            raise InvalidConfiguration("max_in_flight_captures must be at least 1")
        self.thresholds().validate()

    def thresholds(self) -> GuidanceThresholds:
        return GuidanceThresholds(
            distance_threshold=self.distance_threshold,
            elevation_angle_threshold=self.elevation_angle_threshold,
            alignment_angle_threshold=self.alignment_angle_threshold,
        )

    def ring_geometry(self) -> RingGeometry:
        """Build the ring geometry described by this config."""
        self.validate()
        if self.heights is None:
            return RingGeometry.from_anchor(
                anchor=self.center,
                radius=self.radius,
                scale=self.scale,
                point_count=self.point_count,
                ring_count=self.ring_count,
                dome_height=self.dome_height,
                radius_scales=self.radius_scales,
            )
        return RingGeometry(
            center=self.center,
            radius=self.radius,
            scale=self.scale,
            point_count=self.point_count,
            heights=tuple(self.heights),
            radius_scales=tuple(self.radius_scales) if self.radius_scales else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "session_id": self.session_id,
            "center": list(self.center),
            "radius": self.radius,
            "scale": self.scale,
            "point_count": self.point_count,
            "ring_count": self.ring_count,
            "heights": list(self.heights) if self.heights is not None else None,
            "dome_height": self.dome_height,
            "radius_scales": list(self.radius_scales) if self.radius_scales else None,
            "distance_threshold": self.distance_threshold,
            "elevation_angle_threshold": self.elevation_angle_threshold,
            "alignment_angle_threshold": self.alignment_angle_threshold,
            "auto_capture_interval_seconds": self.auto_capture_interval_seconds,
            "update_interval_seconds": self.update_interval_seconds,
            "max_in_flight_captures": self.max_in_flight_captures,
            "max_acceleration_g": self.max_acceleration_g,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuidanceConfig":
        """Deserialize from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
