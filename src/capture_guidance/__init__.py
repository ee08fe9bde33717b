"""Capture Guidance Engine for multi-view photogrammetry capture.

Guides an operator around a target object by laying out fixed viewpoints
("checkpoints") on up to three concentric rings, checking every tracked
camera pose against them, and deciding when a photo may be taken for a
specific checkpoint.

Architecture:
    RingLayout         - checkpoint poses per ring (geometry)
    CheckpointStore    - checkpoint collection + status tracking
    GuidanceResolver   - per-frame gating: distance, elevation, alignment
    CaptureTriggerTimer    - trigger + countdown cadences for automatic mode
    CaptureModeController  - manual / automatic capture state machine
    GuidanceSession    - wires the above for UI and tracking collaborators

Typical use:
    session = GuidanceSession(GuidanceConfig(ring_count=2), sink)
    session.mark_ready()
    resolution = session.resolve(CameraPose.from_transform(frame_transform))
    if resolution.capturable:
        session.toggle_capture_trigger()
"""

from .models import (
    CameraPose,
    CaptureError,
    CaptureMode,
    CaptureModeKind,
    CheckpointPose,
    CheckpointStatus,
    GuidanceConfig,
    GuidanceThresholds,
    InvalidConfiguration,
    Resolution,
    RingGeometry,
)
from .geometry import (
    SECOND_RING_RADIUS_SCALE,
    RingLayout,
    build_checkpoints,
)
from .checkpoints import CheckpointStore
from .resolver import GuidanceResolver
from .timer import CaptureTriggerTimer
from .capture import (
    CaptureModeController,
    CaptureRegistry,
    CaptureSink,
    InFlightCapture,
)
from .presentation import MARKER_COLORS, MarkerRegistry
from .session import GuidanceSession, GuidanceUpdate
from .pose_track import MotionSample, load_motion_samples, load_pose_track


__version__ = "1.0.0"

__all__ = [
    # Version
    "__version__",
    # Data model
    "CameraPose",
    "CaptureError",
    "CaptureMode",
    "CaptureModeKind",
    "CheckpointPose",
    "CheckpointStatus",
    "GuidanceConfig",
    "GuidanceThresholds",
    "InvalidConfiguration",
    "Resolution",
    "RingGeometry",
    # Geometry
    "SECOND_RING_RADIUS_SCALE",
    "RingLayout",
    "build_checkpoints",
    # Guidance core
    "CheckpointStore",
    "GuidanceResolver",
    "CaptureTriggerTimer",
    "CaptureModeController",
    "CaptureRegistry",
    "CaptureSink",
    "InFlightCapture",
    # Presentation
    "MARKER_COLORS",
    "MarkerRegistry",
    # Session
    "GuidanceSession",
    "GuidanceUpdate",
    # Recorded tracks
    "MotionSample",
    "load_motion_samples",
    "load_pose_track",
]
