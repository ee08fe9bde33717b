"""Per-frame checkpoint resolution.

Given the live camera pose, find the checkpoint the operator is standing at
and decide whether the pose is good enough to capture it. Gates run in a
fixed order and the first failure wins:

    1. distance from the ring center       -> CaptureError.TOO_FAR
    2. ring selection by height             (nearest ring, ties go to ring 1)
    3. azimuth bucketing                    (nearest checkpoint on that ring)
    4. elevation relative to the checkpoint -> CaptureError.BAD_ELEVATION
    5. facing alignment with the checkpoint -> CaptureError.NOT_ALIGNED

Resolution is a pure function of the pose, the checkpoint geometry and the
thresholds. It performs no I/O and keeps no state between frames.

Logging here uses lazy %-style arguments because it runs once per frame.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .checkpoints import CheckpointStore
from .geometry import angle_between_degrees, azimuth_degrees, horizontal_distance
from .models import CameraPose, CaptureError, GuidanceThresholds, Resolution
from .utils.logging import get_logger

logger = get_logger(__name__)

NOT_READY = Resolution(None, CaptureError.NONE)
TOO_FAR = Resolution(None, CaptureError.TOO_FAR)
BAD_ELEVATION = Resolution(None, CaptureError.BAD_ELEVATION)
NOT_ALIGNED = Resolution(None, CaptureError.NOT_ALIGNED)


def nearest_ring(camera_height: float, ring_heights) -> int:
    """1-based number of the ring closest in height.

    Ties resolve to the lower ring number.
    """
    best_ring = 1
    best_gap = abs(camera_height - ring_heights[0])
    for ring, height in enumerate(ring_heights[1:], start=2):
        gap = abs(camera_height - height)
        if gap < best_gap:
            best_ring, best_gap = ring, gap
    return best_ring


def bucket_azimuth(azimuth: float, count: int) -> int:
    """Nearest checkpoint slot for an azimuth in [0, 360).

    Rounds half up, then wraps so azimuths just below 360 land on slot 0.
    Valid only for checkpoints at equal angular steps starting at 0.
    """
    step = 360.0 / count
    return int(math.floor(azimuth / step + 0.5)) % count


class GuidanceResolver:
    """Resolves camera poses against a checkpoint store."""

    def __init__(self, thresholds: Optional[GuidanceThresholds] = None):
        self.thresholds = thresholds or GuidanceThresholds()
        self.thresholds.validate()

    def resolve(self, pose: CameraPose, store: CheckpointStore) -> Resolution:
        """Resolve one camera pose.

        Args:
            pose: Camera pose for the current frame.
            store: Checkpoint collection for the session.

        Returns:
            ``Resolution(index, CaptureError.NONE)`` when a checkpoint is
            satisfied, ``Resolution(None, error)`` naming the first failed
            gate otherwise. While the store is not ready, returns
            ``Resolution(None, CaptureError.NONE)``, which is not capturable.
        """
        if not store.ready:
            return NOT_READY

        thresholds = self.thresholds

        # Malformed poses count as infinitely far away
        if not pose.is_finite or not np.any(pose.forward):
            logger.debug("Degenerate camera pose, treating as too far")
            return TOO_FAR

        relative = pose.position - store.center
        distance = float(np.linalg.norm(relative))
        if not math.isfinite(distance) or distance > thresholds.distance_threshold:
            logger.debug("Camera too far: %.3fm", distance)
            return TOO_FAR

        camera_height = float(pose.position[1])
        ring = nearest_ring(camera_height, store.ring_heights)

        azimuth = azimuth_degrees(relative)
        slot = bucket_azimuth(azimuth, store.points_per_ring)
        index = store.ring_range(ring)[slot]
        checkpoint = store.pose(index)

        elevation = math.degrees(
            math.atan2(camera_height - checkpoint.height, horizontal_distance(relative))
        )
        if abs(elevation) > thresholds.elevation_angle_threshold:
            logger.debug("Ring %d checkpoint %d: elevation %.1f deg", ring, index, elevation)
            return BAD_ELEVATION

        misalignment = angle_between_degrees(checkpoint.direction, pose.forward)
        if misalignment > thresholds.alignment_angle_threshold:
            logger.debug("Ring %d checkpoint %d: misaligned by %.1f deg", ring, index, misalignment)
            return NOT_ALIGNED

        logger.debug("Resolved checkpoint %d (ring %d, azimuth %.1f deg)", index, ring, azimuth)
        return Resolution(index, CaptureError.NONE)
