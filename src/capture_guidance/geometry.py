"""Ring layout and vector helpers.

Checkpoints are laid out at exactly equal angular steps around the ring
center, starting at azimuth 0 (the +X axis) and turning towards +Z. The
resolver's O(1) azimuth bucketing depends on this spacing.
"""

from __future__ import annotations

import math
from typing import List

import numpy as np

from .models import (
    MAX_RING_COUNT,
    CheckpointPose,
    InvalidConfiguration,
    RingGeometry,
    as_vector3,
)
from .utils.logging import get_logger

logger = get_logger(__name__)

# Ring 2 is pulled in to cos(30 deg) of the base radius unless
# RingGeometry.radius_scales overrides it.
SECOND_RING_RADIUS_SCALE = math.cos(math.radians(30.0))

DEFAULT_RADIUS_SCALES = (1.0, SECOND_RING_RADIUS_SCALE)


def normalize(v: np.ndarray) -> np.ndarray:
    """Return ``v`` scaled to unit length.

    Raises:
        ValueError: If ``v`` has zero or non-finite length.
    """
    # Pre-scale by the largest component so the norm neither underflows
    # nor overflows for tiny or huge finite vectors
    largest = float(np.max(np.abs(v)))
    if not math.isfinite(largest) or largest == 0.0:
        raise ValueError(f"Cannot normalize vector {v}")
    scaled = v / largest
    return scaled / float(np.linalg.norm(scaled))


def angle_between_degrees(a: np.ndarray, b: np.ndarray) -> float:
    """Angle between two vectors in degrees.

    The dot product is clamped to [-1, 1] so rounding never pushes ``acos``
    outside its domain for (anti)parallel inputs.
    """
    cos_angle = float(np.dot(normalize(a), normalize(b)))
    cos_angle = max(-1.0, min(1.0, cos_angle))
    return math.degrees(math.acos(cos_angle))


def azimuth_degrees(relative: np.ndarray) -> float:
    """Horizontal azimuth of a center-relative position, in [0, 360)."""
    angle = math.degrees(math.atan2(float(relative[2]), float(relative[0])))
    if angle < 0.0:
        angle += 360.0
    # -0.0 and tiny negatives can round up to exactly 360.0
    if angle >= 360.0:
        angle -= 360.0
    return angle


def horizontal_distance(relative: np.ndarray) -> float:
    return math.hypot(float(relative[0]), float(relative[2]))


class RingLayout:
    """Generates checkpoint rings around a center point.

    Each call to :meth:`generate` produces the next ring. Indices continue
    from the previous ring, so a layout instance yields one contiguous index
    space for the whole session.
    """

    def __init__(self, center: np.ndarray, radius: float, scale: float = 1.0):
        center = as_vector3(center, "center")
        if not np.all(np.isfinite(center)):
            raise InvalidConfiguration(f"Ring center must be finite, got {center}")
        if not (math.isfinite(radius) and radius > 0):
            raise InvalidConfiguration(f"Ring radius must be positive, got {radius}")
        self.center = center
        self.radius = float(radius)
        self.scale = float(scale)
        self._next_index = 0
        self._ring_count = 0

    @property
    def ring_count(self) -> int:
        return self._ring_count

    @property
    def point_count(self) -> int:
        return self._next_index

    def generate(
        self,
        count: int,
        height: float,
        radius_scale: float = 1.0,
    ) -> List[CheckpointPose]:
        """Generate the next ring of checkpoints.

        Args:
            count: Number of checkpoints on the ring.
            height: Absolute world height (Y) of the ring.
            radius_scale: Multiplier applied to the layout radius.

        Returns:
            Checkpoints ordered by azimuth, starting at 0 degrees.

        Raises:
            InvalidConfiguration: For a non-positive count or radius scale,
                a non-finite height, or more than three rings.
        """
        if count <= 0:
            raise InvalidConfiguration(f"Checkpoint count must be positive, got {count}")
        if not (math.isfinite(radius_scale) and radius_scale > 0):
            raise InvalidConfiguration(f"Radius scale must be positive, got {radius_scale}")
        if not math.isfinite(height):
            raise InvalidConfiguration(f"Ring height must be finite, got {height}")
        if self._ring_count >= MAX_RING_COUNT:
            raise InvalidConfiguration(f"At most {MAX_RING_COUNT} rings are supported")

        ring = self._ring_count + 1
        ring_radius = self.radius * radius_scale
        angle_increment = 2.0 * math.pi / count

        checkpoints = []
        for i in range(count):
            angle = angle_increment * i
            position = np.array([
                self.center[0] + ring_radius * math.cos(angle),
                height,
                self.center[2] + ring_radius * math.sin(angle),
            ])
            # Face the center in the horizontal plane only
            inward = self.center - position
            inward[1] = 0.0
            checkpoints.append(
                CheckpointPose(
                    position=position,
                    direction=normalize(inward),
                    ring=ring,
                    index=self._next_index + i,
                )
            )

        logger.debug(
            f"Ring {ring}: {count} checkpoints at height {height:.3f}, "
            f"radius {ring_radius:.3f}, indices {self._next_index}..{self._next_index + count - 1}"
        )
        self._next_index += count
        self._ring_count = ring
        return checkpoints


def ring_radius_scale(geometry: RingGeometry, ring: int) -> float:
    """Radius multiplier for a 1-based ring number."""
    if geometry.radius_scales is not None:
        if ring > len(geometry.radius_scales):
            raise InvalidConfiguration(f"No radius scale configured for ring {ring}")
        return geometry.radius_scales[ring - 1]
    if ring > len(DEFAULT_RADIUS_SCALES):
        raise InvalidConfiguration(f"Ring {ring} needs an explicit radius scale")
    return DEFAULT_RADIUS_SCALES[ring - 1]


def build_checkpoints(geometry: RingGeometry) -> List[CheckpointPose]:
    """Generate every ring described by ``geometry``, in ring order."""
    if not 1 <= geometry.ring_count <= MAX_RING_COUNT:
        raise InvalidConfiguration(
            f"Ring count must be between 1 and {MAX_RING_COUNT}, got {geometry.ring_count}"
        )
    layout = RingLayout(geometry.center, geometry.radius, geometry.scale)
    checkpoints: List[CheckpointPose] = []
    for ring, height in enumerate(geometry.heights, start=1):
        checkpoints.extend(
            layout.generate(
                count=geometry.point_count,
                height=height,
                radius_scale=ring_radius_scale(geometry, ring),
            )
        )
    logger.info(
        f"Generated {len(checkpoints)} checkpoints on {layout.ring_count} ring(s)"
    )
    return checkpoints
