"""Shared pytest fixtures for the capture guidance test suite."""

import logging
import math
import threading

import numpy as np
import pytest

from capture_guidance.capture import CaptureSink
from capture_guidance.checkpoints import CheckpointStore
from capture_guidance.models import CameraPose, RingGeometry


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Helpers
# =============================================================================

RADIUS = 0.21


def ring_pose(azimuth_deg, radius=RADIUS, height=0.0, center=(0.0, 0.0, 0.0), yaw_offset_deg=0.0):
    """Camera on a ring at ``azimuth_deg`` looking at the center.

    ``yaw_offset_deg`` turns the camera away from the center about +Y.
    """
    theta = math.radians(azimuth_deg)
    position = np.array([
        center[0] + radius * math.cos(theta),
        height,
        center[2] + radius * math.sin(theta),
    ])
    facing = math.atan2(center[2] - position[2], center[0] - position[0]) + math.radians(yaw_offset_deg)
    forward = np.array([math.cos(facing), 0.0, math.sin(facing)])
    return CameraPose(position=position, forward=forward)


class RecordingSink(CaptureSink):
    """Sink that records checkpoint indices and returns a fixed result."""

    def __init__(self, result=True, delay_event=None):
        self.result = result
        self.delay_event = delay_event
        self.calls = []
        self._lock = threading.Lock()

    def capture(self, checkpoint_index):
        if self.delay_event is not None:
            self.delay_event.wait(timeout=5.0)
        with self._lock:
            self.calls.append(checkpoint_index)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo setup_logging() so caplog keeps seeing package records."""
    logger = logging.getLogger("capture_guidance")
    handlers = list(logger.handlers)
    level = logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = True


@pytest.fixture
def single_ring_geometry():
    return RingGeometry(
        center=(0.0, 0.0, 0.0),
        radius=RADIUS,
        scale=0.02,
        point_count=20,
        heights=(0.0,),
    )


@pytest.fixture
def two_ring_geometry():
    return RingGeometry(
        center=(0.0, 0.0, 0.0),
        radius=RADIUS,
        scale=0.02,
        point_count=20,
        heights=(0.0, 0.02),
    )


@pytest.fixture
def single_ring_store(single_ring_geometry):
    store = CheckpointStore.from_geometry(single_ring_geometry)
    store.mark_ready()
    return store


@pytest.fixture
def two_ring_store(two_ring_geometry):
    store = CheckpointStore.from_geometry(two_ring_geometry)
    store.mark_ready()
    return store


@pytest.fixture
def sink():
    return RecordingSink()
