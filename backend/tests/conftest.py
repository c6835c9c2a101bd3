"""Shared fixtures: synthetic skeletons, a controllable clock and a test gateway."""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep test runs from writing log files
os.environ.setdefault("LOG_FILE", "")

from fastapi.testclient import TestClient

from bodyscan.landmarks import Landmark, LandmarkSet
from bodyscan.sessions import ScanSessionStore


# ============================================================================
# SYNTHETIC SKELETONS
# ============================================================================
# 1000x1200 photo, head top at y=100 and lower ankle at y=600: 500 px for a
# stated 170 cm, so every photo below calibrates to 0.34 cm/px.

FRONT_POINTS = {
    "head_top": (500, 100),
    "nose": (500, 135),
    "left_ear": (522, 135),
    "right_ear": (478, 135),
    "left_shoulder": (558, 200),
    "right_shoulder": (442, 200),
    "left_elbow": (575, 300),
    "right_elbow": (425, 300),
    "left_wrist": (580, 390),
    "right_wrist": (420, 390),
    "left_hip": (543, 360),
    "right_hip": (457, 360),
    "left_knee": (540, 470),
    "right_knee": (460, 470),
    "left_ankle": (538, 600),
    "right_ankle": (462, 598),
}

SIDE_POINTS = {
    "head_top": (500, 100),
    "nose": (530, 135),
    "left_shoulder": (536, 200),
    "right_shoulder": (464, 200),
    "left_hip": (530, 360),
    "right_hip": (470, 360),
    "left_ankle": (500, 600),
    "right_ankle": (505, 598),
}


def make_landmarks(points, visibility=0.95, view="front", **overrides):
    """Build a LandmarkSet; ``overrides`` replace or add ``name=(x, y[, vis])``."""
    merged = {name: (x, y, visibility) for name, (x, y) in points.items()}
    for name, value in overrides.items():
        if value is None:
            merged.pop(name, None)
        elif len(value) == 2:
            merged[name] = (value[0], value[1], visibility)
        else:
            merged[name] = value
    return LandmarkSet(
        points={name: Landmark(x, y, vis) for name, (x, y, vis) in merged.items()},
        image_width=1000,
        image_height=1200,
        view=view,
    )


@pytest.fixture
def front_landmarks():
    return make_landmarks(FRONT_POINTS)


@pytest.fixture
def side_landmarks():
    return make_landmarks(SIDE_POINTS, view="side")


@pytest.fixture
def blurry_front_landmarks():
    """Everything detected, but barely: estimates land below the gate."""
    return make_landmarks(FRONT_POINTS, visibility=0.6)


# ============================================================================
# SESSIONS AND GATEWAY
# ============================================================================

class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ScanSessionStore(clock=clock)


@pytest.fixture
def api(store):
    """TestClient for the gateway, backed by the test store."""
    from app import app, get_store

    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def good_submission():
    return {
        "measurements": {"bust": 88.0, "waist": 70.0, "hips": 96.0, "shoulder": 39.5},
        "confidence": 0.86,
        "heightCm": 170,
        "gender": "female",
    }
