"""Landmark data model and the provider interface.

A ``LandmarkSet`` is the only thing that leaves the pose detector: named 2D
points in pixel coordinates with a visibility score, plus the size of the
photo they came from. It is never persisted or sent to the server.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Protocol


# 33-point MediaPipe pose model, in index order
POSE_LANDMARK_NAMES = (
    "nose",
    "left_eye_inner",
    "left_eye",
    "left_eye_outer",
    "right_eye_inner",
    "right_eye",
    "right_eye_outer",
    "left_ear",
    "right_ear",
    "mouth_left",
    "mouth_right",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_pinky",
    "right_pinky",
    "left_index",
    "right_index",
    "left_thumb",
    "right_thumb",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
    "left_heel",
    "right_heel",
    "left_foot_index",
    "right_foot_index",
)

# Optional point some providers report directly
HEAD_TOP = "head_top"

# Virtual points resolved as the midpoint of two real landmarks
CENTER_POINTS = {
    "shoulder_center": ("left_shoulder", "right_shoulder"),
    "hip_center": ("left_hip", "right_hip"),
}


@dataclass(frozen=True)
class Landmark:
    """A single keypoint in pixel coordinates."""

    x: float
    y: float
    visibility: float = 1.0


@dataclass(frozen=True)
class LandmarkSet:
    """All keypoints detected in one photo."""

    points: Dict[str, Landmark]
    image_width: int
    image_height: int
    view: str = "front"

    def get(self, name: str) -> Optional[Landmark]:
        """Return a landmark by name, resolving centre points on the fly."""
        if name in self.points:
            return self.points[name]
        pair = CENTER_POINTS.get(name)
        if pair is None:
            return None
        a, b = self.points.get(pair[0]), self.points.get(pair[1])
        if a is None or b is None:
            return None
        return Landmark(
            x=(a.x + b.x) / 2,
            y=(a.y + b.y) / 2,
            visibility=min(a.visibility, b.visibility),
        )

    def has(self, names: Iterable[str]) -> bool:
        return all(self.get(n) is not None for n in names)

    def min_visibility(self, names: Iterable[str]) -> float:
        found = [self.get(n) for n in names]
        scores = [lm.visibility for lm in found if lm is not None]
        return min(scores) if scores else 0.0

    @classmethod
    def from_normalized(
        cls,
        points: Dict[str, tuple],
        image_width: int,
        image_height: int,
        view: str = "front",
    ) -> "LandmarkSet":
        """Build a set from ``name -> (x, y, visibility)`` in 0-1 image units."""
        return cls(
            points={
                name: Landmark(x=x * image_width, y=y * image_height, visibility=vis)
                for name, (x, y, vis) in points.items()
            },
            image_width=image_width,
            image_height=image_height,
            view=view,
        )


class LandmarkProvider(Protocol):
    """Anything that can turn a photo into a ``LandmarkSet``."""

    def detect(self, image: bytes, view: str = "front") -> Optional[LandmarkSet]:
        ...


@dataclass
class StaticLandmarkProvider:
    """Provider that replays pre-computed landmark sets, keyed by view.

    Used for tests and for replaying landmarks exported from another device.
    """

    results: Dict[str, Optional[LandmarkSet]] = field(default_factory=dict)

    def detect(self, image: bytes, view: str = "front") -> Optional[LandmarkSet]:
        return self.results.get(view)
