"""MediaPipe pose extraction.

``MediaPipeLandmarkProvider.detect(image_bytes)`` returns the 33 pose
landmarks of the single person in the photo as a ``LandmarkSet`` in pixel
coordinates, or None when no person is found. Runs on the subject's device
only; photos never leave it.
"""
import logging
from typing import Optional

import mediapipe as mp

from bodyscan import config
from bodyscan.landmarks import POSE_LANDMARK_NAMES, Landmark, LandmarkSet
from utils.preprocess import bytes_to_rgb_array

logger = logging.getLogger(__name__)

mp_pose = mp.solutions.pose


def _to_landmark_set(pose_landmarks, width: int, height: int, view: str) -> LandmarkSet:
    """Convert MediaPipe normalized landmarks to a named pixel-space set."""
    points = {}
    for name, lm in zip(POSE_LANDMARK_NAMES, pose_landmarks.landmark):
        vis = getattr(lm, 'visibility', None)
        points[name] = Landmark(
            x=float(lm.x) * width,
            y=float(lm.y) * height,
            visibility=float(vis) if vis is not None else 0.0,
        )
    return LandmarkSet(points=points, image_width=width, image_height=height, view=view)


class MediaPipeLandmarkProvider:
    """Landmark provider backed by MediaPipe Pose in static image mode."""

    def __init__(self, model_complexity: int = 1, max_dimension: Optional[int] = None):
        self.model_complexity = model_complexity
        self.max_dimension = max_dimension or config.MAX_IMAGE_DIMENSION

    def detect(self, image: bytes, view: str = "front") -> Optional[LandmarkSet]:
        img_rgb = bytes_to_rgb_array(image, self.max_dimension)
        h, w = img_rgb.shape[:2]

        with mp_pose.Pose(static_image_mode=True, model_complexity=self.model_complexity) as pose:
            results = pose.process(img_rgb)

        if not results.pose_landmarks:
            logger.info("No person detected in %s view (%dx%d)", view, w, h)
            return None

        landmarks = _to_landmark_set(results.pose_landmarks, w, h, view)
        logger.debug("Detected %d landmarks in %s view", len(landmarks.points), view)
        return landmarks
