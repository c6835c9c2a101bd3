"""Height-based calibration: converting pixel distances to centimeters.

The subject's stated height is the only real-world reference in a scan. The
skeleton's vertical extent in the photo (top of head to the lower ankle)
gives the matching pixel length, and their ratio is the scale factor used
for every other distance in that photo.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from bodyscan import config
from bodyscan.errors import CalibrationError
from bodyscan.landmarks import HEAD_TOP, Landmark, LandmarkSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Calibration:
    """Result of a successful calibration."""

    cm_per_pixel: float
    height_cm: float
    height_pixels: float
    head_top: Landmark
    feet: Landmark
    confidence: float
    method: str

    def pixels_to_cm(self, pixels: float) -> float:
        """Convert pixel distance to centimeters."""
        return pixels * self.cm_per_pixel


class CalibrationResolver:
    """Derive a cm-per-pixel factor from stated height and detected skeleton."""

    # Top of head sits above the nose by this share of the nose-to-shoulder drop
    HEAD_TOP_RATIO = 0.55

    # Stated heights outside this range are treated as typos
    MIN_HEIGHT_CM = 50.0
    MAX_HEIGHT_CM = 250.0

    # The body must fill at least this share of the photo height
    MIN_BODY_FRACTION = 0.30

    def __init__(self, min_visibility: Optional[float] = None):
        """Initialize resolver with the visibility floor for head and ankles.

        Args:
            min_visibility: Minimum visibility for calibration landmarks
                (defaults to ``CALIBRATION_MIN_VISIBILITY``)
        """
        if min_visibility is None:
            min_visibility = config.CALIBRATION_MIN_VISIBILITY
        self.min_visibility = min_visibility

    def resolve(self, landmarks: LandmarkSet, height_cm: float) -> Calibration:
        """Calculate calibration for one photo.

        Args:
            landmarks: Landmarks detected in the photo
            height_cm: Subject's stated height in cm

        Returns:
            Calibration with cm_per_pixel and the landmarks it was based on

        Raises:
            CalibrationError: If the height or the skeleton is implausible
        """
        if height_cm is None or not (self.MIN_HEIGHT_CM <= height_cm <= self.MAX_HEIGHT_CM):
            raise CalibrationError(
                f"Height must be between {self.MIN_HEIGHT_CM:.0f} and "
                f"{self.MAX_HEIGHT_CM:.0f} cm."
            )

        head_top, method = self._head_top(landmarks)
        feet = self._feet(landmarks)

        height_px = feet.y - head_top.y
        if height_px <= 0 or height_px < landmarks.image_height * self.MIN_BODY_FRACTION:
            logger.info(
                "Implausible pixel height %.1f for %s view (image height %d)",
                height_px,
                landmarks.view,
                landmarks.image_height,
            )
            raise CalibrationError(
                "Your full body must be visible and fill most of the photo. "
                "Please step back and retake it."
            )

        cm_per_pixel = height_cm / height_px
        logger.debug(
            "Calibrated %s view: %.1fpx -> %.1fcm (%.4f cm/px, %s)",
            landmarks.view,
            height_px,
            height_cm,
            cm_per_pixel,
            method,
        )
        return Calibration(
            cm_per_pixel=cm_per_pixel,
            height_cm=height_cm,
            height_pixels=height_px,
            head_top=head_top,
            feet=feet,
            confidence=min(head_top.visibility, feet.visibility),
            method=method,
        )

    def _require(self, landmarks: LandmarkSet, name: str) -> Landmark:
        point = landmarks.get(name)
        if point is None or point.visibility < self.min_visibility:
            raise CalibrationError(
                f"Could not see your {name.replace('_', ' ')} clearly. "
                "Make sure your head and feet are in the photo."
            )
        return point

    def _head_top(self, landmarks: LandmarkSet):
        """Top of head, reported directly or projected above the nose."""
        reported = landmarks.get(HEAD_TOP)
        if reported is not None and reported.visibility >= self.min_visibility:
            return reported, "head_top"

        nose = self._require(landmarks, "nose")
        shoulders = self._require(landmarks, "shoulder_center")
        drop = shoulders.y - nose.y
        projected = Landmark(
            x=nose.x,
            y=max(0.0, nose.y - drop * self.HEAD_TOP_RATIO),
            visibility=min(nose.visibility, shoulders.visibility),
        )
        return projected, "nose_projection"

    def _feet(self, landmarks: LandmarkSet) -> Landmark:
        """The lower (larger y) of the two ankles."""
        left = self._require(landmarks, "left_ankle")
        right = self._require(landmarks, "right_ankle")
        return left if left.y >= right.y else right
