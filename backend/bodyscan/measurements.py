"""Tailoring measurements from front and side pose landmarks.

Produces 16 measurements:
- Lengths read straight off the front view: shoulder, arm, sleeve, back,
  front, inseam
- Circumferences modelled as ellipses: bust, chest, waist, hips, neck,
  thigh, knee, calf, wrist, ankle

Widths come from the front view and depths from the side view. When the side
view is missing or unreliable, depth is estimated from the gender profile and
the measurement is marked accordingly.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from bodyscan import config
from bodyscan.calibration import Calibration, CalibrationResolver
from bodyscan.errors import CalibrationError, ValidationError
from bodyscan.landmarks import LandmarkSet
from bodyscan.plausibility import PlausibilityWarning, check_plausibility
from bodyscan.profiles import (
    CIRCUMFERENCE_MEASUREMENTS,
    GENDERS,
    LINEAR_MEASUREMENTS,
    MEASUREMENT_NAMES,
    MEASUREMENT_TYPES,
    Chain,
    CircumferenceSpec,
    LinearSpec,
    depth_ratio,
)
from utils.geometry import GeometryCalculator

logger = logging.getLogger(__name__)

DERIVED = "derived"
ESTIMATED = "estimated"
MANUAL = "manual"


@dataclass
class MeasurementEstimate:
    """Everything the estimator learned from one pair of photos."""

    measurements: Dict[str, float]
    provenance: Dict[str, str]
    confidences: Dict[str, float]
    confidence: float
    missing: List[str]
    height_cm: float
    gender: str
    scale: float
    used_side_view: bool
    warnings: List[PlausibilityWarning] = field(default_factory=list)

    def as_payload(self) -> Dict[str, float]:
        """Measurements rounded to one decimal, ready to submit."""
        return {name: round(value, 1) for name, value in self.measurements.items()}

    def derived(self) -> Dict[str, float]:
        """Only the measurements read from landmarks, not from proportions."""
        return {
            name: round(value, 1)
            for name, value in self.measurements.items()
            if self.provenance.get(name) == DERIVED
        }


class MeasurementEstimator:
    """Turn landmark sets plus a stated height into named measurements."""

    # Confidence multiplier for circumferences whose depth came from a ratio
    PROPORTION_PENALTY = 0.8

    def __init__(
        self,
        calibrator: Optional[CalibrationResolver] = None,
        side_min_visibility: Optional[float] = None,
        linear: Optional[Dict[str, LinearSpec]] = None,
        circumferences: Optional[Dict[str, CircumferenceSpec]] = None,
    ):
        """Initialize estimator.

        Args:
            calibrator: Resolver used for both views
            side_min_visibility: Minimum visibility for side-view depth landmarks
            linear: Length table (defaults to ``LINEAR_MEASUREMENTS``)
            circumferences: Ellipse table (defaults to ``CIRCUMFERENCE_MEASUREMENTS``)
        """
        self.calibrator = calibrator or CalibrationResolver()
        if side_min_visibility is None:
            side_min_visibility = config.SIDE_MIN_VISIBILITY
        self.side_min_visibility = side_min_visibility
        self.linear = LINEAR_MEASUREMENTS if linear is None else linear
        self.circumferences = CIRCUMFERENCE_MEASUREMENTS if circumferences is None else circumferences
        self.geom = GeometryCalculator()

    def estimate(
        self,
        front: LandmarkSet,
        height_cm: float,
        gender: str,
        side: Optional[LandmarkSet] = None,
    ) -> MeasurementEstimate:
        """Estimate all measurements.

        Args:
            front: Front view landmarks (required)
            height_cm: Stated height in cm
            gender: Profile selector, "male" or "female"
            side: Side view landmarks (optional)

        Returns:
            MeasurementEstimate with values in cm

        Raises:
            CalibrationError: If the front view cannot be calibrated
            ValidationError: If the gender profile is unknown
        """
        if gender not in GENDERS:
            raise ValidationError(f"Gender must be one of: {', '.join(GENDERS)}", field="gender")

        front_calib = self.calibrator.resolve(front, height_cm)
        side_calib = self._side_calibration(side, height_cm)

        measurements: Dict[str, float] = {}
        provenance: Dict[str, str] = {}
        confidences: Dict[str, float] = {}
        quality: Dict[str, float] = {}

        for name, spec in self.linear.items():
            result = self._linear(front, front_calib, spec)
            if result is None:
                continue
            measurements[name], quality[name] = result
            provenance[name] = DERIVED
            confidences[name] = quality[name]

        for name, spec in self.circumferences.items():
            result = self._circumference(name, spec, front, front_calib, side, side_calib, gender)
            if result is None:
                continue
            measurements[name], quality[name], provenance[name] = result
            penalty = self.PROPORTION_PENALTY if provenance[name] == ESTIMATED else 1.0
            confidences[name] = quality[name] * penalty

        # Values past the catalogue bounds come from a broken skeleton, not a body
        for name in [n for n, v in measurements.items() if v > MEASUREMENT_TYPES[n][1]]:
            logger.warning("Discarding %s=%.1fcm, outside plausible bounds", name, measurements[name])
            for table in (measurements, provenance, confidences, quality):
                table.pop(name)

        missing = [name for name in MEASUREMENT_NAMES if name not in measurements]
        aggregate = self._aggregate_confidence(confidences, quality)

        estimate = MeasurementEstimate(
            measurements=measurements,
            provenance=provenance,
            confidences=confidences,
            confidence=aggregate,
            missing=missing,
            height_cm=height_cm,
            gender=gender,
            scale=front_calib.cm_per_pixel,
            used_side_view=side_calib is not None,
            warnings=check_plausibility(measurements, height_cm, gender),
        )

        logger.info(
            "Estimated %d measurements (missing=%s, side_view=%s, confidence=%.3f)",
            len(measurements),
            missing,
            estimate.used_side_view,
            aggregate,
        )
        return estimate

    def _side_calibration(self, side: Optional[LandmarkSet], height_cm: float) -> Optional[Calibration]:
        """Calibrate the side view on its own; an unusable side view is dropped."""
        if side is None:
            return None
        try:
            return self.calibrator.resolve(side, height_cm)
        except CalibrationError as exc:
            logger.info("Side view not usable, falling back to proportions: %s", exc.message)
            return None

    def _chain_length(self, landmarks: LandmarkSet, chains: Tuple[Chain, ...]) -> Optional[Tuple[float, float]]:
        """Mean pixel length over the detected chains, and their worst visibility.

        Chains whose landmarks all clear the visibility floor are preferred;
        a partly occluded limb is only used when no other side is clear.
        """
        usable = [chain for chain in chains if landmarks.has(chain)]
        if not usable:
            return None

        clear = [
            chain for chain in usable
            if landmarks.min_visibility(chain) >= self.calibrator.min_visibility
        ]
        chosen = clear or usable

        lengths = [
            self.geom.path_length([landmarks.get(n) for n in chain])
            for chain in chosen
        ]
        quality = min(landmarks.min_visibility(chain) for chain in chosen)
        return sum(lengths) / len(lengths), quality

    def _linear(
        self,
        front: LandmarkSet,
        calib: Calibration,
        spec: LinearSpec,
    ) -> Optional[Tuple[float, float]]:
        measured = self._chain_length(front, spec.chains)
        if measured is None:
            return None
        pixels, quality = measured
        if pixels <= 0:
            return None
        return calib.pixels_to_cm(pixels) * spec.factor, quality

    def _circumference(
        self,
        name: str,
        spec: CircumferenceSpec,
        front: LandmarkSet,
        front_calib: Calibration,
        side: Optional[LandmarkSet],
        side_calib: Optional[Calibration],
        gender: str,
    ) -> Optional[Tuple[float, float, str]]:
        measured = self._chain_length(front, spec.front)
        if measured is None:
            return None
        width_px, quality = measured

        # Semi-axes of the cross-section ellipse
        a = front_calib.pixels_to_cm(width_px * spec.width_factor) / 2
        if a <= 0:
            return None

        b = None
        if side_calib is not None and spec.side is not None and side.has(spec.side):
            side_quality = side.min_visibility(spec.side)
            if side_quality >= self.side_min_visibility:
                depth_px = self.geom.path_length([side.get(n) for n in spec.side])
                b = side_calib.pixels_to_cm(depth_px * spec.depth_factor) / 2
                quality = min(quality, side_quality)

        if b is not None and b > 0:
            source = DERIVED
        else:
            b = a * depth_ratio(gender, name)
            source = ESTIMATED

        return self.geom.ellipse_circumference(a, b), quality, source

    @staticmethod
    def _aggregate_confidence(confidences: Dict[str, float], quality: Dict[str, float]) -> float:
        """Landmark-quality-weighted mean of per-measurement confidence."""
        total_weight = sum(quality[name] for name in confidences)
        if total_weight <= 0:
            return 0.0
        weighted = sum(confidences[name] * quality[name] for name in confidences)
        return weighted / total_weight
