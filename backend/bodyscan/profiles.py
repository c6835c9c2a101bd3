"""Measurement catalogue and anthropometric profiles.

Everything in this module is data. The estimator walks these tables; adding
a measurement or a calibration profile means adding rows here, not branches
in the estimator.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

GENDERS = ("male", "female")

# Chains of landmark names; a chain's length is the sum of its segments
Chain = Tuple[str, ...]


# ============================================================================
# MEASUREMENT CATALOGUE
# ============================================================================

# name -> (label, upper bound in cm)
MEASUREMENT_TYPES: Dict[str, Tuple[str, float]] = {
    "bust": ("Bust", 200),
    "waist": ("Waist", 200),
    "hips": ("Hips", 200),
    "shoulder": ("Shoulder Width", 100),
    "armLength": ("Arm Length", 100),
    "inseam": ("Inseam", 120),
    "neck": ("Neck", 60),
    "chest": ("Chest", 200),
    "backLength": ("Back Length", 80),
    "frontLength": ("Front Length", 80),
    "sleeveLength": ("Sleeve Length", 100),
    "wrist": ("Wrist", 30),
    "thigh": ("Thigh", 100),
    "knee": ("Knee", 60),
    "calf": ("Calf", 60),
    "ankle": ("Ankle", 40),
}

MEASUREMENT_NAMES = tuple(MEASUREMENT_TYPES)

MAX_HEIGHT_CM = 250


@dataclass(frozen=True)
class LinearSpec:
    """A length read straight off the front view.

    ``chains`` are alternatives (typically left and right side of the body);
    the result is the mean over the usable ones, times ``factor``.
    """

    chains: Tuple[Chain, ...]
    factor: float = 1.0


@dataclass(frozen=True)
class CircumferenceSpec:
    """An ellipse cross-section.

    The front width is ``front`` chain length × ``width_factor``. The side
    depth is the ``side`` pair distance × ``depth_factor``, measured in the
    side view; ``side`` is None where the side view has no usable reference
    and depth always comes from the profile ratio.
    """

    front: Tuple[Chain, ...]
    width_factor: float
    side: Optional[Chain] = None
    depth_factor: float = 1.0


_ARMS = (
    ("left_shoulder", "left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow", "right_wrist"),
)
_LEGS = (
    ("hip_center", "left_knee", "left_ankle"),
    ("hip_center", "right_knee", "right_ankle"),
)
_TORSO = (("shoulder_center", "hip_center"),)
_SHOULDERS = ("left_shoulder", "right_shoulder")
_HIPS = ("left_hip", "right_hip")

LINEAR_MEASUREMENTS: Dict[str, LinearSpec] = {
    "shoulder": LinearSpec(chains=(_SHOULDERS,)),
    "armLength": LinearSpec(chains=_ARMS),
    "sleeveLength": LinearSpec(chains=_ARMS, factor=0.97),
    # nape to natural waist: 55% of shoulder-to-hip, plus curve allowance
    "backLength": LinearSpec(chains=_TORSO, factor=0.6325),
    "frontLength": LinearSpec(chains=_TORSO, factor=0.6009),
    "inseam": LinearSpec(chains=_LEGS),
}

CIRCUMFERENCE_MEASUREMENTS: Dict[str, CircumferenceSpec] = {
    "bust": CircumferenceSpec(front=(_SHOULDERS,), width_factor=0.90, side=_SHOULDERS, depth_factor=0.90),
    "chest": CircumferenceSpec(front=(_SHOULDERS,), width_factor=0.95, side=_SHOULDERS, depth_factor=0.95),
    "waist": CircumferenceSpec(front=(_HIPS,), width_factor=0.96, side=_HIPS, depth_factor=0.85),
    "hips": CircumferenceSpec(front=(_HIPS,), width_factor=1.16, side=_HIPS, depth_factor=1.10),
    "neck": CircumferenceSpec(front=(("left_ear", "right_ear"),), width_factor=0.78),
    "thigh": CircumferenceSpec(front=(_HIPS,), width_factor=0.58),
    "knee": CircumferenceSpec(
        front=(("left_hip", "left_knee"), ("right_hip", "right_knee")),
        width_factor=0.25,
    ),
    "calf": CircumferenceSpec(
        front=(("left_knee", "left_ankle"), ("right_knee", "right_ankle")),
        width_factor=0.29,
    ),
    "wrist": CircumferenceSpec(
        front=(("left_elbow", "left_wrist"), ("right_elbow", "right_wrist")),
        width_factor=0.22,
    ),
    "ankle": CircumferenceSpec(
        front=(("left_knee", "left_ankle"), ("right_knee", "right_ankle")),
        width_factor=0.19,
    ),
}


# ============================================================================
# ANTHROPOMETRIC PROFILES
# ============================================================================

# Cross-section depth as a share of width, used when the side view is missing
DEPTH_RATIOS: Dict[str, Dict[str, float]] = {
    "female": {
        "bust": 0.62,
        "chest": 0.62,
        "waist": 0.70,
        "hips": 0.68,
        "neck": 0.90,
        "thigh": 0.95,
        "knee": 0.95,
        "calf": 0.90,
        "wrist": 0.70,
        "ankle": 0.85,
    },
    "male": {
        "bust": 0.68,
        "chest": 0.68,
        "waist": 0.78,
        "hips": 0.70,
        "neck": 0.92,
        "thigh": 0.95,
        "knee": 0.95,
        "calf": 0.90,
        "wrist": 0.68,
        "ankle": 0.85,
    },
}

# Plausible range of each measurement as a share of height
PLAUSIBLE_RATIOS: Dict[str, Dict[str, Tuple[float, float]]] = {
    "female": {
        "bust": (0.46, 0.70),
        "waist": (0.34, 0.62),
        "hips": (0.50, 0.78),
        "shoulder": (0.20, 0.27),
        "armLength": (0.30, 0.39),
        "inseam": (0.38, 0.52),
        "neck": (0.17, 0.24),
        "chest": (0.46, 0.70),
        "backLength": (0.20, 0.30),
        "frontLength": (0.19, 0.29),
        "sleeveLength": (0.27, 0.38),
        "wrist": (0.08, 0.11),
        "thigh": (0.28, 0.42),
        "knee": (0.19, 0.25),
        "calf": (0.19, 0.26),
        "ankle": (0.12, 0.16),
    },
    "male": {
        "bust": (0.48, 0.70),
        "waist": (0.40, 0.65),
        "hips": (0.50, 0.68),
        "shoulder": (0.22, 0.29),
        "armLength": (0.31, 0.40),
        "inseam": (0.40, 0.52),
        "neck": (0.20, 0.26),
        "chest": (0.50, 0.72),
        "backLength": (0.22, 0.30),
        "frontLength": (0.20, 0.29),
        "sleeveLength": (0.28, 0.39),
        "wrist": (0.09, 0.11),
        "thigh": (0.28, 0.38),
        "knee": (0.19, 0.24),
        "calf": (0.19, 0.24),
        "ankle": (0.12, 0.15),
    },
}


def depth_ratio(gender: str, name: str) -> float:
    """Depth-to-width ratio for a circumference under a gender profile."""
    try:
        return DEPTH_RATIOS[gender][name]
    except KeyError:
        raise ValueError(f"No depth ratio for {name!r} in profile {gender!r}") from None


def plausible_range(gender: str, name: str, height_cm: float) -> Tuple[float, float]:
    low, high = PLAUSIBLE_RATIOS[gender][name]
    return low * height_cm, high * height_cm
