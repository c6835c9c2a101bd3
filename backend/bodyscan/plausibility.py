"""Plausibility checks for scanned measurements.

Flags values that look wrong for the subject's height and body type so the
designer can double-check them. Warnings never block a submission.
"""
from dataclasses import asdict, dataclass
from typing import Dict, List, Mapping

from bodyscan.profiles import PLAUSIBLE_RATIOS, plausible_range

WARNING = "warning"
CRITICAL = "critical"


@dataclass(frozen=True)
class PlausibilityWarning:
    field: str
    message: str
    severity: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def check_plausibility(
    measurements: Mapping[str, float],
    height_cm: float,
    gender: str,
) -> List[PlausibilityWarning]:
    """Check measurements for out-of-range and inconsistent values.

    Args:
        measurements: Measurement name -> cm
        height_cm: Subject's height in cm
        gender: "male" or "female"

    Returns:
        Warnings, range checks first, then cross-measurement checks
    """
    warnings: List[PlausibilityWarning] = []
    if not height_cm or gender not in PLAUSIBLE_RATIOS:
        return warnings

    # Per-field range checks: near the boundary is a warning, well outside is critical
    for field in PLAUSIBLE_RATIOS[gender]:
        value = measurements.get(field)
        if value is None:
            continue
        low, high = plausible_range(gender, field, height_cm)
        margin = (high - low) * 0.1
        expected = f"expected {round(low)}-{round(high)} cm"
        if value < low:
            warnings.append(PlausibilityWarning(
                field,
                f"{value:.1f} cm seems too low ({expected})",
                CRITICAL if value < low - margin else WARNING,
            ))
        elif value > high:
            warnings.append(PlausibilityWarning(
                field,
                f"{value:.1f} cm seems too high ({expected})",
                CRITICAL if value > high + margin else WARNING,
            ))

    get = measurements.get
    bust, chest, waist, hips = get("bust"), get("chest"), get("waist"), get("hips")
    shoulder, thigh, knee = get("shoulder"), get("thigh"), get("knee")
    calf, ankle = get("calf"), get("ankle")
    inseam, sleeve = get("inseam"), get("sleeveLength")

    if hips and waist:
        if gender == "female" and hips < waist:
            warnings.append(PlausibilityWarning(
                "hips", "Hips smaller than waist, unusual for a female body type", CRITICAL,
            ))
        elif gender == "male" and hips < waist * 0.9:
            warnings.append(PlausibilityWarning(
                "hips", "Hips significantly smaller than waist", WARNING,
            ))

    if gender == "male" and chest and waist and chest < waist * 0.92:
        warnings.append(PlausibilityWarning(
            "chest", "Chest smaller than waist, unusual for a male body type", WARNING,
        ))

    if shoulder and bust and shoulder > bust:
        warnings.append(PlausibilityWarning(
            "shoulder", "Shoulder width exceeds bust circumference, check measurement", CRITICAL,
        ))

    # Leg taper: thigh > knee > calf > ankle
    for upper, lower, upper_value, lower_value in (
        ("thigh", "knee", thigh, knee),
        ("knee", "calf", knee, calf),
        ("calf", "ankle", calf, ankle),
    ):
        if upper_value and lower_value and upper_value < lower_value:
            warnings.append(PlausibilityWarning(
                lower,
                f"{lower.capitalize()} larger than {upper}, measurements may be swapped",
                CRITICAL,
            ))

    if inseam:
        ratio = inseam / height_cm
        if ratio < 0.38:
            warnings.append(PlausibilityWarning("inseam", "Inseam seems short relative to height", WARNING))
        elif ratio > 0.52:
            warnings.append(PlausibilityWarning("inseam", "Inseam seems long relative to height", WARNING))

    if sleeve:
        ratio = sleeve / height_cm
        if ratio < 0.25:
            warnings.append(PlausibilityWarning("sleeveLength", "Sleeve length seems short relative to height", WARNING))
        elif ratio > 0.42:
            warnings.append(PlausibilityWarning("sleeveLength", "Sleeve length seems long relative to height", WARNING))

    return warnings
