"""Confidence gate and the remediation paths for low-confidence scans.

An estimate at or above the threshold is accepted and submitted as-is.
Below it, the subject chooses one of three ways forward:

- retry: retake the photos and estimate again (the session is untouched)
- accept anyway: submit the estimate, flagged for the designer
- manual entry: type the values in, starting from the derived ones
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from bodyscan import config
from bodyscan.errors import ValidationError
from bodyscan.measurements import MANUAL, MeasurementEstimate
from bodyscan.profiles import MEASUREMENT_NAMES, MEASUREMENT_TYPES
from bodyscan.schemas import Outcome, ScanSubmission, check_measurement_value

logger = logging.getLogger(__name__)

ACCEPTED = "accepted"
NEEDS_REVIEW = "needs_review"


class Remediation(str, Enum):
    RETRY = "retry"
    ACCEPT_ANYWAY = "accept_anyway"
    MANUAL_ENTRY = "manual_entry"


@dataclass(frozen=True)
class GuestIdentity:
    """Identity a quick-scan subject types in at scan time."""

    name: str
    phone: Optional[str] = None
    gender: Optional[str] = None


@dataclass(frozen=True)
class GateDecision:
    outcome: str
    estimate: MeasurementEstimate
    threshold: float
    remediations: Tuple[Remediation, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.outcome == ACCEPTED


@dataclass(frozen=True)
class RetakeRequest:
    message: str = "Let's try again. Stand in good light with your whole body in the frame."


def _require_measurements(estimate: MeasurementEstimate) -> None:
    if not estimate.measurements:
        raise ValidationError(
            "We couldn't measure anything from these photos. "
            "Please retake them or enter your measurements by hand."
        )


def _build_submission(
    measurements: Dict[str, float],
    confidence: float,
    height_cm: float,
    gender: str,
    outcome: Outcome,
    provenance: Dict[str, str],
    guest: Optional[GuestIdentity],
) -> ScanSubmission:
    return ScanSubmission(
        measurements=measurements,
        confidence=confidence,
        height_cm=height_cm,
        gender=gender,
        outcome=outcome,
        provenance=provenance,
        guest_name=guest.name if guest else None,
        guest_phone=guest.phone if guest else None,
        guest_gender=guest.gender if guest else None,
    )


class ConfidenceGate:
    """Classify estimates and build the submission for each path."""

    def __init__(self, threshold: Optional[float] = None):
        """Initialize gate.

        Args:
            threshold: Minimum aggregate confidence to accept
                (defaults to ``BODYSCAN_CONFIDENCE_THRESHOLD``)
        """
        if threshold is None:
            threshold = config.CONFIDENCE_THRESHOLD
        self.threshold = threshold

    def evaluate(self, estimate: MeasurementEstimate) -> GateDecision:
        if not estimate.measurements:
            logger.info("Nothing could be measured, offering retry or manual entry")
            return GateDecision(
                NEEDS_REVIEW,
                estimate,
                self.threshold,
                remediations=(Remediation.RETRY, Remediation.MANUAL_ENTRY),
            )

        if estimate.confidence >= self.threshold:
            return GateDecision(ACCEPTED, estimate, self.threshold)

        logger.info(
            "Confidence %.3f below threshold %.2f, offering remediation",
            estimate.confidence,
            self.threshold,
        )
        return GateDecision(
            NEEDS_REVIEW,
            estimate,
            self.threshold,
            remediations=(Remediation.RETRY, Remediation.ACCEPT_ANYWAY, Remediation.MANUAL_ENTRY),
        )

    def submission(self, decision: GateDecision, guest: Optional[GuestIdentity] = None) -> ScanSubmission:
        """Submission for an accepted decision."""
        _require_measurements(decision.estimate)
        if not decision.accepted:
            raise ValueError("Estimate needs review; choose a remediation path instead")
        return self._from_estimate(decision.estimate, Outcome.ACCEPTED, guest)

    # ------------------------------------------------------------------
    # Remediation paths
    # ------------------------------------------------------------------

    def retry(self, decision: GateDecision) -> RetakeRequest:
        self._require(decision, Remediation.RETRY)
        return RetakeRequest()

    def accept_anyway(self, decision: GateDecision, guest: Optional[GuestIdentity] = None) -> ScanSubmission:
        """Submit the low-confidence estimate unchanged."""
        _require_measurements(decision.estimate)
        self._require(decision, Remediation.ACCEPT_ANYWAY)
        return self._from_estimate(decision.estimate, Outcome.ACCEPTED_ANYWAY, guest)

    def manual_form(self, decision: GateDecision) -> Dict[str, Optional[float]]:
        """Form values for manual entry, pre-filled with derived measurements."""
        self._require(decision, Remediation.MANUAL_ENTRY)
        derived = decision.estimate.derived()
        return {name: derived.get(name) for name in MEASUREMENT_NAMES}

    def submit_manual(
        self,
        decision: GateDecision,
        values: Mapping[str, Any],
        guest: Optional[GuestIdentity] = None,
    ) -> ScanSubmission:
        """Validate a manual entry form and build its submission.

        Empty fields are skipped. Filled fields must be known, numeric,
        positive and within bounds.

        Raises:
            ValidationError: If a field is invalid or too few are filled in
        """
        self._require(decision, Remediation.MANUAL_ENTRY)

        cleaned: Dict[str, float] = {}
        for name, raw in values.items():
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            if name not in MEASUREMENT_TYPES:
                raise ValidationError(f"Unknown measurement {name!r}", field=name)
            label = MEASUREMENT_TYPES[name][0]
            try:
                value = float(raw)
            except (TypeError, ValueError):
                raise ValidationError(f"{label} must be a number", field=name) from None
            try:
                cleaned[name] = check_measurement_value(name, value)
            except ValueError as exc:
                raise ValidationError(str(exc), field=name) from None

        if len(cleaned) < config.MIN_MANUAL_FIELDS:
            raise ValidationError(
                f"Please fill in at least {config.MIN_MANUAL_FIELDS} measurements."
            )

        estimate = decision.estimate
        return _build_submission(
            measurements=cleaned,
            confidence=1.0,
            height_cm=estimate.height_cm,
            gender=estimate.gender,
            outcome=Outcome.MANUAL,
            provenance={name: MANUAL for name in cleaned},
            guest=guest,
        )

    @staticmethod
    def _require(decision: GateDecision, remediation: Remediation) -> None:
        if remediation not in decision.remediations:
            raise ValueError(f"{remediation.value} is only available when an estimate needs review")

    @staticmethod
    def _from_estimate(
        estimate: MeasurementEstimate,
        outcome: Outcome,
        guest: Optional[GuestIdentity],
    ) -> ScanSubmission:
        return _build_submission(
            measurements=estimate.as_payload(),
            confidence=round(estimate.confidence, 3),
            height_cm=estimate.height_cm,
            gender=estimate.gender,
            outcome=outcome,
            provenance=dict(estimate.provenance),
            guest=guest,
        )
