"""Device-side scan flow and the gateway client.

Everything here runs on the subject's device: photos go in, a submission of
plain numbers goes out. ``ScanPipeline`` turns photos into a gate decision,
``ScanClient`` talks to the session gateway over HTTP.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from bodyscan.errors import (
    ERRORS_BY_REASON,
    BodyScanError,
    DetectionError,
    LinkExpired,
    LinkNotFound,
    SessionNotWritable,
    ValidationError,
)
from bodyscan.gate import ConfidenceGate, GateDecision
from bodyscan.landmarks import LandmarkProvider
from bodyscan.measurements import MeasurementEstimator
from bodyscan.schemas import ScanSubmission, SessionInfo, StartResult, SubmissionResult
from bodyscan.sessions import SessionStatus

logger = logging.getLogger(__name__)


class ScanPipeline:
    """detect front -> detect side -> calibrate -> estimate -> gate."""

    def __init__(
        self,
        provider: LandmarkProvider,
        estimator: Optional[MeasurementEstimator] = None,
        gate: Optional[ConfidenceGate] = None,
    ):
        self.provider = provider
        self.estimator = estimator or MeasurementEstimator()
        self.gate = gate or ConfidenceGate()

    def analyze(
        self,
        front_image: bytes,
        height_cm: float,
        gender: str,
        side_image: Optional[bytes] = None,
    ) -> GateDecision:
        """Run one scan attempt.

        Args:
            front_image: Encoded front photo
            height_cm: Height stated by the subject
            gender: Profile selector
            side_image: Encoded side photo (optional)

        Returns:
            GateDecision for the estimate

        Raises:
            DetectionError: If no person is found in the front photo
            CalibrationError: If the front photo cannot be sized
        """
        front = self.provider.detect(front_image, view="front")
        if front is None:
            raise DetectionError()

        side = None
        if side_image is not None:
            side = self.provider.detect(side_image, view="side")
            if side is None:
                logger.info("No person in side photo, depths will be estimated")

        estimate = self.estimator.estimate(front, height_cm, gender, side=side)
        decision = self.gate.evaluate(estimate)
        logger.info("Scan analyzed: %s (confidence=%.3f)", decision.outcome, estimate.confidence)
        return decision


class ScanClient:
    """HTTP client for the subject endpoints of the session gateway.

    Error envelopes come back as the matching ``BodyScanError`` subclass.
    Transport failures are raised as ``httpx.TransportError`` and are safe
    to retry: a submission either landed once or not at all.
    """

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def __enter__(self) -> "ScanClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def get_session(self, link_code: str) -> SessionInfo:
        return SessionInfo.model_validate(self._request("GET", f"/scan/{link_code}"))

    def open_session(self, link_code: str) -> SessionInfo:
        """Read a link and refuse to go on unless it still accepts a scan.

        Raises:
            LinkExpired: If the link ran out
            SessionNotWritable: If the link was already used
        """
        info = self.get_session(link_code)
        if info.status == SessionStatus.EXPIRED.value:
            raise LinkExpired(info.message)
        if info.status in (SessionStatus.COMPLETED.value, SessionStatus.FAILED.value):
            raise SessionNotWritable(info.message, why=info.status)
        return info

    def start(self, link_code: str) -> StartResult:
        return StartResult.model_validate(self._request("POST", f"/scan/{link_code}/start"))

    def submit(self, link_code: str, submission: ScanSubmission) -> SubmissionResult:
        data = self._request("POST", f"/scan/{link_code}", json=submission.to_json())
        result = SubmissionResult.model_validate(data)
        logger.info("Submitted scan %s (lowConfidence=%s)", link_code, result.low_confidence)
        return result

    def report_failure(self, link_code: str, reason: str) -> str:
        data = self._request("POST", f"/scan/{link_code}/fail", json={"reason": reason})
        return data["status"]

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self._client.request(method, path, json=json)
        if response.is_success:
            return response.json()
        raise self._error_from(response)

    @staticmethod
    def _error_from(response: httpx.Response) -> BodyScanError:
        try:
            error = response.json().get("error") or {}
        except ValueError:
            error = {}

        reason = error.get("reason")
        message = error.get("message")
        logger.warning("Gateway returned %s (%s): %s", response.status_code, reason, message)

        cls = ERRORS_BY_REASON.get(reason)
        if cls is SessionNotWritable:
            return SessionNotWritable(message, why=error.get("why", "conflict"))
        if cls is ValidationError:
            return ValidationError(message, field=error.get("field"))
        if cls is not None:
            return cls(message)
        if response.status_code in (400, 404):
            return LinkNotFound(message)
        return BodyScanError(message)
