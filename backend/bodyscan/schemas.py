"""Wire schemas shared by the gateway and the device-side client.

JSON uses camelCase; Python code uses snake_case attributes.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from bodyscan import config
from bodyscan.profiles import MAX_HEIGHT_CM, MEASUREMENT_TYPES

Gender = Literal["male", "female"]
Provenance = Literal["derived", "estimated", "manual"]


class Outcome(str, Enum):
    """How a submission left the confidence gate."""

    ACCEPTED = "accepted"
    ACCEPTED_ANYWAY = "accepted_anyway"
    MANUAL = "manual"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_json(self) -> Dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def check_measurement_value(name: str, value: float) -> float:
    """Validate one measurement value; raises ValueError with a readable message."""
    if name not in MEASUREMENT_TYPES:
        raise ValueError(f"Unknown measurement {name!r}")
    label, upper = MEASUREMENT_TYPES[name]
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{label} must be a positive number")
    if value > upper:
        raise ValueError(f"{label} must be at most {upper} cm")
    return float(value)


# ============================================================================
# SUBJECT DEVICE
# ============================================================================

class ScanSubmission(CamelModel):
    """Body of ``POST /scan/{code}``."""

    measurements: Dict[str, float]
    confidence: float = Field(..., ge=0.0, le=1.0)
    height_cm: float = Field(..., gt=0, le=MAX_HEIGHT_CM)
    gender: Gender
    guest_name: Optional[str] = Field(None, max_length=100)
    guest_phone: Optional[str] = Field(None, max_length=32)
    guest_gender: Optional[Gender] = None
    outcome: Outcome = Outcome.ACCEPTED
    provenance: Dict[str, Provenance] = Field(default_factory=dict)

    @field_validator("measurements")
    @classmethod
    def _check_measurements(cls, value: Dict[str, float]) -> Dict[str, float]:
        if not value:
            raise ValueError("At least one measurement is required")
        return {name: check_measurement_value(name, v) for name, v in value.items()}

    @model_validator(mode="after")
    def _check_consistency(self) -> "ScanSubmission":
        unknown = set(self.provenance) - set(self.measurements)
        if unknown:
            raise ValueError(f"Provenance given for missing measurements: {sorted(unknown)}")
        if self.outcome == Outcome.MANUAL:
            if self.confidence != 1.0:
                raise ValueError("Manual entries must have confidence 1.0")
            if len(self.measurements) < config.MIN_MANUAL_FIELDS:
                raise ValueError(
                    f"Manual entry needs at least {config.MIN_MANUAL_FIELDS} measurements"
                )
        return self


class FailureReport(CamelModel):
    """Body of ``POST /scan/{code}/fail``."""

    reason: str = Field("unknown", max_length=500)


class SessionInfo(CamelModel):
    """Response of ``GET /scan/{code}``. Never carries measurements."""

    status: str
    is_quick_scan: bool
    expires_at: datetime
    designer_name: Optional[str] = None
    business_name: Optional[str] = None
    client_name: Optional[str] = None
    client_gender: Optional[Gender] = None
    message: Optional[str] = None


class SubmissionResult(CamelModel):
    status: str
    session_id: str
    low_confidence: bool
    warnings: List[Dict[str, str]] = Field(default_factory=list)


class StartResult(CamelModel):
    status: str
    claimed: bool


# ============================================================================
# DESIGNER SIDE
# ============================================================================

class CreateSessionRequest(CamelModel):
    designer_id: str = Field(..., min_length=1)
    designer_name: str = Field(..., min_length=1)
    business_name: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_gender: Optional[Gender] = None
    ttl_hours: Optional[float] = Field(None, gt=0, le=24 * 30)


class SessionSummary(CamelModel):
    id: str
    designer_id: str
    link_code: str
    scan_url: str
    status: str
    is_quick_scan: bool
    created_at: datetime
    expires_at: datetime
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None


class SessionResult(CamelModel):
    """Dashboard view of a session, measurements included once completed."""

    id: str
    link_code: str
    status: str
    is_quick_scan: bool
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_gender: Optional[Gender] = None
    measurements: Optional[Dict[str, float]] = None
    confidence: Optional[float] = None
    provenance: Optional[Dict[str, str]] = None
    outcome: Optional[Outcome] = None
    low_confidence: Optional[bool] = None
    height_cm: Optional[float] = None
    gender: Optional[Gender] = None
    warnings: Optional[List[Dict[str, str]]] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
