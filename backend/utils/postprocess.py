"""Helpers to format scan sessions and gate decisions for clients."""
from typing import Any, Dict

from bodyscan.gate import GateDecision
from bodyscan.schemas import SessionInfo, SessionResult, SessionSummary
from bodyscan.sessions import STATUS_MESSAGES, ScanSession


def format_session_info(session: ScanSession) -> SessionInfo:
    """Public view for the subject's device. Never includes measurements."""
    info = SessionInfo(
        status=session.status.value,
        is_quick_scan=session.is_quick_scan,
        expires_at=session.expires_at,
        message=STATUS_MESSAGES.get(session.status),
    )
    if session.status.is_open:
        info.designer_name = session.designer_name
        info.business_name = session.business_name or None
        info.client_name = session.client_name
        info.client_gender = session.client_gender
    return info


def format_session_summary(session: ScanSession, app_url: str) -> SessionSummary:
    return SessionSummary(
        id=session.id,
        designer_id=session.designer_id,
        link_code=session.link_code,
        scan_url=f"{app_url}/scan/{session.link_code}",
        status=session.status.value,
        is_quick_scan=session.is_quick_scan,
        created_at=session.created_at,
        expires_at=session.expires_at,
        client_id=session.client_id,
        client_name=session.client_name,
        guest_name=session.guest_name,
        guest_phone=session.guest_phone,
    )


def format_session_result(session: ScanSession) -> SessionResult:
    """Dashboard view; measurement fields stay empty until completion."""
    return SessionResult(
        id=session.id,
        link_code=session.link_code,
        status=session.status.value,
        is_quick_scan=session.is_quick_scan,
        client_id=session.client_id,
        client_name=session.client_name,
        guest_name=session.guest_name,
        guest_phone=session.guest_phone,
        guest_gender=session.guest_gender,
        measurements=session.measurements,
        confidence=session.confidence,
        provenance=session.provenance,
        outcome=session.outcome,
        low_confidence=session.low_confidence,
        height_cm=session.height_cm,
        gender=session.gender,
        warnings=session.warnings if session.measurements is not None else None,
        completed_at=session.completed_at,
        failure_reason=session.failure_reason,
    )


def format_decision(decision: GateDecision) -> Dict[str, Any]:
    """JSON-serializable view of a gate decision, for the command line."""
    estimate = decision.estimate
    return {
        "outcome": decision.outcome,
        "threshold": decision.threshold,
        "confidence": round(estimate.confidence, 3),
        "measurements": estimate.as_payload(),
        "provenance": dict(estimate.provenance),
        "confidences": {name: round(c, 3) for name, c in estimate.confidences.items()},
        "missing": list(estimate.missing),
        "heightCm": estimate.height_cm,
        "gender": estimate.gender,
        "usedSideView": estimate.used_side_view,
        "warnings": [w.to_dict() for w in estimate.warnings],
        "remediations": [r.value for r in decision.remediations],
    }
