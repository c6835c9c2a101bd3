"""
Tests for the device-side flow: pipeline, gateway client and command line.
The pose model is replaced by pre-computed landmark sets.
"""

import json

import httpx
import pytest

from bodyscan.cli import EXIT_NEEDS_REVIEW, EXIT_OK, EXIT_RETAKE, build_parser, run_estimate, run_scan
from bodyscan.errors import (
    CalibrationError,
    DetectionError,
    LinkExpired,
    LinkNotFound,
    SessionNotWritable,
    ValidationError,
)
from bodyscan.gate import ACCEPTED, NEEDS_REVIEW, ConfidenceGate
from bodyscan.landmarks import StaticLandmarkProvider
from bodyscan.pipeline import ScanClient, ScanPipeline
from bodyscan.schemas import Outcome
from bodyscan.sessions import SessionStatus

from conftest import FRONT_POINTS, make_landmarks


@pytest.fixture
def provider(front_landmarks, side_landmarks):
    return StaticLandmarkProvider({"front": front_landmarks, "side": side_landmarks})


@pytest.fixture
def scan_client(api):
    return ScanClient("http://testserver", http_client=api)


@pytest.fixture
def photos(tmp_path):
    front = tmp_path / "front.jpg"
    side = tmp_path / "side.jpg"
    front.write_bytes(b"front")
    side.write_bytes(b"side")
    return front, side


# ============================================================================
# PIPELINE
# ============================================================================

class TestScanPipeline:

    def test_front_and_side(self, provider):
        decision = ScanPipeline(provider).analyze(b"front", 170, "female", side_image=b"side")
        assert decision.outcome == ACCEPTED
        assert decision.estimate.used_side_view

    def test_front_only(self, provider):
        decision = ScanPipeline(provider).analyze(b"front", 170, "female")
        assert not decision.estimate.used_side_view
        assert decision.estimate.provenance["waist"] == "estimated"

    def test_no_person_in_side_photo(self, front_landmarks):
        provider = StaticLandmarkProvider({"front": front_landmarks, "side": None})
        decision = ScanPipeline(provider).analyze(b"front", 170, "male", side_image=b"side")
        assert not decision.estimate.used_side_view

    def test_no_person_in_front_photo(self):
        with pytest.raises(DetectionError):
            ScanPipeline(StaticLandmarkProvider()).analyze(b"front", 170, "female")

    def test_feet_cut_off(self):
        landmarks = make_landmarks(FRONT_POINTS, left_ankle=None, right_ankle=None)
        with pytest.raises(CalibrationError):
            ScanPipeline(StaticLandmarkProvider({"front": landmarks})).analyze(b"front", 170, "female")

    def test_low_visibility_needs_review(self, blurry_front_landmarks):
        pipeline = ScanPipeline(StaticLandmarkProvider({"front": blurry_front_landmarks}))
        decision = pipeline.analyze(b"front", 170, "female")
        assert decision.outcome == NEEDS_REVIEW
        assert decision.estimate.confidence == pytest.approx(0.525)


# ============================================================================
# GATEWAY CLIENT
# ============================================================================

class TestScanClient:

    def test_full_flow(self, scan_client, store, provider):
        session = store.create_session("d1", "Dana", client_id="c1", client_name="Ada", client_gender="female")

        info = scan_client.open_session(session.link_code)
        assert info.client_name == "Ada"
        assert scan_client.start(session.link_code).claimed

        gate = ConfidenceGate()
        decision = ScanPipeline(provider, gate=gate).analyze(b"front", 170, info.client_gender, side_image=b"side")
        result = scan_client.submit(session.link_code, gate.submission(decision))

        assert result.status == "completed"
        assert result.low_confidence is False
        stored = store.get(session.link_code)
        assert stored.outcome == Outcome.ACCEPTED
        assert stored.provenance["hips"] == "derived"
        assert len(stored.measurements) == 16

    def test_low_confidence_accept_anyway(self, scan_client, store, blurry_front_landmarks):
        session = store.create_session("d1", "Dana")
        gate = ConfidenceGate()
        decision = ScanPipeline(StaticLandmarkProvider({"front": blurry_front_landmarks}), gate=gate).analyze(
            b"front", 170, "female"
        )

        result = scan_client.submit(session.link_code, gate.accept_anyway(decision))
        assert result.low_confidence is True
        assert store.get(session.link_code).confidence == pytest.approx(0.525)

    def test_detection_failure_leaves_session_pending(self, scan_client, store):
        session = store.create_session("d1", "Dana")
        scan_client.start(session.link_code)
        with pytest.raises(DetectionError):
            ScanPipeline(StaticLandmarkProvider()).analyze(b"front", 170, "female")
        assert store.get(session.link_code).status == SessionStatus.PROCESSING

    def test_unknown_link(self, scan_client):
        with pytest.raises(LinkNotFound):
            scan_client.get_session("Abcdefgh")

    def test_expired_link(self, scan_client, store, clock):
        session = store.create_session("d1", "Dana")
        clock.advance(hours=25)
        with pytest.raises(LinkExpired):
            scan_client.open_session(session.link_code)

    def test_used_link(self, scan_client, store):
        session = store.create_session("d1", "Dana")
        scan_client.report_failure(session.link_code, "camera unavailable")
        with pytest.raises(SessionNotWritable) as exc_info:
            scan_client.open_session(session.link_code)
        assert exc_info.value.why == "failed"

    def test_conflict_maps_back(self, scan_client, store, provider):
        session = store.create_session("d1", "Dana")
        gate = ConfidenceGate()
        submission = gate.submission(ScanPipeline(provider, gate=gate).analyze(b"front", 170, "female"))
        scan_client.submit(session.link_code, submission)

        with pytest.raises(SessionNotWritable) as exc_info:
            scan_client.submit(session.link_code, submission)
        assert exc_info.value.why == "completed"

    def test_validation_error_maps_back(self):
        response = httpx.Response(422, json={
            "status": "error",
            "error": {"code": 422, "reason": "ValidationError", "message": "Waist too big", "field": "waist"},
        })
        error = ScanClient._error_from(response)
        assert isinstance(error, ValidationError)
        assert error.field == "waist"
        assert error.message == "Waist too big"

    def test_transport_errors_propagate(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        http_client = httpx.Client(base_url="http://gateway", transport=httpx.MockTransport(refuse))
        with pytest.raises(httpx.TransportError):
            ScanClient("http://gateway", http_client=http_client).get_session("Abcdefgh")


# ============================================================================
# COMMAND LINE
# ============================================================================

class TestCli:

    def test_estimate_prints_json(self, provider, photos, capsys):
        front, side = photos
        args = build_parser().parse_args([
            "estimate", "--front", str(front), "--side", str(side), "--height", "170", "--gender", "female",
        ])

        assert run_estimate(args, provider) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["outcome"] == ACCEPTED
        assert data["usedSideView"] is True
        assert len(data["measurements"]) == 16

    def test_estimate_retake(self, photos, capsys):
        front, _ = photos
        args = build_parser().parse_args(["estimate", "--front", str(front), "--height", "170", "--gender", "male"])
        assert run_estimate(args, StaticLandmarkProvider()) == EXIT_RETAKE
        assert "full body" in capsys.readouterr().err

    def test_scan_submits(self, scan_client, store, provider, photos, capsys):
        session = store.create_session("d1", "Dana")
        front, side = photos
        args = build_parser().parse_args([
            "scan", "http://testserver", session.link_code,
            "--front", str(front), "--side", str(side), "--height", "170", "--gender", "female",
            "--guest-name", "Ada", "--guest-phone", "555-0100",
        ])

        assert run_scan(args, provider, client=scan_client) == EXIT_OK
        assert json.loads(capsys.readouterr().out)["status"] == "completed"
        stored = store.get(session.link_code)
        assert stored.guest_name == "Ada"
        assert stored.guest_gender == "female"

    def test_scan_low_confidence_stops_without_choice(self, scan_client, store, blurry_front_landmarks, photos):
        session = store.create_session("d1", "Dana")
        front, _ = photos
        args = build_parser().parse_args([
            "scan", "http://testserver", session.link_code, "--front", str(front), "--height", "170",
            "--gender", "female",
        ])

        provider = StaticLandmarkProvider({"front": blurry_front_landmarks})
        assert run_scan(args, provider, client=scan_client) == EXIT_NEEDS_REVIEW
        assert store.get(session.link_code).measurements is None

    def test_scan_manual_entry(self, scan_client, store, blurry_front_landmarks, photos):
        session = store.create_session("d1", "Dana", client_id="c1", client_name="Ada", client_gender="female")
        front, _ = photos
        args = build_parser().parse_args([
            "scan", "http://testserver", session.link_code, "--front", str(front), "--height", "170",
            "--manual", "waist=72", "hips=98", "bust=90",
        ])

        provider = StaticLandmarkProvider({"front": blurry_front_landmarks})
        assert run_scan(args, provider, client=scan_client) == EXIT_OK
        stored = store.get(session.link_code)
        assert stored.outcome == Outcome.MANUAL
        assert stored.confidence == 1.0
        assert stored.gender == "female"

        derived = ScanPipeline(provider).analyze(b"front", 170, "female").estimate.derived()
        assert set(derived) == {"armLength", "backLength", "frontLength", "inseam", "shoulder", "sleeveLength"}
        assert stored.measurements == {**derived, "waist": 72.0, "hips": 98.0, "bust": 90.0}
        assert set(stored.provenance.values()) == {"manual"}

    def test_scan_manual_value_overrides_derived_one(self, scan_client, store, blurry_front_landmarks, photos):
        session = store.create_session("d1", "Dana")
        front, _ = photos
        args = build_parser().parse_args([
            "scan", "http://testserver", session.link_code, "--front", str(front), "--height", "170",
            "--gender", "female", "--manual", "shoulder=40", "waist=72", "hips=98",
        ])

        provider = StaticLandmarkProvider({"front": blurry_front_landmarks})
        assert run_scan(args, provider, client=scan_client) == EXIT_OK
        stored = store.get(session.link_code)
        assert stored.measurements["shoulder"] == 40.0
        assert "inseam" in stored.measurements

    def test_scan_confident_estimate_ignores_manual_with_note(
        self, scan_client, store, front_landmarks, photos, capsys
    ):
        session = store.create_session("d1", "Dana")
        front, _ = photos
        args = build_parser().parse_args([
            "scan", "http://testserver", session.link_code, "--front", str(front), "--height", "170",
            "--gender", "female", "--manual", "waist=72", "hips=98", "bust=90",
        ])

        provider = StaticLandmarkProvider({"front": front_landmarks})
        assert run_scan(args, provider, client=scan_client) == EXIT_OK
        assert "--manual" in capsys.readouterr().err
        stored = store.get(session.link_code)
        assert stored.outcome == Outcome.ACCEPTED
        assert stored.measurements["waist"] != 72.0

    def test_accept_anyway_and_manual_are_exclusive(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args([
                "scan", "http://x", "Abcdefgh", "--front", "f.jpg", "--height", "170",
                "--accept-anyway", "--manual", "waist=70",
            ])
