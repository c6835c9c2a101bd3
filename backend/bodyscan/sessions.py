"""Scan session store: the state machine behind every scan link.

    pending -> processing -> completed | failed
    pending | processing -> expired   (lazily, on the first read past the deadline)

completed, failed and expired are terminal. The only way measurements get
into a session is ``complete``, a conditional write performed under the
store lock: it succeeds only while the session is pending or processing and
before its deadline. That check is what stops a stale tab or a second device
from committing twice; the ``processing`` status is only a hint.
"""
import copy
import logging
import secrets
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from bodyscan import config
from bodyscan.errors import LinkNotFound, SessionNotWritable, ValidationError
from bodyscan.plausibility import check_plausibility
from bodyscan.schemas import Outcome, ScanSubmission

logger = logging.getLogger(__name__)

# No 0/O, 1/I/l: codes get read aloud and retyped
LINK_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
MAX_CODE_ATTEMPTS = 10


class SessionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_open(self) -> bool:
        return self in (SessionStatus.PENDING, SessionStatus.PROCESSING)


STATUS_MESSAGES = {
    SessionStatus.PROCESSING: "Your photos are still being processed. Please wait...",
    SessionStatus.COMPLETED: "Your measurements have already been recorded. Thank you!",
    SessionStatus.FAILED: "There was an issue processing your scan. Please ask your designer for a new link.",
    SessionStatus.EXPIRED: "This scan link has expired. Please ask your designer for a new link.",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_link_code(length: Optional[int] = None) -> str:
    length = length or config.LINK_CODE_LENGTH
    return "".join(secrets.choice(LINK_CODE_ALPHABET) for _ in range(length))


@dataclass
class ScanSession:
    """One measurement acquisition attempt."""

    id: str
    designer_id: str
    designer_name: str
    link_code: str
    created_at: datetime
    expires_at: datetime
    business_name: Optional[str] = None
    status: SessionStatus = SessionStatus.PENDING

    # Subject: an existing client or a guest identified at scan time
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_gender: Optional[str] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_gender: Optional[str] = None

    # Written once, together with status=completed
    measurements: Optional[Dict[str, float]] = None
    confidence: Optional[float] = None
    provenance: Optional[Dict[str, str]] = None
    outcome: Optional[Outcome] = None
    low_confidence: Optional[bool] = None
    height_cm: Optional[float] = None
    gender: Optional[str] = None
    warnings: List[Dict[str, str]] = field(default_factory=list)
    completed_at: Optional[datetime] = None

    failure_reason: Optional[str] = None
    failed_at: Optional[datetime] = None

    @property
    def is_quick_scan(self) -> bool:
        return self.client_id is None

    @property
    def subject_name(self) -> Optional[str]:
        return self.client_name if self.client_id else self.guest_name


class ScanSessionStore:
    """In-memory session store.

    All reads and writes go through one lock, so the conditional write and
    the lazy expiry check can never interleave.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        ttl: Optional[timedelta] = None,
        low_confidence_threshold: Optional[float] = None,
    ):
        self._clock = clock
        self._ttl = ttl or timedelta(hours=config.SCAN_TTL_HOURS)
        if low_confidence_threshold is None:
            low_confidence_threshold = config.CONFIDENCE_THRESHOLD
        self._low_confidence_threshold = low_confidence_threshold
        self._sessions: Dict[str, ScanSession] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Designer side
    # ------------------------------------------------------------------

    def create_session(
        self,
        designer_id: str,
        designer_name: str,
        business_name: Optional[str] = None,
        client_id: Optional[str] = None,
        client_name: Optional[str] = None,
        client_gender: Optional[str] = None,
        ttl: Optional[timedelta] = None,
    ) -> ScanSession:
        """Issue a new pending session with a fresh link code.

        A new link for a client supersedes that client's older pending links.
        """
        if client_id is None and (client_name or client_gender):
            raise ValidationError("Client details need a client id", field="clientId")

        with self._lock:
            now = self._clock()

            link_code = None
            for _ in range(MAX_CODE_ATTEMPTS):
                candidate = generate_link_code()
                if candidate not in self._sessions:
                    link_code = candidate
                    break
            if link_code is None:
                raise RuntimeError("Failed to generate unique link code")

            if client_id is not None:
                for other in self._sessions.values():
                    if (
                        other.client_id == client_id
                        and other.designer_id == designer_id
                        and other.status == SessionStatus.PENDING
                    ):
                        other.status = SessionStatus.EXPIRED
                        logger.info("Superseded pending session %s for client %s", other.link_code, client_id)

            session = ScanSession(
                id=uuid.uuid4().hex,
                designer_id=designer_id,
                designer_name=designer_name,
                business_name=business_name,
                link_code=link_code,
                created_at=now,
                expires_at=now + (ttl or self._ttl),
                client_id=client_id,
                client_name=client_name,
                client_gender=client_gender,
            )
            self._sessions[link_code] = session
            session = copy.deepcopy(session)

        logger.info(
            "Created scan session %s for designer %s (quick_scan=%s, expires=%s)",
            link_code,
            designer_id,
            session.is_quick_scan,
            session.expires_at.isoformat(),
        )
        return session

    def list_sessions(
        self,
        designer_id: str,
        status: Optional[SessionStatus] = None,
        limit: int = 50,
    ) -> List[ScanSession]:
        """Designer's sessions, newest first, with expiry applied."""
        with self._lock:
            now = self._clock()
            sessions = [s for s in self._sessions.values() if s.designer_id == designer_id]
            for session in sessions:
                self._apply_expiry(session, now)
            if status is not None:
                sessions = [s for s in sessions if s.status == status]
            sessions.sort(key=lambda s: s.created_at, reverse=True)
            return [copy.deepcopy(s) for s in sessions[:limit]]

    # ------------------------------------------------------------------
    # Subject side
    # ------------------------------------------------------------------

    def get(self, link_code: str) -> ScanSession:
        """Look up a session and report its effective status.

        Like every read here, returns a snapshot taken under the lock.

        Raises:
            LinkNotFound: If no session has this code
        """
        with self._lock:
            session = self._lookup(link_code)
            self._apply_expiry(session, self._clock())
            return copy.deepcopy(session)

    def result(self, link_code: str) -> ScanSession:
        """Designer read of a session; measurements are present once completed."""
        return self.get(link_code)

    def begin_processing(self, link_code: str) -> bool:
        """Mark a pending session as being worked on.

        Returns:
            True if this call moved the session to processing, False if it
            was already processing

        Raises:
            SessionNotWritable: If the session is terminal or expired
        """
        with self._lock:
            session = self._writable(link_code)
            if session.status == SessionStatus.PROCESSING:
                return False
            session.status = SessionStatus.PROCESSING
        logger.info("Scan session %s is processing", link_code)
        return True

    def complete(self, link_code: str, submission: ScanSubmission) -> ScanSession:
        """Commit measurements: the single conditional terminal write.

        Raises:
            LinkNotFound: If no session has this code
            SessionNotWritable: If the session is no longer open
        """
        with self._lock:
            session = self._writable(link_code)
            now = self._clock()

            low_confidence = (
                submission.outcome == Outcome.ACCEPTED_ANYWAY
                or (
                    submission.outcome == Outcome.ACCEPTED
                    and submission.confidence < self._low_confidence_threshold
                )
            )
            warnings = [
                w.to_dict()
                for w in check_plausibility(submission.measurements, submission.height_cm, submission.gender)
            ]

            if session.is_quick_scan:
                session.guest_name = submission.guest_name or None
                session.guest_phone = submission.guest_phone or None
                session.guest_gender = submission.guest_gender
            elif submission.guest_name or submission.guest_phone:
                logger.info("Ignoring guest identity on client session %s", link_code)

            session.measurements = dict(submission.measurements)
            session.confidence = submission.confidence
            session.provenance = dict(submission.provenance)
            session.outcome = submission.outcome
            session.low_confidence = low_confidence
            session.height_cm = submission.height_cm
            session.gender = submission.gender
            session.warnings = warnings
            session.completed_at = now
            session.status = SessionStatus.COMPLETED
            session = copy.deepcopy(session)

        logger.info(
            "Scan session %s completed (%d measurements, confidence=%.2f, outcome=%s, low_confidence=%s)",
            link_code,
            len(submission.measurements),
            submission.confidence,
            submission.outcome.value,
            low_confidence,
        )
        return session

    def fail(self, link_code: str, reason: str) -> ScanSession:
        """Record an unrecoverable device-side failure."""
        with self._lock:
            session = self._writable(link_code)
            session.status = SessionStatus.FAILED
            session.failure_reason = reason
            session.failed_at = self._clock()
            session = copy.deepcopy(session)
        logger.warning("Scan session %s failed: %s", link_code, reason)
        return session

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _lookup(self, link_code: str) -> ScanSession:
        session = self._sessions.get(link_code)
        if session is None:
            raise LinkNotFound()
        return session

    def _apply_expiry(self, session: ScanSession, now: datetime) -> None:
        if session.status.is_open and now >= session.expires_at:
            session.status = SessionStatus.EXPIRED
            logger.info("Scan session %s expired", session.link_code)

    def _writable(self, link_code: str) -> ScanSession:
        session = self._lookup(link_code)
        self._apply_expiry(session, self._clock())
        if not session.status.is_open:
            raise SessionNotWritable(
                f"This scan session is {session.status.value}. {STATUS_MESSAGES[session.status]}",
                why=session.status.value,
            )
        return session
