"""
Short-lived ceremony sessions.

A session binds a random challenge to the identity that asked for it and is
consumed exactly once by the matching response call.
"""
import asyncio
import enum
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

from bioauth.core.encoding import encoding_utils
from bioauth.core.exceptions import SessionExpiredError

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32
SESSION_ID_BYTES = 16


class CeremonyPurpose(str, enum.Enum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


@dataclass
class ChallengeSession:
    session_id: str
    challenge: str
    email: str
    purpose: CeremonyPurpose
    name: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at


class ChallengeStore(ABC):
    """Storage contract for ceremony sessions. `consume` must be an atomic read-and-delete."""

    @abstractmethod
    async def create(self, purpose: CeremonyPurpose, email: str, name: Optional[str] = None) -> ChallengeSession:
        ...

    @abstractmethod
    async def consume(self, session_id: str, purpose: Optional[CeremonyPurpose] = None) -> ChallengeSession:
        ...

    @abstractmethod
    async def discard(self, session_id: str) -> None:
        ...

    @abstractmethod
    async def purge_expired(self) -> int:
        ...


class InMemoryChallengeStore(ChallengeStore):
    """
    Process-local challenge store. All mutations happen under one asyncio lock,
    so two concurrent consumers of the same session can never both win.
    """

    def __init__(self, lifetime_seconds: Optional[int] = 300):
        self.lifetime_seconds = lifetime_seconds
        self._sessions: Dict[str, ChallengeSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, purpose: CeremonyPurpose, email: str, name: Optional[str] = None) -> ChallengeSession:
        """Mint a fresh session with a 32 byte challenge and a 16 byte session id."""
        now = time.time()
        session = ChallengeSession(
            session_id=encoding_utils.random_session_id(SESSION_ID_BYTES),
            challenge=encoding_utils.random_challenge(CHALLENGE_BYTES),
            email=email.lower(),
            purpose=CeremonyPurpose(purpose),
            name=name,
            created_at=now,
            expires_at=now + self.lifetime_seconds if self.lifetime_seconds else None,
        )
        async with self._lock:
            self._purge_locked(now)
            self._sessions[session.session_id] = session
        logger.debug(f"Created {session.purpose.value} session for {session.email}")
        return session

    async def consume(self, session_id: str, purpose: Optional[CeremonyPurpose] = None) -> ChallengeSession:
        """
        Remove and return the session. Unknown, expired and wrong-purpose sessions
        raise SessionExpiredError and are still discarded.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None) if session_id else None
        if session is None:
            raise SessionExpiredError("Session expired")
        if session.is_expired():
            logger.debug(f"Rejected expired session for {session.email}")
            raise SessionExpiredError("Session expired")
        if purpose is not None and session.purpose != purpose:
            raise SessionExpiredError("Session expired")
        return session

    async def discard(self, session_id: str) -> None:
        """Drop a session whose response was rejected before verification started."""
        async with self._lock:
            self._sessions.pop(session_id, None)

    async def purge_expired(self) -> int:
        async with self._lock:
            return self._purge_locked(time.time())

    def _purge_locked(self, now: float) -> int:
        expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug(f"Purged {len(expired)} expired ceremony sessions")
        return len(expired)
