import asyncio
import datetime
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives.asymmetric import ec

from bioauth.core.exceptions import AccountNotFoundError, CredentialNotFoundError, ReplayDetectedError

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass
class Credential:
    """A registered passkey. `public_key` is ready for signature verification."""
    credential_id: str
    email: str
    name: str
    public_key: ec.EllipticCurvePublicKey
    cose_key: Dict[Any, Any] = field(default_factory=dict)
    sign_count: int = 0
    registered_at: str = field(default_factory=_utcnow)
    last_used_at: Optional[str] = None

    def public_view(self) -> Dict[str, str]:
        """The only projection allowed to leave the service (admin listing)."""
        return {"name": self.name, "email": self.email, "registeredAt": self.registered_at}


class CredentialStore(ABC):
    """Storage contract for credentials keyed by credential ID."""

    @abstractmethod
    async def put(self, credential: Credential) -> None:
        ...

    @abstractmethod
    async def get(self, credential_id: str) -> Credential:
        ...

    @abstractmethod
    async def find_by_email(self, email: str) -> Credential:
        ...

    @abstractmethod
    async def list_all(self) -> List[Credential]:
        ...

    @abstractmethod
    async def advance_sign_count(self, credential_id: str, new_count: int) -> Credential:
        """Atomically store `new_count` if it is greater than the stored counter, else raise ReplayDetectedError."""
        ...


class InMemoryCredentialStore(CredentialStore):
    """Dict-backed store. Insertion order decides which credential wins an email lookup."""

    def __init__(self):
        self._credentials: Dict[str, Credential] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._credentials)

    async def put(self, credential: Credential) -> None:
        async with self._lock:
            if credential.credential_id in self._credentials:
                logger.warning(f"Overwriting existing credential for {credential.email}")
            self._credentials[credential.credential_id] = credential

    async def get(self, credential_id: str) -> Credential:
        credential = self._credentials.get(credential_id)
        if credential is None:
            raise CredentialNotFoundError("Credential not found")
        return credential

    async def find_by_email(self, email: str) -> Credential:
        email = (email or "").lower()
        for credential in self._credentials.values():
            if credential.email == email:
                return credential
        raise AccountNotFoundError("No account found")

    async def list_all(self) -> List[Credential]:
        return list(self._credentials.values())

    async def advance_sign_count(self, credential_id: str, new_count: int) -> Credential:
        async with self._lock:
            credential = self._credentials.get(credential_id)
            if credential is None:
                raise CredentialNotFoundError("Credential not found")
            if new_count <= credential.sign_count:
                raise ReplayDetectedError("Replay attack")
            credential.sign_count = new_count
            credential.last_used_at = _utcnow()
            return credential
