from typing import Dict, Any, List, Optional

from bioauth.core.ceremonies import RegistrationCeremony, AuthenticationCeremony
from bioauth.core.challenges import ChallengeStore, InMemoryChallengeStore
from bioauth.core.config import settings
from bioauth.core.credentials import CredentialStore, InMemoryCredentialStore
from bioauth.core.hooks import HookManager


class BioAuthAsync:
    """High-level facade wiring the stores, hooks and both ceremonies together."""

    def __init__(
            self,
            challenges: Optional[ChallengeStore] = None,
            credentials: Optional[CredentialStore] = None,
            hooks: Optional[HookManager] = None,
            **ceremony_kwargs: Any,
    ):
        if challenges is None:
            challenges = InMemoryChallengeStore(settings.CHALLENGE_LIFETIME_SECONDS)
        self.challenges = challenges
        self.credentials = credentials if credentials is not None else InMemoryCredentialStore()
        self.hooks = hooks if hooks is not None else HookManager()
        self.registration = RegistrationCeremony(self.challenges, self.credentials, self.hooks, **ceremony_kwargs)
        self.authentication = AuthenticationCeremony(self.challenges, self.credentials, self.hooks, **ceremony_kwargs)

    async def list_users(self) -> List[Dict[str, str]]:
        """Admin projection of every credential: name, email and registration time only."""
        return [credential.public_view() for credential in await self.credentials.list_all()]
