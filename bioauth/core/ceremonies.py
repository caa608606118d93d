"""
Registration and authentication ceremonies.

Both ceremonies are two-phase: `request` mints a single-use session holding a
random challenge, `response` consumes that session and verifies what the
authenticator produced. A consumed session is never reusable, whatever the
outcome of the response.
"""
import hashlib
import json
import logging
import secrets
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from bioauth.core.attestation import AttestationParser, COSE_ALG_ES256, attestation_parser
from bioauth.core.challenges import CeremonyPurpose, ChallengeSession, ChallengeStore
from bioauth.core.config import settings
from bioauth.core.credentials import Credential, CredentialStore
from bioauth.core.encoding import encoding_utils
from bioauth.core.exceptions import (ChallengeMismatchError, CredentialNotFoundError, InvalidInputError,
                                     InvalidSignatureError, MalformedAttestationError, MalformedClientDataError,
                                     OriginMismatchError, ReplayDetectedError)
from bioauth.core.hooks import Events, HookManager

logger = logging.getLogger(__name__)

CLIENT_DATA_TYPE_CREATE = "webauthn.create"
CLIENT_DATA_TYPE_GET = "webauthn.get"


class _Ceremony:
    """Shared configuration and client data checks."""

    def __init__(
            self,
            challenges: ChallengeStore,
            credentials: CredentialStore,
            hooks: Optional[HookManager] = None,
            parser: Optional[AttestationParser] = None,
            rp_id: Optional[str] = None,
            rp_name: Optional[str] = None,
            origin: Optional[str] = None,
            timeout_ms: Optional[int] = None,
            verify_rp_id_hash: Optional[bool] = None,
    ):
        self.challenges = challenges
        self.credentials = credentials
        self.hooks = hooks if hooks is not None else HookManager()
        self.parser = parser if parser is not None else attestation_parser
        self.rp_id = rp_id or settings.WEBAUTHN_RP_ID
        self.rp_name = rp_name or settings.WEBAUTHN_RP_NAME
        self.expected_origin = origin or settings.WEBAUTHN_ORIGIN
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.CEREMONY_TIMEOUT_MS
        self.verify_rp_id_hash = (
            verify_rp_id_hash if verify_rp_id_hash is not None else settings.VERIFY_RP_ID_HASH
        )

    def verify_client_data(self, client_data_json: bytes, expected_type: str,
                           session: ChallengeSession) -> Dict[str, Any]:
        """Check that clientDataJSON echoes the session challenge from the configured origin."""
        try:
            client_data = json.loads(client_data_json)
        except (ValueError, TypeError) as e:
            raise MalformedClientDataError(f"Invalid clientDataJSON: {e}")
        if not isinstance(client_data, dict):
            raise MalformedClientDataError("Invalid clientDataJSON: expected an object.")

        if client_data.get("type") != expected_type:
            raise MalformedClientDataError("Invalid client data type.")
        challenge = client_data.get("challenge")
        if not isinstance(challenge, str) or not secrets.compare_digest(
                challenge.encode("utf-8"), session.challenge.encode("utf-8")):
            raise ChallengeMismatchError("Challenge mismatch.")
        if client_data.get("origin") != self.expected_origin:
            raise OriginMismatchError(f"Origin '{client_data.get('origin')}' is not allowed.")
        return client_data

    def check_rp_id_hash(self, auth_data) -> None:
        if self.verify_rp_id_hash and not auth_data.matches_rp_id(self.rp_id):
            raise MalformedAttestationError("RP ID hash mismatch.")


class RegistrationCeremony(_Ceremony):
    """Issues registration challenges and stores verified credentials."""

    async def request(self, email: str, name: str) -> Dict[str, Any]:
        """Generate creation options for `navigator.credentials.create()`."""
        if not email or not name:
            raise InvalidInputError("Missing info")

        session = await self.challenges.create(CeremonyPurpose.REGISTRATION, email, name)
        return {
            "sessionId": session.session_id,
            "challenge": session.challenge,
            "rp": {"id": self.rp_id, "name": self.rp_name},
            "user": {
                "id": encoding_utils.base64url_encode(email.encode("utf-8")),
                "name": email,
                "displayName": name,
            },
            "pubKeyCredParams": [{"type": "public-key", "alg": COSE_ALG_ES256}],
            "authenticatorSelection": {"userVerification": "preferred", "residentKey": "preferred"},
            "timeout": self.timeout_ms,
        }

    async def response(self, session_id: str, credential_id: str, client_data_json: bytes,
                       attestation_object: bytes) -> Dict[str, Any]:
        """
        Verify a registration response and persist the credential.
        The session is consumed first, so any failure below forces a new ceremony.
        """
        session = await self.challenges.consume(session_id, CeremonyPurpose.REGISTRATION)
        self.verify_client_data(client_data_json, CLIENT_DATA_TYPE_CREATE, session)

        attested = self.parser.parse(attestation_object)
        self.check_rp_id_hash(attested.auth_data)
        if not credential_id or credential_id != attested.credential_id:
            raise MalformedAttestationError("Credential id does not match authenticator data.")

        credential = Credential(
            credential_id=credential_id,
            email=session.email,
            name=session.name,
            public_key=attested.public_key,
            cose_key=attested.cose_key,
            sign_count=0,
        )
        await self.credentials.put(credential)
        logger.info(f"Registered passkey for {credential.email}")
        await self.hooks.trigger(Events.CREDENTIAL_REGISTERED, credential=credential)
        return {"success": True}


class AuthenticationCeremony(_Ceremony):
    """Issues login challenges, verifies assertions and enforces the signature counter."""

    async def request(self, email: str) -> Dict[str, Any]:
        """Generate request options for `navigator.credentials.get()`."""
        if not email:
            raise InvalidInputError("Missing info")
        credential = await self.credentials.find_by_email(email)

        session = await self.challenges.create(CeremonyPurpose.AUTHENTICATION, credential.email)
        return {
            "sessionId": session.session_id,
            "challenge": session.challenge,
            "allowCredentials": [{"type": "public-key", "id": credential.credential_id}],
            "userVerification": "preferred",
            "rpId": self.rp_id,
            "timeout": self.timeout_ms,
        }

    async def response(self, session_id: str, credential_id: str, client_data_json: bytes,
                       authenticator_data: bytes, signature: bytes) -> Dict[str, Any]:
        session = await self.challenges.consume(session_id, CeremonyPurpose.AUTHENTICATION)
        self.verify_client_data(client_data_json, CLIENT_DATA_TYPE_GET, session)

        credential = await self.credentials.get(credential_id)
        if credential.email != session.email:
            raise CredentialNotFoundError("Credential not found")

        auth_data = self.parser.parse_authenticator_data(authenticator_data)
        self.check_rp_id_hash(auth_data)

        signed_data = bytes(authenticator_data) + hashlib.sha256(client_data_json).digest()
        try:
            credential.public_key.verify(bytes(signature), signed_data, ec.ECDSA(hashes.SHA256()))
        except (InvalidSignature, ValueError):
            logger.warning(f"Invalid signature for credential of {credential.email}")
            raise InvalidSignatureError("Invalid signature")

        try:
            credential = await self.credentials.advance_sign_count(credential_id, auth_data.sign_count)
        except ReplayDetectedError:
            logger.warning(
                f"Signature counter did not increase for {credential.email} "
                f"(got {auth_data.sign_count}, stored {credential.sign_count}). Possible cloned authenticator."
            )
            await self.hooks.trigger(Events.REPLAY_DETECTED, credential=credential, sign_count=auth_data.sign_count)
            raise

        logger.info(f"Passkey login for {credential.email}")
        await self.hooks.trigger(Events.USER_LOGGED_IN, credential=credential)
        return {"success": True, "user": {"name": credential.name, "email": credential.email}}
