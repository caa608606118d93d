import hashlib
import json
import os

import cbor2
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from httpx import AsyncClient, ASGITransport

RP_ID = "localhost"
ORIGIN = "http://localhost:3000"
os.environ["WEBAUTHN_RP_ID"] = RP_ID
os.environ["WEBAUTHN_ORIGIN"] = ORIGIN

from bioauth import create_app
from bioauth.core.encoding import encoding_utils
from bioauth.integrations.fastapi_integration import get_auth_service
from bioauth.manager.asynchronous import BioAuthAsync


class SoftAuthenticator:
    """
    Software stand-in for a platform authenticator: holds one P-256 key pair
    and produces attestation objects and assertions like a browser would.
    """

    def __init__(self, rp_id=RP_ID, origin=ORIGIN, credential_id=None):
        self.rp_id = rp_id
        self.origin = origin
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.raw_credential_id = credential_id or os.urandom(16)
        self.sign_count = 0

    @property
    def credential_id(self) -> str:
        return encoding_utils.base64url_encode(self.raw_credential_id)

    def cose_key(self) -> dict:
        numbers = self.private_key.public_key().public_numbers()
        return {
            1: 2, 3: -7, -1: 1,
            -2: numbers.x.to_bytes(32, "big"),
            -3: numbers.y.to_bytes(32, "big"),
        }

    def client_data(self, type_, challenge, origin=None, **extra) -> bytes:
        data = {"type": type_, "challenge": challenge, "origin": origin or self.origin, "crossOrigin": False}
        data.update(extra)
        return json.dumps(data).encode("utf-8")

    def auth_data(self, sign_count=0, flags=0x05, attested=False, cose_key=None) -> bytes:
        data = hashlib.sha256(self.rp_id.encode("utf-8")).digest() + bytes([flags]) + sign_count.to_bytes(4, "big")
        if attested:
            data += (
                bytes(16) +
                len(self.raw_credential_id).to_bytes(2, "big") +
                self.raw_credential_id +
                cbor2.dumps(cose_key if cose_key is not None else self.cose_key())
            )
        return data

    def attestation_object(self, **kwargs) -> bytes:
        auth_data = self.auth_data(flags=0x45, attested=True, **kwargs)
        return cbor2.dumps({"fmt": "none", "authData": auth_data, "attStmt": {}})

    def create(self, challenge, origin=None) -> dict:
        """Raw registration response parts."""
        return {
            "client_data_json": self.client_data("webauthn.create", challenge, origin),
            "attestation_object": self.attestation_object(),
        }

    def sign(self, auth_data: bytes, client_data_json: bytes) -> bytes:
        return self.private_key.sign(auth_data + hashlib.sha256(client_data_json).digest(),
                                     ec.ECDSA(hashes.SHA256()))

    def get(self, challenge, sign_count=None, origin=None) -> dict:
        """Raw assertion parts. Without `sign_count` the internal counter is bumped."""
        if sign_count is None:
            self.sign_count += 1
            sign_count = self.sign_count
        client_data_json = self.client_data("webauthn.get", challenge, origin)
        auth_data = self.auth_data(sign_count)
        return {
            "client_data_json": client_data_json,
            "authenticator_data": auth_data,
            "signature": self.sign(auth_data, client_data_json),
        }

    def registration_body(self, options, origin=None) -> dict:
        parts = self.create(options["challenge"], origin)
        return {
            "sessionId": options["sessionId"],
            "credential": {
                "id": self.credential_id,
                "response": {
                    "clientDataJSON": encoding_utils.base64url_encode(parts["client_data_json"]),
                    "attestationObject": encoding_utils.base64url_encode(parts["attestation_object"]),
                },
            },
        }

    def login_body(self, options, sign_count=None, origin=None) -> dict:
        parts = self.get(options["challenge"], sign_count, origin)
        return {
            "sessionId": options["sessionId"],
            "assertion": {
                "id": self.credential_id,
                "response": {
                    "clientDataJSON": encoding_utils.base64url_encode(parts["client_data_json"]),
                    "authenticatorData": encoding_utils.base64url_encode(parts["authenticator_data"]),
                    "signature": encoding_utils.base64url_encode(parts["signature"]),
                },
            },
        }


@pytest.fixture
def authenticator():
    """A fresh software authenticator for the test RP."""
    return SoftAuthenticator()


@pytest.fixture
def authenticator_factory():
    """Build extra authenticators (second device, other RP, fixed credential id)."""
    return SoftAuthenticator


@pytest.fixture
def service():
    """A BioAuthAsync with empty in-memory stores."""
    return BioAuthAsync(rp_id=RP_ID, rp_name="Biometric App", origin=ORIGIN, timeout_ms=60000,
                        verify_rp_id_hash=False)


@pytest.fixture
async def registered(service, authenticator):
    """Registers `authenticator` for alice@x.com and returns it."""
    options = await service.registration.request("alice@x.com", "Alice")
    parts = authenticator.create(options["challenge"])
    await service.registration.response(options["sessionId"], authenticator.credential_id, **parts)
    return authenticator


@pytest.fixture
def app(service):
    """A standalone app whose routers use the test service."""
    app = create_app()
    app.dependency_overrides[get_auth_service] = lambda: service
    return app


@pytest.fixture
async def fastapi_client(app):
    """Provide an AsyncClient for testing the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
