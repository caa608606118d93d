"""
Parsing of WebAuthn attestation objects and authenticator data.

Authenticator data layout::

    [0..32)      RP ID hash
    [32]         flags
    [33..37)     signature counter, big-endian u32
    [37..53)     AAGUID                      (attested credential data only)
    [53..55)     credential id length L, u16 (attested credential data only)
    [55..55+L)   credential id               (attested credential data only)
    [55+L..)     COSE public key, CBOR       (attested credential data only)
"""
import hashlib
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Dict, Optional

import cbor2
from cryptography.hazmat.primitives.asymmetric import ec

from bioauth.core.encoding import encoding_utils
from bioauth.core.exceptions import MalformedAttestationError

# COSE key parameters (RFC 9053)
COSE_KTY = 1
COSE_ALG = 3
COSE_EC2_CRV = -1
COSE_EC2_X = -2
COSE_EC2_Y = -3
COSE_KTY_EC2 = 2
COSE_ALG_ES256 = -7
COSE_CRV_P256 = 1

FLAG_USER_PRESENT = 0x01
FLAG_USER_VERIFIED = 0x04
FLAG_ATTESTED_CREDENTIAL_DATA = 0x40

RP_ID_HASH_LENGTH = 32
AAGUID_LENGTH = 16
SIGN_COUNT_OFFSET = 33
CREDENTIAL_ID_OFFSET = 55


class _ByteReader:
    """Cursor over a byte string. Every read is bounds-checked."""

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.offset = 0

    def read(self, length: int, what: str) -> bytes:
        end = self.offset + length
        if length < 0 or end > len(self.data):
            raise MalformedAttestationError(
                f"Authenticator data truncated while reading {what} "
                f"(need {end} bytes, have {len(self.data)})."
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def read_uint(self, length: int, what: str) -> int:
        return int.from_bytes(self.read(length, what), "big")

    def remaining(self) -> bytes:
        return self.data[self.offset:]


@dataclass
class AuthenticatorData:
    raw: bytes
    rp_id_hash: bytes
    flags: int
    sign_count: int
    aaguid: Optional[bytes] = None
    credential_id: Optional[bytes] = None
    cose_key: Optional[Dict[Any, Any]] = None
    extensions: bytes = b""

    @property
    def user_present(self) -> bool:
        return bool(self.flags & FLAG_USER_PRESENT)

    @property
    def user_verified(self) -> bool:
        return bool(self.flags & FLAG_USER_VERIFIED)

    @property
    def has_attested_credential_data(self) -> bool:
        return bool(self.flags & FLAG_ATTESTED_CREDENTIAL_DATA)

    def matches_rp_id(self, rp_id: str) -> bool:
        return self.rp_id_hash == hashlib.sha256(rp_id.encode("utf-8")).digest()


@dataclass
class AttestedCredential:
    fmt: Optional[str]
    auth_data: AuthenticatorData
    credential_id: str
    cose_key: Dict[Any, Any]
    public_key: ec.EllipticCurvePublicKey


def cose_to_public_key(cose_key: Dict[Any, Any]) -> ec.EllipticCurvePublicKey:
    """Build a P-256 verification key from an ES256 COSE_Key map."""
    if not isinstance(cose_key, dict):
        raise MalformedAttestationError("Credential public key is not a COSE map.")
    kty, alg, crv = cose_key.get(COSE_KTY), cose_key.get(COSE_ALG), cose_key.get(COSE_EC2_CRV)
    if kty != COSE_KTY_EC2 or alg != COSE_ALG_ES256 or crv != COSE_CRV_P256:
        raise MalformedAttestationError(f"Unsupported key type/alg/curve: {kty}/{alg}/{crv}")
    x, y = cose_key.get(COSE_EC2_X), cose_key.get(COSE_EC2_Y)
    if not isinstance(x, bytes) or not isinstance(y, bytes) or len(x) != 32 or len(y) != 32:
        raise MalformedAttestationError("Invalid EC2 coordinates in credential public key.")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), b"\x04" + x + y)
    except ValueError as e:
        raise MalformedAttestationError(f"Invalid EC public key: {e}")


class AttestationParser:
    """Decodes attestation objects and authenticator data into typed records."""

    def parse_authenticator_data(self, raw: bytes, attested: bool = False) -> AuthenticatorData:
        """
        Parse the fixed header, and with `attested=True` also the attested
        credential data that registration responses carry.
        """
        reader = _ByteReader(raw)
        rp_id_hash = reader.read(RP_ID_HASH_LENGTH, "RP ID hash")
        flags = reader.read_uint(1, "flags")
        sign_count = reader.read_uint(4, "signature counter")
        auth_data = AuthenticatorData(raw=reader.data, rp_id_hash=rp_id_hash, flags=flags, sign_count=sign_count)
        if not attested:
            auth_data.extensions = reader.remaining()
            return auth_data

        auth_data.aaguid = reader.read(AAGUID_LENGTH, "AAGUID")
        cred_id_len = reader.read_uint(2, "credential id length")
        auth_data.credential_id = reader.read(cred_id_len, "credential id")

        key_bytes = reader.remaining()
        if not key_bytes:
            raise MalformedAttestationError("Authenticator data has no credential public key.")
        # Stream decode: only the first CBOR item is the key, extensions may follow.
        cose_stream = BytesIO(key_bytes)
        try:
            auth_data.cose_key = cbor2.load(cose_stream)
        except (cbor2.CBORDecodeError, ValueError, EOFError) as e:
            raise MalformedAttestationError(f"Could not decode credential public key: {e}")
        auth_data.extensions = cose_stream.read()
        return auth_data

    def parse(self, attestation_object: bytes) -> AttestedCredential:
        """Decode a CBOR attestation object and extract the credential public key."""
        try:
            decoded = cbor2.loads(attestation_object)
        except (cbor2.CBORDecodeError, ValueError, EOFError) as e:
            raise MalformedAttestationError(f"Could not decode attestation object: {e}")
        if not isinstance(decoded, dict) or not isinstance(decoded.get("authData"), bytes):
            raise MalformedAttestationError("Attestation object has no authData.")

        auth_data = self.parse_authenticator_data(decoded["authData"], attested=True)
        public_key = cose_to_public_key(auth_data.cose_key)
        return AttestedCredential(
            fmt=decoded.get("fmt"),
            auth_data=auth_data,
            credential_id=encoding_utils.base64url_encode(auth_data.credential_id),
            cose_key=auth_data.cose_key,
            public_key=public_key,
        )


attestation_parser = AttestationParser()
