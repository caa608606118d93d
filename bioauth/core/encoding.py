import base64
import binascii
import re
import secrets

from bioauth.core.exceptions import InvalidInputError

BASE64URL_ALPHABET = re.compile(r"[A-Za-z0-9_-]+")


class EncodingUtils:
    """
    Transport encoding and random token helpers shared by the ceremonies and routers.
    """

    @staticmethod
    def base64url_encode(data: bytes) -> str:
        """
        Encodes bytes to a base64url string without padding.
        """
        return base64.urlsafe_b64encode(data).rstrip(b'=').decode('utf-8')

    @staticmethod
    def base64url_decode(data: str) -> bytes:
        """
        Decodes a base64url string without padding to bytes.
        """
        padding = '=' * (4 - (len(data) % 4)) if len(data) % 4 != 0 else ''
        return base64.urlsafe_b64decode(data + padding)

    def decode_field(self, data: str, field: str) -> bytes:
        """
        Decodes a base64url field received at the HTTP boundary.
        Raises InvalidInputError naming the field when it is missing or not base64url.
        """
        if not isinstance(data, str) or not data:
            raise InvalidInputError(f"Missing {field}")
        if not BASE64URL_ALPHABET.fullmatch(data):
            raise InvalidInputError(f"Invalid encoding for {field}")
        try:
            return self.base64url_decode(data)
        except (binascii.Error, ValueError):
            raise InvalidInputError(f"Invalid encoding for {field}")

    @staticmethod
    def random_challenge(nbytes: int = 32) -> str:
        """Generates a base64url encoded challenge from a CSPRNG."""
        return EncodingUtils.base64url_encode(secrets.token_bytes(nbytes))

    @staticmethod
    def random_session_id(nbytes: int = 16) -> str:
        return secrets.token_hex(nbytes)


encoding_utils = EncodingUtils()
