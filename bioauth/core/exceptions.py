class BioAuthError(Exception):
    """Base exception for the BioAuth library."""
    pass


class CeremonyError(BioAuthError):
    """
    Raised when a registration or login ceremony is rejected.
    Carries the HTTP status the boundary layer should answer with.
    """
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(CeremonyError):
    """Raised when a required field is missing or empty."""
    pass


class SessionExpiredError(CeremonyError):
    """Raised when a ceremony session is unknown, already consumed or past its lifetime."""
    pass


class MalformedClientDataError(CeremonyError):
    """Raised when clientDataJSON is not valid JSON or has the wrong shape."""
    pass


class ChallengeMismatchError(CeremonyError):
    """Raised when the echoed challenge differs from the issued one."""
    pass


class OriginMismatchError(CeremonyError):
    """Raised when clientData.origin is not the configured origin."""
    pass


class MalformedAttestationError(CeremonyError):
    """Raised on truncated, malformed or undecodable attestation / authenticator data."""
    pass


class AccountNotFoundError(CeremonyError):
    """Raised when no credential is registered for an email."""
    status_code = 404


class CredentialNotFoundError(CeremonyError):
    """Raised when a credential ID is not registered."""
    pass


class InvalidSignatureError(CeremonyError):
    """Raised when the assertion signature does not verify."""
    pass


class ReplayDetectedError(CeremonyError):
    """Raised when the signature counter did not increase. Possible cloned authenticator."""
    pass
