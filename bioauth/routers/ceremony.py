import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from bioauth.core.encoding import encoding_utils
from bioauth.core.exceptions import CeremonyError, InvalidInputError
from bioauth.integrations.fastapi_integration import get_auth_service
from bioauth.manager.asynchronous import BioAuthAsync

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Passkeys"])


# --- Pydantic Models ---
# Fields are optional so that missing data is reported as 400 {"error": ...}
# by the ceremony instead of a 422 validation error.

class RegisterRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


class AttestationResponse(BaseModel):
    clientDataJSON: Optional[str] = None
    attestationObject: Optional[str] = None


class RegistrationCredential(BaseModel):
    id: Optional[str] = None
    response: AttestationResponse = AttestationResponse()


class RegisterResponse(BaseModel):
    sessionId: Optional[str] = None
    credential: RegistrationCredential = RegistrationCredential()


class LoginRequest(BaseModel):
    email: Optional[str] = None


class AssertionResponse(BaseModel):
    clientDataJSON: Optional[str] = None
    authenticatorData: Optional[str] = None
    signature: Optional[str] = None


class AuthenticationAssertion(BaseModel):
    id: Optional[str] = None
    response: AssertionResponse = AssertionResponse()


class LoginResponse(BaseModel):
    sessionId: Optional[str] = None
    assertion: AuthenticationAssertion = AuthenticationAssertion()


def _error(e: CeremonyError) -> JSONResponse:
    return JSONResponse(status_code=e.status_code, content={"error": e.message})


def _internal_error() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        content={"error": "An unexpected error occurred."})


@router.post("/register/request", summary="Start a passkey registration ceremony")
async def register_request(payload: RegisterRequest, service: BioAuthAsync = Depends(get_auth_service)):
    """
    Issues a challenge bound to a new registration session and returns the
    creation options for `navigator.credentials.create()`.
    """
    try:
        return await service.registration.request(payload.email, payload.name)
    except CeremonyError as e:
        return _error(e)
    except Exception as e:
        logger.error(f"Error during registration request: {e}", exc_info=True)
        return _internal_error()


@router.post("/register/response", summary="Finish a passkey registration ceremony")
async def register_response(payload: RegisterResponse, service: BioAuthAsync = Depends(get_auth_service)):
    """
    Verifies the attestation produced by the authenticator and stores the credential.
    """
    credential = payload.credential
    try:
        try:
            client_data_json = encoding_utils.decode_field(credential.response.clientDataJSON, "clientDataJSON")
            attestation_object = encoding_utils.decode_field(
                credential.response.attestationObject, "attestationObject")
        except InvalidInputError:
            await service.challenges.discard(payload.sessionId)
            raise
        return await service.registration.response(
            session_id=payload.sessionId,
            credential_id=credential.id,
            client_data_json=client_data_json,
            attestation_object=attestation_object,
        )
    except CeremonyError as e:
        logger.info(f"Registration rejected: {e.message}")
        return _error(e)
    except Exception as e:
        logger.error(f"Error during registration response: {e}", exc_info=True)
        return _internal_error()


@router.post("/login/request", summary="Start a passkey login ceremony")
async def login_request(payload: LoginRequest, service: BioAuthAsync = Depends(get_auth_service)):
    """
    Looks up the account by email and issues a challenge for `navigator.credentials.get()`.
    """
    try:
        return await service.authentication.request(payload.email)
    except CeremonyError as e:
        return _error(e)
    except Exception as e:
        logger.error(f"Error during login request: {e}", exc_info=True)
        return _internal_error()


@router.post("/login/response", summary="Finish a passkey login ceremony")
async def login_response(payload: LoginResponse, service: BioAuthAsync = Depends(get_auth_service)):
    """
    Verifies the assertion signature and the signature counter.
    """
    assertion = payload.assertion
    try:
        try:
            client_data_json = encoding_utils.decode_field(assertion.response.clientDataJSON, "clientDataJSON")
            authenticator_data = encoding_utils.decode_field(
                assertion.response.authenticatorData, "authenticatorData")
            signature = encoding_utils.decode_field(assertion.response.signature, "signature")
        except InvalidInputError:
            await service.challenges.discard(payload.sessionId)
            raise
        return await service.authentication.response(
            session_id=payload.sessionId,
            credential_id=assertion.id,
            client_data_json=client_data_json,
            authenticator_data=authenticator_data,
            signature=signature,
        )
    except CeremonyError as e:
        logger.info(f"Login rejected: {e.message}")
        return _error(e)
    except Exception as e:
        logger.error(f"Error during login response: {e}", exc_info=True)
        return _internal_error()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Reports malformed ceremony bodies (bad JSON, wrong field types) as 400 {"error": ...}.
    Other routes of the host application keep FastAPI's default 422 response.
    """
    if request.url.path not in CEREMONY_PATHS:
        return await request_validation_exception_handler(request, exc)

    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if first.get("type") == "json_invalid":
        message = "Invalid JSON body"
    elif first.get("type") == "missing":
        message = f"Missing {field or 'request body'}"
    else:
        message = f"Invalid {field or 'request body'}"
    logger.info(f"Rejected malformed request to {request.url.path}: {message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


ceremony_router = router
CEREMONY_PATHS = frozenset(route.path for route in router.routes)
