"""
BioAuth
=======

Passwordless login for FastAPI applications using passkeys (WebAuthn).

- Two-phase registration and login ceremonies with single-use, expiring challenges.
- Attestation object parsing and ES256 (P-256) public key extraction.
- Assertion signature verification and signature counter clone detection.
- Pluggable async challenge and credential stores, in-memory by default.
"""

__version__ = "0.1.0"
__description__ = "Passkey registration and login ceremonies for FastAPI"

from fastapi import FastAPI

from .core.config import settings, init_settings


def init_app(app: FastAPI):
    """
    Attach the ceremony routers (and admin listing, CORS if enabled) to a FastAPI app.
    :param app:
    :return:
    """
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.exceptions import RequestValidationError
    from bioauth.routers import admin_router, ceremony_router, validation_error_handler

    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[settings.WEBAUTHN_ORIGIN],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.include_router(ceremony_router)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    if settings.ADMIN_ROUTES_ENABLED:
        app.include_router(admin_router)

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}


def create_app() -> FastAPI:
    """Build a standalone application serving the ceremonies."""
    app = FastAPI(title=settings.APP_NAME, version=__version__)
    init_app(app)
    return app


__all__ = [
    "settings",
    "init_settings",
    "init_app",
    "create_app",
]
