"""Application factory wiring the approval and administration routes."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .accounts import AccountRemover
from .config import Settings, load_settings
from .database import Database
from .directory import Directory, SupabaseDirectory
from .errors import ServiceError
from .mailer import Mailer, ResendMailer
from .permissions import AccessPolicy
from .profiles import ProfileBootstrapper
from .profiles import create_router as create_profiles_router
from .registration import RegistrationApprovalService
from .registration import create_router as create_registration_router
from .security import BearerAuth
from .tokens import DecisionSigner
from .user_admin import UserAdminService
from .user_admin import create_router as create_user_admin_router

logger = logging.getLogger("orgadmin.service")

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error(_request: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse({"error": _validation_message(exc)}, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(
    *,
    settings: Optional[Settings] = None,
    directory: Optional[Directory] = None,
    mailer: Optional[Mailer] = None,
    database: Optional[Database] = None,
    signer: Optional[DecisionSigner] = None,
    policy: Optional[AccessPolicy] = None,
) -> FastAPI:
    """Create the ASGI application, building any collaborator not supplied."""

    if settings is None:
        settings = load_settings()
    if directory is None:
        directory = SupabaseDirectory.from_settings(settings.supabase_url, settings.service_role_key)
    if mailer is None:
        mailer = ResendMailer(
            settings.resend_api_key,
            settings.sender,
            base_url=settings.resend_api_url,
            timeout=settings.email_timeout,
        )
    if database is None:
        database = Database(settings.database_path)
    database.initialize()
    if signer is None:
        signer = DecisionSigner(settings.decision_secret, ttl=timedelta(hours=settings.decision_ttl_hours))
    if policy is None:
        policy = AccessPolicy()

    remover = AccountRemover(directory, database, profile_attempts=settings.profile_delete_attempts)
    auth = BearerAuth(directory)
    registration = RegistrationApprovalService(
        directory=directory,
        mailer=mailer,
        database=database,
        signer=signer,
        remover=remover,
        management_mailbox=settings.management_mailbox,
        public_base_url=settings.public_base_url,
    )
    user_admin = UserAdminService(directory=directory, remover=remover, policy=policy)
    bootstrapper = ProfileBootstrapper(directory=directory, database=database, registration=registration)

    app = FastAPI(
        title="Organisation Admin Service",
        description="Registration approval and user administration",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=CORS_ALLOW_HEADERS,
    )
    _install_error_handlers(app)

    app.state.settings = settings
    app.state.database = database
    app.state.directory = directory
    app.state.registration = registration
    app.state.user_admin = user_admin
    app.state.remover = remover

    app.include_router(create_registration_router(registration))
    app.include_router(create_user_admin_router(user_admin, auth))
    app.include_router(create_profiles_router(bootstrapper, auth))

    @app.get("/")
    def root():
        return {"ok": True}

    return app


__all__ = ["create_app"]
