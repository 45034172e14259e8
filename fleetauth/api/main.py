"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Build the FastAPI application (create_app) with metadata and lifespan
  - Configure middleware (request context / X-Request-Id)
  - Mount engine routers under the /v1 prefix
  - Expose the health check

Collaborators:
  - RequestContextMiddleware: Request ID and logging context
  - auth_routes, policy_routes, supervisor_routes, audit_routes
  - container: signing key + demo seed at startup

Constraints:
  - The policy signing key is loaded in the lifespan: a missing or malformed
    key aborts startup (SigningKeyUnavailableError), never a request.
  - Settings are validated in the lifespan, not at import time.

Notes:
  - /healthz follows the Kubernetes health check convention
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from ..application.dev_seed_demo import ensure_dev_demo
from ..container import (
    get_assignment_service,
    get_assignment_store,
    get_credential_store,
    get_identity_directory,
    get_policy_signing_key,
    get_redis_client,
    get_verifier_hasher,
)
from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..crosscutting.middleware import RequestContextMiddleware
from .audit_routes import router as audit_router
from .auth_routes import router as auth_router
from .exception_handlers import register_exception_handlers
from .policy_routes import router as policy_router
from .supervisor_routes import router as supervisor_router

API_PREFIX = "/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle. Validates settings and loads the signing key."""
    settings = get_settings()

    try:
        signing_key = get_policy_signing_key()
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    ensure_dev_demo(
        settings,
        directory=get_identity_directory(),
        credentials=get_credential_store(),
        assignments=get_assignment_store(),
        assignment_service=get_assignment_service(),
        hasher=get_verifier_hasher(),
    )

    logger.info(
        "Fleet auth engine starting up",
        extra={
            "app_env": settings.app_env,
            "policy_kid": signing_key.kid,
            "store_backend": "redis" if settings.redis_url.strip() else "memory",
            "access_ttl_minutes": settings.access_ttl_minutes,
            "lockout_max_attempts": settings.lockout_max_attempts,
        },
    )

    try:
        yield
    finally:
        client = get_redis_client()
        if client is not None:
            client.close()
        logger.info("Fleet auth engine shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Fleet Auth Engine",
        version="0.1.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "auth", "description": "Device + user + PIN sessions (JWT)"},
            {"name": "policy", "description": "Signed device policies (Ed25519)"},
            {"name": "supervisor", "description": "Supervisor override"},
            {"name": "audit", "description": "Audit trail (auditors only)"},
        ],
    )

    app.add_middleware(RequestContextMiddleware)

    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(policy_router, prefix=API_PREFIX)
    app.include_router(supervisor_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)

    register_exception_handlers(app)

    @app.get("/healthz")
    def healthz(request: Request):
        """
        Liveness plus store reachability.

        Returns:
            ok: True if the configured stores answer
            store: "memory", "connected" or "disconnected"
            request_id: Correlation ID for this request
        """
        store_status = "memory"
        client = get_redis_client()
        if client is not None:
            try:
                store_status = "connected" if client.ping() else "disconnected"
            except Exception as e:
                logger.warning("Health check: Redis unavailable", extra={"error": str(e)})
                store_status = "disconnected"

        return {
            "ok": store_status != "disconnected",
            "store": store_status,
            "request_id": getattr(request.state, "request_id", None),
        }

    return app


app = create_app()
