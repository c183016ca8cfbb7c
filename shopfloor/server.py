"""
FastAPI HTTP server for the shopfloor service.

Exposes:
- POST /api/itineraries - generate, normalize and store an itinerary for a part
- GET /api/parts/{part_id}/itinerary - most recent itinerary for a part
- GET /health - health check

Both itinerary endpoints require an Authorization header; the credential is
forwarded to the inventory/persistence backend and not interpreted here.
"""

import logging
import sys
from functools import lru_cache
from typing import Callable, Optional, Union

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .errors import ItineraryError, MissingCredential
from .models import GenerateItineraryRequest, GenerateItineraryResponse, LatestItineraryResponse
from .orchestrator import latest_itinerary, run_itinerary_pipeline
from .rest import RestShopClient
from .store import InMemoryShop
from .world import build_demo_shop

logger = logging.getLogger(__name__)

Backend = Union[InMemoryShop, RestShopClient]
BackendFactory = Callable[[Settings, str], Backend]


@lru_cache(maxsize=1)
def _demo_shop() -> InMemoryShop:
    logger.info("no SHOP_REST_URL configured; using in-memory demo shop")
    return build_demo_shop()


def default_backend_factory(settings: Settings, credential: str) -> Backend:
    """REST backend when configured, otherwise the shared demo shop."""
    if settings.uses_rest_backend:
        return RestShopClient(settings, credential)
    return _demo_shop()


def _close(backend: Backend) -> None:
    close = getattr(backend, "close", None)
    if close is not None:
        close()


def _require_credential(authorization: Optional[str]) -> str:
    if not authorization or not authorization.strip():
        raise MissingCredential("Authorization header missing")
    return authorization.strip()


def create_app(
    settings: Optional[Settings] = None,
    backend_factory: Optional[BackendFactory] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Runtime configuration; read from the environment if omitted
        backend_factory: Builds the inventory/store backend for a credential

    Returns:
        Configured FastAPI app
    """
    settings = settings or load_settings()
    backend_factory = backend_factory or default_backend_factory

    app = FastAPI(
        title="Shopfloor API",
        description="Machine shop inventory and machining itinerary generation",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.backend_factory = backend_factory

    logger.info("CORS allow_origins = %r", settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ItineraryError)
    def itinerary_error_handler(request: Request, exc: ItineraryError) -> JSONResponse:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = jsonable_errors(exc)
        message = "Part ID is required" if _is_part_id_error(exc) else "Invalid request body"
        return JSONResponse(status_code=400, content={"error": message, "details": errors})

    @app.exception_handler(Exception)
    def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "An unexpected error occurred", "details": {"message": str(exc)}},
        )

    @app.post("/api/itineraries")
    def generate_itinerary(
        req: GenerateItineraryRequest,
        authorization: Optional[str] = Header(default=None),
    ) -> dict:
        """
        Generate a machining itinerary for a part.

        Returns:
            {success: true, itinerary: {...}} on success; {error, details?}
            with a non-2xx status on failure
        """
        logger.info("POST /api/itineraries part_id=%s", req.part_id)
        credential = _require_credential(authorization)

        backend = app.state.backend_factory(app.state.settings, credential)
        try:
            itinerary = run_itinerary_pipeline(req.part_id, backend, backend, app.state.settings)
        finally:
            _close(backend)

        return GenerateItineraryResponse(itinerary=itinerary).model_dump(mode="json")

    @app.get("/api/parts/{part_id}/itinerary")
    def get_latest_itinerary(
        part_id: str,
        authorization: Optional[str] = Header(default=None),
    ) -> dict:
        """Most recent itinerary for a part, or {"itinerary": null}."""
        credential = _require_credential(authorization)

        backend = app.state.backend_factory(app.state.settings, credential)
        try:
            itinerary = latest_itinerary(part_id, backend)
        finally:
            _close(backend)

        return LatestItineraryResponse(itinerary=itinerary).model_dump(mode="json")

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors reduced to JSON-safe fields."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def _is_part_id_error(exc: RequestValidationError) -> bool:
    """True when every error is a missing/empty part_id or an absent body."""
    errors = exc.errors()
    for err in errors:
        loc = tuple(err.get("loc", ()))
        if loc[-1:] in (("part_id",), ("partId",)):
            continue
        if loc == ("body",) and err.get("type") == "missing":
            continue
        return False
    return bool(errors)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
        force=True,
    )


def build_default_app() -> FastAPI:
    """Entry point for ASGI servers: `uvicorn shopfloor.server:build_default_app --factory`."""
    settings = load_settings()
    configure_logging(settings.log_level)
    return create_app(settings)
