from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from beacon.api.router import api_router, system_router
from beacon.core.errors import AppError, AuthenticationError, error_payload
from beacon.core.logging import setup_logging
from beacon.core.rate_limit import rate_limiter
from beacon.core.request_id import REQUEST_ID_HEADER, ensure_request_id, get_request_id, set_request_id
from beacon.core.settings import settings

"""
Application FastAPI (entrypoint).

Rôle (fonctionnel) :
- Configure l’application (settings, CORS, middlewares, routers).
- Observabilité :
  - request_id propagé (X-Request-Id)
  - logs JSON (timing, status, client_ip)
  - seuil de “slow request”
- Rate-limit optionnel sur les routes d’ingestion.
- Toutes les erreurs sortent au format error_payload :
  - AppError (taxonomie du cœur) -> son status / code,
  - validation FastAPI -> 400 VALIDATION_ERROR,
  - exception non gérée -> 500 INTERNAL_ERROR (stacktrace en log uniquement).

Ce fichier ne contient pas de logique métier (voir beacon.services).
"""


class UTF8JSONResponse(JSONResponse):
    media_type = "application/json; charset=utf-8"


settings.validate_for_runtime()
setup_logging(settings.LOG_LEVEL)

log = logging.getLogger("beacon")
http_log = logging.getLogger("beacon.http")

SLOW_MS = int(settings.SLOW_REQUEST_MS)


def _split_origins(value: str) -> list[str]:
    if not value:
        return []
    return [o.strip() for o in value.split(",") if o.strip()]


def _rid(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid.uuid4())


def _error_response(request: Request, *, status: int, code: str, message: str, details=None) -> UTF8JSONResponse:
    response = UTF8JSONResponse(
        status_code=status,
        content=error_payload(code=code, message=message, status=status, request_id=_rid(request), details=details),
    )
    if status == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    default_response_class=UTF8JSONResponse,
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=_split_origins(settings.CORS_ORIGINS),
    allow_credentials=False,  # API sans cookies (bearer / clé API)
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key", REQUEST_ID_HEADER],
)

# --- Routers ---
app.include_router(system_router)
app.include_router(api_router)


# --- Middleware rate-limit (ingestion) ---
@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    if request.method == "OPTIONS":
        return await call_next(request)

    try:
        rate_limiter.check(request)
    except AppError as exc:
        return _error_response(
            request, status=exc.status_code, code=exc.code, message=exc.message, details=exc.details
        )

    return await call_next(request)


# --- Middleware observabilité : request_id + timing + logs structurés ---
# Déclaré en dernier : il enveloppe les autres middlewares (le 429 porte aussi un request_id)
@app.middleware("http")
async def request_observability(request: Request, call_next):
    rid = ensure_request_id(request.headers.get(REQUEST_ID_HEADER))
    request.state.request_id = rid

    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        duration_ms = int((time.perf_counter() - start) * 1000)

        if response is not None:
            response.headers[REQUEST_ID_HEADER] = rid

        level = logging.WARNING if duration_ms >= SLOW_MS else logging.INFO
        http_log.log(
            level,
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": getattr(response, "status_code", None),
                "duration_ms": duration_ms,
                "client_ip": request.client.host if request.client else None,
            },
        )

        set_request_id(None)


# --- Error handlers : format standard, pas de stacktrace côté client ---
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    extra = {"error_code": exc.code, "path": request.url.path, "status_code": exc.status_code}
    if exc.status_code >= 500:
        log.error("app error: %s", exc.message, exc_info=exc.__cause__ or exc, extra=extra)
    elif isinstance(exc, AuthenticationError):
        log.info("authentication refused (%s)", exc.reason.value, extra=extra)
    else:
        log.info("app error: %s", exc.message, extra=extra)

    return _error_response(
        request, status=exc.status_code, code=exc.code, message=exc.message, details=exc.details
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Erreurs HTTP natives (404 de route, 405…)."""
    code = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}.get(exc.status_code, "HTTP_ERROR")
    return _error_response(request, status=exc.status_code, code=code, message=str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Entrée mal formée -> 400 (détails simplifiés : loc / msg / type)."""
    details = [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return _error_response(
        request, status=400, code="VALIDATION_ERROR", message="Requête invalide", details=details
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error: %s", exc, extra={"error_code": "INTERNAL_ERROR", "path": request.url.path})
    return _error_response(request, status=500, code="INTERNAL_ERROR", message="Erreur interne du serveur")
