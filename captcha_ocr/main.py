from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from captcha_ocr.api.routes import router
from captcha_ocr.core.config import settings
from captcha_ocr.core.logging import configure_logging

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def validation_message(errors) -> str:
    """Translate request validation errors into the service's error strings."""
    for err in errors:
        loc = tuple(err.get("loc", ()))
        kind = err.get("type", "")
        if kind == "json_invalid" or (loc == ("body",) and kind != "missing"):
            return "Request body must be JSON"
        if kind in ("missing", "string_too_short"):
            return "Missing required field: captcha"
        if loc[:2] == ("body", "captcha"):
            return "Invalid captcha format: must be a base64 string"
    return "Invalid request"


def create_app() -> FastAPI:
    configure_logging(settings.log_level, settings.log_format)
    app = FastAPI(title="CAPTCHA OCR Solver", version="0.1.0")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)

    @app.middleware("http")
    async def _payload_limit(request: Request, call_next):
        length = request.headers.get("content-length", "")
        if length.isdigit() and int(length) > settings.max_payload_chars:
            return JSONResponse(status_code=413, content={"error": "Captcha payload too large"})
        return await call_next(request)

    @app.middleware("http")
    async def _access_log(request: Request, call_next):
        t0 = time.monotonic()
        response = await call_next(request)
        logger.info(
            "http_request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": int((time.monotonic() - t0) * 1000),
            },
        )
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            body = {
                "error": "Not Found",
                "message": f"Route {request.method} {request.url.path} not found",
            }
        else:
            body = {"error": str(exc.detail)}
            if _request_id(request):
                body["request_id"] = _request_id(request)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": validation_message(exc.errors())})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("ocr_processing_failed", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={
                "error": "OCR processing failed",
                "message": str(exc),
                "request_id": _request_id(request),
            },
        )

    @app.on_event("startup")
    async def _startup() -> None:
        logger.info(
            "startup",
            extra={
                "ocr_provider": settings.ocr_provider,
                "profiles": settings.profile_names,
                "w_to_v_correction": settings.prefer_v_over_w,
            },
        )

    return app


app = create_app()
