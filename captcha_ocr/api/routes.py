from __future__ import annotations

import base64
import binascii
import logging
import re
import time
import uuid
from fastapi import APIRouter, Depends, HTTPException, Request

from captcha_ocr.core.config import settings
from captcha_ocr.core.errors import DecodeError
from captcha_ocr.core.logging import request_id_var
from captcha_ocr.ocr.base_ocr import OCREngine
from captcha_ocr.ocr.factory import get_ocr_engine
from captcha_ocr.pipeline.pipeline import CaptchaPipeline
from captcha_ocr.schemas import ProcessingEventOut, SolveDetailResponse, SolveRequest, SolveResponse

logger = logging.getLogger(__name__)
router = APIRouter()

_DATA_URI_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)


class BadCaptcha(HTTPException):
    def __init__(self, message: str) -> None:
        super().__init__(status_code=400, detail=message)


def get_engine() -> OCREngine:
    return get_ocr_engine()


def decode_base64_image(payload: str) -> bytes:
    """Strip an optional data: URI prefix and decode; ValueError on bad base64."""
    data = _DATA_URI_PREFIX.sub("", payload.strip())
    data = re.sub(r"\s+", "", data)
    data += "=" * (-len(data) % 4)
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"not valid base64: {exc}") from exc


async def _solve(request: Request, payload: SolveRequest, engine: OCREngine) -> SolveDetailResponse:
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    try:
        return await _solve_inner(payload.captcha, engine, request_id)
    finally:
        request_id_var.reset(token)


async def _solve_inner(captcha: str, engine: OCREngine, request_id: str) -> SolveDetailResponse:
    started = time.monotonic()

    logger.info(
        "solve_request_received",
        extra={"captcha_chars": len(captcha)},
    )

    try:
        image_bytes = decode_base64_image(captcha)
    except ValueError as exc:
        raise BadCaptcha(f"Invalid captcha format: {exc}") from exc

    pipeline = CaptchaPipeline.from_settings(engine)
    try:
        solution, events = await pipeline.solve_with_trace(image_bytes, request_id=request_id)
    except DecodeError as exc:
        raise BadCaptcha(f"Invalid captcha image: {exc}") from exc

    processing_ms = int((time.monotonic() - started) * 1000)
    detail = SolveDetailResponse(
        solution=solution.text,
        confidence=round(solution.confidence, 2),
        alternatives=list(solution.alternatives),
        request_id=request_id,
        processing_ms=processing_ms,
        events=[
            ProcessingEventOut(
                step=e.step,
                status=e.status,
                detail=e.detail,
                duration_ms=e.duration_ms,
            )
            for e in events
        ],
    )
    logger.info(
        "solve_request_complete",
        extra={"solution": solution.text, "processing_ms": processing_ms},
    )
    return detail


@router.get("/")
async def root() -> dict[str, bool]:
    return {"ok": True}


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "ocr_provider": settings.ocr_provider}


@router.post("/", response_model=SolveResponse)
async def solve_captcha(
    request: Request, payload: SolveRequest, engine: OCREngine = Depends(get_engine)
) -> SolveResponse:
    detail = await _solve(request, payload, engine)
    return SolveResponse(solution=detail.solution)


@router.post("/solve", response_model=SolveDetailResponse)
async def solve_captcha_detailed(
    request: Request, payload: SolveRequest, engine: OCREngine = Depends(get_engine)
) -> SolveDetailResponse:
    return await _solve(request, payload, engine)
