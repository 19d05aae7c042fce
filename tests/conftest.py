"""Shared pytest configuration and fixtures for the solver tests."""
from __future__ import annotations

import io
import os

# Provide env vars before any captcha_ocr module is imported
os.environ.setdefault("OCR_PROVIDER", "mock")
os.environ.setdefault("REQUEST_DEADLINE_S", "10")
os.environ.setdefault("OCR_MAX_WORKERS", "4")

import pytest
from PIL import Image, ImageDraw

from captcha_ocr.ocr.base_ocr import OCREngine, OCRResult, SegmentationStrategy, TOKEN_ALPHABET


def _draw_token(text: str, *, fg: int, bg: int, size=(200, 80)) -> bytes:
    img = Image.new("L", size, color=bg)
    draw = ImageDraw.Draw(img)
    draw.text((40, 30), text, fill=fg)
    # A couple of noise lines, like a real CAPTCHA
    draw.line((0, 10, size[0], size[1] - 10), fill=fg, width=1)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def token_png() -> bytes:
    """Dark text on a white ground."""
    return _draw_token("AT1K", fg=0, bg=255)


@pytest.fixture
def dark_token_png() -> bytes:
    """Light text on a black ground."""
    return _draw_token("AT1K", fg=255, bg=0)


@pytest.fixture
def rgba_png() -> bytes:
    img = Image.new("RGBA", (120, 50), color=(0, 0, 0, 0))
    ImageDraw.Draw(img).text((20, 20), "W0RD", fill=(20, 20, 20, 255))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def corrupt_bytes() -> bytes:
    return b"\x89PNG\r\n\x1a\nthis is not really a png"


class ScriptedOCREngine(OCREngine):
    """Engine driven by a callable ``(image_bytes, strategy) -> OCRResult``."""

    name = "scripted"

    def __init__(self, responder) -> None:
        self._responder = responder
        self.calls: list[SegmentationStrategy] = []

    async def recognize_text(
        self,
        image_bytes: bytes,
        strategy: SegmentationStrategy,
        whitelist: str = TOKEN_ALPHABET,
        dictionary_enabled: bool = False,
    ) -> OCRResult:
        self.calls.append(strategy)
        result = self._responder(image_bytes, strategy)
        if hasattr(result, "__await__"):
            result = await result
        return result


@pytest.fixture
def scripted_engine():
    """Factory: ``scripted_engine({strategy: (text, conf)})`` or a callable."""

    def _make(script) -> ScriptedOCREngine:
        if callable(script):
            return ScriptedOCREngine(script)

        def responder(_image: bytes, strategy: SegmentationStrategy) -> OCRResult:
            text, conf = script.get(strategy, ("", 0.0))
            return OCRResult(text=text, confidence=conf)

        return ScriptedOCREngine(responder)

    return _make
