from __future__ import annotations

from captcha_ocr.core.config import settings
from captcha_ocr.ocr.base_ocr import OCREngine
from captcha_ocr.ocr.mock_ocr import MockOCREngine


def get_ocr_engine(provider: str | None = None) -> OCREngine:
    """Return the configured OCR engine instance.

    OCR_PROVIDER options:
        mock      : scripted results (dev/test, no deps required)
        tesseract : TesseractOCREngine (pip install pytesseract + tesseract binary)
    """
    provider = (provider or settings.ocr_provider).lower().strip()

    if provider == "mock":
        return MockOCREngine()

    if provider == "tesseract":
        from captcha_ocr.ocr.engines import TesseractOCREngine
        return TesseractOCREngine(
            lang=settings.tesseract_lang,
            tesseract_cmd=settings.tesseract_cmd,
            timeout_s=settings.ocr_timeout_s,
            retry_attempts=settings.ocr_retry_attempts,
        )

    raise ValueError(f"Unknown OCR_PROVIDER={provider!r}")
