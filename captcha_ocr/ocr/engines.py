"""TesseractOCREngine: the production OCR primitive, backed by pytesseract."""
from __future__ import annotations

import asyncio
import io
import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_message,
    stop_after_attempt,
    wait_exponential,
)

from captcha_ocr.ocr.base_ocr import OCREngine, OCRResult, SegmentationStrategy, TOKEN_ALPHABET

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Tesseract process timeout"


def build_tesseract_config(
    strategy: SegmentationStrategy,
    whitelist: str,
    dictionary_enabled: bool,
) -> str:
    parts = [f"--psm {strategy.value}"]
    if whitelist:
        parts.append(f"-c tessedit_char_whitelist={whitelist}")
    if not dictionary_enabled:
        # Tokens are not words; the word lists only pull guesses toward English.
        parts.append("-c load_system_dawg=0")
        parts.append("-c load_freq_dawg=0")
    return " ".join(parts)


def parse_tesseract_data(data: dict) -> OCRResult:
    """Collapse ``image_to_data`` output into one text + mean word confidence."""
    words: list[str] = []
    confidences: list[float] = []
    for i, text in enumerate(data.get("text", [])):
        if not str(text).strip():
            continue
        words.append(str(text).strip())
        conf = float(data["conf"][i])
        if conf >= 0:  # -1 means no confidence
            confidences.append(conf)

    avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return OCRResult(text=" ".join(words), confidence=max(0.0, min(100.0, avg_confidence)))


class TesseractOCREngine(OCREngine):
    """OCR engine backed by a local Tesseract binary via pytesseract.

    Install dependency:
        apt install tesseract-ocr   (or brew install tesseract)
        pip install pytesseract

    Config (via .env):
        OCR_PROVIDER=tesseract
        TESSERACT_CMD=/usr/bin/tesseract   # only if not on PATH
        TESSERACT_LANG=eng
        OCR_TIMEOUT_S=10
        OCR_RETRY_ATTEMPTS=2

    Every call spawns its own tesseract process, so no engine state is shared
    between concurrent attempts.
    """

    name = "tesseract"

    def __init__(
        self,
        lang: str = "eng",
        tesseract_cmd: str | None = None,
        timeout_s: float = 10.0,
        retry_attempts: int = 2,
    ) -> None:
        self._lang = lang
        self._timeout_s = timeout_s
        self._retry_attempts = max(1, retry_attempts)
        self._pytesseract = self._load(tesseract_cmd)

    @staticmethod
    def _load(tesseract_cmd: str | None):
        try:
            import pytesseract  # type: ignore[import]
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "pytesseract is not installed. Run: pip install pytesseract"
            ) from exc
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        return pytesseract

    async def recognize_text(
        self,
        image_bytes: bytes,
        strategy: SegmentationStrategy,
        whitelist: str = TOKEN_ALPHABET,
        dictionary_enabled: bool = False,
    ) -> OCRResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._call_tesseract, image_bytes, strategy, whitelist, dictionary_enabled
        )

    def _call_tesseract(
        self,
        image_bytes: bytes,
        strategy: SegmentationStrategy,
        whitelist: str,
        dictionary_enabled: bool,
    ) -> OCRResult:
        from PIL import Image

        config = build_tesseract_config(strategy, whitelist, dictionary_enabled)
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            data = self._image_to_data(img, config)

        result = parse_tesseract_data(data)
        logger.debug(
            "tesseract_complete",
            extra={"psm": strategy.value, "text": result.text, "confidence": round(result.confidence, 2)},
        )
        return result

    def _image_to_data(self, img, config: str) -> dict:
        # pytesseract signals a killed subprocess with a bare RuntimeError;
        # TesseractError (bad language pack, bad config) is permanent.
        caller = retry(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
            retry=retry_if_exception_message(match=TIMEOUT_MESSAGE),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )(self._pytesseract.image_to_data)
        return caller(
            img,
            lang=self._lang,
            config=config,
            output_type=self._pytesseract.Output.DICT,
            timeout=self._timeout_s,
        )
