from __future__ import annotations

from collections.abc import Mapping

from captcha_ocr.ocr.base_ocr import OCREngine, OCRResult, SegmentationStrategy, TOKEN_ALPHABET

_DEFAULT_SCRIPT: dict[SegmentationStrategy, OCRResult] = {
    SegmentationStrategy.SINGLE_WORD: OCRResult(text="AT1K", confidence=92.0),
    SegmentationStrategy.SINGLE_LINE: OCRResult(text="AT1K9", confidence=60.0),
    SegmentationStrategy.SINGLE_BLOCK: OCRResult(text="A T 1 K", confidence=71.5),
    SegmentationStrategy.RAW_LINE: OCRResult(text="", confidence=0.0),
}


class MockOCREngine(OCREngine):
    """Scripted engine for development and tests; ignores the image entirely."""

    name = "mock"

    def __init__(self, script: Mapping[SegmentationStrategy, OCRResult] | None = None) -> None:
        self._script = dict(_DEFAULT_SCRIPT if script is None else script)

    async def recognize_text(
        self,
        image_bytes: bytes,
        strategy: SegmentationStrategy,
        whitelist: str = TOKEN_ALPHABET,
        dictionary_enabled: bool = False,
    ) -> OCRResult:
        return self._script.get(strategy, OCRResult(text="", confidence=0.0))
