from __future__ import annotations

import enum
import string
from dataclasses import dataclass

TOKEN_ALPHABET = string.ascii_uppercase + string.digits


class SegmentationStrategy(enum.Enum):
    """Page-segmentation hint handed to the engine; value is the Tesseract PSM."""

    SINGLE_WORD = 8
    SINGLE_LINE = 7
    SINGLE_BLOCK = 6
    RAW_LINE = 13

    @property
    def label(self) -> str:
        return self.name.lower()


# Order is only a tie-break hint for the selector.
STRATEGY_ORDER: tuple[SegmentationStrategy, ...] = (
    SegmentationStrategy.SINGLE_WORD,
    SegmentationStrategy.SINGLE_LINE,
    SegmentationStrategy.SINGLE_BLOCK,
    SegmentationStrategy.RAW_LINE,
)


@dataclass(frozen=True)
class OCRResult:
    text: str
    confidence: float  # 0.0 to 100.0


class OCREngine:
    name = "base"

    async def recognize_text(
        self,
        image_bytes: bytes,
        strategy: SegmentationStrategy,
        whitelist: str = TOKEN_ALPHABET,
        dictionary_enabled: bool = False,
    ) -> OCRResult:
        raise NotImplementedError
