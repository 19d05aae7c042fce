from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType

from captcha_ocr.scoring.selector import Candidate, SelectionPolicy

logger = logging.getLogger(__name__)

# Glyph pairs the engine commonly swaps. Symmetric: every key is also listed
# under each of its alternatives.
CONFUSION_TABLE: MappingProxyType[str, tuple[str, ...]] = MappingProxyType({
    "W": ("V",),
    "V": ("W",),
    "O": ("0",),
    "0": ("O",),
    "I": ("1",),
    "1": ("I",),
    "S": ("5",),
    "5": ("S",),
    "B": ("8",),
    "8": ("B",),
    "Z": ("2",),
    "2": ("Z",),
})


@dataclass(frozen=True)
class Solution:
    text: str
    confidence: float
    alternatives: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> Solution:
        return cls(text="", confidence=0.0, alternatives=())


def confusion_variants(text: str) -> list[str]:
    """Replace every occurrence of one confusable glyph at a time.

    One variant per (glyph, alternative) pair, in order of the glyph's first
    appearance in *text*; never a cross-product over positions.
    """
    variants: list[str] = []
    seen_keys: list[str] = []
    for ch in text:
        if ch in CONFUSION_TABLE and ch not in seen_keys:
            seen_keys.append(ch)
    for key in seen_keys:
        for alt in CONFUSION_TABLE[key]:
            variants.append(text.replace(key, alt))
    return variants


class ConfusionCorrector:
    def __init__(
        self,
        policy: SelectionPolicy | None = None,
        *,
        prefer_v_over_w: bool = True,
    ) -> None:
        self._policy = policy or SelectionPolicy()
        self._prefer_v_over_w = prefer_v_over_w

    def correct(self, winner: Candidate) -> Solution:
        original = winner.cleaned_text
        alternatives = self._alternatives(original)

        text = original
        if self._prefer_v_over_w and self._w_to_v_applies(original, alternatives):
            text = original.replace("W", "V")
            # V is far more common than W in the token alphabet.
            logger.info("w_to_v_correction", extra={"original": original, "corrected": text})

        final_alternatives = [a for a in alternatives if a != text]
        if text != original and original not in final_alternatives:
            final_alternatives.insert(0, original)

        return Solution(
            text=text,
            confidence=winner.confidence,
            alternatives=tuple(final_alternatives),
        )

    def _alternatives(self, text: str) -> list[str]:
        out: list[str] = []
        for variant in confusion_variants(text):
            if variant == text or variant in out:
                continue
            if not self._policy.accepts(variant):
                continue
            out.append(variant)
        return out

    def _w_to_v_applies(self, text: str, alternatives: list[str]) -> bool:
        return (
            "W" in text
            and len(text) == self._policy.expected_length
            and text.replace("W", "V") in alternatives
        )
