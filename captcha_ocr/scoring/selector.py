"""Candidate scoring and selection.

The ranking encodes one strong prior: a token of the expected length beats
anything else, whatever its confidence. Confidence only orders candidates
that agree on that, and the attempt sequence number settles exact ties so
the winner never depends on which OCR call finished first.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from captcha_ocr.core.errors import NoViableCandidate
from captcha_ocr.recognition.runner import Attempt

logger = logging.getLogger(__name__)

MIN_LENGTH = 3
EXPECTED_LENGTH = 4
MAX_LENGTH = 6

OVERFLOW_TRUNCATE = "truncate"
OVERFLOW_REJECT = "reject"

_NON_TOKEN = re.compile(r"[^A-Z0-9]")


def clean_text(raw: str) -> str:
    """Uppercase *raw* and drop every character outside A–Z0–9."""
    return _NON_TOKEN.sub("", raw.upper())


@dataclass(frozen=True)
class Candidate:
    cleaned_text: str
    confidence: float
    source_rendering: str
    source_strategy: str
    sequence: int = 0


@dataclass(frozen=True)
class SelectionPolicy:
    min_length: int = MIN_LENGTH
    expected_length: int = EXPECTED_LENGTH
    max_length: int = MAX_LENGTH
    overflow: str = OVERFLOW_TRUNCATE

    def __post_init__(self) -> None:
        if not 1 <= self.min_length <= self.expected_length <= self.max_length:
            raise ValueError(
                "length policy must satisfy 1 <= min_length <= expected_length <= max_length, "
                f"got {self.min_length}/{self.expected_length}/{self.max_length}"
            )
        if self.overflow not in (OVERFLOW_TRUNCATE, OVERFLOW_REJECT):
            raise ValueError(f"Unknown overflow policy {self.overflow!r}")

    def accepts(self, text: str) -> bool:
        return self.min_length <= len(text) <= self.max_length and clean_text(text) == text


class CandidateSelector:
    def __init__(self, policy: SelectionPolicy | None = None) -> None:
        self._policy = policy or SelectionPolicy()

    @property
    def policy(self) -> SelectionPolicy:
        return self._policy

    def candidates(self, attempts: Iterable[Attempt]) -> list[Candidate]:
        """Clean and filter attempts into candidates, absent results skipped."""
        out: list[Candidate] = []
        for attempt in attempts:
            if attempt.result is None:
                continue
            cleaned = clean_text(attempt.result.text)
            if len(cleaned) < self._policy.min_length:
                continue
            if self._policy.overflow == OVERFLOW_REJECT and len(cleaned) > self._policy.max_length:
                continue
            out.append(
                Candidate(
                    cleaned_text=cleaned,
                    confidence=max(0.0, float(attempt.result.confidence)),
                    source_rendering=attempt.rendering,
                    source_strategy=attempt.strategy.label,
                    sequence=attempt.sequence,
                )
            )
        return out

    def rank(self, candidates: Iterable[Candidate]) -> list[Candidate]:
        expected = self._policy.expected_length
        return sorted(
            candidates,
            key=lambda c: (len(c.cleaned_text) != expected, -c.confidence, c.sequence),
        )

    def select(self, attempts: Iterable[Attempt]) -> Candidate:
        """Return the best candidate across every attempt of the request.

        Raises:
            NoViableCandidate: nothing survived cleaning and filtering.
        """
        ranked = self.rank(self.candidates(attempts))
        if not ranked:
            raise NoViableCandidate("No OCR result reached the minimum length")

        winner = ranked[0]
        logger.info(
            "candidates_ranked",
            extra={
                "count": len(ranked),
                "ranking": [f"{c.cleaned_text}({c.confidence:.0f}%)" for c in ranked],
            },
        )

        if len(winner.cleaned_text) > self._policy.max_length:
            truncated = winner.cleaned_text[: self._policy.max_length]
            logger.info(
                "winner_truncated",
                extra={"original": winner.cleaned_text, "truncated": truncated},
            )
            winner = Candidate(
                cleaned_text=truncated,
                confidence=winner.confidence,
                source_rendering=winner.source_rendering,
                source_strategy=winner.source_strategy,
                sequence=winner.sequence,
            )
        return winner
