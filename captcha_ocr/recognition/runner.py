"""Recognition attempt runner.

Fans every (rendering, strategy) pair out as its own asyncio task. A bounded
semaphore caps how many engine calls are in flight at once; a failed or
cancelled attempt is recorded as absent and never takes its siblings down.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from captcha_ocr.core.errors import AttemptFailure
from captcha_ocr.imaging.normalizer import RenderingVariant
from captcha_ocr.ocr.base_ocr import (
    OCREngine,
    OCRResult,
    SegmentationStrategy,
    STRATEGY_ORDER,
    TOKEN_ALPHABET,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attempt:
    rendering: str
    strategy: SegmentationStrategy
    result: OCRResult | None
    sequence: int  # deterministic first-seen order, not completion order
    duration_ms: int = 0


class AttemptRunner:
    def __init__(
        self,
        engine: OCREngine,
        *,
        max_workers: int = 4,
        strategies: Sequence[SegmentationStrategy] = STRATEGY_ORDER,
        whitelist: str = TOKEN_ALPHABET,
    ) -> None:
        self._engine = engine
        self._max_workers = max(1, max_workers)
        self._strategies = tuple(strategies)
        self._whitelist = whitelist

    @property
    def strategies(self) -> tuple[SegmentationStrategy, ...]:
        return self._strategies

    # ------------------------------------------------------------------ #
    #  Single rendering                                                    #
    # ------------------------------------------------------------------ #

    async def recognize(
        self, variant: RenderingVariant
    ) -> list[tuple[SegmentationStrategy, OCRResult | None]]:
        """Run every strategy against one rendering, in strategy order."""
        attempts = await self.run([variant])
        return [(a.strategy, a.result) for a in attempts]

    # ------------------------------------------------------------------ #
    #  Whole request                                                       #
    # ------------------------------------------------------------------ #

    async def run(
        self,
        variants: Sequence[RenderingVariant],
        deadline_s: float | None = None,
    ) -> list[Attempt]:
        """Run all renderings × strategies and return attempts in sequence order.

        On *deadline_s* expiry, unfinished attempts are cancelled and left out
        of the returned list.
        """
        slots = asyncio.Semaphore(self._max_workers)
        tasks: list[asyncio.Task[Attempt]] = []
        for r_idx, variant in enumerate(variants):
            for s_idx, strategy in enumerate(self._strategies):
                sequence = r_idx * len(self._strategies) + s_idx
                tasks.append(
                    asyncio.create_task(self._attempt(slots, variant, strategy, sequence))
                )

        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks, timeout=deadline_s)
        if pending:
            logger.warning(
                "attempts_abandoned_on_deadline",
                extra={"pending": len(pending), "completed": len(done), "deadline_s": deadline_s},
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        attempts = [t.result() for t in done if not t.cancelled()]
        attempts.sort(key=lambda a: a.sequence)
        return attempts

    async def _attempt(
        self,
        slots: asyncio.Semaphore,
        variant: RenderingVariant,
        strategy: SegmentationStrategy,
        sequence: int,
    ) -> Attempt:
        async with slots:
            t0 = time.monotonic()
            try:
                result = await self._engine.recognize_text(
                    variant.image,
                    strategy,
                    whitelist=self._whitelist,
                    dictionary_enabled=False,
                )
                if not result.text.strip():
                    raise AttemptFailure(variant.id, strategy.label, "empty text")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                failure = exc if isinstance(exc, AttemptFailure) else AttemptFailure(
                    variant.id, strategy.label, f"{type(exc).__name__}: {exc}"
                )
                logger.warning(
                    "ocr_attempt_failed",
                    extra={
                        "rendering": failure.rendering,
                        "strategy": failure.strategy,
                        "reason": failure.reason,
                    },
                )
                result = None
            duration_ms = int((time.monotonic() - t0) * 1000)

        if result is not None:
            logger.info(
                "ocr_attempt_complete",
                extra={
                    "rendering": variant.id,
                    "strategy": strategy.label,
                    "raw_text": result.text,
                    "confidence": round(result.confidence, 1),
                    "duration_ms": duration_ms,
                },
            )
        return Attempt(
            rendering=variant.id,
            strategy=strategy,
            result=result,
            sequence=sequence,
            duration_ms=duration_ms,
        )
