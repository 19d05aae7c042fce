"""Recognition pipeline: normalize → recognize → select → correct.

- Stateless between requests: every call builds its own renderings and attempts
- Trace: every step is timed and recorded as a ProcessingEvent
- Only DecodeError escapes; no viable candidate yields an empty Solution
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass

from captcha_ocr.core.config import Settings, settings
from captcha_ocr.core.errors import DecodeError, NoViableCandidate
from captcha_ocr.core.logging import request_id_var
from captcha_ocr.correction.corrector import ConfusionCorrector, Solution
from captcha_ocr.debug.artifacts import DebugArtifactWriter
from captcha_ocr.imaging.normalizer import ImageNormalizer
from captcha_ocr.ocr.base_ocr import OCREngine
from captcha_ocr.recognition.runner import AttemptRunner
from captcha_ocr.scoring.selector import CandidateSelector, SelectionPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessingEvent:
    step: str
    status: str
    detail: str | None = None
    duration_ms: int | None = None


class CaptchaPipeline:
    def __init__(
        self,
        ocr_engine: OCREngine,
        *,
        normalizer: ImageNormalizer | None = None,
        policy: SelectionPolicy | None = None,
        prefer_v_over_w: bool = True,
        max_workers: int = 4,
        deadline_s: float | None = None,
        artifacts: DebugArtifactWriter | None = None,
    ) -> None:
        self._normalizer = normalizer or ImageNormalizer()
        self._runner = AttemptRunner(ocr_engine, max_workers=max_workers)
        self._selector = CandidateSelector(policy)
        self._corrector = ConfusionCorrector(self._selector.policy, prefer_v_over_w=prefer_v_over_w)
        self._deadline_s = deadline_s
        self._artifacts = artifacts

    @classmethod
    def from_settings(cls, ocr_engine: OCREngine, cfg: Settings | None = None) -> CaptchaPipeline:
        cfg = cfg or settings
        return cls(
            ocr_engine,
            normalizer=ImageNormalizer(cfg.profile_names),
            policy=SelectionPolicy(
                min_length=cfg.min_length,
                expected_length=cfg.expected_length,
                max_length=cfg.max_length,
                overflow=cfg.overflow_policy,
            ),
            prefer_v_over_w=cfg.prefer_v_over_w,
            max_workers=cfg.ocr_max_workers,
            deadline_s=cfg.request_deadline_s,
            artifacts=DebugArtifactWriter(cfg.debug_dir) if cfg.debug_dir else None,
        )

    # ------------------------------------------------------------------ #
    #  Public entry points                                                 #
    # ------------------------------------------------------------------ #

    async def solve(self, image_bytes: bytes, request_id: str | None = None) -> Solution:
        solution, _ = await self.solve_with_trace(image_bytes, request_id=request_id)
        return solution

    async def solve_with_trace(
        self, image_bytes: bytes, request_id: str | None = None
    ) -> tuple[Solution, list[ProcessingEvent]]:
        request_id = request_id or uuid.uuid4().hex[:8]
        token = request_id_var.set(request_id)
        events: list[ProcessingEvent] = []
        started = time.monotonic()
        try:
            # ── Step 1: Renderings ──────────────────────────────────────
            variants = await self._run_step(
                events,
                step="normalize",
                coro=asyncio.to_thread(self._normalizer.normalize, image_bytes),
            )
            if self._artifacts is not None:
                await asyncio.to_thread(self._artifacts.write_renderings, request_id, variants)

            # ── Step 2: OCR fan-out ─────────────────────────────────────
            deadline_s = self._remaining(started)
            attempts = await self._run_step(
                events,
                step="recognize",
                coro=self._runner.run(variants, deadline_s=deadline_s),
            )
            usable = sum(1 for a in attempts if a.result is not None)
            events.append(
                ProcessingEvent(
                    step="attempts",
                    status="completed",
                    detail=f"{usable}/{len(variants) * len(self._runner.strategies)} usable",
                )
            )

            # ── Step 3: Selection ───────────────────────────────────────
            try:
                winner = self._selector.select(attempts)
            except NoViableCandidate as exc:
                events.append(ProcessingEvent(step="select", status="empty", detail=str(exc)))
                logger.info("no_viable_candidate", extra={"attempts": len(attempts)})
                return Solution.empty(), events
            events.append(
                ProcessingEvent(
                    step="select",
                    status="completed",
                    detail=f"{winner.cleaned_text} via {winner.source_rendering}/{winner.source_strategy}",
                )
            )

            # ── Step 4: Confusion correction ───────────────────────────
            solution = self._corrector.correct(winner)
            events.append(
                ProcessingEvent(
                    step="correct",
                    status="completed",
                    detail=f"text={solution.text} alternatives={len(solution.alternatives)}",
                )
            )

            logger.info(
                "solve_complete",
                extra={
                    "solution": solution.text,
                    "confidence": round(solution.confidence, 1),
                    "rendering": winner.source_rendering,
                    "strategy": winner.source_strategy,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )
            return solution, events

        except DecodeError:
            logger.warning("solve_failed_decode")
            raise
        finally:
            request_id_var.reset(token)

    # ------------------------------------------------------------------ #
    #  Helpers                                                             #
    # ------------------------------------------------------------------ #

    def _remaining(self, started: float) -> float | None:
        if self._deadline_s is None:
            return None
        return max(0.0, self._deadline_s - (time.monotonic() - started))

    async def _run_step(self, events: list[ProcessingEvent], *, step: str, coro):
        """Await *coro*, recording a timed ProcessingEvent either way."""
        t0 = time.monotonic()
        try:
            result = await coro
        except Exception as exc:
            events.append(
                ProcessingEvent(
                    step=step,
                    status="failed",
                    detail=str(exc),
                    duration_ms=int((time.monotonic() - t0) * 1000),
                )
            )
            raise
        events.append(
            ProcessingEvent(
                step=step,
                status="completed",
                duration_ms=int((time.monotonic() - t0) * 1000),
            )
        )
        return result


async def solve(image_bytes: bytes, engine: OCREngine | None = None) -> Solution:
    """Solve one CAPTCHA image with the configured engine and settings."""
    if engine is None:
        from captcha_ocr.ocr.factory import get_ocr_engine
        engine = get_ocr_engine()
    return await CaptchaPipeline.from_settings(engine).solve(image_bytes)
