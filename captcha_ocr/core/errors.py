"""Error taxonomy for the recognition pipeline.

Only ``DecodeError`` escapes ``solve``; the other two are handled inside the
pipeline and degrade to fewer candidates or an empty solution.
"""
from __future__ import annotations


class CaptchaOCRError(Exception):
    """Base class for every error raised by the solver."""


class DecodeError(CaptchaOCRError):
    """The input bytes could not be decoded as an image."""


class AttemptFailure(CaptchaOCRError):
    """One (rendering, strategy) OCR invocation failed or produced nothing usable."""

    def __init__(self, rendering: str, strategy: str, reason: str) -> None:
        super().__init__(f"{rendering}/{strategy}: {reason}")
        self.rendering = rendering
        self.strategy = strategy
        self.reason = reason


class NoViableCandidate(CaptchaOCRError):
    """No attempt produced text long enough to be a token."""
