from __future__ import annotations

import logging
from pathlib import Path

from captcha_ocr.imaging.normalizer import RenderingVariant

logger = logging.getLogger(__name__)


class DebugArtifactWriter:
    """Writes each rendering to ``debug-<request_id>-<variant>.png``.

    Failures are logged and swallowed; a full disk must not fail a solve.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path_for(self, request_id: str, variant_id: str) -> Path:
        return self._directory / f"debug-{request_id}-{variant_id}.png"

    def write_renderings(self, request_id: str, variants: list[RenderingVariant]) -> list[Path]:
        written: list[Path] = []
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("debug_dir_unavailable", extra={"path": str(self._directory), "error": str(exc)})
            return written

        for variant in variants:
            path = self.path_for(request_id, variant.id)
            try:
                path.write_bytes(variant.image)
            except OSError as exc:
                logger.warning("debug_write_failed", extra={"path": str(path), "error": str(exc)})
                continue
            written.append(path)

        if written:
            logger.info("debug_renderings_saved", extra={"paths": [str(p) for p in written]})
        return written
