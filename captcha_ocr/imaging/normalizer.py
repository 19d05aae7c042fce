"""Image normalizer: renders the source image once per distortion profile.

Each profile runs the same chain with different parameters:

    grayscale → blur → linear contrast → autocontrast → upscale/pad
              → binarize → median → unsharp mask

``balanced`` is the general-purpose profile, ``aggressive`` targets heavy
noise and light-on-dark sources, ``light`` barely touches already clean
images. Over-tuning the contrast gain is where a profile starts clipping
thin strokes.
"""
from __future__ import annotations

import io
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from captcha_ocr.core.errors import DecodeError

logger = logging.getLogger(__name__)

WHITE = 255
BLACK = 0


@dataclass(frozen=True)
class RenderProfile:
    id: str
    blur_radius: float
    contrast_gain: float
    canvas: tuple[int, int]
    background: int
    threshold: int
    median_size: int
    sharpen_radius: float
    sharpen_percent: int
    light_on_dark: bool = False


@dataclass(frozen=True)
class RenderingVariant:
    id: str
    image: bytes  # PNG


PROFILES: dict[str, RenderProfile] = {
    "light": RenderProfile(
        id="light",
        blur_radius=0.0,
        contrast_gain=1.0,
        canvas=(1600, 800),
        background=WHITE,
        threshold=128,
        median_size=3,
        sharpen_radius=2.0,
        sharpen_percent=100,
    ),
    "balanced": RenderProfile(
        id="balanced",
        blur_radius=0.3,
        contrast_gain=2.5,
        canvas=(2000, 1000),
        background=WHITE,
        threshold=110,
        median_size=3,
        sharpen_radius=4.0,
        sharpen_percent=300,
    ),
    "aggressive": RenderProfile(
        id="aggressive",
        blur_radius=0.5,
        contrast_gain=3.0,
        canvas=(2000, 1000),
        background=BLACK,
        threshold=110,
        median_size=5,
        sharpen_radius=4.5,
        sharpen_percent=350,
        light_on_dark=True,
    ),
}

DEFAULT_PROFILE_ORDER = ("balanced", "aggressive", "light")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_image(raw: bytes) -> Image.Image:
    """Decode *raw* into a fully loaded PIL image or raise DecodeError."""
    if not raw:
        raise DecodeError("Empty image payload")
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        SyntaxError,  # some Pillow plugins signal corrupt headers this way
        EOFError,
    ) as exc:
        raise DecodeError(f"Cannot decode image: {exc}") from exc
    if img.width == 0 or img.height == 0:
        raise DecodeError("Image has no pixels")
    return img


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Transform steps
# ---------------------------------------------------------------------------

def to_luminance(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        flattened = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        flattened.alpha_composite(rgba)
        img = flattened
    return img.convert("L")


def linear_contrast(img: Image.Image, gain: float, pivot: int = 128) -> Image.Image:
    if gain == 1.0:
        return img
    arr = np.asarray(img, dtype=np.float32)
    out = np.clip(gain * (arr - pivot) + pivot, 0, 255)
    return Image.fromarray(out.astype(np.uint8))


def canvas_size(source: tuple[int, int], target: tuple[int, int]) -> tuple[int, int]:
    """Target canvas, scaled up until it is strictly larger than *source*."""
    factor = max(
        1,
        math.floor(source[0] / target[0]) + 1 if source[0] >= target[0] else 1,
        math.floor(source[1] / target[1]) + 1 if source[1] >= target[1] else 1,
    )
    return target[0] * factor, target[1] * factor


def upscale(img: Image.Image, target: tuple[int, int], background: int) -> Image.Image:
    size = canvas_size(img.size, target)
    return ImageOps.pad(img, size, method=Image.Resampling.LANCZOS, color=background)


def binarize(img: Image.Image, cutoff: int, light_on_dark: bool = False) -> Image.Image:
    """Fixed-cutoff threshold; output is always dark glyphs on a white ground."""
    arr = np.asarray(img)
    above = arr >= cutoff
    if light_on_dark:
        out = np.where(above, BLACK, WHITE)
    else:
        out = np.where(above, WHITE, BLACK)
    return Image.fromarray(out.astype(np.uint8))


def render(img: Image.Image, profile: RenderProfile) -> Image.Image:
    out = to_luminance(img)
    if profile.blur_radius > 0:
        out = out.filter(ImageFilter.GaussianBlur(radius=profile.blur_radius))
    out = linear_contrast(out, profile.contrast_gain)
    out = ImageOps.autocontrast(out)
    out = upscale(out, profile.canvas, profile.background)
    out = binarize(out, profile.threshold, profile.light_on_dark)
    if profile.median_size > 1:
        out = out.filter(ImageFilter.MedianFilter(size=profile.median_size))
    # With threshold=0 on a 0/255 image every pixel clips back to its input value.
    out = out.filter(
        ImageFilter.UnsharpMask(
            radius=profile.sharpen_radius, percent=profile.sharpen_percent, threshold=0
        )
    )
    return out


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class ImageNormalizer:
    def __init__(self, profiles: Sequence[str] = DEFAULT_PROFILE_ORDER) -> None:
        unknown = [p for p in profiles if p not in PROFILES]
        if unknown:
            raise ValueError(f"Unknown rendering profile(s): {', '.join(unknown)}")
        if not profiles:
            raise ValueError("At least one rendering profile is required")
        self._profiles = [PROFILES[p] for p in profiles]

    def normalize(self, raw: bytes) -> list[RenderingVariant]:
        """Render *raw* with every configured profile.

        Raises:
            DecodeError: *raw* is not an image, or not even the fallback
                rendering could be produced.
        """
        source = decode_image(raw)
        logger.info(
            "image_decoded",
            extra={"width": source.width, "height": source.height, "mode": source.mode},
        )

        variants: list[RenderingVariant] = []
        for profile in self._profiles:
            try:
                rendered = render(source, profile)
                variants.append(RenderingVariant(id=profile.id, image=encode_png(rendered)))
            except Exception as exc:
                logger.warning(
                    "rendering_failed",
                    extra={"profile": profile.id, "error": str(exc)},
                )

        if not variants:
            variants.append(self._fallback(source))

        logger.info("renderings_ready", extra={"profiles": [v.id for v in variants]})
        return variants

    @staticmethod
    def _fallback(source: Image.Image) -> RenderingVariant:
        try:
            return RenderingVariant(id="light", image=encode_png(to_luminance(source)))
        except Exception as exc:
            raise DecodeError(f"No rendering could be produced: {exc}") from exc
