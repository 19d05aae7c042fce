"""OCR engine tests: fully mocked, no tesseract binary required."""
from __future__ import annotations

import pytest

from captcha_ocr.ocr.base_ocr import OCREngine, OCRResult, SegmentationStrategy, STRATEGY_ORDER
from captcha_ocr.ocr.engines import (
    TesseractOCREngine,
    build_tesseract_config,
    parse_tesseract_data,
)
from captcha_ocr.ocr.mock_ocr import MockOCREngine


# ---------------------------------------------------------------------------
# Base OCREngine
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_base_ocr_raises_not_implemented() -> None:
    engine = OCREngine()
    with pytest.raises(NotImplementedError):
        await engine.recognize_text(b"fake bytes", SegmentationStrategy.SINGLE_WORD)


def test_strategy_order_and_psm_values() -> None:
    assert STRATEGY_ORDER == (
        SegmentationStrategy.SINGLE_WORD,
        SegmentationStrategy.SINGLE_LINE,
        SegmentationStrategy.SINGLE_BLOCK,
        SegmentationStrategy.RAW_LINE,
    )
    assert [s.value for s in STRATEGY_ORDER] == [8, 7, 6, 13]


# ---------------------------------------------------------------------------
# MockOCREngine
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_mock_ocr_returns_result() -> None:
    engine = MockOCREngine()
    result = await engine.recognize_text(b"any bytes", SegmentationStrategy.SINGLE_WORD)
    assert isinstance(result, OCRResult)
    assert result.text == "AT1K"
    assert 0.0 <= result.confidence <= 100.0


@pytest.mark.asyncio
async def test_mock_ocr_follows_custom_script() -> None:
    engine = MockOCREngine({SegmentationStrategy.RAW_LINE: OCRResult("XY12", 55.0)})
    assert (await engine.recognize_text(b"", SegmentationStrategy.RAW_LINE)).text == "XY12"
    assert (await engine.recognize_text(b"", SegmentationStrategy.SINGLE_WORD)).text == ""


# ---------------------------------------------------------------------------
# Tesseract helpers
# ---------------------------------------------------------------------------

def test_tesseract_config_disables_dictionaries() -> None:
    config = build_tesseract_config(SegmentationStrategy.SINGLE_WORD, "AB12", dictionary_enabled=False)
    assert config.startswith("--psm 8")
    assert "tessedit_char_whitelist=AB12" in config
    assert "load_system_dawg=0" in config
    assert "load_freq_dawg=0" in config


def test_tesseract_config_keeps_dictionaries_when_asked() -> None:
    config = build_tesseract_config(SegmentationStrategy.RAW_LINE, "AB12", dictionary_enabled=True)
    assert config.startswith("--psm 13")
    assert "dawg" not in config


def test_parse_tesseract_data_averages_word_confidence() -> None:
    data = {
        "text": ["", "AT", " ", "1K", "X"],
        "conf": [-1, 90, -1, "80", -1],
    }
    result = parse_tesseract_data(data)
    assert result.text == "AT 1K X"
    assert result.confidence == pytest.approx(85.0)


def test_parse_tesseract_data_empty() -> None:
    assert parse_tesseract_data({"text": [], "conf": []}) == OCRResult(text="", confidence=0.0)


# ---------------------------------------------------------------------------
# TesseractOCREngine (pytesseract patched)
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_tesseract_engine_calls_image_to_data(token_png: bytes, monkeypatch) -> None:
    import pytesseract

    seen: dict = {}

    def fake_image_to_data(image, lang, config, output_type, timeout):
        seen.update(lang=lang, config=config, size=image.size, timeout=timeout)
        return {"text": ["W0RD"], "conf": [91.5]}

    monkeypatch.setattr(pytesseract, "image_to_data", fake_image_to_data)
    engine = TesseractOCREngine(lang="eng", timeout_s=3.0)
    result = await engine.recognize_text(token_png, SegmentationStrategy.SINGLE_LINE)

    assert result == OCRResult(text="W0RD", confidence=91.5)
    assert seen["config"].startswith("--psm 7")
    assert seen["lang"] == "eng"
    assert seen["timeout"] == 3.0
    assert seen["size"] == (200, 80)


@pytest.mark.asyncio
async def test_tesseract_engine_retries_timeouts(token_png: bytes, monkeypatch) -> None:
    import pytesseract

    calls = {"n": 0}

    def flaky(image, lang, config, output_type, timeout):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("Tesseract process timeout")
        return {"text": ["AB12"], "conf": [70]}

    monkeypatch.setattr(pytesseract, "image_to_data", flaky)
    engine = TesseractOCREngine(retry_attempts=2)
    result = await engine.recognize_text(token_png, SegmentationStrategy.SINGLE_WORD)
    assert result.text == "AB12"
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_tesseract_engine_gives_up_after_retries(token_png: bytes, monkeypatch) -> None:
    import pytesseract

    def always_timeout(image, lang, config, output_type, timeout):
        raise RuntimeError("Tesseract process timeout")

    monkeypatch.setattr(pytesseract, "image_to_data", always_timeout)
    engine = TesseractOCREngine(retry_attempts=1)
    with pytest.raises(RuntimeError, match="timeout"):
        await engine.recognize_text(token_png, SegmentationStrategy.SINGLE_WORD)


@pytest.mark.asyncio
async def test_tesseract_engine_does_not_retry_tesseract_errors(token_png: bytes, monkeypatch) -> None:
    import pytesseract

    calls = {"n": 0}

    def missing_language(image, lang, config, output_type, timeout):
        calls["n"] += 1
        raise pytesseract.TesseractError(1, "Failed loading language 'xyz'")

    monkeypatch.setattr(pytesseract, "image_to_data", missing_language)
    engine = TesseractOCREngine(lang="xyz", retry_attempts=3)
    with pytest.raises(pytesseract.TesseractError):
        await engine.recognize_text(token_png, SegmentationStrategy.SINGLE_WORD)
    assert calls["n"] == 1


# ---------------------------------------------------------------------------
# OCR Factory
# ---------------------------------------------------------------------------

def test_ocr_factory_returns_mock() -> None:
    from captcha_ocr.ocr.factory import get_ocr_engine
    assert isinstance(get_ocr_engine("mock"), MockOCREngine)


def test_ocr_factory_uses_settings(monkeypatch) -> None:
    from captcha_ocr.core.config import settings
    from captcha_ocr.ocr.factory import get_ocr_engine

    monkeypatch.setattr(settings, "ocr_provider", "mock")
    assert isinstance(get_ocr_engine(), MockOCREngine)


def test_ocr_factory_returns_tesseract() -> None:
    from captcha_ocr.ocr.factory import get_ocr_engine
    assert isinstance(get_ocr_engine("Tesseract "), TesseractOCREngine)


def test_ocr_factory_raises_on_unknown_provider() -> None:
    from captcha_ocr.ocr.factory import get_ocr_engine
    with pytest.raises(ValueError, match="Unknown OCR_PROVIDER"):
        get_ocr_engine("unknown_engine")
