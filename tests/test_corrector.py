"""Confusion corrector tests."""
from __future__ import annotations

import pytest

from captcha_ocr.correction.corrector import (
    CONFUSION_TABLE,
    ConfusionCorrector,
    Solution,
    confusion_variants,
)
from captcha_ocr.scoring.selector import Candidate, SelectionPolicy, clean_text


def _winner(text: str, confidence: float = 80.0) -> Candidate:
    return Candidate(
        cleaned_text=text,
        confidence=confidence,
        source_rendering="balanced",
        source_strategy="single_word",
    )


# ---------------------------------------------------------------------------
# Confusion table
# ---------------------------------------------------------------------------

def test_confusion_table_is_symmetric() -> None:
    for key, alternatives in CONFUSION_TABLE.items():
        for alt in alternatives:
            assert key in CONFUSION_TABLE[alt], f"{alt} does not map back to {key}"


def test_confusion_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        CONFUSION_TABLE["Q"] = ("O",)  # type: ignore[index]


def test_confusion_table_covers_common_pairs() -> None:
    assert "V" in CONFUSION_TABLE["W"]
    assert "0" in CONFUSION_TABLE["O"]
    assert "1" in CONFUSION_TABLE["I"]
    assert "5" in CONFUSION_TABLE["S"]


# ---------------------------------------------------------------------------
# Variant generation
# ---------------------------------------------------------------------------

def test_variants_replace_one_glyph_class_at_a_time() -> None:
    assert confusion_variants("OO1") == ["001", "OOI"]


def test_variants_follow_first_appearance_order() -> None:
    assert confusion_variants("1W") == ["IW", "1V"]


def test_no_confusable_glyphs_no_variants() -> None:
    assert confusion_variants("AXKM") == []


# ---------------------------------------------------------------------------
# ConfusionCorrector
# ---------------------------------------------------------------------------

def test_w_to_v_bias_applies_to_expected_length() -> None:
    solution = ConfusionCorrector().correct(_winner("W0RD", 77.0))
    assert solution.text == "V0RD"
    assert solution.confidence == 77.0
    assert "W0RD" in solution.alternatives
    assert "V0RD" not in solution.alternatives
    assert "WORD" in solution.alternatives


def test_w_to_v_alternative_proposed_when_bias_disabled() -> None:
    solution = ConfusionCorrector(prefer_v_over_w=False).correct(_winner("W0RD"))
    assert solution.text == "W0RD"
    assert "V0RD" in solution.alternatives
    assert "W0RD" not in solution.alternatives


def test_w_to_v_bias_skipped_for_other_lengths() -> None:
    solution = ConfusionCorrector().correct(_winner("WXKMA"))
    assert solution.text == "WXKMA"
    assert solution.alternatives == ("VXKMA",)


def test_bias_replaces_every_w() -> None:
    solution = ConfusionCorrector().correct(_winner("WAWK"))
    assert solution.text == "VAVK"
    assert solution.alternatives[0] == "WAWK"


def test_text_without_confusables_has_no_alternatives() -> None:
    solution = ConfusionCorrector().correct(_winner("AXKM"))
    assert solution == Solution(text="AXKM", confidence=80.0, alternatives=())


def test_alternatives_are_valid_tokens() -> None:
    policy = SelectionPolicy()
    solution = ConfusionCorrector(policy).correct(_winner("S0IB2W"))
    assert solution.alternatives
    assert len(set(solution.alternatives)) == len(solution.alternatives)
    for alt in solution.alternatives:
        assert alt
        assert alt != solution.text
        assert clean_text(alt) == alt
        assert policy.min_length <= len(alt) <= policy.max_length


def test_empty_solution() -> None:
    assert Solution.empty() == Solution(text="", confidence=0.0, alternatives=())
