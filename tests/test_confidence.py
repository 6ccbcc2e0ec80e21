"""Tests for the confidence heuristic."""

import itertools

import pytest

from assistant_engine.core.confidence import MAX_CONFIDENCE, MIN_CONFIDENCE, calculate_confidence

PREMIUM = {"gpt-4o"}


def test_all_zero_inputs():
    assert calculate_confidence([], False, 0, None) == pytest.approx(0.5)


def test_each_contribution():
    assert calculate_confidence([1.0, 0.5], False, 0, None) == pytest.approx(0.725)
    assert calculate_confidence([], True, 0, None) == pytest.approx(0.65)
    assert calculate_confidence([], False, 4, None) == pytest.approx(0.6)
    assert calculate_confidence([], False, 3, None) == pytest.approx(0.5)
    assert calculate_confidence([], False, 0, "gpt-4o", PREMIUM) == pytest.approx(0.55)
    assert calculate_confidence([], False, 0, "gpt-4o-mini", PREMIUM) == pytest.approx(0.5)


def test_upper_clamp():
    assert calculate_confidence([1.0], True, 10, "gpt-4o", PREMIUM) == MAX_CONFIDENCE


def test_lower_clamp_with_negative_scores():
    # distance-style scores can be negative
    assert calculate_confidence([-1.0], False, 0, None) == MIN_CONFIDENCE


@pytest.mark.parametrize(
    "scores,prefs,length,model",
    list(
        itertools.product(
            [[], [0.0], [0.2, 0.9], [1.0, 1.0], [-0.5]],
            [False, True],
            [0, 3, 4, 50],
            [None, "gpt-4o", "gpt-4o-mini"],
        )
    ),
)
def test_always_within_bounds(scores, prefs, length, model):
    value = calculate_confidence(scores, prefs, length, model, PREMIUM)
    assert MIN_CONFIDENCE <= value <= MAX_CONFIDENCE
