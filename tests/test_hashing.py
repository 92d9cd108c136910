from __future__ import annotations

import numpy as np
import pytest

from gem_core.hashing import (
    CompositeConditionKey,
    CompositePriorityKey,
    ConditionBucket,
    ConditionSnapshot,
    PriorityBucket,
    condition_similarity,
    generate_cache_key,
    hash_conditions,
    hash_priorities,
    reconstruct_condition,
    similarity_scores,
    vehicle_key,
)
from gem_core.profiles import EnvironmentProfile, PriorityWeights


@pytest.mark.parametrize(
    "weights, expected",
    [
        pytest.param({"speed": 9, "range": 3, "acceleration": 7, "efficiency": 2}, PriorityBucket.SPEED_FOCUSED, id="speed"),
        pytest.param({"speed": 8, "range": 9}, PriorityBucket.SPEED_FOCUSED, id="speed-wins-ties"),
        pytest.param({"speed": 2, "range": 9, "efficiency": 8}, PriorityBucket.RANGE_FOCUSED, id="range"),
        pytest.param({"speed": 3, "range": 7, "acceleration": 4, "efficiency": 9}, PriorityBucket.EFFICIENCY_FOCUSED, id="efficiency"),
        pytest.param({"speed": 6, "range": 5, "acceleration": 8}, PriorityBucket.PERFORMANCE, id="performance"),
        pytest.param({"speed": 6, "range": 6, "acceleration": 6, "efficiency": 6}, PriorityBucket.BALANCED, id="balanced"),
        pytest.param({}, PriorityBucket.BALANCED, id="missing-is-five"),
        pytest.param({"speed": 0, "range": 0, "acceleration": 0, "efficiency": 0}, PriorityBucket.BALANCED, id="zero-is-five"),
        pytest.param(None, PriorityBucket.BALANCED, id="none"),
        pytest.param({"speed": 7.5, "range": 3}, PriorityBucket.SPEED_FOCUSED, id="rounds-half-up"),
    ],
)
def test_hash_priorities_buckets(weights, expected) -> None:  # type: ignore[no-untyped-def]
    assert hash_priorities(weights) is expected


def test_hash_priorities_composite() -> None:
    key = hash_priorities({"speed": 2, "range": 6, "acceleration": 5, "efficiency": 3})

    assert key == CompositePriorityKey(2, 6, 5, 3)
    assert str(key) == "s2r6a5e3"
    assert hash_priorities("s2r6a5e3") == key
    assert hash_priorities("balanced") is PriorityBucket.BALANCED
    assert hash_priorities(PriorityWeights(speed=9)) is PriorityBucket.SPEED_FOCUSED


@pytest.mark.parametrize(
    "conditions, expected",
    [
        pytest.param({"temperature": 30}, ConditionBucket.COLD, id="cold"),
        pytest.param({"temperature": 0}, ConditionBucket.COLD, id="literal-zero"),
        pytest.param({"temperature": 95}, ConditionBucket.HOT, id="hot"),
        pytest.param({"temperature": 70, "grade": 8}, ConditionBucket.HILLS, id="hills"),
        pytest.param({"temperature": 70, "load": 800}, ConditionBucket.LOADED, id="loaded"),
        pytest.param({"temperature": 72, "grade": 2, "load": 150}, ConditionBucket.IDEAL, id="ideal"),
        pytest.param({}, ConditionBucket.IDEAL, id="defaults"),
        pytest.param(None, ConditionBucket.IDEAL, id="none"),
        pytest.param({"temperature": 30, "grade": 12}, ConditionBucket.COLD, id="temperature-first"),
    ],
)
def test_hash_conditions_buckets(conditions, expected) -> None:  # type: ignore[no-untyped-def]
    assert hash_conditions(conditions) is expected


def test_hash_conditions_composite() -> None:
    key = hash_conditions({"temperature": 85, "grade": 6, "load": 500})

    assert key == CompositeConditionKey(9, 6, 5)
    assert str(key) == "t9g6l5"
    assert hash_conditions("t9g6l5") == key


def test_hash_conditions_accepts_environment_profiles() -> None:
    environment = EnvironmentProfile.from_mapping({"hillGrade": 9})

    assert hash_conditions(environment) is ConditionBucket.HILLS


def test_reconstruct_condition() -> None:
    assert reconstruct_condition("t9g6l5") == ConditionSnapshot(90.0, 6.0, 500.0)
    assert reconstruct_condition("hills") == ConditionSnapshot(70.0, 8.0, 0.0)
    assert reconstruct_condition(ConditionBucket.LOADED).load == 800.0
    assert reconstruct_condition("not-a-key") == ConditionSnapshot(70.0, 0.0, 0.0)


def test_composite_condition_decodes_back_to_same_key() -> None:
    key = hash_conditions({"temperature": 55, "grade": 4, "load": 400})

    assert hash_conditions(reconstruct_condition(key)) == key


@pytest.mark.parametrize(
    "vehicle, expected",
    [("e4", "e4"), ("EL-XD", "elxd"), (None, "e4"), ("", "e4"), ({"model": "e2"}, "e2")],
)
def test_vehicle_key(vehicle, expected) -> None:  # type: ignore[no-untyped-def]
    assert vehicle_key(vehicle) == expected


def test_generate_cache_key() -> None:
    key = generate_cache_key("EL-XD", {"speed": 9}, {"temperature": 70})

    assert key == "elxd_speed_focused_ideal"
    assert generate_cache_key("e2", "s2r6a5e3", "t9g6l5") == "e2_s2r6a5e3_t9g6l5"


def test_similarity_scores_multiply_dimensions() -> None:
    target = ConditionSnapshot(70.0, 0.0, 0.0)
    candidates = [
        ConditionSnapshot(70.0, 0.0, 0.0),
        ConditionSnapshot(95.0, 0.0, 0.0),
        ConditionSnapshot(95.0, 5.0, 0.0),
        ConditionSnapshot(70.0, 10.0, 0.0),
        ConditionSnapshot(70.0, 0.0, 2000.0),
    ]

    scores = similarity_scores(candidates, target)

    np.testing.assert_allclose(scores, [1.0, 0.5, 0.25, 0.0, 0.0])
    assert condition_similarity(candidates[1], target) == pytest.approx(0.5)
    assert similarity_scores([], target).shape == (0,)
