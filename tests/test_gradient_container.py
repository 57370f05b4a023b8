from __future__ import annotations

import numpy as np
import pytest

from gravesbi.nn.errors import GradientKeyCollision
from gravesbi.nn.gradient import Gradient, ParamKey


def _direction(forwards):
    return Gradient({k: np.full((2,), i, dtype=np.float32) for i, k in enumerate(ParamKey.for_direction(forwards))})


def test_merge_of_disjoint_directions():
    merged = _direction(True).merge(_direction(False))
    assert len(merged) == 6
    assert merged.is_complete()
    assert "biasBackwards" in merged
    np.testing.assert_array_equal(merged["recurrentWeightsForwards"], [1, 1])


def test_merge_collision_raises():
    with pytest.raises(GradientKeyCollision):
        _direction(True).merge(_direction(True))


def test_keys_parse_from_strings():
    g = Gradient()
    g.set_gradient_for("inputWeightsForwards", np.zeros(1))
    assert list(g) == [ParamKey.INPUT_WEIGHTS_FORWARDS]
    assert "unknown" not in g
    assert not g.is_complete()
    with pytest.raises(KeyError):
        g.set_gradient_for("unknown", np.zeros(1))


def test_direction_keys_are_disjoint():
    fwd = set(ParamKey.for_direction(True))
    bwd = set(ParamKey.for_direction(False))
    assert not fwd & bwd
    assert fwd | bwd == set(ParamKey)
    assert [k.is_weight for k in ParamKey.for_direction(True)] == [True, True, False]
