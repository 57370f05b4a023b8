from __future__ import annotations


class ShapeMismatch(ValueError):
    """Dimensions of inputs, weights, state or upstream gradients disagree."""


class UnsupportedOperation(NotImplementedError):
    """The operation has no meaning for this layer variant."""


class GradientKeyCollision(KeyError):
    """Two gradient containers being merged both hold the same parameter."""


def check_shape(name: str, arr, expected: tuple) -> None:
    if tuple(arr.shape) != tuple(expected):
        raise ShapeMismatch(f"{name} shape mismatch: expected {tuple(expected)}, got {tuple(arr.shape)}")
