from __future__ import annotations

import math
import numpy as np

from .errors import ShapeMismatch
from .module import Module, Parameter


def _kaiming_uniform(fan_in: int, fan_out: int, rng: np.random.Generator, dtype=np.float32) -> np.ndarray:
    bound = math.sqrt(6.0 / fan_in)
    return rng.uniform(low=-bound, high=bound, size=(fan_in, fan_out)).astype(dtype)


class Linear(Module):
    def __init__(self, in_features: int, out_features: int, seed: int | None = None, dtype: str = "float32") -> None:
        super().__init__()
        if in_features <= 0 or out_features <= 0:
            raise ValueError("in_features and out_features must be positive")
        rng = np.random.default_rng(seed)
        self.W = Parameter(_kaiming_uniform(in_features, out_features, rng, np.dtype(dtype)), name="W")
        self.b = Parameter(np.zeros((out_features,), dtype=np.dtype(dtype)), name="b")
        self._cache_x: np.ndarray | None = None

    @property
    def in_features(self) -> int:
        return int(self.W.data.shape[0])

    @property
    def out_features(self) -> int:
        return int(self.W.data.shape[1])

    def forward(self, x: np.ndarray) -> np.ndarray:
        if x.ndim != 2:
            raise ShapeMismatch("Linear expects input of shape (N, D)")
        if x.shape[1] != self.in_features:
            raise ShapeMismatch("Input feature size mismatch in Linear")
        x = x.astype(self.W.data.dtype, copy=False)
        self._cache_x = x
        return x @ self.W.data + self.b.data

    def backward(self, dy: np.ndarray) -> np.ndarray:
        if self._cache_x is None:
            raise RuntimeError("Linear backward called before forward")
        x = self._cache_x
        if dy.shape != (x.shape[0], self.out_features):
            raise ShapeMismatch("Upstream grad shape mismatch in Linear")
        self.W.grad += x.T @ dy
        self.b.grad += dy.sum(axis=0)
        return dy @ self.W.data.T


class TimeDistributedLinear(Linear):
    """Same affine map applied at every time step of an (N, D, T) sequence."""

    def _flatten(self, x: np.ndarray) -> np.ndarray:
        N, D, T = x.shape
        return x.transpose(0, 2, 1).reshape(N * T, D)

    @staticmethod
    def _unflatten(y: np.ndarray, N: int, T: int) -> np.ndarray:
        return y.reshape(N, T, -1).transpose(0, 2, 1)

    def forward(self, x: np.ndarray) -> np.ndarray:
        if x.ndim != 3:
            raise ShapeMismatch("TimeDistributedLinear expects input of shape (N, D, T)")
        N, _, T = x.shape
        return self._unflatten(super().forward(self._flatten(x)), N, T)

    def backward(self, dy: np.ndarray) -> np.ndarray:
        if dy.ndim != 3:
            raise ShapeMismatch("TimeDistributedLinear expects upstream grad of shape (N, D, T)")
        N, _, T = dy.shape
        return self._unflatten(super().backward(self._flatten(dy)), N, T)
