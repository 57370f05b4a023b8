from __future__ import annotations

import numpy as np

from ..nn.errors import ShapeMismatch


class SequenceMSELoss:
    """Mean squared error over (N, D, T) sequences.

    An optional mask of shape (N, T) or (N, D, T) weights time steps;
    a mask of all zeros falls back to the unmasked mean.
    """

    def __init__(self) -> None:
        self._y: np.ndarray | None = None
        self._t: np.ndarray | None = None
        self._w: np.ndarray | None = None

    def forward(self, y: np.ndarray, t: np.ndarray, mask: np.ndarray | None = None) -> float:
        if y.shape != t.shape:
            raise ShapeMismatch("predictions and targets must have the same shape")
        if y.ndim != 3:
            raise ShapeMismatch("SequenceMSELoss expects (N, D, T) predictions")
        t = t.astype(y.dtype, copy=False)
        self._y = y
        self._t = t
        self._w = None
        d = y - t
        if mask is None:
            return float(np.mean(d * d))
        N, _, T = y.shape
        if mask.shape == (N, T):
            ww = np.broadcast_to(mask.astype(y.dtype)[:, None, :], y.shape)
        elif mask.shape == y.shape:
            ww = mask.astype(y.dtype)
        else:
            raise ShapeMismatch("mask shape must be (N, T) or match predictions")
        den = float(np.sum(ww))
        if den <= 0.0:
            return float(np.mean(d * d))
        self._w = ww
        return float(np.sum(ww * d * d) / den)

    def backward(self) -> np.ndarray:
        if self._y is None or self._t is None:
            raise RuntimeError("SequenceMSELoss backward called before forward")
        d = self._y - self._t
        if self._w is None:
            return (2.0 / float(d.size)) * d
        return (2.0 / float(np.sum(self._w))) * (self._w * d)
