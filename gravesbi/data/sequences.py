from __future__ import annotations

import os
from typing import Iterator, Optional, Tuple
import numpy as np


def load_sequence_dataset(path: str) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Load sequences stored as (N, D, T) arrays.

    ``.npz`` files must hold ``X`` and may hold ``Y``; ``.npy`` files hold
    ``X`` only.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(path)
    if path.endswith('.npz'):
        z = np.load(path)
        if 'X' not in z:
            raise KeyError("expected key 'X' in npz")
        X = z['X']
        Y = z['Y'] if 'Y' in z else None
    elif path.endswith('.npy'):
        X = np.load(path)
        Y = None
    else:
        raise ValueError("unsupported file extension; use .npz or .npy")
    if X.ndim != 3:
        raise ValueError("sequence dataset must have shape (N,D,T)")
    if Y is not None:
        if Y.ndim != 3 or Y.shape[0] != X.shape[0] or Y.shape[2] != X.shape[2]:
            raise ValueError("targets must have shape (N,D_out,T) matching X")
        Y = Y.astype(np.float32, copy=False)
    return X.astype(np.float32, copy=False), Y


def make_neighbour_sum_dataset(n_samples: int, seq_len: int, n_features: int = 1, seed: int = 42) -> Tuple[np.ndarray, np.ndarray]:
    # target at t is x[t-1] + x[t+1], so it needs both past and future context
    if n_samples <= 0 or seq_len <= 0 or n_features <= 0:
        raise ValueError("n_samples, seq_len and n_features must be positive")
    rng = np.random.default_rng(seed)
    X = rng.uniform(-1.0, 1.0, size=(n_samples, n_features, seq_len)).astype(np.float32)
    Y = np.zeros((n_samples, 1, seq_len), dtype=np.float32)
    s = X.sum(axis=1)
    Y[:, 0, 1:] += s[:, :-1]
    Y[:, 0, :-1] += s[:, 1:]
    return X, Y


def batch_iter(X: np.ndarray, Y: np.ndarray, batch_size: int, shuffle: bool, rng: np.random.Generator | None = None) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
    idx = np.arange(X.shape[0])
    if shuffle:
        (rng or np.random.default_rng()).shuffle(idx)
    for start in range(0, X.shape[0], batch_size):
        bi = idx[start:start + batch_size]
        yield X[bi], Y[bi]


def time_segments(T: int, length: int) -> Iterator[slice]:
    """Consecutive time slices of at most ``length`` steps covering [0, T)."""
    if length <= 0:
        raise ValueError("segment length must be positive")
    for start in range(0, T, length):
        yield slice(start, min(start + length, T))
