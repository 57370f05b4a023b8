from __future__ import annotations

from dataclasses import asdict, dataclass
import numpy as np


ACTIVATIONS = ("tanh", "softsign", "identity")


@dataclass
class GravesLSTMConfig:
    n_in: int
    n_out: int
    activation: str = "tanh"
    peepholes: bool = False
    forget_gate_bias_init: float = 1.0
    weight_init_scale: float = 1.0
    use_regularization: bool = False
    l1: float = 0.0
    l2: float = 0.0
    dtype: str = "float32"
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.n_in <= 0 or self.n_out <= 0:
            raise ValueError("n_in and n_out must be positive")
        if self.activation not in ACTIVATIONS:
            raise ValueError(f"invalid activation {self.activation!r}")
        if self.dtype not in ("float32", "float64"):
            raise ValueError("dtype must be float32 or float64")
        if self.weight_init_scale <= 0.0:
            raise ValueError("weight_init_scale must be positive")
        if self.l1 < 0.0 or self.l2 < 0.0:
            raise ValueError("l1 and l2 must be non-negative")

    @property
    def np_dtype(self):
        return np.dtype(self.dtype)

    @property
    def recurrent_cols(self) -> int:
        return 4 * self.n_out + (3 if self.peepholes else 0)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "GravesLSTMConfig":
        known = {k: d[k] for k in cls.__dataclass_fields__ if k in d}
        return cls(**known)
