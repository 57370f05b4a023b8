from __future__ import annotations

from enum import Enum
from typing import Dict, Iterator, Tuple
import numpy as np

from .errors import GradientKeyCollision


class ParamKey(str, Enum):
    INPUT_WEIGHTS_FORWARDS = "inputWeightsForwards"
    RECURRENT_WEIGHTS_FORWARDS = "recurrentWeightsForwards"
    BIAS_FORWARDS = "biasForwards"
    INPUT_WEIGHTS_BACKWARDS = "inputWeightsBackwards"
    RECURRENT_WEIGHTS_BACKWARDS = "recurrentWeightsBackwards"
    BIAS_BACKWARDS = "biasBackwards"

    @classmethod
    def parse(cls, key: "ParamKey | str") -> "ParamKey":
        if isinstance(key, cls):
            return key
        try:
            return cls(key)
        except ValueError:
            raise KeyError(f"unknown parameter key {key!r}") from None

    @classmethod
    def for_direction(cls, forwards: bool) -> Tuple["ParamKey", "ParamKey", "ParamKey"]:
        """(input, recurrent, bias) keys of one direction."""
        if forwards:
            return cls.INPUT_WEIGHTS_FORWARDS, cls.RECURRENT_WEIGHTS_FORWARDS, cls.BIAS_FORWARDS
        return cls.INPUT_WEIGHTS_BACKWARDS, cls.RECURRENT_WEIGHTS_BACKWARDS, cls.BIAS_BACKWARDS

    @property
    def is_weight(self) -> bool:
        return not self.value.startswith("bias")


class Gradient:
    """Gradients keyed by parameter role.

    At most one array per ``ParamKey``. Two containers merge only when their
    keys are disjoint, which is how the forward- and backward-direction
    gradients of a bidirectional layer are combined.
    """

    def __init__(self, grads: Dict[ParamKey, np.ndarray] | None = None) -> None:
        self._grads: Dict[ParamKey, np.ndarray] = {}
        if grads:
            for k, v in grads.items():
                self.set_gradient_for(k, v)

    def set_gradient_for(self, key: ParamKey | str, grad: np.ndarray) -> None:
        self._grads[ParamKey.parse(key)] = grad

    def gradient_for(self, key: ParamKey | str) -> np.ndarray:
        return self._grads[ParamKey.parse(key)]

    def merge(self, other: "Gradient") -> "Gradient":
        clash = set(self._grads) & set(other._grads)
        if clash:
            names = ", ".join(sorted(k.value for k in clash))
            raise GradientKeyCollision(f"gradient keys overlap: {names}")
        out = Gradient()
        out._grads.update(self._grads)
        out._grads.update(other._grads)
        return out

    def is_complete(self) -> bool:
        return set(self._grads) == set(ParamKey)

    def keys(self):
        return self._grads.keys()

    def items(self):
        return self._grads.items()

    def __getitem__(self, key: ParamKey | str) -> np.ndarray:
        return self.gradient_for(key)

    def __contains__(self, key: object) -> bool:
        try:
            return ParamKey.parse(key) in self._grads  # type: ignore[arg-type]
        except KeyError:
            return False

    def __iter__(self) -> Iterator[ParamKey]:
        return iter(self._grads)

    def __len__(self) -> int:
        return len(self._grads)

    def __repr__(self) -> str:
        parts = ", ".join(f"{k.value}={tuple(v.shape)}" for k, v in self._grads.items())
        return f"Gradient({parts})"
