from __future__ import annotations

from typing import Dict, Tuple
import numpy as np

from ..nn.module import Parameter


class AdamW:
    """AdamW over named parameters.

    Moments are keyed by parameter name so ``state_dict`` survives a
    reload of the model into fresh ``Parameter`` objects.
    """

    def __init__(self, params: Dict[str, Parameter], lr: float = 1e-3, betas: Tuple[float, float] = (0.9, 0.999), eps: float = 1e-8, weight_decay: float = 0.0, max_grad_norm: float = 0.0) -> None:
        if lr <= 0:
            raise ValueError("lr must be positive")
        if not (0 < betas[0] < 1 and 0 < betas[1] < 1):
            raise ValueError("betas must be in (0,1)")
        if eps <= 0:
            raise ValueError("eps must be positive")
        if weight_decay < 0 or max_grad_norm < 0:
            raise ValueError("weight_decay and max_grad_norm must be non-negative")
        if not params:
            raise ValueError("no parameters to optimize")
        self.params = dict(params)
        self.lr = float(lr)
        self.b1 = float(betas[0])
        self.b2 = float(betas[1])
        self.eps = float(eps)
        self.wd = float(weight_decay)
        self.max_grad_norm = float(max_grad_norm)
        self.t = 0
        self.m: Dict[str, np.ndarray] = {k: np.zeros_like(p.data) for k, p in self.params.items()}
        self.v: Dict[str, np.ndarray] = {k: np.zeros_like(p.data) for k, p in self.params.items()}

    def grad_norm(self) -> float:
        tot = 0.0
        for p in self.params.values():
            tot += float(np.sum(p.grad * p.grad))
        return float(np.sqrt(tot))

    def step(self) -> float:
        """Apply one update from the accumulated grads; returns the grad norm
        before clipping."""
        gn = self.grad_norm()
        scale = 1.0
        if self.max_grad_norm > 0.0 and gn > self.max_grad_norm:
            scale = self.max_grad_norm / max(1e-12, gn)
        self.t += 1
        b1t = 1.0 - self.b1 ** self.t
        b2t = 1.0 - self.b2 ** self.t
        for name, p in self.params.items():
            g = p.grad * scale
            if self.wd != 0.0:
                p.data -= self.lr * self.wd * p.data
            m = self.m[name] = self.b1 * self.m[name] + (1.0 - self.b1) * g
            v = self.v[name] = self.b2 * self.v[name] + (1.0 - self.b2) * (g * g)
            p.data -= self.lr * (m / b1t) / (np.sqrt(v / b2t) + self.eps)
        return gn

    def zero_grad(self) -> None:
        for p in self.params.values():
            p.zero_grad()

    def state_dict(self) -> Dict[str, np.ndarray]:
        out: Dict[str, np.ndarray] = {
            "t": np.array([self.t], dtype=np.int64),
            "lr": np.array([self.lr], dtype=np.float64),
        }
        for name in self.params:
            out[f"m/{name}"] = self.m[name].copy()
            out[f"v/{name}"] = self.v[name].copy()
        return out

    def load_state_dict(self, state: Dict[str, np.ndarray]) -> None:
        self.t = int(np.asarray(state.get("t", [0]))[0])
        self.lr = float(np.asarray(state.get("lr", [self.lr]))[0])
        for name, p in self.params.items():
            for slot, store in (("m", self.m), ("v", self.v)):
                key = f"{slot}/{name}"
                if key in state:
                    if state[key].shape != p.data.shape:
                        raise ValueError(f"optimizer state shape mismatch for {name}")
                    store[name] = state[key].astype(p.data.dtype, copy=True)
                else:
                    store[name] = np.zeros_like(p.data)
