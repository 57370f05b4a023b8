from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional, Tuple
import numpy as np

from .errors import ShapeMismatch, check_shape

logger = logging.getLogger(__name__)


def _sigmoid(x: np.ndarray) -> np.ndarray:
    y = np.empty_like(x)
    m = x >= 0
    y[m] = 1.0 / (1.0 + np.exp(-x[m]))
    e = np.exp(x[~m])
    y[~m] = e / (1.0 + e)
    return y


def _activate(name: str, x: np.ndarray) -> np.ndarray:
    if name == "tanh":
        return np.tanh(x)
    if name == "softsign":
        return x / (1.0 + np.abs(x))
    if name == "identity":
        return x
    raise ValueError(f"invalid activation {name!r}")


def _activate_deriv(name: str, x: np.ndarray) -> np.ndarray:
    if name == "tanh":
        y = np.tanh(x)
        return 1.0 - y * y
    if name == "softsign":
        d = 1.0 + np.abs(x)
        return 1.0 / (d * d)
    if name == "identity":
        return np.ones_like(x)
    raise ValueError(f"invalid activation {name!r}")


def _orthogonal(h: int, rng: np.random.Generator, dtype=np.float32) -> np.ndarray:
    a = rng.standard_normal((h, h))
    q, r = np.linalg.qr(a)
    d = np.sign(np.diag(r))
    q = q * d
    return q.astype(dtype)


def _glorot_uniform(fan_in: int, fan_out: int, rng: np.random.Generator, dtype=np.float32) -> np.ndarray:
    s = np.sqrt(6.0 / float(fan_in + fan_out))
    return rng.uniform(-s, s, size=(fan_in, fan_out)).astype(dtype)


def init_lstm_params(n_in: int, n_out: int, rng: np.random.Generator, peepholes: bool = False, forget_gate_bias_init: float = 1.0, scale: float = 1.0, dtype=np.float32) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Input weights, recurrent weights and bias for one direction.

    Gate blocks along the last axis are ordered input, forget, output,
    candidate. With peepholes the recurrent matrix carries three more
    columns: input, forget and output peephole vectors.
    """
    H = n_out
    wx = _glorot_uniform(n_in, 4 * H, rng, dtype) * scale
    blocks = [_orthogonal(H, rng, dtype) * scale for _ in range(4)]
    if peepholes:
        blocks.append(np.zeros((H, 3), dtype=dtype))
    wr = np.concatenate(blocks, axis=1).astype(dtype)
    b = np.zeros((4 * H,), dtype=dtype)
    b[H:2 * H] = forget_gate_bias_init
    return wx.astype(dtype), wr, b


class Direction(Enum):
    FORWARDS = "forwards"
    BACKWARDS = "backwards"

    @property
    def is_forwards(self) -> bool:
        return self is Direction.FORWARDS

    def time_order(self, T: int) -> range:
        if self is Direction.FORWARDS:
            return range(T)
        return range(T - 1, -1, -1)


class StepResult(NamedTuple):
    z: np.ndarray
    a: np.ndarray
    h: np.ndarray
    c: np.ndarray


class DirectionalGrads(NamedTuple):
    input_weights: np.ndarray
    recurrent_weights: np.ndarray
    bias: np.ndarray


@dataclass
class FwdPassResult:
    """Output of one direction plus what BPTT needs to run afterwards.

    Per-step arrays are indexed by real time, whatever the direction.
    ``pre``, ``gates`` and ``cells`` are only kept when the pass was run
    for backprop.
    """

    direction: Direction
    output: np.ndarray
    last_hidden: np.ndarray
    last_cell: np.ndarray
    x: Optional[np.ndarray] = None
    h0: Optional[np.ndarray] = None
    c0: Optional[np.ndarray] = None
    pre: Optional[np.ndarray] = None
    gates: Optional[np.ndarray] = None
    cells: Optional[np.ndarray] = None

    @property
    def has_record(self) -> bool:
        return self.gates is not None

    @property
    def seq_len(self) -> int:
        return int(self.output.shape[2])


def _check_weights(input_weights: np.ndarray, recurrent_weights: np.ndarray, bias: Optional[np.ndarray], peepholes: bool) -> Tuple[int, int]:
    if input_weights.ndim != 2 or recurrent_weights.ndim != 2:
        raise ShapeMismatch("weight matrices must be 2-d")
    H = recurrent_weights.shape[0]
    D = input_weights.shape[0]
    check_shape("input weights", input_weights, (D, 4 * H))
    check_shape("recurrent weights", recurrent_weights, (H, 4 * H + (3 if peepholes else 0)))
    if bias is not None:
        check_shape("bias", bias, (4 * H,))
    return D, H


def _step(x_t, h_prev, c_prev, input_weights, recurrent_weights, bias, activation: str, peepholes: bool) -> StepResult:
    H = recurrent_weights.shape[0]
    z = x_t @ input_weights + h_prev @ recurrent_weights[:, :4 * H] + bias
    if peepholes:
        z[:, :H] += c_prev * recurrent_weights[:, 4 * H]
        z[:, H:2 * H] += c_prev * recurrent_weights[:, 4 * H + 1]
    a = np.empty_like(z)
    a[:, :2 * H] = _sigmoid(z[:, :2 * H])
    a[:, 3 * H:] = _activate(activation, z[:, 3 * H:])
    c = a[:, H:2 * H] * c_prev + a[:, :H] * a[:, 3 * H:]
    if peepholes:
        z[:, 2 * H:3 * H] += c * recurrent_weights[:, 4 * H + 2]
    a[:, 2 * H:3 * H] = _sigmoid(z[:, 2 * H:3 * H])
    h = a[:, 2 * H:3 * H] * _activate(activation, c)
    return StepResult(z, a, h, c)


def lstm_step(x_t: np.ndarray, h_prev: np.ndarray, c_prev: np.ndarray, input_weights: np.ndarray, recurrent_weights: np.ndarray, bias: np.ndarray, activation: str = "tanh", peepholes: bool = False) -> StepResult:
    """Advance one LSTM cell by a single time step.

    ``x_t`` is (N, D), states are (N, H). Returns the gate pre-activations
    and activations, both (N, 4H), and the new hidden and cell state.
    """
    D, H = _check_weights(input_weights, recurrent_weights, bias, peepholes)
    if x_t.ndim != 2:
        raise ShapeMismatch("x_t must be (N, D)")
    N = x_t.shape[0]
    check_shape("x_t", x_t, (N, D))
    check_shape("h_prev", h_prev, (N, H))
    check_shape("c_prev", c_prev, (N, H))
    return _step(x_t, h_prev, c_prev, input_weights, recurrent_weights, bias, activation, peepholes)


def forward_pass(direction: Direction, x: np.ndarray, input_weights: np.ndarray, recurrent_weights: np.ndarray, bias: np.ndarray, h0: np.ndarray | None = None, c0: np.ndarray | None = None, activation: str = "tanh", peepholes: bool = False, for_backprop: bool = False) -> FwdPassResult:
    if x.ndim != 3:
        raise ShapeMismatch("sequence input must be (N, D, T)")
    D, H = _check_weights(input_weights, recurrent_weights, bias, peepholes)
    N, Dx, T = x.shape
    if Dx != D:
        raise ShapeMismatch(f"input feature size mismatch: expected {D}, got {Dx}")
    if T == 0:
        raise ShapeMismatch("sequence input has no time steps")
    dtype = input_weights.dtype
    if x.dtype != dtype:
        x = x.astype(dtype)
    if h0 is None:
        h_prev = np.zeros((N, H), dtype=dtype)
    else:
        check_shape("initial hidden state", h0, (N, H))
        h_prev = h0.astype(dtype)
    if c0 is None:
        c_prev = np.zeros((N, H), dtype=dtype)
    else:
        check_shape("initial cell state", c0, (N, H))
        c_prev = c0.astype(dtype)
    hs = np.empty((N, H, T), dtype=dtype)
    if for_backprop:
        zs = np.empty((N, 4 * H, T), dtype=dtype)
        a_s = np.empty((N, 4 * H, T), dtype=dtype)
        cs = np.empty((N, H, T), dtype=dtype)
    result = FwdPassResult(direction, hs, h_prev, c_prev)
    if for_backprop:
        result.x = x
        result.h0 = h_prev
        result.c0 = c_prev
    for t in direction.time_order(T):
        step = _step(x[:, :, t], h_prev, c_prev, input_weights, recurrent_weights, bias, activation, peepholes)
        hs[:, :, t] = step.h
        if for_backprop:
            zs[:, :, t] = step.z
            a_s[:, :, t] = step.a
            cs[:, :, t] = step.c
        h_prev = step.h
        c_prev = step.c
    result.last_hidden = h_prev
    result.last_cell = c_prev
    if for_backprop:
        result.pre = zs
        result.gates = a_s
        result.cells = cs
    return result


def backward_pass(epsilon: np.ndarray, record: FwdPassResult, input_weights: np.ndarray, recurrent_weights: np.ndarray, truncated: bool = False, truncation_length: int = -1, activation: str = "tanh", peepholes: bool = False) -> Tuple[DirectionalGrads, np.ndarray]:
    """Backpropagation through time for one direction.

    Walks the steps of ``record`` against its iteration order. When
    ``truncated`` only the last ``truncation_length`` iterated steps are
    walked; the input error of the others stays zero.
    """
    if not record.has_record:
        raise RuntimeError("forward pass was not run for backprop")
    D, H = _check_weights(input_weights, recurrent_weights, None, peepholes)
    x = record.x
    N, _, T = x.shape
    check_shape("epsilon", epsilon, record.output.shape)
    if truncated and truncation_length <= 0:
        raise ValueError("truncation_length must be positive for truncated BPTT")
    dtype = input_weights.dtype
    order = list(record.direction.time_order(T))
    n_steps = min(T, truncation_length) if truncated else T
    if truncated:
        logger.debug("truncated BPTT (%s): walking %d of %d steps", record.direction.value, n_steps, T)
    wr = recurrent_weights[:, :4 * H]
    if peepholes:
        w_ii = recurrent_weights[:, 4 * H]
        w_ff = recurrent_weights[:, 4 * H + 1]
        w_oo = recurrent_weights[:, 4 * H + 2]
    d_wx = np.zeros_like(input_weights)
    d_wr = np.zeros_like(recurrent_weights)
    d_b = np.zeros((4 * H,), dtype=dtype)
    eps_in = np.zeros((N, D, T), dtype=dtype)
    dh_next = np.zeros((N, H), dtype=dtype)
    dc_next = np.zeros((N, H), dtype=dtype)
    for k in range(T - 1, T - 1 - n_steps, -1):
        t = order[k]
        if k > 0:
            h_prev = record.output[:, :, order[k - 1]]
            c_prev = record.cells[:, :, order[k - 1]]
        else:
            h_prev = record.h0
            c_prev = record.c0
        z = record.pre[:, :, t]
        a = record.gates[:, :, t]
        c = record.cells[:, :, t]
        a_i = a[:, :H]
        a_f = a[:, H:2 * H]
        a_o = a[:, 2 * H:3 * H]
        a_g = a[:, 3 * H:]
        dh = epsilon[:, :, t] + dh_next
        delta = np.empty((N, 4 * H), dtype=dtype)
        do = dh * _activate(activation, c) * a_o * (1.0 - a_o)
        dc = dh * a_o * _activate_deriv(activation, c) + dc_next
        if peepholes:
            dc = dc + do * w_oo
        delta[:, :H] = dc * a_g * a_i * (1.0 - a_i)
        delta[:, H:2 * H] = dc * c_prev * a_f * (1.0 - a_f)
        delta[:, 2 * H:3 * H] = do
        delta[:, 3 * H:] = dc * a_i * _activate_deriv(activation, z[:, 3 * H:])
        d_wx += x[:, :, t].T @ delta
        d_wr[:, :4 * H] += h_prev.T @ delta
        d_b += delta.sum(axis=0)
        eps_in[:, :, t] = delta @ input_weights.T
        dh_next = delta @ wr.T
        dc_next = dc * a_f
        if peepholes:
            d_wr[:, 4 * H] += (delta[:, :H] * c_prev).sum(axis=0)
            d_wr[:, 4 * H + 1] += (delta[:, H:2 * H] * c_prev).sum(axis=0)
            d_wr[:, 4 * H + 2] += (do * c).sum(axis=0)
            dc_next = dc_next + delta[:, :H] * w_ii + delta[:, H:2 * H] * w_ff
    return DirectionalGrads(d_wx, d_wr, d_b), eps_in
