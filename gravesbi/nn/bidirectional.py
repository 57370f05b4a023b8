from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Dict, Optional, Tuple
import numpy as np

from .config import GravesLSTMConfig
from .errors import ShapeMismatch, UnsupportedOperation, check_shape
from .gradient import Gradient, ParamKey
from .lstm import Direction, FwdPassResult, backward_pass, forward_pass, init_lstm_params
from .module import Module, Parameter

logger = logging.getLogger(__name__)


@dataclass
class BidirectionalState:
    """Last hidden and cell state of each direction, carried between
    truncated-BPTT segments by the caller."""

    prev_activation_forwards: Optional[np.ndarray] = None
    prev_memcell_forwards: Optional[np.ndarray] = None
    prev_activation_backwards: Optional[np.ndarray] = None
    prev_memcell_backwards: Optional[np.ndarray] = None

    @classmethod
    def from_passes(cls, fwd: FwdPassResult, bwd: FwdPassResult) -> "BidirectionalState":
        return cls(fwd.last_hidden, fwd.last_cell, bwd.last_hidden, bwd.last_cell)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


class GravesBidirectionalLSTM(Module):
    """Graves LSTM run forward and backward in time; the layer output is
    the elementwise sum of both directions.

    Sequences are laid out (N, D, T). Parameters live in a store keyed by
    ``ParamKey``; gradients come back in a ``Gradient`` and are also added
    to each ``Parameter.grad``.
    """

    def __init__(self, config: GravesLSTMConfig) -> None:
        super().__init__()
        self.config = config
        self.rng = np.random.default_rng(config.seed)
        self.params: Dict[ParamKey, Parameter] = {}
        for forwards in (True, False):
            keys = ParamKey.for_direction(forwards)
            arrays = init_lstm_params(config.n_in, config.n_out, self.rng, peepholes=config.peepholes, forget_gate_bias_init=config.forget_gate_bias_init, scale=config.weight_init_scale, dtype=config.np_dtype)
            for key, arr in zip(keys, arrays):
                self.params[key] = Parameter(arr, name=key.value)
        self._fwd_record: FwdPassResult | None = None
        self._bwd_record: FwdPassResult | None = None

    @property
    def n_in(self) -> int:
        return self.config.n_in

    @property
    def n_out(self) -> int:
        return self.config.n_out

    def expected_shape(self, key: ParamKey | str) -> Tuple[int, ...]:
        key = ParamKey.parse(key)
        H = self.config.n_out
        if key in (ParamKey.INPUT_WEIGHTS_FORWARDS, ParamKey.INPUT_WEIGHTS_BACKWARDS):
            return (self.config.n_in, 4 * H)
        if key in (ParamKey.RECURRENT_WEIGHTS_FORWARDS, ParamKey.RECURRENT_WEIGHTS_BACKWARDS):
            return (H, self.config.recurrent_cols)
        return (4 * H,)

    def get_param(self, key: ParamKey | str) -> np.ndarray:
        return self.params[ParamKey.parse(key)].data

    def set_param(self, key: ParamKey | str, value: np.ndarray) -> None:
        key = ParamKey.parse(key)
        check_shape(key.value, value, self.expected_shape(key))
        self.params[key].data[...] = value

    def param_table(self) -> Dict[str, np.ndarray]:
        return {k.value: p.data for k, p in self.params.items()}

    def state_dict(self) -> Dict[str, np.ndarray]:
        return {k.value: p.data.copy() for k, p in self.params.items()}

    def load_state_dict(self, state: Dict[str, np.ndarray]) -> None:
        missing = [k.value for k in ParamKey if k.value not in state]
        if missing:
            raise KeyError(f"missing parameters in state dict: {', '.join(missing)}")
        for k in ParamKey:
            self.set_param(k, np.asarray(state[k.value]))

    def _directional(self, forwards: bool, x: np.ndarray, h0, c0, for_backprop: bool) -> FwdPassResult:
        kx, kr, kb = ParamKey.for_direction(forwards)
        return forward_pass(
            Direction.FORWARDS if forwards else Direction.BACKWARDS,
            x,
            self.get_param(kx),
            self.get_param(kr),
            self.get_param(kb),
            h0=h0,
            c0=c0,
            activation=self.config.activation,
            peepholes=self.config.peepholes,
            for_backprop=for_backprop,
        )

    def _run(self, x: np.ndarray, state: BidirectionalState | None, training: bool | None = None) -> Tuple[FwdPassResult, FwdPassResult]:
        if x.ndim != 3:
            raise ShapeMismatch("GravesBidirectionalLSTM expects input of shape (N, D, T)")
        state = state or BidirectionalState()
        keep = self._training if training is None else bool(training)
        fwd = self._directional(True, x, state.prev_activation_forwards, state.prev_memcell_forwards, keep)
        bwd = self._directional(False, x, state.prev_activation_backwards, state.prev_memcell_backwards, keep)
        if keep:
            self._fwd_record = fwd
            self._bwd_record = bwd
            logger.debug("stored forward records for %d time steps", fwd.seq_len)
        else:
            # records of an earlier input must not outlive a newer activation
            self._fwd_record = None
            self._bwd_record = None
        return fwd, bwd

    def forward(self, x: np.ndarray, state: BidirectionalState | None = None) -> np.ndarray:
        fwd, bwd = self._run(x, state)
        return fwd.output + bwd.output

    def activate(self, x: np.ndarray, training: bool = True) -> np.ndarray:
        """``training`` applies to this call only; the module mode is left as is."""
        fwd, bwd = self._run(x, None, training)
        return fwd.output + bwd.output

    def rnn_activate_using_stored_state(self, x: np.ndarray, state: BidirectionalState | None = None, training: bool = True) -> Tuple[np.ndarray, BidirectionalState]:
        """Activate starting from ``state`` and return the output together
        with the state to feed into the next segment."""
        fwd, bwd = self._run(x, state, training)
        return fwd.output + bwd.output, BidirectionalState.from_passes(fwd, bwd)

    def rnn_time_step(self, x: np.ndarray) -> np.ndarray:
        raise UnsupportedOperation("cannot time step a bidirectional RNN; it has to run on a whole sequence at once")

    def gradient(self) -> Gradient:
        raise UnsupportedOperation("direct gradient is not implemented; use backprop_gradient")

    def calc_gradient(self, layer_error: Gradient, activation: np.ndarray) -> Gradient:
        raise UnsupportedOperation("direct gradient is not implemented; use backprop_gradient")

    def transpose(self) -> "GravesBidirectionalLSTM":
        raise UnsupportedOperation("transpose is not implemented for GravesBidirectionalLSTM")

    def backprop_gradient(self, epsilon: np.ndarray) -> Tuple[Gradient, np.ndarray]:
        return self._backprop(epsilon, False, -1)

    def tbptt_backprop_gradient(self, epsilon: np.ndarray, tbptt_backward_length: int) -> Tuple[Gradient, np.ndarray]:
        return self._backprop(epsilon, True, tbptt_backward_length)

    def backward(self, epsilon: np.ndarray) -> np.ndarray:
        _, eps_in = self.backprop_gradient(epsilon)
        return eps_in

    def _backprop(self, epsilon: np.ndarray, truncated: bool, length: int) -> Tuple[Gradient, np.ndarray]:
        if self._fwd_record is None or self._bwd_record is None:
            raise RuntimeError("GravesBidirectionalLSTM backprop called before a training forward pass")
        check_shape("epsilon", epsilon, self._fwd_record.output.shape)
        grads = []
        eps_in = None
        for forwards, record in ((True, self._fwd_record), (False, self._bwd_record)):
            kx, kr, kb = ParamKey.for_direction(forwards)
            g, e = backward_pass(
                epsilon,
                record,
                self.get_param(kx),
                self.get_param(kr),
                truncated=truncated,
                truncation_length=length,
                activation=self.config.activation,
                peepholes=self.config.peepholes,
            )
            grads.append(Gradient({kx: g.input_weights, kr: g.recurrent_weights, kb: g.bias}))
            eps_in = e if eps_in is None else eps_in + e
        combined = grads[0].merge(grads[1])
        for key, g in combined.items():
            self.params[key].grad += g
        self._fwd_record = None
        self._bwd_record = None
        logger.debug("released forward records after backprop")
        return combined, eps_in

    def _weights(self):
        return [self.get_param(k) for k in ParamKey if k.is_weight]

    def calc_l2(self) -> float:
        l2 = self.config.l2
        if not self.config.use_regularization or l2 <= 0.0:
            return 0.0
        total = sum(float(np.sum(w.astype(np.float64) ** 2)) for w in self._weights())
        return 0.5 * l2 * total

    def calc_l1(self) -> float:
        l1 = self.config.l1
        if not self.config.use_regularization or l1 <= 0.0:
            return 0.0
        total = sum(float(np.sum(np.abs(w.astype(np.float64)))) for w in self._weights())
        return l1 * total
