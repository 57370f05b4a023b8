from __future__ import annotations

import numpy as np

from gravesbi.nn.bidirectional import GravesBidirectionalLSTM
from gravesbi.nn.config import GravesLSTMConfig
from gravesbi.nn.gradient import ParamKey
from gravesbi.nn.lstm import Direction, backward_pass, forward_pass, init_lstm_params


def finite_diff_grad(param: np.ndarray, f, eps: float = 1e-6, samples: int | None = None, rng=None):
    if samples is None:
        idxs = list(np.ndindex(*param.shape))
    else:
        if rng is None:
            rng = np.random.default_rng(0)
        idxs = [tuple(rng.integers(0, s) for s in param.shape) for _ in range(samples)]
    grads = {}
    for idx in idxs:
        orig = param[idx]
        param[idx] = orig + eps
        lp = f()
        param[idx] = orig - eps
        lm = f()
        param[idx] = orig
        grads[idx] = (lp - lm) / (2 * eps)
    return grads


def _max_diff(fd, analytic):
    return max(abs(val - analytic[idx]) for idx, val in fd.items())


def _layer(activation="tanh", peepholes=False, seed=1):
    cfg = GravesLSTMConfig(n_in=2, n_out=3, activation=activation, peepholes=peepholes, dtype="float64", seed=seed)
    layer = GravesBidirectionalLSTM(cfg)
    if peepholes:
        rng = np.random.default_rng(seed + 100)
        for key in (ParamKey.RECURRENT_WEIGHTS_FORWARDS, ParamKey.RECURRENT_WEIGHTS_BACKWARDS):
            w = layer.get_param(key).copy()
            w[:, 12:] = rng.uniform(-0.5, 0.5, size=(3, 3))
            layer.set_param(key, w)
    return layer


def _check_layer_grads(layer):
    rng = np.random.default_rng(0)
    N, T = 2, 4
    X = rng.standard_normal((N, 2, T))
    R = rng.standard_normal((N, 3, T))

    def forward_loss():
        return float(np.sum(layer.activate(X, training=False) * R))

    layer.activate(X, training=True)
    grads, eps_in = layer.backprop_gradient(R)

    for key in ParamKey:
        fd = finite_diff_grad(layer.get_param(key), forward_loss)
        assert _max_diff(fd, grads[key]) < 1e-4, key
    fd_x = finite_diff_grad(X, forward_loss)
    assert _max_diff(fd_x, eps_in) < 1e-4


def test_bidirectional_backward_grads_close():
    _check_layer_grads(_layer())


def test_peephole_grads_close():
    _check_layer_grads(_layer(peepholes=True))


def test_softsign_grads_close():
    _check_layer_grads(_layer(activation="softsign", peepholes=True, seed=5))


def test_directional_grads_with_initial_state():
    rng = np.random.default_rng(3)
    N, D, H, T = 2, 2, 3, 5
    wx, wr, b = init_lstm_params(D, H, rng, dtype=np.float64)
    X = rng.standard_normal((N, D, T))
    h0 = rng.standard_normal((N, H)) * 0.5
    c0 = rng.standard_normal((N, H)) * 0.5
    R = rng.standard_normal((N, H, T))
    for direction in Direction:
        def loss():
            return float(np.sum(forward_pass(direction, X, wx, wr, b, h0=h0, c0=c0).output * R))

        rec = forward_pass(direction, X, wx, wr, b, h0=h0, c0=c0, for_backprop=True)
        g, _ = backward_pass(R, rec, wx, wr)
        assert _max_diff(finite_diff_grad(wr, loss), g.recurrent_weights) < 1e-4
        assert _max_diff(finite_diff_grad(wx, loss), g.input_weights) < 1e-4
        assert _max_diff(finite_diff_grad(b, loss), g.bias) < 1e-4


def test_parameter_grads_accumulate_returned_gradient():
    layer = _layer()
    X = np.random.default_rng(1).standard_normal((2, 2, 4))
    out = layer.activate(X, training=True)
    grads, _ = layer.backprop_gradient(np.ones_like(out))
    for key in ParamKey:
        np.testing.assert_allclose(layer.params[key].grad, grads[key])
    layer.zero_grad()
    assert all(not np.any(p.grad) for p in layer.parameters())


def test_zero_epsilon_gives_zero_gradients():
    layer = _layer()
    X = np.random.default_rng(2).standard_normal((2, 2, 4))
    out = layer.activate(X, training=True)
    grads, eps_in = layer.backprop_gradient(np.zeros_like(out))
    for key in ParamKey:
        assert not np.any(grads[key])
    assert not np.any(eps_in)
