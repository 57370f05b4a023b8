from __future__ import annotations

import numpy as np
import pytest

from gravesbi.cli import infer, train
from gravesbi.cli.common import load_checkpoint
from gravesbi.data.sequences import load_sequence_dataset, make_neighbour_sum_dataset, time_segments
from gravesbi.losses.mse import SequenceMSELoss
from gravesbi.nn.errors import ShapeMismatch
from gravesbi.nn.layers import TimeDistributedLinear
from gravesbi.nn.module import Parameter
from gravesbi.optim.adam import AdamW


def test_sequence_mse_masked_backward():
    rng = np.random.default_rng(0)
    y = rng.standard_normal((2, 1, 4)).astype(np.float32)
    t = np.zeros_like(y)
    mask = np.array([[1, 1, 0, 0], [1, 0, 0, 0]], dtype=np.float32)
    loss_fn = SequenceMSELoss()
    loss = loss_fn.forward(y, t, mask)
    assert loss == pytest.approx(float((y[0, 0, :2] ** 2).sum() + y[1, 0, 0] ** 2) / 3.0, rel=1e-5)
    d = loss_fn.backward()
    assert not np.any(d[0, 0, 2:])
    np.testing.assert_allclose(d[1, 0, 0], 2.0 * y[1, 0, 0] / 3.0, rtol=1e-5)
    with pytest.raises(ShapeMismatch):
        loss_fn.forward(y, t[:, :, :3])


def test_time_distributed_linear_matches_per_step():
    head = TimeDistributedLinear(3, 2, seed=0)
    x = np.random.default_rng(1).standard_normal((4, 3, 5)).astype(np.float32)
    y = head(x)
    assert y.shape == (4, 2, 5)
    np.testing.assert_allclose(y[:, :, 2], x[:, :, 2] @ head.W.data + head.b.data, rtol=1e-5)
    dx = head.backward(np.ones_like(y))
    assert dx.shape == x.shape


def test_adamw_minimizes_quadratic():
    p = Parameter(np.array([3.0, -2.0]), name="w")
    opt = AdamW({"w": p}, lr=0.1)
    for _ in range(200):
        p.grad[...] = 2.0 * p.data
        opt.step()
        opt.zero_grad()
    assert np.all(np.abs(p.data) < 0.1)
    fresh = AdamW({"w": Parameter(p.data.copy(), name="w")}, lr=0.1)
    fresh.load_state_dict(opt.state_dict())
    assert fresh.t == 200
    np.testing.assert_allclose(fresh.m["w"], opt.m["w"])


def test_adamw_clips_grad_norm():
    p = Parameter(np.zeros(2), name="w")
    opt = AdamW({"w": p}, lr=0.1, max_grad_norm=1.0)
    p.grad[...] = [30.0, 40.0]
    assert opt.step() == pytest.approx(50.0)


def test_neighbour_sum_targets():
    X, Y = make_neighbour_sum_dataset(3, 5, seed=1)
    assert X.shape == (3, 1, 5) and Y.shape == (3, 1, 5)
    np.testing.assert_allclose(Y[:, 0, 2], X[:, 0, 1] + X[:, 0, 3])
    np.testing.assert_allclose(Y[:, 0, 0], X[:, 0, 1])
    assert [(s.start, s.stop) for s in time_segments(7, 3)] == [(0, 3), (3, 6), (6, 7)]


def test_load_sequence_dataset(tmp_path):
    X, Y = make_neighbour_sum_dataset(4, 6)
    path = str(tmp_path / "seq.npz")
    np.savez(path, X=X, Y=Y)
    Xl, Yl = load_sequence_dataset(path)
    np.testing.assert_array_equal(Xl, X)
    np.testing.assert_array_equal(Yl, Y)
    with pytest.raises(FileNotFoundError):
        load_sequence_dataset(str(tmp_path / "missing.npz"))


@pytest.mark.parametrize("tbptt", [0, 3])
def test_train_then_infer(tmp_path, capsys, tbptt):
    ckpt = str(tmp_path / "ckpt.npz")
    best = train.run(["--samples", "24", "--seq-len", "6", "--hidden", "4", "--epochs", "2", "--batch-size", "8", "--tbptt-length", str(tbptt), "--l2", "1e-4", "--checkpoint", ckpt])
    assert np.isfinite(best)
    assert "val_loss=" in capsys.readouterr().out
    layer, head, meta = load_checkpoint(ckpt)
    assert layer.n_in == 1 and layer.n_out == 4
    assert layer.config.use_regularization
    out = str(tmp_path / "pred.npy")
    pred = infer.run(["--checkpoint", ckpt, "--samples", "5", "--seq-len", "7", "--out", out])
    assert pred.shape == (5, 1, 7)
    np.testing.assert_allclose(np.load(out), pred)
    assert "mse=" in capsys.readouterr().out
