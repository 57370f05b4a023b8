from __future__ import annotations

import argparse
from typing import List
import numpy as np

from ..data.sequences import batch_iter, load_sequence_dataset, make_neighbour_sum_dataset, time_segments
from ..losses.mse import SequenceMSELoss
from ..nn.bidirectional import GravesBidirectionalLSTM
from ..nn.config import ACTIVATIONS, GravesLSTMConfig
from ..nn.gradient import ParamKey
from ..nn.layers import TimeDistributedLinear
from ..optim.adam import AdamW
from .common import save_checkpoint, setup_logging


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Train a bidirectional Graves LSTM with a per-step linear head")
    ap.add_argument("--data", type=str, default="", help=".npz with X (N,D,T) and Y (N,D_out,T); synthetic task if empty")
    ap.add_argument("--samples", type=int, default=256)
    ap.add_argument("--seq-len", type=int, default=16)
    ap.add_argument("--hidden", type=int, default=16)
    ap.add_argument("--activation", type=str, default="tanh", choices=list(ACTIVATIONS))
    ap.add_argument("--peepholes", action="store_true")
    ap.add_argument("--l1", type=float, default=0.0)
    ap.add_argument("--l2", type=float, default=0.0)
    ap.add_argument("--lr", type=float, default=1e-2)
    ap.add_argument("--wd", type=float, default=0.0)
    ap.add_argument("--batch-size", type=int, default=32)
    ap.add_argument("--epochs", type=int, default=5)
    ap.add_argument("--tbptt-length", type=int, default=0, help="segment length for truncated BPTT; 0 for full BPTT")
    ap.add_argument("--max-grad-norm", type=float, default=5.0)
    ap.add_argument("--patience", type=int, default=0)
    ap.add_argument("--seed", type=int, default=123)
    ap.add_argument("--checkpoint", type=str, default="checkpoint.npz")
    ap.add_argument("--verbose", action="store_true")
    return ap


def add_penalty_grads(layer: GravesBidirectionalLSTM) -> None:
    cfg = layer.config
    if not cfg.use_regularization:
        return
    for key in ParamKey:
        if not key.is_weight:
            continue
        p = layer.params[key]
        if cfg.l2 > 0.0:
            p.grad += cfg.l2 * p.data
        if cfg.l1 > 0.0:
            p.grad += cfg.l1 * np.sign(p.data)


def train_step(layer: GravesBidirectionalLSTM, head: TimeDistributedLinear, loss_fn: SequenceMSELoss, opt: AdamW, xb: np.ndarray, yb: np.ndarray, tbptt_length: int) -> float:
    layer.train()
    head.train()
    if tbptt_length <= 0:
        out = layer.activate(xb, training=True)
        loss = loss_fn.forward(head(out), yb)
        dh = head.backward(loss_fn.backward())
        layer.backprop_gradient(dh)
        add_penalty_grads(layer)
        opt.step()
        opt.zero_grad()
        return loss + layer.calc_l1() + layer.calc_l2()
    state = None
    losses: List[float] = []
    for sl in time_segments(xb.shape[2], tbptt_length):
        out, state = layer.rnn_activate_using_stored_state(xb[:, :, sl], state, training=True)
        loss = loss_fn.forward(head(out), yb[:, :, sl])
        dh = head.backward(loss_fn.backward())
        layer.tbptt_backprop_gradient(dh, tbptt_length)
        add_penalty_grads(layer)
        opt.step()
        opt.zero_grad()
        losses.append(loss + layer.calc_l1() + layer.calc_l2())
    return float(np.mean(losses))


def evaluate(layer: GravesBidirectionalLSTM, head: TimeDistributedLinear, loss_fn: SequenceMSELoss, X: np.ndarray, Y: np.ndarray) -> float:
    layer.eval()
    head.eval()
    with np.errstate(all="ignore"):
        yh = head(layer.activate(X, training=False))
        return loss_fn.forward(yh, Y)


def run(argv: List[str] | None = None) -> float:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    rng = np.random.default_rng(args.seed)

    if args.data:
        X, Y = load_sequence_dataset(args.data)
        if Y is None:
            raise SystemExit("training data must contain targets 'Y'")
    else:
        X, Y = make_neighbour_sum_dataset(args.samples, args.seq_len, seed=args.seed)
    nva = max(1, int(0.1 * X.shape[0]))
    if X.shape[0] - nva < 1:
        raise SystemExit("need at least two sequences to split train/validation")
    Xtr, Ytr = X[:-nva], Y[:-nva]
    Xva, Yva = X[-nva:], Y[-nva:]

    cfg = GravesLSTMConfig(
        n_in=X.shape[1],
        n_out=args.hidden,
        activation=args.activation,
        peepholes=args.peepholes,
        use_regularization=(args.l1 > 0.0 or args.l2 > 0.0),
        l1=args.l1,
        l2=args.l2,
        seed=args.seed + 31,
    )
    layer = GravesBidirectionalLSTM(cfg)
    head = TimeDistributedLinear(args.hidden, Y.shape[1], seed=args.seed + 7)
    params = {k.value: p for k, p in layer.params.items()}
    params.update({f"head/{k}": p for k, p in head.named_parameters().items()})
    opt = AdamW(params, lr=args.lr, weight_decay=args.wd, max_grad_norm=args.max_grad_norm)
    loss_fn = SequenceMSELoss()

    best_val = float("inf")
    global_step = 0
    no_improve = 0
    for epoch in range(1, args.epochs + 1):
        tot = 0.0
        nb = 0
        for xb, yb in batch_iter(Xtr, Ytr, args.batch_size, shuffle=True, rng=rng):
            tot += train_step(layer, head, loss_fn, opt, xb, yb, args.tbptt_length)
            global_step += 1
            nb += 1
        vloss = evaluate(layer, head, loss_fn, Xva, Yva)
        if vloss < best_val:
            best_val = vloss
            save_checkpoint(args.checkpoint, layer, head, epoch, global_step, best_val, extra=opt.state_dict())
            no_improve = 0
        else:
            no_improve += 1
        print(f"epoch={epoch} step={global_step} lr={opt.lr:.6f} train_loss={tot/max(1,nb):.6f} val_loss={vloss:.6f}")
        if args.patience > 0 and no_improve >= args.patience:
            break
    return best_val


def main(argv: List[str] | None = None) -> None:
    run(argv)


if __name__ == "__main__":
    main()
