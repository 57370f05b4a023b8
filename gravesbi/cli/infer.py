from __future__ import annotations

import argparse
import time
from typing import List
import numpy as np

from ..data.sequences import load_sequence_dataset, make_neighbour_sum_dataset
from ..losses.mse import SequenceMSELoss
from .common import load_checkpoint, setup_logging


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Run a trained bidirectional Graves LSTM checkpoint")
    ap.add_argument("--checkpoint", type=str, required=True)
    ap.add_argument("--data", type=str, default="", help=".npz/.npy with X (N,D,T); synthetic task if empty")
    ap.add_argument("--samples", type=int, default=32)
    ap.add_argument("--seq-len", type=int, default=16)
    ap.add_argument("--seed", type=int, default=7)
    ap.add_argument("--out", type=str, default="", help="write predictions to this .npy file")
    ap.add_argument("--verbose", action="store_true")
    return ap


def run(argv: List[str] | None = None) -> np.ndarray:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    layer, head, meta = load_checkpoint(args.checkpoint)
    if args.data:
        X, Y = load_sequence_dataset(args.data)
    else:
        X, Y = make_neighbour_sum_dataset(args.samples, args.seq_len, n_features=layer.n_in, seed=args.seed)
    layer.eval()
    head.eval()
    t0 = time.perf_counter()
    pred = head(layer.activate(X, training=False))
    dt = time.perf_counter() - t0
    line = f"sequences={X.shape[0]} steps={X.shape[2]} epoch={int(meta['epoch'][0])} time_ms={dt * 1000.0:.2f}"
    if Y is not None and Y.shape == pred.shape:
        line += f" mse={SequenceMSELoss().forward(pred, Y):.6f}"
    print(line)
    if args.out:
        np.save(args.out, pred)
    return pred


def main(argv: List[str] | None = None) -> None:
    run(argv)


if __name__ == "__main__":
    main()
