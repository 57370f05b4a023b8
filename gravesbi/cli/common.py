from __future__ import annotations

import logging
from typing import Dict, Tuple
import numpy as np

from ..nn.bidirectional import GravesBidirectionalLSTM
from ..nn.config import GravesLSTMConfig
from ..nn.layers import TimeDistributedLinear

_CONFIG_INTS = ("n_in", "n_out")
_CONFIG_FLOATS = ("forget_gate_bias_init", "weight_init_scale", "l1", "l2")


def setup_logging(verbose: bool) -> None:
    if verbose and not logging.getLogger().handlers:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def save_checkpoint(path: str, layer: GravesBidirectionalLSTM, head: TimeDistributedLinear, epoch: int, step: int, best_val: float, extra: Dict[str, np.ndarray] | None = None) -> None:
    cfg = layer.config
    data: Dict[str, np.ndarray] = {}
    for k, v in layer.state_dict().items():
        data[f"layer/{k}"] = v
    data["head/W"] = head.W.data
    data["head/b"] = head.b.data
    for k in _CONFIG_INTS:
        data[f"cfg/{k}"] = np.array([getattr(cfg, k)], dtype=np.int64)
    for k in _CONFIG_FLOATS:
        data[f"cfg/{k}"] = np.array([getattr(cfg, k)], dtype=np.float64)
    data["cfg/peepholes"] = np.array([int(cfg.peepholes)], dtype=np.int64)
    data["cfg/use_regularization"] = np.array([int(cfg.use_regularization)], dtype=np.int64)
    data["cfg/activation"] = np.array(cfg.activation)
    data["cfg/dtype"] = np.array(cfg.dtype)
    data["epoch"] = np.array([epoch], dtype=np.int64)
    data["step"] = np.array([step], dtype=np.int64)
    data["best_val"] = np.array([best_val], dtype=np.float32)
    if extra:
        for k, v in extra.items():
            data[f"extra/{k}"] = v
    np.savez_compressed(path, **data)


def load_checkpoint(path: str) -> Tuple[GravesBidirectionalLSTM, TimeDistributedLinear, Dict[str, np.ndarray]]:
    z = np.load(path)
    kw = {}
    for k in _CONFIG_INTS:
        kw[k] = int(z[f"cfg/{k}"][0])
    for k in _CONFIG_FLOATS:
        kw[k] = float(z[f"cfg/{k}"][0])
    kw["peepholes"] = bool(z["cfg/peepholes"][0])
    kw["use_regularization"] = bool(z["cfg/use_regularization"][0])
    kw["activation"] = str(z["cfg/activation"])
    kw["dtype"] = str(z["cfg/dtype"])
    layer = GravesBidirectionalLSTM(GravesLSTMConfig(**kw))
    layer.load_state_dict({k[len("layer/"):]: z[k] for k in z.files if k.startswith("layer/")})
    W = z["head/W"]
    head = TimeDistributedLinear(W.shape[0], W.shape[1], dtype=kw["dtype"])
    head.W.data[...] = W
    head.b.data[...] = z["head/b"]
    meta = {k: z[k] for k in z.files if not k.startswith(("layer/", "head/", "cfg/"))}
    return layer, head, meta
