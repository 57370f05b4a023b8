from .module import Module, Parameter
from .errors import GradientKeyCollision, ShapeMismatch, UnsupportedOperation
from .gradient import Gradient, ParamKey
from .config import GravesLSTMConfig
from .lstm import Direction, FwdPassResult, backward_pass, forward_pass, lstm_step
from .bidirectional import BidirectionalState, GravesBidirectionalLSTM
from .layers import Linear, TimeDistributedLinear

__all__ = [
    "Module",
    "Parameter",
    "GradientKeyCollision",
    "ShapeMismatch",
    "UnsupportedOperation",
    "Gradient",
    "ParamKey",
    "GravesLSTMConfig",
    "Direction",
    "FwdPassResult",
    "backward_pass",
    "forward_pass",
    "lstm_step",
    "BidirectionalState",
    "GravesBidirectionalLSTM",
    "Linear",
    "TimeDistributedLinear",
]
