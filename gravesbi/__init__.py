from .nn.bidirectional import GravesBidirectionalLSTM, BidirectionalState
from .nn.config import GravesLSTMConfig
from .nn.gradient import Gradient, ParamKey
from .nn.layers import TimeDistributedLinear
from .losses.mse import SequenceMSELoss
from .optim.adam import AdamW

__all__ = ["GravesBidirectionalLSTM", "BidirectionalState", "GravesLSTMConfig", "Gradient", "ParamKey", "TimeDistributedLinear", "SequenceMSELoss", "AdamW"]
