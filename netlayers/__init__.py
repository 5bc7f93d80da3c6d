"""Inference-only neural-network layers over flat NumPy buffers."""

from .activations import Activation, ActivationKind, PoolFunc, apply_activation, apply_activations, aggregate
from .errors import LayerError, InvalidInput, InvalidShape, DomainError
from .layers import Layer, Dense, Normal, Accum, LAYER_NAME_LEN
from .spatial import Conv2D, Pool2D, Upres, Fill, Filter2D, Pool2DUnit, UpresUnit
from .recurrent import LSTM, GRU, StateRing
