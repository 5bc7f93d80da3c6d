"""
Activation and Aggregation Functions (Pure NumPy)
Elementwise activations applied after a linear or windowed reduction,
and the reductions used by pooling windows.
"""

import enum
from dataclasses import dataclass

import numpy as np


# Exponent arguments beyond this overflow float64
EXP_CLIP = 500.0


class ActivationKind(enum.IntEnum):
    RELU = 0                # [ 0.0, inf)
    LEAKY_RELU = 1          # (-inf, inf)
    SIGMOID = 2             # ( 0.0, 1.0)
    TANH = 3                # [-1.0, 1.0]
    SOFTMAX = 4             # [ 0.0, 1.0]
    SYMMETRIC_SIGMOID = 5   # (-1.0, 1.0)
    THRESHOLD = 6           # { 0.0, 1.0 }
    LINEAR = 7              # (-inf, inf)


class PoolFunc(enum.IntEnum):
    MAX = 0
    MIN = 1
    AVG = 2
    MEDIAN = 3


@dataclass(frozen=True)
class Activation:
    """An activation kind together with its scalar parameter."""
    kind: ActivationKind = ActivationKind.RELU
    alpha: float = 1.0


def _exp(v):
    return np.exp(np.clip(v, -EXP_CLIP, EXP_CLIP))


def relu(v, alpha=1.0):
    return np.maximum(0.0, v)


def leaky_relu(v, alpha=1.0):
    return np.where(v >= 0.0, v, v * alpha)


def sigmoid(v, alpha=1.0):
    return 1.0 / (1.0 + _exp(-v * alpha))


def tanh(v, alpha=1.0):
    return 2.0 / (1.0 + _exp(-2.0 * v * alpha)) - 1.0


def symmetric_sigmoid(v, alpha=1.0):
    e = _exp(-v * alpha)
    return (1.0 - e) / (1.0 + e)


def threshold(v, alpha=1.0):
    return np.where(v > alpha, 1.0, 0.0)


def linear(v, alpha=1.0):
    return v * alpha


def softmax(v, raw):
    """
    e^v / sum(e^raw).

    raw: every pre-activation value that shares the denominator, v among them.
    The maximum is subtracted from both sides before exponentiating.
    """
    raw = np.asarray(raw, dtype=np.float64)
    shift = raw.max() if raw.size else 0.0
    denom = np.sum(np.exp(raw - shift))
    return np.exp(np.asarray(v, dtype=np.float64) - shift) / denom


_FUNCTIONS = {
    ActivationKind.RELU: relu,
    ActivationKind.LEAKY_RELU: leaky_relu,
    ActivationKind.SIGMOID: sigmoid,
    ActivationKind.TANH: tanh,
    ActivationKind.SYMMETRIC_SIGMOID: symmetric_sigmoid,
    ActivationKind.THRESHOLD: threshold,
    ActivationKind.LINEAR: linear,
}


def apply_activation(raw, activation):
    """
    Apply one activation to every value of raw.
    Softmax normalizes over all of raw.
    """
    raw = np.asarray(raw, dtype=np.float64)
    kind = ActivationKind(activation.kind)
    if kind == ActivationKind.SOFTMAX:
        return softmax(raw, raw)
    return _FUNCTIONS[kind](raw, activation.alpha)


def apply_activations(raw, kinds, alphas):
    """
    Apply a per-element activation to raw.

    raw: (n,) pre-activation values of one layer call
    kinds: (n,) ActivationKind codes
    alphas: (n,) activation parameters
    Softmax elements share one denominator accumulated over all of raw.
    """
    raw = np.asarray(raw, dtype=np.float64)
    kinds = np.asarray(kinds)
    alphas = np.asarray(alphas, dtype=np.float64)
    out = np.empty_like(raw)

    for kind in np.unique(kinds):
        kind = ActivationKind(int(kind))
        sel = kinds == kind
        if kind == ActivationKind.SOFTMAX:
            out[sel] = softmax(raw[sel], raw)
        else:
            out[sel] = _FUNCTIONS[kind](raw[sel], alphas[sel])
    return out


def median(windows):
    """
    Median of each row of windows.
    Odd window sizes take the middle element, even sizes the mean of the two central ones.
    """
    scratch = np.sort(windows, axis=1)
    n = scratch.shape[1]
    if n % 2:
        return scratch[:, n // 2]
    return 0.5 * (scratch[:, n // 2 - 1] + scratch[:, n // 2])


def aggregate(func, windows):
    """
    Reduce each window to one value.

    windows: (num_windows, window_size)
    Returns: (num_windows,)
    """
    func = PoolFunc(func)
    if func == PoolFunc.MAX:
        return windows.max(axis=1)
    if func == PoolFunc.MIN:
        return windows.min(axis=1)
    if func == PoolFunc.AVG:
        return windows.mean(axis=1)
    return median(windows)
