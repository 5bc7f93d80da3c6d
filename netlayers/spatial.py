"""
2D Spatial Layer Implementations (Pure NumPy)
Convolution, pooling and up-resolution over a single-channel 2D input.

Inputs arrive as flat row-major vectors of length input_w * input_h.
Each layer holds an ordered list of independent units (filters, pools or up-ressings);
unit outputs are concatenated in insertion order into the layer's output buffer.
"""

import dataclasses
import enum
import logging
from dataclasses import dataclass

import numpy as np

from .activations import Activation, ActivationKind, PoolFunc, aggregate, apply_activation
from .errors import InvalidShape
from .layers import Layer

logger = logging.getLogger(__name__)


class Fill(enum.IntEnum):
    ZERO = 0      # Fill with zeroes
    SAME = 1      # Duplicate the nearest source value
    INTERP = 2    # Bilinear interpolation


def _count(value, what, minimum):
    if int(value) != value or value < minimum:
        raise InvalidShape(f"{what} must be an integer >= {minimum}, got {value}")
    return int(value)


def window_count(size, window, stride):
    """Number of valid window origins along one axis."""
    window = _count(window, 'window size', 1)
    stride = _count(stride, 'stride', 1)
    if window > size:
        raise InvalidShape(f"window of {window} does not fit an input of {size}")
    return (size - window) // stride + 1


def im2col(X, kernel_h, kernel_w, stride_v, stride_h):
    """
    Convert image to column matrix: one row per valid window, in raster order.
    X: (H, W)
    Returns: (out_h * out_w, kernel_h * kernel_w)
    """
    H, W = X.shape

    out_h = (H - kernel_h) // stride_v + 1
    out_w = (W - kernel_w) // stride_h + 1

    col = np.zeros((out_h, out_w, kernel_h, kernel_w))

    for y in range(kernel_h):
        y_max = y + stride_v * out_h
        for x in range(kernel_w):
            x_max = x + stride_h * out_w
            col[:, :, y, x] = X[y:y_max:stride_v, x:x_max:stride_h]

    return col.reshape(out_h * out_w, -1)


@dataclass
class Filter2D:
    """A convolution filter: (h, w) weights, a bias, strides and an activation."""
    w: int
    h: int
    stride_h: int = 1
    stride_v: int = 1
    activation: Activation = Activation()
    weights: np.ndarray = None
    bias: float = 0.0

    def __post_init__(self):
        if self.weights is None:
            self.weights = np.zeros((self.h, self.w))

    def output_length(self, input_w, input_h):
        return window_count(input_w, self.w, self.stride_h) * window_count(input_h, self.h, self.stride_v)


@dataclass
class Pool2DUnit:
    """A pooling window: shape, strides and reduction."""
    w: int
    h: int
    stride_h: int = 1
    stride_v: int = 1
    func: PoolFunc = PoolFunc.MAX

    def output_length(self, input_w, input_h):
        return window_count(input_w, self.w, self.stride_h) * window_count(input_h, self.h, self.stride_v)


@dataclass
class UpresUnit:
    """
    An up-ressing: stride_h columns inserted between source columns,
    stride_v rows between source rows, then padding around the border.
    """
    stride_h: int = 1
    stride_v: int = 1
    padding_h: int = 0
    padding_v: int = 0
    stride_fill: Fill = Fill.ZERO
    padding_fill: Fill = Fill.ZERO

    def inner_shape(self, input_w, input_h):
        stride_h = _count(self.stride_h, 'stride', 0)
        stride_v = _count(self.stride_v, 'stride', 0)
        return (input_w * (stride_h + 1) - stride_h,
                input_h * (stride_v + 1) - stride_v)

    def output_shape(self, input_w, input_h):
        cache_w, cache_h = self.inner_shape(input_w, input_h)
        return (cache_w + 2 * _count(self.padding_h, 'padding', 0),
                cache_h + 2 * _count(self.padding_v, 'padding', 0))

    def output_length(self, input_w, input_h):
        output_w, output_h = self.output_shape(input_w, input_h)
        return output_w * output_h


class _UnitLayer(Layer):
    """
    Shared bookkeeping for layers made of independent units over a 2D input.
    Every shape-affecting change recomputes the output length and reallocates self.out.
    """

    def __init__(self, input_w, input_h, name=None):
        super().__init__(name)
        self.input_w = self._dimension(input_w, 'input_w')
        self.input_h = self._dimension(input_h, 'input_h')
        self.units = []
        self._reallocate()

    def output_length(self):
        return sum(unit.output_length(self.input_w, self.input_h) for unit in self.units)

    def _append(self, unit):
        unit.output_length(self.input_w, self.input_h)
        self.units.append(unit)
        self._reallocate()
        logger.debug("%s: added %s", self, unit)
        return len(self.units) - 1

    def _reshape(self, i, setter, **changes):
        """Apply a shape-affecting change to unit i, rejecting it if the unit would be empty."""
        if not self._in_range(i, len(self.units), setter):
            return
        changes = {key: _count(value, key, 0) for key, value in changes.items()}
        unit = dataclasses.replace(self.units[i], **changes)
        unit.output_length(self.input_w, self.input_h)
        self.units[i] = unit
        self._reallocate()

    def _set(self, i, setter, **changes):
        if not self._in_range(i, len(self.units), setter):
            return
        for key, value in changes.items():
            setattr(self.units[i], key, value)

    def set_stride_h(self, i, stride):
        self._reshape(i, 'set_stride_h', stride_h=stride)

    def set_stride_v(self, i, stride):
        self._reshape(i, 'set_stride_v', stride_v=stride)

    def _image(self, xvec):
        return self._vector(xvec, self.input_w * self.input_h).reshape(self.input_h, self.input_w)

    def __len__(self):
        return len(self.units)


class Conv2D(_UnitLayer):
    """
    2D Convolution Layer.
    A bank of filters, each convolved in valid mode over the whole input
    and followed by its own activation.
    """

    def add_filter(self, w, h, rng=None):
        """
        Add a (w, h) filter with stride (1, 1), ReLU and bias 0.0.
        rng: numpy Generator drawing the initial weights from [-1, 1]; zeros without one.
        Returns the new filter's index.
        """
        w = _count(w, 'filter width', 1)
        h = _count(h, 'filter height', 1)
        if rng is not None:
            weights = rng.uniform(-1.0, 1.0, size=(h, w))
        else:
            weights = np.zeros((h, w))
        return self._append(Filter2D(w, h, weights=weights))

    def set_filter_weights(self, i, w):
        """
        Set all of filter i.
        w: w * h weights, row-major, followed by the bias
        """
        if not self._in_range(i, len(self.units), 'set_filter_weights'):
            return
        f = self.units[i]
        w = self._vector(w, f.w * f.h + 1, 'filter weights')
        f.weights = w[:-1].reshape(f.h, f.w).copy()
        f.bias = float(w[-1])

    def set_weight(self, i, j, w):
        """Set weight j of filter i; j == w * h addresses the bias."""
        if not self._in_range(i, len(self.units), 'set_weight'):
            return
        f = self.units[i]
        if not self._in_range(j, f.w * f.h + 1, 'set_weight'):
            return
        if j == f.w * f.h:
            f.bias = float(w)
        else:
            f.weights.flat[j] = w

    def set_activation(self, i, kind):
        if self._in_range(i, len(self.units), 'set_activation'):
            f = self.units[i]
            f.activation = Activation(ActivationKind(kind), f.activation.alpha)

    def set_alpha(self, i, a):
        if self._in_range(i, len(self.units), 'set_alpha'):
            f = self.units[i]
            f.activation = Activation(f.activation.kind, float(a))

    def run(self, xvec):
        """
        Forward pass.
        xvec: (input_w * input_h,)
        Writes every filter's activated output, filter after filter, into self.out.
        """
        X = self._image(xvec)

        o = 0
        for f in self.units:
            col = im2col(X, f.h, f.w, f.stride_v, f.stride_h)
            cache = col @ f.weights.ravel() + f.bias

            self.out[o:o + cache.size] = apply_activation(cache, f.activation)
            o += cache.size

        logger.debug("%s: run wrote %d outputs", self, self.out.size)
        return self.out.size

    def get_params(self):
        return {'filters': [np.append(f.weights.ravel(), f.bias) for f in self.units]}

    def set_params(self, params):
        for i, w in enumerate(params.get('filters', [])):
            self.set_filter_weights(i, w)


class Pool2D(_UnitLayer):
    """
    2D Pooling Layer.
    A bank of windows, each reduced by max, min, average or median.
    """

    def add_pool(self, w, h):
        """Add a (w, h) max-pool with stride (1, 1). Returns the new pool's index."""
        return self._append(Pool2DUnit(_count(w, 'pool width', 1), _count(h, 'pool height', 1)))

    def set_width(self, i, width):
        self._reshape(i, 'set_width', w=width)

    def set_height(self, i, height):
        self._reshape(i, 'set_height', h=height)

    def set_function(self, i, func):
        self._set(i, 'set_function', func=PoolFunc(func))

    def run(self, xvec):
        X = self._image(xvec)

        o = 0
        for pool in self.units:
            col = im2col(X, pool.h, pool.w, pool.stride_v, pool.stride_h)
            values = aggregate(pool.func, col)

            self.out[o:o + values.size] = values
            o += values.size

        logger.debug("%s: run wrote %d outputs", self, self.out.size)
        return self.out.size


class Upres(_UnitLayer):
    """
    Up-resolution Layer.
    Prepares input for transposed convolution: each up-ressing spreads the source
    apart by its strides, fills the gaps, then wraps the result in padding.
    """

    def add_upres(self, stride, padding):
        """Add an up-ressing with equal strides and paddings, zero-filled. Returns its index."""
        stride = _count(stride, 'stride', 0)
        padding = _count(padding, 'padding', 0)
        unit = UpresUnit(stride_h=stride, stride_v=stride, padding_h=padding, padding_v=padding)
        return self._append(unit)

    def set_padding_h(self, i, padding):
        self._reshape(i, 'set_padding_h', padding_h=padding)

    def set_padding_v(self, i, padding):
        self._reshape(i, 'set_padding_v', padding_v=padding)

    def set_stride_fill(self, i, fill):
        self._set(i, 'set_stride_fill', stride_fill=Fill(fill))

    def set_padding_fill(self, i, fill):
        self._set(i, 'set_padding_fill', padding_fill=Fill(fill))

    @staticmethod
    def inner(X, unit):
        """
        Build the inner rectangle of one up-ressing, before padding.
        X: (H, W) source
        Returns: (H * (stride_v + 1) - stride_v, W * (stride_h + 1) - stride_h)
        """
        H, W = X.shape
        cache_w, cache_h = unit.inner_shape(W, H)

        if unit.stride_fill == Fill.ZERO:
            cache = np.zeros((cache_h, cache_w))
            cache[::unit.stride_v + 1, ::unit.stride_h + 1] = X
            return cache

        # Where in the source does each inner pixel fall?
        xs = np.arange(cache_w) / (unit.stride_h + 1)
        ys = np.arange(cache_h) / (unit.stride_v + 1)
        x0 = np.floor(xs).astype(int)
        y0 = np.floor(ys).astype(int)
        x1 = np.minimum(x0 + 1, W - 1)
        y1 = np.minimum(y0 + 1, H - 1)
        a = (xs - x0)[np.newaxis, :]
        b = (ys - y0)[:, np.newaxis]

        # Candidate order: own, below, right, below-right
        neighbors = (X[np.ix_(y0, x0)], X[np.ix_(y1, x0)], X[np.ix_(y0, x1)], X[np.ix_(y1, x1)])
        weights = ((1.0 - a) * (1.0 - b), (1.0 - a) * b, a * (1.0 - b), a * b)

        if unit.stride_fill == Fill.INTERP:
            return sum(wt * nb for wt, nb in zip(weights, neighbors))

        cache = neighbors[0].copy()
        best = np.broadcast_to(weights[0], cache.shape)
        for wt, nb in zip(weights[1:], neighbors[1:]):
            nearer = wt > best
            cache = np.where(nearer, nb, cache)
            best = np.where(nearer, wt, best)
        return cache

    def run(self, xvec):
        X = self._image(xvec)

        o = 0
        for unit in self.units:
            cache = self.inner(X, unit)
            pad = ((unit.padding_v, unit.padding_v), (unit.padding_h, unit.padding_h))
            if unit.padding_fill == Fill.ZERO:
                padded = np.pad(cache, pad, mode='constant')
            else:
                padded = np.pad(cache, pad, mode='edge')

            self.out[o:o + padded.size] = padded.ravel()
            o += padded.size

        logger.debug("%s: run wrote %d outputs", self, self.out.size)
        return self.out.size
