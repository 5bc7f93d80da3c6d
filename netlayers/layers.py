"""
Layer Implementations (Pure NumPy)
Base layer contract plus the Dense, Normal and Accum layers.
Forward pass only: each run consumes one input vector and overwrites the layer's output buffer.
"""

import logging

import numpy as np

from .activations import Activation, ActivationKind, apply_activations
from .errors import DomainError, InvalidInput, InvalidShape

logger = logging.getLogger(__name__)

LAYER_NAME_LEN = 32


class Layer:
    """
    Base class for all layers.
    Owns a name and an output buffer `out`; inputs are only read.
    """

    def __init__(self, name=None):
        self._name = ''
        self.out = np.zeros(0)
        if name is not None:
            self.name = name

    @property
    def name(self):
        return self._name

    @name.setter
    def name(self, value):
        self._name = str(value)[:LAYER_NAME_LEN]

    def output_length(self):
        raise NotImplementedError

    def run(self, x):
        """Run x through the layer, write self.out and return its length."""
        raise NotImplementedError

    def forward(self, x):
        """Run x through the layer and return the output buffer."""
        self.run(x)
        return self.out

    def _reallocate(self):
        self.out = np.zeros(self.output_length())
        logger.debug("%s: output buffer reallocated to %d", self, self.out.size)

    def _in_range(self, i, n, setter):
        if 0 <= i < n:
            return True
        logger.debug("%s: %s ignored, index %s out of range [0, %d)", self, setter, i, n)
        return False

    @staticmethod
    def _vector(x, length, what='input'):
        x = np.asarray(x, dtype=np.float64).ravel()
        if x.size != length:
            raise InvalidInput(f"Expected {what} of length {length}, got {x.size}")
        return x

    @staticmethod
    def _dimension(value, what):
        if int(value) != value or value < 1:
            raise InvalidShape(f"{what} must be a positive integer, got {value}")
        return int(value)

    def __repr__(self):
        return f"{type(self).__name__}({self._name!r})"


class Dense(Layer):
    """
    Fully Connected Layer.

    W is (inputs + 1, nodes): one column per unit, the last row holds the biases.
    M has the same shape with every entry 0.0 or 1.0 and is applied to W at every run.
    """

    def __init__(self, inputs, nodes, name=None):
        super().__init__(name)
        self.inputs = self._dimension(inputs, 'inputs')
        self.nodes = self._dimension(nodes, 'nodes')

        self.W = np.zeros((self.inputs + 1, self.nodes))
        self.M = np.ones((self.inputs + 1, self.nodes))
        self.functions = np.full(self.nodes, int(ActivationKind.RELU), dtype=np.int64)
        self.alphas = np.ones(self.nodes)

        self._reallocate()

    def set_weights(self, w):
        """Set the whole weight matrix from a row-major buffer (bias row last)."""
        w = self._vector(w, self.W.size, 'weights')
        self.W = w.reshape(self.W.shape).copy()

    def set_unit_weights(self, i, w):
        """Set the inputs + 1 weights of unit i (bias last)."""
        if not self._in_range(i, self.nodes, 'set_unit_weights'):
            return
        self.W[:, i] = self._vector(w, self.inputs + 1, 'unit weights')

    def set_weight(self, i, j, w):
        """Set weight j of unit i; j == inputs addresses the bias."""
        if self._in_range(i, self.nodes, 'set_weight') and \
                self._in_range(j, self.inputs + 1, 'set_weight'):
            self.W[j, i] = w

    def set_mask(self, m):
        """Set the whole mask matrix from a row-major buffer of truth values."""
        m = np.asarray(m).ravel()
        if m.size != self.M.size:
            raise InvalidInput(f"Expected mask of length {self.M.size}, got {m.size}")
        self.M = np.where(m.astype(bool), 1.0, 0.0).reshape(self.M.shape)

    def set_unit_mask(self, i, m):
        if not self._in_range(i, self.nodes, 'set_unit_mask'):
            return
        m = np.asarray(m).ravel()
        if m.size != self.inputs + 1:
            raise InvalidInput(f"Expected unit mask of length {self.inputs + 1}, got {m.size}")
        self.M[:, i] = np.where(m.astype(bool), 1.0, 0.0)

    def set_mask_entry(self, i, j, live):
        """Mark weight j of unit i as live or pruned."""
        if self._in_range(i, self.nodes, 'set_mask_entry') and \
                self._in_range(j, self.inputs + 1, 'set_mask_entry'):
            self.M[j, i] = 1.0 if live else 0.0

    def set_activation(self, i, kind):
        if self._in_range(i, self.nodes, 'set_activation'):
            self.functions[i] = int(ActivationKind(kind))

    def set_alpha(self, i, a):
        if self._in_range(i, self.nodes, 'set_alpha'):
            self.alphas[i] = a

    def activation(self, i):
        return Activation(ActivationKind(int(self.functions[i])), float(self.alphas[i]))

    def output_length(self):
        return self.nodes

    def run(self, x):
        """
        Forward pass.
        x: (inputs,)
        Writes (nodes,) into self.out and returns nodes.
        """
        x = self._vector(x, self.inputs)
        xprime = np.append(x, 1.0)

        raw = xprime @ (self.W * self.M)
        self.out[:] = apply_activations(raw, self.functions, self.alphas)
        logger.debug("%s: run wrote %d outputs", self, self.nodes)
        return self.nodes

    def get_params(self):
        return {'W': self.W.copy(), 'M': self.M.copy()}

    def set_params(self, params):
        if 'W' in params:
            self.set_weights(params['W'])
        if 'M' in params:
            self.set_mask(params['M'])


class Normal(Layer):
    """
    Normalizing Layer.
    Applies four learned scalars to every element: y = g * ((x - m) / s) + b.
    """

    def __init__(self, inputs, name=None):
        super().__init__(name)
        self.inputs = self._dimension(inputs, 'inputs')
        self.m = 0.0
        self.s = 1.0
        self.g = 1.0
        self.b = 0.0
        self._reallocate()

    def set_mean(self, m):
        self.m = float(m)

    def set_std(self, s):
        self.s = float(s)

    def set_gain(self, g):
        self.g = float(g)

    def set_bias(self, b):
        self.b = float(b)

    def output_length(self):
        return self.inputs

    def run(self, x):
        x = self._vector(x, self.inputs)
        if self.s == 0.0:
            raise DomainError(f"{self}: standard deviation is zero")
        self.out[:] = self.g * ((x - self.m) / self.s) + self.b
        logger.debug("%s: run wrote %d outputs", self, self.inputs)
        return self.inputs

    def get_params(self):
        return {'m': self.m, 's': self.s, 'g': self.g, 'b': self.b}

    def set_params(self, params):
        self.set_mean(params.get('m', self.m))
        self.set_std(params.get('s', self.s))
        self.set_gain(params.get('g', self.g))
        self.set_bias(params.get('b', self.b))


class Accum(Layer):
    """Pass-through layer: a named join point that forwards its input unchanged."""

    def __init__(self, inputs, name=None):
        super().__init__(name)
        self.inputs = self._dimension(inputs, 'inputs')
        self._reallocate()

    def output_length(self):
        return self.inputs

    def run(self, x):
        self.out[:] = self._vector(x, self.inputs)
        logger.debug("%s: run wrote %d outputs", self, self.inputs)
        return self.inputs
