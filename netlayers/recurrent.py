"""
Recurrent Layer Implementations (Pure NumPy)
LSTM and GRU layers advancing one timestep per run.

Each layer keeps the last `cache` hidden states in a StateRing:
    d = length of one input instance
    h = length of the hidden state
    cache = number of past states retained
W matrices are (h, d), U matrices are (h, h), biases are (h,).
"""

import logging

import numpy as np

from .activations import sigmoid, tanh
from .errors import InvalidInput
from .layers import Layer

logger = logging.getLogger(__name__)


class StateRing:
    """
    Fixed-capacity ring of state columns.

    Column writes % capacity is overwritten next, so once full the oldest
    state is evicted. The most recently written column is the previous state.
    """

    def __init__(self, dim, capacity):
        self.dim = dim
        self.capacity = capacity
        self.H = np.zeros((dim, capacity))
        self.writes = 0

    @property
    def count(self):
        """Number of valid columns."""
        return min(self.writes, self.capacity)

    def latest(self):
        if self.writes == 0:
            return np.zeros(self.dim)
        return self.H[:, (self.writes - 1) % self.capacity].copy()

    def push(self, state):
        self.H[:, self.writes % self.capacity] = state
        self.writes += 1

    def columns(self):
        """
        Valid states, oldest first.
        Returns: (dim, count)
        """
        if self.writes <= self.capacity:
            return self.H[:, :self.writes].copy()
        start = self.writes % self.capacity
        order = (start + np.arange(self.capacity)) % self.capacity
        return self.H[:, order]

    def matrix(self):
        """
        The (dim, capacity) cache with states packed left, oldest first,
        and unused columns zero.
        """
        H = np.zeros((self.dim, self.capacity))
        H[:, :self.count] = self.columns()
        return H

    def clear(self):
        self.H[:] = 0.0
        self.writes = 0


class _RecurrentLayer(Layer):
    """
    Shared parameter storage and state handling for gated recurrent layers.
    Subclasses name their gates and implement step().
    """

    GATES = ()

    def __init__(self, d, h, cache, name=None):
        super().__init__(name)
        self.d = self._dimension(d, 'd')
        self.h = self._dimension(h, 'h')
        self.cache = self._dimension(cache, 'cache')
        self.t = 0

        self.W = {g: np.zeros((self.h, self.d)) for g in self.GATES}
        self.U = {g: np.zeros((self.h, self.h)) for g in self.GATES}
        self.b = {g: np.zeros(self.h) for g in self.GATES}

        self.ring = StateRing(self.h, self.cache)
        self._reallocate()

    def _gate(self, gate):
        if gate not in self.W:
            raise KeyError(f"{type(self).__name__} has no gate {gate!r}; expected one of {self.GATES}")
        return gate

    def set_w(self, gate, w):
        """Set the whole (h, d) W matrix of a gate from a row-major buffer."""
        self.W[self._gate(gate)] = self._vector(w, self.h * self.d, 'W').reshape(self.h, self.d).copy()

    def set_w_ij(self, gate, w, i, j):
        """Set row i, column j of a gate's W matrix."""
        gate = self._gate(gate)
        if self._in_range(i, self.h, 'set_w_ij') and self._in_range(j, self.d, 'set_w_ij'):
            self.W[gate][i, j] = w

    def set_u(self, gate, u):
        """Set the whole (h, h) U matrix of a gate from a row-major buffer."""
        self.U[self._gate(gate)] = self._vector(u, self.h * self.h, 'U').reshape(self.h, self.h).copy()

    def set_u_ij(self, gate, u, i, j):
        gate = self._gate(gate)
        if self._in_range(i, self.h, 'set_u_ij') and self._in_range(j, self.h, 'set_u_ij'):
            self.U[gate][i, j] = u

    def set_b(self, gate, b):
        self.b[self._gate(gate)] = self._vector(b, self.h, 'b').copy()

    def set_b_i(self, gate, b, i):
        gate = self._gate(gate)
        if self._in_range(i, self.h, 'set_b_i'):
            self.b[gate][i] = b

    def preactivation(self, gate, x, h_prev):
        """W x + U h_prev + b for one gate."""
        return self.W[gate] @ x + self.U[gate] @ h_prev + self.b[gate]

    def output_length(self):
        return self.h

    def step(self, x, h_prev):
        """Compute the new hidden state from x and the previous state."""
        raise NotImplementedError

    def run(self, x):
        """
        Forward pass for one timestep.
        x: (d,)
        Writes the new hidden state (h,) into the ring and self.out, returns h.
        """
        x = self._vector(x, self.d)

        h_t = self.step(x, self.ring.latest())

        self.ring.push(h_t)
        self.out[:] = h_t
        self.t += 1
        logger.debug("%s: run wrote %d outputs", self, self.h)
        return self.h

    def reset(self):
        """Forget every state and restart at timestep 0."""
        self.ring.clear()
        self.out[:] = 0.0
        self.t = 0
        logger.debug("%s: reset", self)

    def states(self):
        """Retained hidden states, oldest first: (h, min(t, cache))."""
        return self.ring.columns()

    def state_matrix(self):
        """The (h, cache) state cache, oldest state in column 0."""
        return self.ring.matrix()

    def get_params(self):
        params = {}
        for g in self.GATES:
            params['W' + g] = self.W[g].copy()
            params['U' + g] = self.U[g].copy()
            params['b' + g] = self.b[g].copy()
        return params

    def set_params(self, params):
        for key, value in params.items():
            kind, gate = key[0], key[1:]
            if kind == 'W':
                self.set_w(gate, value)
            elif kind == 'U':
                self.set_u(gate, value)
            elif kind == 'b':
                self.set_b(gate, value)
            else:
                raise InvalidInput(f"Unknown parameter {key!r}")


class LSTM(_RecurrentLayer):
    """
    Long Short-Term Memory Layer.

        i_t  = sig(W_i x_t + U_i h_{t-1} + b_i)
        f_t  = sig(W_f x_t + U_f h_{t-1} + b_f)
        o_t  = sig(W_o x_t + U_o h_{t-1} + b_o)
        c~_t = tanh(W_c x_t + U_c h_{t-1} + b_c)
        c_t  = f_t * c_{t-1} + i_t * c~_t
        h_t  = o_t * tanh(c_t)
    """

    GATES = ('i', 'o', 'f', 'c')

    def __init__(self, d, h, cache, name=None):
        super().__init__(d, h, cache, name)
        self.c = np.zeros(self.h)

    def step(self, x, h_prev):
        i = sigmoid(self.preactivation('i', x, h_prev))
        f = sigmoid(self.preactivation('f', x, h_prev))
        o = sigmoid(self.preactivation('o', x, h_prev))
        c_tilde = tanh(self.preactivation('c', x, h_prev))

        self.c = f * self.c + i * c_tilde
        return o * tanh(self.c)

    def reset(self):
        self.c = np.zeros(self.h)
        super().reset()


class GRU(_RecurrentLayer):
    """
    Gated Recurrent Unit Layer.

        z_t  = sig(W_z x_t + U_z h_{t-1} + b_z)
        r_t  = sig(W_r x_t + U_r h_{t-1} + b_r)
        h~_t = tanh(W_h x_t + U_h (r_t * h_{t-1}) + b_h)
        h_t  = z_t * h_{t-1} + (1 - z_t) * h~_t
    """

    GATES = ('z', 'r', 'h')

    def step(self, x, h_prev):
        z = sigmoid(self.preactivation('z', x, h_prev))
        r = sigmoid(self.preactivation('r', x, h_prev))
        h_tilde = tanh(self.preactivation('h', x, r * h_prev))

        return z * h_prev + (1.0 - z) * h_tilde
