#!/usr/bin/env python3
"""
Unit Tests for Recurrent Layers
===============================
Tests LSTM and GRU timesteps against a direct NumPy reference,
and the bounded state history kept between runs.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

import numpy as np
import pytest

from netlayers.errors import InvalidInput
from netlayers.recurrent import LSTM, GRU, StateRing


def _sig(v):
    return 1.0 / (1.0 + np.exp(-v))


def _random_params(layer, rng):
    for g in layer.GATES:
        layer.set_w(g, rng.normal(size=layer.h * layer.d))
        layer.set_u(g, rng.normal(size=layer.h * layer.h))
        layer.set_b(g, rng.normal(size=layer.h))


def _lstm_reference(layer, xs):
    """Plain LSTM recurrence over xs using the layer's parameters."""
    W, U, b = layer.W, layer.U, layer.b
    h = np.zeros(layer.h)
    c = np.zeros(layer.h)
    states = []
    for x in xs:
        i = _sig(W['i'] @ x + U['i'] @ h + b['i'])
        f = _sig(W['f'] @ x + U['f'] @ h + b['f'])
        o = _sig(W['o'] @ x + U['o'] @ h + b['o'])
        c = f * c + i * np.tanh(W['c'] @ x + U['c'] @ h + b['c'])
        h = o * np.tanh(c)
        states.append(h)
    return states


def _gru_reference(layer, xs):
    """Plain GRU recurrence over xs using the layer's parameters."""
    W, U, b = layer.W, layer.U, layer.b
    h = np.zeros(layer.h)
    states = []
    for x in xs:
        z = _sig(W['z'] @ x + U['z'] @ h + b['z'])
        r = _sig(W['r'] @ x + U['r'] @ h + b['r'])
        h_tilde = np.tanh(W['h'] @ x + U['h'] @ (r * h) + b['h'])
        h = z * h + (1.0 - z) * h_tilde
        states.append(h)
    return states


def test_state_ring():
    """The ring keeps the newest `capacity` states, oldest first."""
    print("Testing StateRing... ", end="")

    ring = StateRing(dim=2, capacity=3)
    assert np.array_equal(ring.latest(), [0.0, 0.0])
    assert ring.columns().shape == (2, 0)

    for k in range(5):
        ring.push([k, -k])

    assert ring.count == 3
    assert np.array_equal(ring.latest(), [4.0, -4.0])
    assert np.array_equal(ring.columns(), [[2.0, 3.0, 4.0], [-2.0, -3.0, -4.0]])

    ring.clear()
    assert ring.count == 0 and not ring.H.any()
    print("✓ PASSED")


def test_lstm_forward():
    """LSTM steps match the reference recurrence."""
    print("Testing LSTM forward... ", end="")

    rng = np.random.default_rng(0)
    lstm = LSTM(d=3, h=4, cache=8)
    _random_params(lstm, rng)
    xs = rng.normal(size=(5, 3))

    expected = _lstm_reference(lstm, xs)
    for x, h in zip(xs, expected):
        n = lstm.run(x)
        assert n == 4
        assert np.allclose(lstm.out, h), f"Got {lstm.out}, expected {h}"
    assert lstm.t == 5
    print("✓ PASSED")


def test_lstm_scalar_input():
    """LSTM accepts one-dimensional inputs."""
    print("Testing LSTM scalar input... ", end="")

    rng = np.random.default_rng(1)
    lstm = LSTM(d=1, h=2, cache=2)
    _random_params(lstm, rng)
    xs = rng.normal(size=(3, 1))

    expected = _lstm_reference(lstm, xs)
    for x, h in zip(xs, expected):
        assert np.allclose(lstm.forward(x), h)
    print("✓ PASSED")


def test_lstm_cache_eviction():
    """After cache + k runs the newest `cache` states remain in order."""
    print("Testing LSTM cache eviction... ", end="")

    rng = np.random.default_rng(2)
    lstm = LSTM(d=2, h=3, cache=3)
    _random_params(lstm, rng)

    outputs = []
    for step, x in enumerate(rng.normal(size=(5, 2))):
        lstm.run(x)
        outputs.append(lstm.out.copy())
        if step == 1:
            assert lstm.states().shape == (3, 2)
            assert not lstm.state_matrix()[:, 2].any(), "Unused column should be zero"

    states = lstm.states()
    assert states.shape == (3, 3), f"Got {states.shape}"
    assert np.allclose(states, np.column_stack(outputs[-3:]))
    assert np.allclose(lstm.state_matrix(), states)
    print("✓ PASSED")


def test_lstm_reset():
    """After reset the next run matches a fresh layer."""
    print("Testing LSTM reset... ", end="")

    rng = np.random.default_rng(3)
    used = LSTM(d=2, h=2, cache=2)
    _random_params(used, rng)
    for x in rng.normal(size=(4, 2)):
        used.run(x)

    fresh = LSTM(d=2, h=2, cache=2)
    fresh.set_params(used.get_params())

    used.reset()
    assert used.t == 0
    assert not used.c.any() and not used.state_matrix().any()

    x = rng.normal(size=2)
    assert np.allclose(used.forward(x), fresh.forward(x))
    assert np.allclose(used.c, fresh.c)
    assert used.t == fresh.t == 1
    print("✓ PASSED")


def test_gru_forward():
    """GRU steps match the reference recurrence."""
    print("Testing GRU forward... ", end="")

    rng = np.random.default_rng(4)
    gru = GRU(d=3, h=2, cache=4)
    _random_params(gru, rng)
    xs = rng.normal(size=(6, 3))

    expected = _gru_reference(gru, xs)
    for x, h in zip(xs, expected):
        assert gru.run(x) == 2
        assert np.allclose(gru.out, h), f"Got {gru.out}, expected {h}"
    assert gru.t == 6
    print("✓ PASSED")


def test_gru_cache_and_reset():
    """GRU retains its newest states and resets to a fresh layer."""
    print("Testing GRU cache and reset... ", end="")

    rng = np.random.default_rng(5)
    gru = GRU(d=1, h=3, cache=2)
    _random_params(gru, rng)
    xs = rng.normal(size=(4, 1))

    expected = _gru_reference(gru, xs)
    for x in xs:
        gru.run(x)
    assert np.allclose(gru.states(), np.column_stack(expected[-2:]))

    gru.reset()
    assert gru.states().shape == (3, 0)
    assert np.allclose(gru.forward(xs[0]), expected[0])
    print("✓ PASSED")


def test_recurrent_setters():
    """Element setters address (row, column) and ignore out-of-range indices."""
    print("Testing recurrent setters... ", end="")

    gru = GRU(d=2, h=3, cache=1)
    gru.set_w_ij('z', 1.5, 2, 1)
    gru.set_w_ij('z', 9.0, 3, 0)
    gru.set_u_ij('r', -1.0, 0, 2)
    gru.set_u_ij('r', 9.0, 0, 3)
    gru.set_b_i('h', 0.25, 1)
    gru.set_b_i('h', 9.0, 3)

    assert gru.W['z'][2, 1] == 1.5 and gru.W['z'].sum() == 1.5
    assert gru.U['r'][0, 2] == -1.0 and gru.U['r'].sum() == -1.0
    assert np.array_equal(gru.b['h'], [0.0, 0.25, 0.0])

    with pytest.raises(KeyError):
        gru.set_b('c', np.zeros(3))
    with pytest.raises(InvalidInput):
        gru.set_w('z', np.zeros(5))
    with pytest.raises(InvalidInput):
        gru.run(np.zeros(3))
    print("✓ PASSED")


def run_all_tests():
    """Run all unit tests."""
    print("\n" + "="*60)
    print("RUNNING RECURRENT LAYER TESTS")
    print("="*60 + "\n")

    tests = [
        test_state_ring,
        test_lstm_forward,
        test_lstm_scalar_input,
        test_lstm_cache_eviction,
        test_lstm_reset,
        test_gru_forward,
        test_gru_cache_and_reset,
        test_recurrent_setters,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            passed += 1
        except AssertionError as e:
            print(f"✗ FAILED: {e}")
            failed += 1
        except Exception as e:
            print(f"✗ ERROR: {e}")
            failed += 1

    print("\n" + "="*60)
    print(f"RESULTS: {passed} passed, {failed} failed")
    print("="*60)

    return failed == 0


if __name__ == '__main__':
    success = run_all_tests()
    sys.exit(0 if success else 1)
