import numpy as np
import pytest
from proxsolver.algorithms.quasi_newton.lbfgs import LBFGS, Noaccel


def test_empty_history_is_exact_copy():
    H = LBFGS(3)
    v = np.array([1.0, -2.0, 3.5])
    d = H.apply(v)
    assert d is not v
    assert np.array_equal(d, v)


def test_invalid_memory():
    with pytest.raises(ValueError):
        LBFGS(0)


def test_nonpositive_curvature_is_skipped():
    H = LBFGS(3)
    stored = H.update(np.array([1.0, 0.0]), np.zeros(2), np.array([-1.0, 0.0]), np.zeros(2))
    assert not stored
    assert len(H) == 0


def test_oldest_pair_evicted():
    H = LBFGS(2)
    zeros = np.zeros(2)
    for k in range(1, 4):
        s = np.array([k, 1.0])
        assert H.update(s, zeros, 2 * s, zeros)
    assert len(H) == 2
    assert np.array_equal(H.s_list[0], np.array([2.0, 1.0]))
    assert np.array_equal(H.s_list[1], np.array([3.0, 1.0]))


def test_secant_equation_with_one_pair():
    H = LBFGS(5)
    s = np.array([1.0, 2.0, -1.0])
    y = np.array([2.0, 1.0, 0.5])
    assert H.update(s, np.zeros(3), y, np.zeros(3))
    assert np.allclose(H @ y, s)


def test_inverse_of_quadratic_with_full_history():
    Q = np.array([[4.0, 1.0], [1.0, 3.0]])
    H = LBFGS(5)
    rng = np.random.default_rng(0)
    x_prev = rng.standard_normal(2)
    for _ in range(4):
        x = rng.standard_normal(2)
        H.update(x, x_prev, Q @ x, Q @ x_prev)
        x_prev = x
    v = np.array([1.0, -1.0])
    # last pair always satisfies the secant equation
    s, y = H.s_list[-1], H.y_list[-1]
    assert np.allclose(H @ y, s)
    assert np.all(np.isfinite(H @ v))


def test_apply_into_buffer_keeps_dtype():
    H = LBFGS(3)
    s = np.array([1.0, 0.5], dtype=np.float32)
    H.update(s, np.zeros(2, dtype=np.float32), 3 * s, np.zeros(2, dtype=np.float32))
    out = np.empty(2, dtype=np.float32)
    result = H.apply(np.array([1.0, 1.0], dtype=np.float32), out=out)
    assert result is out
    assert out.dtype == np.float32


def test_empty_copy_and_reset():
    H = LBFGS(4)
    H.update(np.ones(2), np.zeros(2), np.ones(2), np.zeros(2))
    assert len(H) == 1
    fresh = H.empty_copy()
    assert len(fresh) == 0 and fresh.memory == 4
    H.reset()
    assert len(H) == 0


def test_noaccel():
    H = Noaccel()
    v = np.array([1.0, 2.0])
    assert not H.update(v, np.zeros(2), v, np.zeros(2))
    d = H @ v
    assert d is not v
    assert np.array_equal(d, v)
    assert H.empty_copy() is H
