import numpy as np
import pytest
from scipy.sparse import csr_matrix
from scipy.sparse.linalg import aslinearoperator
from proxsolver.errors import InfeasibleStart
from proxsolver.function_generators.prox_terms import (
    IndBox, LeastSquares, NormL0, NormL1, SqrNormL2, Translate
)
from proxsolver.oracles import (
    IDENTITY, SmoothSum, Zero, adjoint, apply, as_float_array,
    check_feasible, gradient, gradient_into, prox, prox_into, value
)

A = np.array([[1.0, 2.0], [0.0, -1.0], [3.0, 1.0]])


class PlainQuadratic:
    """Only the mandatory methods, no in-place variants."""

    def __call__(self, x):
        return 0.5 * float(np.dot(x, x))

    def gradient(self, x):
        return np.copy(x), self(x)

    def prox(self, x, gamma):
        p = x / (1 + gamma)
        return p, self(p)


def test_into_variants_fall_back_to_copying():
    h = PlainQuadratic()
    x = np.array([1.0, -2.0])
    out = np.empty(2)
    assert gradient_into(out, h, x) == value(h, x)
    assert np.array_equal(out, gradient(h, x)[0])
    assert prox_into(out, h, x, 0.5) == prox(h, x, 0.5)[1]
    assert np.allclose(out, x / 1.5)


def test_zero_term():
    zero = Zero()
    x = np.array([1.0, 2.0])
    assert zero(x) == 0.0
    grad, val = zero.gradient(x)
    assert np.array_equal(grad, np.zeros(2)) and val == 0.0
    p, val = zero.prox(x, 3.0)
    assert np.array_equal(p, x) and p is not x


def test_identity_applies_without_copying():
    x = np.array([1.0, 2.0])
    assert apply(IDENTITY, x) is x
    assert adjoint(IDENTITY, x) is x


@pytest.mark.parametrize("linear_map", [A, csr_matrix(A), aslinearoperator(A)])
def test_linear_maps(linear_map):
    x = np.array([1.0, -1.0])
    y = np.array([1.0, 0.5, 2.0])
    assert np.allclose(apply(linear_map, x), A @ x)
    assert np.allclose(adjoint(linear_map, y), A.T @ y)


def test_smooth_sum_drops_zero_terms_and_adds_gradients():
    b = np.array([1.0, 2.0, 3.0])
    smooth = SmoothSum((Translate(SqrNormL2(), -b), A), (None, None), (Zero(), A), (SqrNormL2(2.0), None))
    assert len(smooth.pairs) == 2
    x = np.array([0.5, -1.0])
    out = np.empty(2)
    total = smooth.gradient_into(out, smooth.images(x))
    expected_value = 0.5 * np.sum((A @ x - b) ** 2) + np.dot(x, x)
    assert total == pytest.approx(expected_value)
    assert np.allclose(out, A.T @ (A @ x - b) + 2.0 * x)
    assert not SmoothSum((None, None))


class InPlaceQuadratic:
    """f(x) = 1/2 ||x - c||^2 that only computes gradients in place."""

    def __init__(self, c):
        self.c = c
        self.written = []

    def __call__(self, x):
        return 0.5 * float(np.sum((x - self.c) ** 2))

    def gradient(self, x):
        raise AssertionError("allocating gradient should not be called")

    def gradient_into(self, out, x):
        np.subtract(x, self.c, out=out)
        self.written.append(out)
        return self(x)


def test_smooth_sum_reuses_gradient_buffers():
    f = InPlaceQuadratic(np.array([1.0, 0.0, -1.0]))
    fq = InPlaceQuadratic(np.array([0.5, 0.5]))
    smooth = SmoothSum((f, A), (fq, None))
    out = np.empty(2)
    x = np.array([0.5, -1.0])
    smooth.gradient_into(out, smooth.images(x))
    assert np.allclose(out, A.T @ (A @ x - f.c) + (x - fq.c))

    x = np.array([2.0, 1.0])
    total = smooth.gradient_into(out, smooth.images(x))
    assert total == pytest.approx(f(A @ x) + fq(x))
    assert np.allclose(out, A.T @ (A @ x - f.c) + (x - fq.c))
    assert f.written[0] is f.written[1]
    assert fq.written[0] is fq.written[1]
    assert all(buf is not out for buf in f.written + fq.written)


def test_smooth_sum_single_identity_term_writes_into_output():
    f = InPlaceQuadratic(np.array([1.0, 2.0]))
    smooth = SmoothSum((f, None))
    out = np.empty(2)
    smooth.gradient_into(out, smooth.images(np.array([3.0, 3.0])))
    assert len(f.written) == 1 and f.written[0] is out
    assert np.array_equal(out, [2.0, 1.0])
    assert smooth.gradient_buffers is None


def test_smooth_sum_reallocates_buffers_for_new_dtype():
    smooth = SmoothSum((SqrNormL2(), A), (SqrNormL2(), None))
    out = np.empty(2)
    smooth.gradient_into(out, smooth.images(np.ones(2)))
    assert [buf.dtype for buf in smooth.gradient_buffers] == [np.float64, np.float64]
    out32 = np.empty(2, dtype=np.float32)
    smooth.gradient_into(out32, smooth.images(np.ones(2, dtype=np.float32)))
    assert smooth.gradient_buffers[1].dtype == np.float32
    assert np.allclose(out32, A.T @ (A @ np.ones(2)) + np.ones(2))


def test_integer_initial_point_promoted():
    x = as_float_array([1, 2, 3])
    assert x.dtype == np.float64
    x32 = np.zeros(2, dtype=np.float32)
    assert as_float_array(x32).dtype == np.float32
    assert as_float_array(x32) is not x32


def test_check_feasible():
    check_feasible(1.0)
    with pytest.raises(InfeasibleStart):
        check_feasible(np.inf)
    with pytest.raises(InfeasibleStart):
        check_feasible(np.nan)


def test_norm_l1_prox_is_soft_thresholding():
    g = NormL1(0.5)
    p, g_p = g.prox(np.array([2.0, -0.2, -3.0]), 2.0)
    assert np.allclose(p, [1.0, 0.0, -2.0])
    assert g_p == pytest.approx(1.5)


def test_norm_l0_prox_is_hard_thresholding():
    g = NormL0(0.5)
    p, g_p = g.prox(np.array([2.0, -0.9, -3.0]), 1.0)
    assert np.array_equal(p, [2.0, 0.0, -3.0])
    assert g_p == 1.0


def test_box_projection():
    box = IndBox(0.0, 1.0)
    p, val = box.prox(np.array([-1.0, 0.5, 2.0]), 1.0)
    assert np.array_equal(p, [0.0, 0.5, 1.0])
    assert val == 0.0
    assert box(np.array([2.0])) == np.inf


@pytest.mark.parametrize("dtype", [np.float32, np.float64])
def test_least_squares_prox_optimality(dtype):
    b = np.array([1.0, 0.0, -1.0], dtype=dtype)
    f = LeastSquares(A.astype(dtype), b)
    x = np.array([0.3, -0.7], dtype=dtype)
    gamma = 0.25
    p, f_p = f.prox(x, gamma)
    assert p.dtype == dtype
    grad, _ = f.gradient(p)
    tol = 1e-4 if dtype == np.float32 else 1e-10
    assert np.allclose(p - x + gamma * grad, 0.0, atol=tol)
    assert f_p == pytest.approx(f(p))


def test_translate():
    b = np.array([1.0, -1.0])
    f = Translate(SqrNormL2(), b)
    x = np.array([2.0, 3.0])
    assert f(x) == pytest.approx(0.5 * np.sum((x + b) ** 2))
    grad, _ = f.gradient(x)
    assert np.allclose(grad, x + b)
    p, _ = f.prox(x, 1.0)
    assert np.allclose(p, (x + b) / 2 - b)
