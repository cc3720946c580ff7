import warnings

import numpy as np
import pytest

from shiftshare.core import linalg as la
from shiftshare.exceptions import NumericalDegeneracyError

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def rng():
    return np.random.default_rng(42)

@pytest.fixture
def data_dense(rng):
    X = np.column_stack([np.ones(100), rng.standard_normal((100, 2))])
    y = X @ np.array([1.0, -0.5, 2.0]) + rng.standard_normal(100)
    w = rng.uniform(0.2, 3.0, size=100)
    return X, y, w

# ---------------------------------------------------------------------
# Unit Tests: Finite Checks and Weights
# ---------------------------------------------------------------------

def test_assert_all_finite():
    with pytest.raises(ValueError, match="NA/NaN/Inf"):
        la._assert_all_finite(np.array([1.0, np.nan]))
    with pytest.raises(ValueError, match="NA/NaN/Inf"):
        la._assert_all_finite(np.array([1.0, np.inf]))
    la._assert_all_finite(np.array([1.0, 2.0]), None)

def test_validate_weights_degenerate():
    with pytest.raises(NumericalDegeneracyError, match="all-zero"):
        la._validate_weights(np.zeros(4), 4, context="weight-set 2")
    with pytest.raises(NumericalDegeneracyError, match="nonnegative"):
        la._validate_weights(np.array([1.0, -1.0]), 2)
    with pytest.raises(ValueError, match="length"):
        la._validate_weights(np.ones(3), 4)

def test_degeneracy_message_names_context():
    with pytest.raises(NumericalDegeneracyError, match="^weight-set 2: ") as exc:
        la._validate_weights(np.zeros(2), 2, context="weight-set 2")
    assert exc.value.context == "weight-set 2"

# ---------------------------------------------------------------------
# Unit Tests: Solvers
# ---------------------------------------------------------------------

def test_solve_wls_matches_lstsq(data_dense):
    X, y, w = data_dense
    sw = np.sqrt(w)
    expected = np.linalg.lstsq(X * sw[:, None], y * sw, rcond=None)[0]
    got = la.solve_wls(X, y, w)
    assert np.allclose(got, expected, rtol=1e-10)

def test_solve_wls_ignores_zero_weight_rows(data_dense):
    X, y, w = data_dense
    w = w.copy()
    w[:10] = 0.0
    y_bad = y.copy()
    y_bad[:10] = 1e6
    assert np.allclose(la.solve_wls(X, y_bad, w), la.solve_wls(X[10:], y[10:], w[10:]))

def test_qr_ls_solve_rank_deficient(data_dense):
    X, y, _ = data_dense
    X_bad = np.column_stack([X, X[:, 1] + X[:, 2]])
    with pytest.raises(NumericalDegeneracyError, match="rank-deficient"):
        la.qr_ls_solve(X_bad, y)

def test_rank_from_diag():
    assert la.rank_from_diag(np.array([3.0, 1.0, 1e-14])) == 2
    assert la.rank_from_diag(np.array([0.0, 0.0])) == 0
    assert la.rank_from_diag(np.array([])) == 0

# ---------------------------------------------------------------------
# Unit Tests: Group sums, inversion, sandwich
# ---------------------------------------------------------------------

def test_group_sum_sorted_labels():
    X = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
    labels, sums = la.group_sum(X, np.array(["b", "a", "b"]))
    assert list(labels) == ["a", "b"]
    assert np.allclose(sums, [[3.0, 4.0], [6.0, 8.0]])

def test_inv_checked_regular():
    A = np.array([[2.0, 1.0], [0.5, 3.0]])
    assert np.allclose(la.inv_checked(A) @ A, np.eye(2))

def test_inv_checked_singular():
    A = np.array([[1.0, 2.0], [2.0, 4.0]])
    with pytest.raises(NumericalDegeneracyError, match="Omega: matrix is singular"):
        la.inv_checked(A, context="Omega")

def test_inv_checked_ill_conditioned_warns():
    A = np.array([[1.0, 1.0], [1.0, 1.0 + 1e-9]])
    with pytest.warns(RuntimeWarning, match="ill-conditioned"):
        la.inv_checked(A)

def test_inv_checked_well_conditioned_silent():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        la.inv_checked(np.eye(2))

def test_sandwich_symmetric(rng):
    A_inv = rng.standard_normal((2, 2))
    B = rng.standard_normal((5, 2))
    V = la.sandwich(A_inv, B.T @ B)
    assert np.allclose(V, V.T)
    assert np.allclose(V, A_inv @ B.T @ B @ A_inv.T)
    assert np.all(np.linalg.eigvalsh(V) >= -1e-12)
