"""Tests for the greedy interpolation skeleton."""
import numpy as np
from scipy import sparse
import pytest

import amgskel
from amgskel import InterpSkeleton, interp_skel, skeleton_info, check_inputs
from amgskel.kernels import Workspace


def laplacian_2d(n):
    T = sparse.diags([-np.ones(n - 1), 2 * np.ones(n), -np.ones(n - 1)], [-1, 0, 1])
    I = sparse.eye(n)
    return (sparse.kron(T, I) + sparse.kron(I, T)).tocsc()


def coarse_rhs(A, stride, seed=0):
    """Columns = negated off-diagonal couplings of every stride-th row."""
    nf = A.shape[0]
    coarse = np.arange(0, nf, stride)
    B = (-A[:, coarse]).tolil()
    for c, i in enumerate(coarse):
        B[i, c] = 0.0
    rng = np.random.default_rng(seed)
    B = B.tocsc()
    B.data *= rng.uniform(0.5, 1.5, B.nnz)
    B.eliminate_zeros()
    return B


def column_supports(X):
    return [X.indices[X.indptr[j]:X.indptr[j + 1]] for j in range(X.shape[1])]


def test_version():
    assert amgskel.__version__ == "0.1.0"


# === Worked example ===

def test_identity_worked_example():
    A = sparse.identity(3, format="csc")
    B = sparse.csc_matrix(np.array([[3.0], [1.0], [0.05]]))
    result = InterpSkeleton(A, B, D=[1, 1, 1], u=[1], tol=0.2).run()

    assert result["threshold"] == pytest.approx(0.1)
    assert list(column_supports(result["skeleton"])[0]) == [0, 1]
    assert np.allclose(result["x_sum"], [3.0, 1.0, 0.0])
    assert list(result["column_steps"]) == [2]
    assert np.allclose(result["step_norms"], [4.05, 1.05, 0.05])
    assert result["column_norms"][0] == pytest.approx(0.05)


def test_identity_max_policy_keeps_more():
    A = np.eye(3)
    B = np.array([[3.0], [1.0], [0.05]])
    X_skel, X_sum = interp_skel(A, B, tol=0.2, stop_test="max")
    assert X_skel.dtype == bool
    assert list(column_supports(X_skel)[0]) == [0, 1, 2]
    assert np.allclose(X_sum, [3.0, 1.0, 0.05])


def test_dense_and_sparse_inputs_agree():
    A = laplacian_2d(4)
    B = coarse_rhs(A, 3)
    X1, s1 = interp_skel(A, B, tol=0.05)
    X2, s2 = interp_skel(A.toarray(), B.toarray(), tol=0.05)
    assert (X1 != X2).nnz == 0
    assert np.allclose(s1, s2)


# === Structural properties ===

def test_empty_columns_have_empty_support():
    A = laplacian_2d(3)
    B = sparse.lil_matrix((9, 3))
    B[0, 0] = 1.0
    B[8, 2] = -2.0
    result = InterpSkeleton(A, B.tocsc(), u=[1.0, 100.0, 1.0], tol=0.01).run()
    X = result["skeleton"]
    assert X.indptr[2] - X.indptr[1] == 0
    assert result["column_steps"][1] == 0
    ref = interp_skel(A, B.tocsc()[:, [0, 2]], u=[1.0, 1.0], tol=0.01)[1]
    assert np.allclose(result["x_sum"], ref)


def test_supports_strictly_ascending():
    A = laplacian_2d(8)
    B = coarse_rhs(A, 5)
    result = InterpSkeleton(A, B, tol=0.02).run()
    X = result["skeleton"]
    for support in column_supports(X):
        assert np.all(np.diff(support) > 0)
    assert np.array_equal(np.diff(X.indptr), result["column_steps"])
    assert result["nnz"] == X.nnz


def test_stopping_statistic_trace():
    A = laplacian_2d(6)
    B = coarse_rhs(A, 4)
    result = InterpSkeleton(A, B, tol=0.05).run()
    norms = result["step_norms"]
    ptr = result["step_norm_ptr"]
    threshold = result["threshold"]
    for j in range(B.shape[1]):
        trace = norms[ptr[j]:ptr[j + 1]]
        if B[:, j].nnz == 0:
            assert len(trace) == 0
            continue
        assert len(trace) == result["column_steps"][j] + 1
        assert trace[-1] <= threshold
        assert np.all(trace[:-1] > threshold)


def test_diagonal_norms_decrease():
    rng = np.random.default_rng(5)
    n = 30
    d = rng.uniform(1.0, 3.0, n)
    A = sparse.diags(d, format="csc")
    B = sparse.random(n, 4, density=0.4, format="csc", random_state=rng,
                      data_rvs=lambda k: rng.uniform(-1, 1, k))
    result = InterpSkeleton(A, B, D=d, tol=0.1).run()
    norms = result["step_norms"]
    ptr = result["step_norm_ptr"]
    for j in range(4):
        trace = norms[ptr[j]:ptr[j + 1]]
        assert np.all(np.diff(trace) < 0)

    # diagonal A: X e_j = B e_j / d on the support
    X = result["skeleton"]
    Bd = B.toarray()
    expected = np.zeros(n)
    for j, support in enumerate(column_supports(X)):
        expected[support] += Bd[support, j] / d[support]
    assert np.allclose(result["x_sum"], expected)


def test_small_tol_recovers_solve():
    n = 6
    A = sparse.diags([-np.ones(n - 1), 2 * np.ones(n), -np.ones(n - 1)],
                     [-1, 0, 1], format="csc")
    B = sparse.csc_matrix(np.array([[1.0, 0.0], [0.0, 0.0], [0.0, 0.0],
                                    [0.0, 0.0], [0.0, 0.0], [0.0, 2.0]]))
    u = np.array([1.0, -0.5])
    X_skel, X_sum = interp_skel(A, B, u=u, tol=1e-12)
    expected = np.linalg.solve(A.toarray(), B.toarray() @ u)
    assert np.allclose(X_sum, expected, atol=1e-8)
    assert X_skel.nnz == 2 * n


def test_larger_tol_gives_sparser_skeleton():
    A = laplacian_2d(8)
    B = coarse_rhs(A, 5)
    loose = interp_skel(A, B, tol=0.5)[0]
    tight = interp_skel(A, B, tol=0.01)[0]
    assert loose.nnz <= tight.nnz


# === Determinism, growth and workspace reuse ===

def test_deterministic():
    A = laplacian_2d(7)
    B = coarse_rhs(A, 4, seed=2)
    X1, s1 = interp_skel(A, B, tol=0.03)
    X2, s2 = interp_skel(A, B, tol=0.03)
    assert np.array_equal(X1.indptr, X2.indptr)
    assert np.array_equal(X1.indices, X2.indices)
    assert np.array_equal(s1, s2)


def test_growth_from_tiny_buffers():
    A = laplacian_2d(8)
    B = coarse_rhs(A, 7)
    ref = InterpSkeleton(A, B, tol=0.001).run()
    small = InterpSkeleton(A, B, tol=0.001, initial_basis_columns=1,
                           skeleton_growth_guess=0.01).run()
    assert np.array_equal(ref["skeleton"].indices, small["skeleton"].indices)
    assert np.array_equal(ref["skeleton"].indptr, small["skeleton"].indptr)
    assert np.allclose(ref["x_sum"], small["x_sum"])
    assert np.allclose(ref["step_norms"], small["step_norms"])


def test_workspace_reuse():
    ws = Workspace(num_rows=4, basis_columns=2)
    A1 = laplacian_2d(5)
    B1 = coarse_rhs(A1, 4)
    A2 = laplacian_2d(7)
    B2 = coarse_rhs(A2, 6, seed=1)

    r1 = InterpSkeleton(A1, B1, tol=0.02, workspace=ws).run()
    assert ws.is_clean()
    r2 = InterpSkeleton(A2, B2, tol=0.02, workspace=ws).run()
    assert ws.is_clean()
    assert ws.num_rows == 49

    fresh1 = InterpSkeleton(A1, B1, tol=0.02).run()
    fresh2 = InterpSkeleton(A2, B2, tol=0.02).run()
    assert (r1["skeleton"] != fresh1["skeleton"]).nnz == 0
    assert (r2["skeleton"] != fresh2["skeleton"]).nnz == 0
    assert np.allclose(r1["x_sum"], fresh1["x_sum"])
    assert np.allclose(r2["x_sum"], fresh2["x_sum"])


def test_indefinite_matrix_raises_and_cleans_up():
    A = sparse.csc_matrix(np.array([[1.0, 2.0], [2.0, 1.0]]))
    B = sparse.csc_matrix(np.array([[1.0], [1.0]]))
    ws = Workspace(num_rows=2)
    with pytest.raises(ValueError, match="Non-positive residual energy"):
        InterpSkeleton(A, B, tol=0.1, workspace=ws).run()
    assert ws.is_clean()


@pytest.mark.parametrize("stop_test", ["sum", "max"])
def test_semidefinite_matrix_raises_under_both_policies(stop_test):
    # rows 0 and 1 are identical: after selecting row 0, D[1] - beta[1] == 0
    # and row 1 has a zero residual, which must not end the column early
    A = sparse.csc_matrix(np.array([[1.0, 1.0, 0.0],
                                    [1.0, 1.0, 0.0],
                                    [0.0, 0.0, 1.0]]))
    B = sparse.csc_matrix(np.array([[1.0], [1.0], [0.5]]))
    ws = Workspace(num_rows=3)
    with pytest.raises(ValueError, match=r"D\[1\] - beta\[1\] while building column 0"):
        InterpSkeleton(A, B, tol=0.2, stop_test=stop_test, workspace=ws).run()
    assert ws.is_clean()


def test_passed_workspace_grows_to_initial_basis_columns():
    ws = Workspace(num_rows=3, basis_columns=2)
    InterpSkeleton(np.eye(3), np.ones((3, 1)), tol=0.1,
                   initial_basis_columns=100, workspace=ws)
    assert ws.basis.capacity >= 100

    ws = Workspace(num_rows=3, basis_columns=64)
    InterpSkeleton(np.eye(3), np.ones((3, 1)), tol=0.1,
                   initial_basis_columns=8, workspace=ws)
    assert ws.basis.capacity == 64


def test_verbose_output(capsys):
    A = laplacian_2d(3)
    B = coarse_rhs(A, 2)
    interp_skel(A, B, tol=0.1, verbose=True)
    out = capsys.readouterr().out
    assert "[Skel]" in out
    assert "nnz(X)=" in out


def test_skeleton_info():
    X = sparse.csc_matrix(np.array([[1, 0, 1], [1, 0, 0]], dtype=bool))
    info = skeleton_info(X)
    assert info["shape"] == (2, 3)
    assert info["nnz"] == 3
    assert info["max_support"] == 2
    assert info["empty_columns"] == 1
    assert info["mean_support"] == pytest.approx(1.0)


# === Input validation ===

def test_check_inputs_defaults():
    A = laplacian_2d(3)
    B = coarse_rhs(A, 2)
    inp = check_inputs(A, B, tol=0.4, stop_test="max-normalized-residual")
    assert np.allclose(inp.D, 4.0)
    assert np.allclose(inp.u, 1.0)
    assert inp.threshold == pytest.approx(0.08)
    assert inp.num_rows == 9
    assert inp.num_cols == B.shape[1]


def test_check_inputs_canonicalizes_columns():
    # column 0 stored as rows (2, 0) with a duplicate of row 2
    B = sparse.csc_matrix((np.array([1.0, 3.0, 0.5]),
                           np.array([2, 0, 2]),
                           np.array([0, 3])), shape=(3, 1))
    inp = check_inputs(np.eye(3), B, tol=0.1)
    assert list(inp.B.indices) == [0, 2]
    assert np.allclose(inp.B.data, [3.0, 1.5])
    # caller's matrix untouched
    assert list(B.indices) == [2, 0, 2]


def test_column_vector_shapes_accepted():
    A = np.eye(3)
    B = np.ones((3, 2))
    inp = check_inputs(A, B, D=np.ones((3, 1)), u=np.ones((2, 1)), tol=0.1)
    assert inp.D.shape == (3,)
    assert inp.u.shape == (2,)


@pytest.mark.parametrize("kwargs, exc, match", [
    ({"A": np.ones((3, 2))}, ValueError, "not square"),
    ({"B": np.ones((4, 2))}, ValueError, "rows\\(A\\)"),
    ({"D": np.ones(4)}, ValueError, "rows\\(D\\)"),
    ({"u": np.ones((1, 2))}, ValueError, "not a column vector"),
    ({"u": np.ones(3)}, ValueError, "rows\\(u\\)"),
    ({"A": np.eye(3) * 1j}, TypeError, "complex"),
    ({"B": sparse.csc_matrix(np.ones((3, 2)) * 1j)}, TypeError, "complex"),
    ({"A": np.ones(3)}, ValueError, "2-D"),
    ({"tol": -0.1}, ValueError, "positive"),
    ({"tol": 0.0}, ValueError, "positive"),
    ({"tol": np.nan}, ValueError, "finite"),
    ({"tol": np.array([0.1, 0.2])}, TypeError, "scalar"),
    ({"tol": 0.1 + 0.0j}, TypeError, "complex"),
    ({"tol": "0.1"}, TypeError, "real scalar"),
    ({"tol": True}, TypeError, "bool"),
    ({"stop_test": "median"}, ValueError, "Unknown stop_test"),
    ({"stop_test": 3}, ValueError, "Unknown stop_test"),
])
def test_check_inputs_rejects(kwargs, exc, match):
    args = {"A": np.eye(3), "B": np.ones((3, 2)), "D": None, "u": None,
            "tol": 0.1, "stop_test": "sum"}
    args.update(kwargs)
    with pytest.raises(exc, match=match):
        check_inputs(**args)


def test_invalid_growth_guess():
    with pytest.raises(ValueError, match="skeleton_growth_guess"):
        InterpSkeleton(np.eye(2), np.ones((2, 1)), tol=0.1, skeleton_growth_guess=0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
