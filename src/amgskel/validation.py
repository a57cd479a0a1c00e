"""
Skeleton Validation: input checks and conversion to kernel buffers.

Everything the compiled builder needs is checked here, before any
workspace is touched:

  - A, B real 2-D matrices (scipy.sparse or dense), A square,
    rows(A) == rows(B)
  - D, u vectors (1-D or n x 1 columns) of length rows(A), cols(B)
  - tol a finite positive real scalar
  - stop_test one of the recognized stopping policies

Matrices come out as canonical CSC (sorted, duplicate-free columns)
with int64 indices and float64 values.

Usage:
    from amgskel.validation import check_inputs
    inputs = check_inputs(A, B, D, u, tol=0.1)
"""

import numbers
from dataclasses import dataclass

import numpy as np
from scipy import sparse

from amgskel.kernels.greedy import STOP_MAX, STOP_SUM


STOP_TESTS = {
    "max": STOP_MAX,
    "max-normalized-residual": STOP_MAX,
    STOP_MAX: STOP_MAX,
    "sum": STOP_SUM,
    "sum-normalized-residual": STOP_SUM,
    STOP_SUM: STOP_SUM,
}


@dataclass
class SkeletonInputs:
    """Validated, kernel-ready problem data.

    Fields
    ------
    A, B : scipy.sparse.csc_matrix
        Canonical float64 CSC matrices.
    D : numpy.ndarray
        Diagonal weights, length rows(A).
    u : numpy.ndarray
        Column weights, length cols(B).
    tol : float
        User tolerance.
    stop_test : int
        STOP_MAX or STOP_SUM.
    threshold : float
        tol**2 / 2 (max policy) or tol / 2 (sum policy).
    """
    A: sparse.csc_matrix
    B: sparse.csc_matrix
    D: np.ndarray
    u: np.ndarray
    tol: float
    stop_test: int
    threshold: float

    @property
    def num_rows(self):
        return self.B.shape[0]

    @property
    def num_cols(self):
        return self.B.shape[1]


def _check_real(dtype, name):
    if dtype.kind == 'c':
        raise TypeError(f"{name} must be real, got complex dtype {dtype}")
    if dtype.kind not in 'biuf':
        raise TypeError(f"{name} must be numeric, got dtype {dtype}")


def as_csc(M, name):
    """Convert a sparse or dense 2-D matrix to canonical float64 CSC."""
    if sparse.issparse(M):
        _check_real(M.dtype, name)
        if len(M.shape) != 2:
            raise ValueError(f"{name} must be 2-D, got shape {M.shape}")
        M = sparse.csc_matrix(M, dtype=np.float64, copy=True)
    else:
        arr = np.asarray(M)
        _check_real(arr.dtype, name)
        if arr.ndim != 2:
            raise ValueError(f"{name} must be a 2-D matrix, got {arr.ndim}-D")
        M = sparse.csc_matrix(arr.astype(np.float64))
    M.sum_duplicates()
    return M


def csc_arrays(M):
    """indptr, indices, data of a CSC matrix as int64/int64/float64 arrays."""
    return (np.ascontiguousarray(M.indptr, dtype=np.int64),
            np.ascontiguousarray(M.indices, dtype=np.int64),
            np.ascontiguousarray(M.data, dtype=np.float64))


def as_column_vector(v, length, name, other):
    """Flatten a 1-D or n x 1 array, checking its length."""
    if sparse.issparse(v):
        raise TypeError(f"{name} must be a dense array, not sparse")
    arr = np.asarray(v)
    _check_real(arr.dtype, name)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr[:, 0]
    elif arr.ndim != 1:
        raise ValueError(f"{name} not a column vector (shape {arr.shape})")
    if arr.shape[0] != length:
        raise ValueError(f"rows({name}) = {arr.shape[0]} != {other} = {length}")
    return np.ascontiguousarray(arr, dtype=np.float64)


def check_tol(tol):
    """Return tol as a float, or raise if it is not a finite positive scalar."""
    if isinstance(tol, (bool, np.bool_)):
        raise TypeError("tol must be a real scalar, not bool")
    if np.ndim(tol) != 0:
        raise TypeError(f"tol must be a real scalar, got shape {np.shape(tol)}")
    if isinstance(tol, np.ndarray):
        tol = tol.item()
    if isinstance(tol, numbers.Complex) and not isinstance(tol, numbers.Real):
        raise TypeError("tol must be real, not complex")
    if not isinstance(tol, numbers.Real):
        raise TypeError(f"tol must be a real scalar, got {type(tol).__name__}")
    tol = float(tol)
    if not np.isfinite(tol) or tol <= 0:
        raise ValueError(f"tol must be finite and positive, got {tol}")
    return tol


def resolve_stop_test(stop_test):
    """Map a stopping policy name (or 1/2) to STOP_MAX / STOP_SUM."""
    key = stop_test.lower() if isinstance(stop_test, str) else stop_test
    try:
        return STOP_TESTS[key]
    except (KeyError, TypeError):
        raise ValueError(
            f"Unknown stop_test {stop_test!r}; use 'sum' "
            f"(sum-normalized-residual) or 'max' (max-normalized-residual)"
        ) from None


def stop_threshold(tol, stop_test):
    """Threshold the stopping statistic is compared against."""
    if resolve_stop_test(stop_test) == STOP_MAX:
        return 0.5 * tol * tol
    return 0.5 * tol


def check_inputs(A, B, D=None, u=None, tol=0.1, stop_test="sum"):
    """
    Validate and convert the inputs of a skeleton computation.

    Parameters
    ----------
    A : scipy.sparse matrix or numpy.ndarray
        Symmetric positive definite system matrix (nf x nf).
    B : scipy.sparse matrix or numpy.ndarray
        Right-hand sides (nf x nc).
    D : array-like, optional
        diag(A); taken from A when None.
    u : array-like, optional
        Column weights for X_sum; ones when None.
    tol : float
        Sparsity tolerance (> 0).
    stop_test : str or int
        'sum' (default) or 'max'.

    Returns
    -------
    SkeletonInputs
    """
    A = as_csc(A, "A")
    B = as_csc(B, "B")
    if A.shape[0] != A.shape[1]:
        raise ValueError(f"A not square (shape {A.shape})")
    if A.shape[0] != B.shape[0]:
        raise ValueError(f"rows(A) = {A.shape[0]} != rows(B) = {B.shape[0]}")

    nf, nc = B.shape
    if D is None:
        D = A.diagonal()
    D = as_column_vector(D, nf, "D", "rows(A)")
    if u is None:
        u = np.ones(nc)
    u = as_column_vector(u, nc, "u", "cols(B)")

    tol = check_tol(tol)
    policy = resolve_stop_test(stop_test)

    return SkeletonInputs(
        A=A, B=B, D=D, u=u, tol=tol,
        stop_test=policy,
        threshold=stop_threshold(tol, policy),
    )
