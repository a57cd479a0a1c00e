"""
Interpolation Skeleton: greedy sparse minimizers, column by column.

For each column j of B, computes a sparse approximate minimizer of

    f(x) = 0.5 x^T A x - B_j^T x

by orthogonal-matching-pursuit over rows, using an incrementally
grown A-orthonormal basis. Returns the sparsity pattern X_skel and the
weighted sum X_sum = X @ u; tol controls how many nonzeros are kept.

Stopping policies:
  - 'sum' (default): stop when sum_i |r_i / (D_i - beta_i)| <= tol / 2
  - 'max': stop when max_i |r_i / (D_i - beta_i)| <= tol^2 / 2

Usage:
    from amgskel import interp_skel
    X_skel, X_sum = interp_skel(A, B, D, u, tol=0.1)

Author: Carmen Esteban
"""

import sys
import time

import numpy as np
from scipy import sparse

from amgskel.kernels.greedy import build_columns, STOP_MAX
from amgskel.kernels.workspace import Workspace
from amgskel.validation import check_inputs, csc_arrays


def skeleton_info(X_skel):
    """
    Summarize a skeleton's support sizes.

    Parameters
    ----------
    X_skel : scipy.sparse matrix
        Skeleton pattern (any sparse format).

    Returns
    -------
    dict
        Shape, nnz, density, support size statistics, empty columns.
    """
    X = sparse.csc_matrix(X_skel)
    m, n = X.shape
    counts = np.diff(X.indptr)
    total = m * n
    return {
        "shape": (m, n),
        "nnz": int(X.nnz),
        "density": round(X.nnz / total, 6) if total > 0 else 0,
        "mean_support": float(counts.mean()) if n > 0 else 0.0,
        "max_support": int(counts.max()) if n > 0 else 0,
        "empty_columns": int(np.sum(counts == 0)),
        "ram_kb": round((X.indices.nbytes + X.indptr.nbytes + X.data.nbytes) / 1e3, 1),
    }


class InterpSkeleton:
    """Greedy interpolation skeleton builder.

    Parameters
    ----------
    A : scipy.sparse matrix or numpy.ndarray
        Symmetric positive definite matrix (nf x nf).
    B : scipy.sparse matrix or numpy.ndarray
        Right-hand sides (nf x nc).
    D : array-like, optional
        diag(A). Defaults to A.diagonal().
    u : array-like, optional
        Column weights for X_sum. Defaults to ones.
    tol : float
        Sparsity tolerance (> 0). Smaller keeps more nonzeros.
    stop_test : str or int
        'sum' / 'sum-normalized-residual' / 2 (default), or
        'max' / 'max-normalized-residual' / 1.
    initial_basis_columns : int
        Starting basis capacity (columns); doubled as needed. A passed-in
        workspace is grown to at least this many columns.
    skeleton_growth_guess : float
        Initial skeleton capacity as a multiple of nnz(B); doubled as needed.
    workspace : Workspace, optional
        Buffers to reuse across runs. A private one is created if None.
    verbose : bool
        Print progress.

    Notes
    -----
    A must be positive definite on every selected support: each basis
    extension needs D_s - beta_s > 0. A violation stops the run with a
    ValueError naming the column and row.
    """

    def __init__(
        self,
        A,
        B,
        D=None,
        u=None,
        tol=0.1,
        stop_test="sum",
        initial_basis_columns=35,
        skeleton_growth_guess=2,
        workspace=None,
        verbose=False,
    ):
        self.inputs = check_inputs(A, B, D, u, tol=tol, stop_test=stop_test)
        if skeleton_growth_guess <= 0:
            raise ValueError("skeleton_growth_guess must be positive")
        self.skeleton_growth_guess = skeleton_growth_guess
        self.verbose = verbose

        if workspace is None:
            workspace = Workspace(self.inputs.num_rows,
                                  basis_columns=initial_basis_columns)
        else:
            workspace.basis.ensure_columns(initial_basis_columns)
        self.workspace = workspace

    def run(self):
        """Build the skeleton of every column of B.

        Returns
        -------
        dict with:
            skeleton : scipy.sparse.csc_matrix of bool (nf x nc)
            x_sum : numpy array, sum_j u_j X e_j
            nnz : int
            column_steps : int array, greedy steps (= support size) per column
            column_norms : float array, final stopping statistic per column
            step_norms : float array, statistic after Init and each step
            step_norm_ptr : int array, column pointers into step_norms
            threshold : float
            stop_test : str
            time : float (seconds)
        """
        inp = self.inputs
        nf, nc = inp.num_rows, inp.num_cols
        policy = "max" if inp.stop_test == STOP_MAX else "sum"

        if self.verbose:
            print(f"  [Skel] {nf:,} x {nc:,}, nnz(A)={inp.A.nnz:,}, "
                  f"nnz(B)={inp.B.nnz:,}")
            print(f"  [Skel] tol={inp.tol:g}, stop_test={policy}, "
                  f"threshold={inp.threshold:g}")
            sys.stdout.flush()

        t0 = time.time()
        ws = self.workspace
        ws.ensure_rows(nf)
        if not ws.is_clean():
            ws.reset()
        bufs = ws.pack_for_numba()

        capacity = max(int(self.skeleton_growth_guess * inp.B.nnz), 1)
        skel_indptr = np.zeros(nc + 1, dtype=np.int64)
        skel_indices = np.empty(capacity, dtype=np.int64)
        x_sum = np.zeros(nf, dtype=np.float64)
        col_steps = np.zeros(nc, dtype=np.int64)
        col_norms = np.zeros(nc, dtype=np.float64)
        step_norms = np.empty(capacity + nc, dtype=np.float64)
        step_ptr = np.zeros(nc + 1, dtype=np.int64)
        status = np.full(2, -1, dtype=np.int64)

        A_indptr, A_indices, A_data = csc_arrays(inp.A)
        B_indptr, B_indices, B_data = csc_arrays(inp.B)

        skel_indices, nnz, Q, max_q, step_norms, ntrace = build_columns(
            A_indptr, A_indices, A_data,
            B_indptr, B_indices, B_data,
            inp.D, inp.u, inp.threshold, inp.stop_test,
            skel_indptr, skel_indices, x_sum,
            bufs['flag'], bufs['active_map'], bufs['beta'],
            bufs['sv'], bufs['proj'],
            bufs['r_idx'], bufs['r_val'], bufs['s_idx'], bufs['s_val'],
            bufs['aq_idx'], bufs['aq_val'],
            bufs['Q'], bufs['max_q'],
            col_steps, col_norms, step_norms, step_ptr, status,
        )
        ws.basis.adopt(Q, max_q)

        if status[0] >= 0:
            ws.reset()
            j, s = int(status[0]), int(status[1])
            raise ValueError(
                f"Non-positive residual energy D[{s}] - beta[{s}] while "
                f"building column {j}; A must be positive definite on the "
                f"selected rows"
            )

        skeleton = sparse.csc_matrix(
            (np.ones(nnz, dtype=bool), skel_indices[:nnz].copy(), skel_indptr),
            shape=(nf, nc),
        )
        elapsed = time.time() - t0

        if self.verbose:
            info = skeleton_info(skeleton)
            print(f"  [Skel] nnz(X)={nnz:,}, mean support={info['mean_support']:.2f}, "
                  f"max support={info['max_support']}, "
                  f"empty cols={info['empty_columns']:,}")
            print(f"  [Skel] basis capacity={ws.basis.capacity} cols, "
                  f"workspace={ws.memory_bytes() / 1e6:.1f} MB [{elapsed:.2f}s]")
            sys.stdout.flush()

        return {
            "skeleton": skeleton,
            "x_sum": x_sum,
            "nnz": int(nnz),
            "column_steps": col_steps,
            "column_norms": col_norms,
            "step_norms": step_norms[:ntrace].copy(),
            "step_norm_ptr": step_ptr,
            "threshold": inp.threshold,
            "stop_test": policy,
            "time": elapsed,
        }


def interp_skel(A, B, D=None, u=None, tol=0.1, stop_test="sum",
                workspace=None, verbose=False):
    """
    Convenience function: sparsity pattern and weighted sum of the
    greedy minimizer X of 0.5 X^T A X - B^T X.

    Parameters
    ----------
    A, B, D, u, tol, stop_test, workspace, verbose :
        See InterpSkeleton.

    Returns
    -------
    X_skel : scipy.sparse.csc_matrix of bool, shape (nf, nc)
        Support of each column, row indices ascending.
    X_sum : numpy.ndarray, length nf
        sum_j u_j X e_j.
    """
    result = InterpSkeleton(
        A, B, D, u,
        tol=tol,
        stop_test=stop_test,
        workspace=workspace,
        verbose=verbose,
    ).run()
    return result["skeleton"], result["x_sum"]
