"""
2-D Poisson: interpolation skeleton sweep over tol
==================================================

Builds the 5-point Laplacian on an n x n grid, takes every 4th point as
a coarse point and computes the interpolation skeleton for a range of
tolerances, reporting support sizes and how well X_sum solves A x = B u.

Usage:
  pip install -e .
  python examples/run_laplacian_skeleton.py [grid_size]

Author: Carmen Esteban
"""

import sys
import time

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import spsolve

from amgskel import InterpSkeleton, skeleton_info
from amgskel.kernels import Workspace


def laplacian_2d(n):
    T = sparse.diags([-np.ones(n - 1), 2 * np.ones(n), -np.ones(n - 1)], [-1, 0, 1])
    I = sparse.eye(n)
    return (sparse.kron(T, I) + sparse.kron(I, T)).tocsc()


n = int(sys.argv[1]) if len(sys.argv) > 1 else 64
A = laplacian_2d(n)
nf = A.shape[0]
coarse = np.arange(0, nf, 4)

# B: couplings from fine rows to coarse points
B = (-A[:, coarse]).tolil()
for c, i in enumerate(coarse):
    B[i, c] = 0.0
B = B.tocsc()
B.eliminate_zeros()
u = np.ones(len(coarse))

print(f"Grid {n} x {n}: nf={nf:,}, nc={len(coarse):,}, nnz(B)={B.nnz:,}")
t0 = time.time()
x_ref = spsolve(A, B @ u)
print(f"Reference solve [{time.time() - t0:.2f}s]")

ws = Workspace(num_rows=nf)
print(f"\n{'='*70}")
print(f"  {'tol':>8} {'nnz(X)':>10} {'mean':>7} {'max':>5} {'rel err':>10} {'time':>8}")
print(f"{'='*70}")

for tol in (1.0, 0.3, 0.1, 0.03, 0.01):
    result = InterpSkeleton(A, B, u=u, tol=tol, workspace=ws).run()
    info = skeleton_info(result["skeleton"])
    err = np.linalg.norm(result["x_sum"] - x_ref) / np.linalg.norm(x_ref)
    print(f"  {tol:>8g} {info['nnz']:>10,} {info['mean_support']:>7.2f} "
          f"{info['max_support']:>5} {err:>10.2e} {result['time']:>7.2f}s")
    sys.stdout.flush()

print(f"{'='*70}")
print(f"  {ws}")
