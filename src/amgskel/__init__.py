"""
AMG Skel - Greedy sparse interpolation skeletons
=================================================

Column-by-column sparse minimizers of 0.5 x^T A x - B_j^T x for
algebraic-multigrid interpolation, built by a greedy pursuit over rows
with an incrementally grown A-orthonormal basis.

Quick start:
    import amgskel

    # Support pattern and weighted sum X @ u
    X_skel, X_sum = amgskel.interp_skel(A, B, D, u, tol=0.1)

    # Full result with per-column statistics, reusing buffers
    from amgskel.kernels import Workspace
    ws = Workspace(num_rows=A.shape[0])
    result = amgskel.InterpSkeleton(A, B, tol=0.1, workspace=ws).run()
    print(amgskel.skeleton_info(result["skeleton"]))

Author: Carmen Esteban
License: MIT
"""

__version__ = "0.1.0"
__author__ = "Carmen Esteban"

from amgskel.validation import check_inputs
from amgskel.skeleton import InterpSkeleton, interp_skel, skeleton_info
from amgskel import kernels

__all__ = [
    "check_inputs", "InterpSkeleton", "interp_skel", "skeleton_info",
    "kernels",
]
