"""
Skeleton Kernels: compiled building blocks of the greedy skeleton.

  fast        Numba primitives: heap-merged sp_mv, resid_update,
              heap_sort, packed triangular multiplies, growth helpers
  greedy      the per-column greedy builder (build_columns)
  triangular  PackedTriangular, the growable packed basis
  workspace   Workspace, reusable row-sized buffers

Example:
    from amgskel.kernels import Workspace, build_columns

    ws = Workspace(num_rows=A.shape[0])
    bufs = ws.pack_for_numba()

Author: Carmen Esteban
"""

from amgskel.kernels import fast
from amgskel.kernels.greedy import build_columns, select_row, STOP_MAX, STOP_SUM
from amgskel.kernels.triangular import PackedTriangular
from amgskel.kernels.workspace import Workspace

__all__ = [
    "fast", "build_columns", "select_row", "STOP_MAX", "STOP_SUM",
    "PackedTriangular", "Workspace",
]
