"""
Skeleton Workspace: reusable buffers for the greedy builder.

All per-row scratch arrays are allocated once per run (or once for many
runs) and handed to the compiled kernels by reference. Between columns
and between runs the workspace is "clean":

  - flag is all False       (sp_mv restores it on exit)
  - active_map is all -1    (the builder resets every support row)

beta and the residual buffers carry no meaning across columns.

Author: Carmen Esteban
"""

import numpy as np

from amgskel.kernels.triangular import PackedTriangular


class Workspace:
    """
    Row-sized scratch space plus the packed basis.

    Parameters
    ----------
    num_rows : int
        Number of rows (nf) the buffers must cover.
    basis_columns : int
        Initial basis capacity; doubled on demand.

    Examples
    --------
    >>> ws = Workspace(num_rows=1000)
    >>> ws.is_clean()
    True
    >>> ws.ensure_rows(5000)   # regrows every row buffer
    """

    def __init__(self, num_rows=0, basis_columns=35):
        self.num_rows = 0
        self.basis = PackedTriangular(basis_columns)
        self._allocate(num_rows)

    def _allocate(self, num_rows):
        n = int(num_rows)
        self.flag = np.zeros(n, dtype=np.bool_)
        self.active_map = np.full(n, -1, dtype=np.int64)
        self.beta = np.zeros(n, dtype=np.float64)
        self.sv = np.zeros(n, dtype=np.float64)
        self.proj = np.zeros(n, dtype=np.float64)

        # residual ping-pong pair and the A @ q_k result
        self.r_idx = np.empty(n, dtype=np.int64)
        self.r_val = np.empty(n, dtype=np.float64)
        self.s_idx = np.empty(n, dtype=np.int64)
        self.s_val = np.empty(n, dtype=np.float64)
        self.aq_idx = np.empty(n, dtype=np.int64)
        self.aq_val = np.empty(n, dtype=np.float64)
        self.num_rows = n

    def ensure_rows(self, num_rows):
        """Reallocate row buffers if they cannot cover num_rows rows."""
        if num_rows > self.num_rows:
            self._allocate(num_rows)

    def reset(self):
        """Restore the clean state after an interrupted build."""
        self.flag[:] = False
        self.active_map[:] = -1
        self.beta[:] = 0.0

    def is_clean(self):
        return (not self.flag.any()) and bool(np.all(self.active_map == -1))

    def pack_for_numba(self):
        """Return the buffers in the order build_columns expects them.

        Returns
        -------
        dict with flag, active_map, beta, sv, proj, r_idx, r_val,
        s_idx, s_val, aq_idx, aq_val, Q, max_q
        """
        return {
            'flag': self.flag,
            'active_map': self.active_map,
            'beta': self.beta,
            'sv': self.sv,
            'proj': self.proj,
            'r_idx': self.r_idx,
            'r_val': self.r_val,
            's_idx': self.s_idx,
            's_val': self.s_val,
            'aq_idx': self.aq_idx,
            'aq_val': self.aq_val,
            'Q': self.basis.data,
            'max_q': self.basis.capacity,
        }

    def memory_bytes(self):
        """Memory held by row buffers and basis."""
        total = self.basis.memory_bytes()
        for arr in (self.flag, self.active_map, self.beta, self.sv, self.proj,
                    self.r_idx, self.r_val, self.s_idx, self.s_val,
                    self.aq_idx, self.aq_val):
            total += arr.nbytes
        return total

    def __repr__(self):
        return (f"Workspace(rows={self.num_rows:,}, "
                f"basis_cols={self.basis.capacity}, "
                f"ram={self.memory_bytes() / 1e6:.1f} MB)")
