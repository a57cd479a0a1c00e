"""
Skeleton Triangular: packed upper-triangular basis storage.

The local A-orthonormal basis of one skeleton column is an upper
triangular k x k matrix Q (column c only touches support rows 0..c).
Columns are packed one after another:

    column c  ->  data[c(c+1)/2 : c(c+1)/2 + c + 1]

so extending the basis by one column never moves existing entries.
Offsets are plain integers and stay valid when storage is regrown.

Author: Carmen Esteban
"""

import numpy as np

from amgskel.kernels import fast as _fast


class PackedTriangular:
    """
    Growable packed storage for an upper-triangular basis.

    Parameters
    ----------
    capacity : int
        Number of columns the initial storage can hold.

    Examples
    --------
    >>> Q = PackedTriangular(capacity=4)
    >>> Q.offset(2)
    3
    >>> Q.ensure_columns(9)
    >>> Q.capacity
    16
    """

    def __init__(self, capacity=35):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        self.data = np.zeros(self.packed_size(self.capacity), dtype=np.float64)

    @staticmethod
    def packed_size(num_cols):
        """Entries needed to store num_cols packed columns."""
        return num_cols * (num_cols + 1) // 2

    def offset(self, c):
        """Packed offset of column c."""
        if not 0 <= c < self.capacity:
            raise IndexError(f"column {c} outside capacity {self.capacity}")
        return int(_fast.packed_offset(c))

    def column(self, c):
        """View of column c (length c + 1)."""
        off = self.offset(c)
        return self.data[off:off + c + 1]

    def ensure_columns(self, num_cols):
        """Double the capacity until num_cols columns fit."""
        capacity = self.capacity
        while capacity < num_cols:
            capacity *= 2
        if capacity != self.capacity:
            self.data = _fast.grow_float(self.data, self.packed_size(capacity))
            self.capacity = capacity

    def adopt(self, data, capacity):
        """Take over storage regrown inside a compiled kernel."""
        if len(data) < self.packed_size(capacity):
            raise ValueError("storage too small for the stated capacity")
        self.data = data
        self.capacity = int(capacity)

    def extend(self, k, active_map, rows, vals, energy, proj=None):
        """Append basis column k for a row whose active_map entry is k.

        Returns the new column as a view.
        """
        self.ensure_columns(k + 1)
        if proj is None:
            proj = np.empty(max(k, 1), dtype=np.float64)
        off = _fast.extend_basis(
            self.data, k, active_map,
            np.ascontiguousarray(rows, dtype=np.int64),
            np.ascontiguousarray(vals, dtype=np.float64),
            float(energy), proj)
        return self.data[off:off + k + 1]

    def matvec(self, k, x):
        """Q_k @ x for the leading k x k block."""
        y = np.empty(k, dtype=np.float64)
        _fast.mv_ut(y, 0, k, self.data, np.ascontiguousarray(x, dtype=np.float64))
        return y

    def rmatvec(self, k, x):
        """Q_k^T @ x for the leading k x k block."""
        y = np.empty(k, dtype=np.float64)
        _fast.mv_utt(y, k, self.data, np.ascontiguousarray(x, dtype=np.float64), 0)
        return y

    def to_dense(self, k):
        """Leading k x k block as a dense upper-triangular array."""
        out = np.zeros((k, k), dtype=np.float64)
        for c in range(k):
            out[:c + 1, c] = self.column(c)
        return out

    def memory_bytes(self):
        return self.data.nbytes

    def __repr__(self):
        return (f"PackedTriangular(capacity={self.capacity}, "
                f"ram={self.memory_bytes() / 1e3:.1f} KB)")
