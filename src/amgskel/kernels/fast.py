"""
Skeleton Fast: Numba JIT-compiled sparse primitives for the greedy builder.

All kernels work on plain numpy buffers owned by the caller (usually a
Workspace) and never allocate, except the explicit grow helpers.

Index conventions:
  - sparse vectors are (indices, values, count) triples
  - a mask entry >= 0 removes that row from sparse outputs
  - heaps are 1-based binary heaps laid over a 0-based buffer:
    node h lives at buf[h - 1]

Author: Carmen Esteban
"""

import numpy as np
from numba import njit


# ============================================================
# Binary max-heap over an index buffer
# ============================================================

@njit(cache=True)
def heap_push(heap, size, value):
    """Insert value into a max-heap of `size` entries (sift-up).

    Returns
    -------
    int
        The new heap size.
    """
    hole = size + 1
    while hole > 1:
        parent = hole >> 1
        vp = heap[parent - 1]
        if value < vp:
            break
        heap[hole - 1] = vp
        hole = parent
    heap[hole - 1] = value
    return size + 1


@njit(cache=True)
def heap_pop(heap, size):
    """Move the maximum of a heap of `size` entries to heap[size - 1].

    The remaining `size - 1` entries are restored to heap order.

    Returns
    -------
    int
        The new heap size.
    """
    if size < 2:
        return 0
    v = heap[size - 1]
    heap[size - 1] = heap[0]
    # heap size is now size - 1; sift v down from the root
    hole = 1
    while True:
        child = hole << 1
        r = child + 1
        if r < size and heap[r - 1] > heap[child - 1]:
            child = r
        if child >= size:
            break
        vc = heap[child - 1]
        if v >= vc:
            break
        heap[hole - 1] = vc
        hole = child
    heap[hole - 1] = v
    return size - 1


@njit(cache=True)
def heap_sort(n, values):
    """Sort values[:n] ascending in place (heapsort)."""
    size = 1 if n > 0 else 0
    for i in range(1, n):
        size = heap_push(values, size, values[i])
    while size > 1:
        size = heap_pop(values, size)


# ============================================================
# Sparse matrix-vector product: y = A @ x  (heap merged)
# ============================================================

@njit(cache=True)
def sp_mv(yi, y, A_indptr, A_indices, A_data, xn, xi, x,
          sv, flag, mask, use_mask):
    """Sparse y := A @ x with sorted output, skipping masked rows.

    Parameters
    ----------
    yi, y : 1D int64 / float64 arrays
        Output indices and values. Must hold every row reachable from x.
    A_indptr, A_indices, A_data : CSC arrays of A
    xn : int
        Number of entries of x.
    xi, x : 1D arrays
        Sparse input (indices may be unsorted). Zero entries are skipped.
    sv : 1D float64 array, length rows(A)
        Dense accumulator.
    flag : 1D bool array, length rows(A)
        All False on input, all False on output.
    mask : 1D int64 array, length rows(A)
        Rows with mask >= 0 are left out of y.
    use_mask : bool
        When False every row is emitted.

    Returns
    -------
    int
        nnz(y); yi[:nnz] is strictly ascending.
    """
    yn = 0
    for t in range(xn):
        j = xi[t]
        xj = x[t]
        if xj == 0.0:
            continue
        for p in range(A_indptr[j], A_indptr[j + 1]):
            i = A_indices[p]
            if use_mask and mask[i] >= 0:
                continue
            if not flag[i]:
                yn = heap_push(yi, yn, i)
                flag[i] = True
                sv[i] = 0.0
            sv[i] += A_data[p] * xj

    size = yn
    while size > 1:
        size = heap_pop(yi, size)

    for h in range(yn):
        i = yi[h]
        y[h] = sv[i]
        flag[i] = False
    return yn


# ============================================================
# Residual update: r = x - alpha * y,  beta += y .* y
# ============================================================

@njit(cache=True)
def resid_update(ri, rp, beta, xn, xi, xp, alpha, yn, yi, yp,
                 mask, use_mask):
    """Merge two ascending sparse vectors into r = x - alpha * y.

    beta[i] is written for every row i of y, masked or not: assigned
    y_i**2 when i is not in x, incremented by y_i**2 when it is.
    Masked rows are left out of r. ri/rp must not alias the inputs.

    Returns
    -------
    int
        nnz(r); ri[:nnz] is ascending.
    """
    rnz = 0
    a = 0
    b = 0
    while a < xn and b < yn:
        ix = xi[a]
        iy = yi[b]
        if ix < iy:
            if not use_mask or mask[ix] < 0:
                ri[rnz] = ix
                rp[rnz] = xp[a]
                rnz += 1
            a += 1
        elif ix > iy:
            yv = yp[b]
            beta[iy] = yv * yv
            if not use_mask or mask[iy] < 0:
                ri[rnz] = iy
                rp[rnz] = -alpha * yv
                rnz += 1
            b += 1
        else:
            yv = yp[b]
            beta[iy] += yv * yv
            if not use_mask or mask[iy] < 0:
                ri[rnz] = iy
                rp[rnz] = xp[a] - alpha * yv
                rnz += 1
            a += 1
            b += 1

    while a < xn:
        ix = xi[a]
        if not use_mask or mask[ix] < 0:
            ri[rnz] = ix
            rp[rnz] = xp[a]
            rnz += 1
        a += 1

    while b < yn:
        iy = yi[b]
        yv = yp[b]
        beta[iy] = yv * yv
        if not use_mask or mask[iy] < 0:
            ri[rnz] = iy
            rp[rnz] = -alpha * yv
            rnz += 1
        b += 1
    return rnz


# ============================================================
# Packed upper-triangular basis primitives
# ============================================================

@njit(cache=True)
def packed_offset(c):
    """Start of column c in column-major packed upper-triangular storage."""
    return (c * (c + 1)) // 2


@njit(cache=True)
def sp_restrict(out, out_off, k, active_map, rows, vals):
    """Dense restriction of a sparse column to the first k basis rows.

    out[out_off + m] = vals[t] where active_map[rows[t]] == m < k,
    zero elsewhere. Row order of the sparse column does not matter.
    """
    for m in range(k):
        out[out_off + m] = 0.0
    for t in range(len(rows)):
        m = active_map[rows[t]]
        if m >= 0 and m < k:
            out[out_off + m] = vals[t]


@njit(cache=True)
def mv_utt(y, k, Q, x, x_off):
    """y[:k] = Q_k^T @ x[x_off:x_off + k], Q_k the leading k x k block."""
    for c in range(k):
        off = packed_offset(c)
        acc = 0.0
        for r in range(c + 1):
            acc += Q[off + r] * x[x_off + r]
        y[c] = acc


@njit(cache=True)
def mv_ut(y, y_off, k, Q, x):
    """y[y_off:y_off + k] = Q_k @ x[:k].

    y may be Q itself as long as y_off lies past column k - 1.
    """
    for r in range(k):
        y[y_off + r] = 0.0
    for c in range(k):
        off = packed_offset(c)
        xc = x[c]
        if xc == 0.0:
            continue
        for r in range(c + 1):
            y[y_off + r] += Q[off + r] * xc


@njit(cache=True)
def extend_column(Q, k, energy):
    """Turn the projection stored in column k into the new basis column.

    Column k of Q holds Q_k Q_k^T A e_s in rows 0..k-1 on entry. On exit
    it holds -(proj, -1) / sqrt(energy), energy = D[s] - beta[s] > 0.
    """
    off = packed_offset(k)
    norm_fac = -1.0 / np.sqrt(energy)
    for m in range(k):
        Q[off + m] *= norm_fac
    Q[off + k] = -norm_fac


@njit(cache=True)
def extend_basis(Q, k, active_map, rows, vals, energy, proj):
    """Append column k to the A-orthonormal basis Q.

    rows/vals is the sparse column A e_s of the new row s, whose
    active_map entry is already k. Q needs room for k + 1 columns;
    proj is scratch of length >= k.

    Returns
    -------
    int
        Packed offset of the new column.
    """
    off = packed_offset(k)
    sp_restrict(Q, off, k, active_map, rows, vals)
    mv_utt(proj, k, Q, Q, off)
    mv_ut(Q, off, k, Q, proj)
    extend_column(Q, k, energy)
    return off


# ============================================================
# Geometric growth
# ============================================================

@njit(cache=True)
def grow_int(arr, new_len):
    """Return a copy of arr resized to new_len (int64)."""
    out = np.empty(new_len, dtype=np.int64)
    n = min(len(arr), new_len)
    out[:n] = arr[:n]
    return out


@njit(cache=True)
def grow_float(arr, new_len):
    """Return a copy of arr resized to new_len (float64)."""
    out = np.zeros(new_len, dtype=np.float64)
    n = min(len(arr), new_len)
    out[:n] = arr[:n]
    return out
