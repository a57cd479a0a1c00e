"""
Skeleton Greedy: JIT-compiled column builder.

For every column j of B, grows a support set S_j one row at a time:

  Init     residual r := B e_j, beta := 0 on r's rows
  Select   s = argmax |r_i| / sqrt(D_i - beta_i), stop when the
           normalized residual statistic drops to the threshold
  Extend   append s, extend the A-orthonormal basis Q by one column q,
           X_sum += u_j w q,  r := r - w A q,  beta += (A q)^2

The support of column j is written in place into the skeleton index
array, so the skeleton and the basis are the only buffers that grow.

Author: Carmen Esteban
"""

import numpy as np
from numba import njit

from amgskel.kernels.fast import (
    sp_mv, resid_update, heap_sort, extend_basis,
    packed_offset, grow_int, grow_float,
)


STOP_MAX = 1
STOP_SUM = 2


@njit(cache=True, error_model='numpy')
def select_row(ri, rp, rnz, D, beta, stop_test):
    """Pick the next row and compute the stopping statistic.

    Ties in |w| go to the lowest row index.

    Returns
    -------
    s : int
        Selected row (-1 if the residual is empty). If some residual row
        has D_i - beta_i <= 0 that row is returned with norm = inf, so
        the caller reaches the energy check for it under either policy.
    w : float
        r_s / sqrt(D_s - beta_s).
    norm : float
        max_i or sum_i of |r_i / (D_i - beta_i)|.
    """
    s = -1
    w = 0.0
    aw = 0.0
    norm = 0.0
    for m in range(rnz):
        i = ri[m]
        r = rp[m]
        d = D[i] - beta[i]
        if not d > 0.0:
            return i, 0.0, np.inf
        tw = r / np.sqrt(d)
        tn = abs(r / d)
        atw = abs(tw)
        if s < 0 or atw > aw or (atw == aw and i < s):
            s = i
            w = tw
            aw = atw
        if stop_test == STOP_MAX:
            if tn > norm:
                norm = tn
        else:
            norm += tn
    return s, w, norm


@njit(cache=True, error_model='numpy')
def build_columns(A_indptr, A_indices, A_data,
                  B_indptr, B_indices, B_data,
                  D, u, threshold, stop_test,
                  skel_indptr, skel_indices, x_sum,
                  flag, active_map, beta, sv, proj,
                  r_idx, r_val, s_idx, s_val, aq_idx, aq_val,
                  Q, max_q,
                  col_steps, col_norms, step_norms, step_ptr, status):
    """Build the skeleton of every column of B.

    B's columns must have ascending row indices. flag must be all False
    and active_map all -1 on entry; both are left that way on exit.

    Parameters
    ----------
    skel_indptr : int64 array, length cols(B) + 1
        Filled with the skeleton column pointers.
    skel_indices : int64 array
        Initial skeleton index storage; doubled when full.
    x_sum : float64 array
        Accumulates sum_j u_j X e_j. Must start at zero.
    Q, max_q :
        Packed triangular basis storage and its column capacity;
        doubled when a column needs more than max_q basis vectors.
    step_norms, step_ptr :
        Stopping statistic after Init and after each Extend, per column.
    status : int64 array of length 2
        Set to (column, row) if a selected row has D_s - beta_s <= 0;
        the build stops there.

    Returns
    -------
    skel_indices, nnz, Q, max_q, step_norms, ntrace
        Possibly regrown buffers and their filled lengths.
    """
    nc = len(B_indptr) - 1
    nnz = 0
    ntrace = 0
    status[0] = -1
    status[1] = -1

    for j in range(nc):
        skel_indptr[j] = nnz
        step_ptr[j] = ntrace
        col_steps[j] = 0
        col_norms[j] = 0.0
        col_start = nnz

        b0 = B_indptr[j]
        rnz = B_indptr[j + 1] - b0
        if rnz < 1:
            continue

        for m in range(rnz):
            i = B_indices[b0 + m]
            r_idx[m] = i
            r_val[m] = B_data[b0 + m]
            beta[i] = 0.0

        s, w, norm = select_row(r_idx, r_val, rnz, D, beta, stop_test)
        if ntrace == len(step_norms):
            step_norms = grow_float(step_norms, max(2 * len(step_norms), 16))
        step_norms[ntrace] = norm
        ntrace += 1

        k = 0
        while norm > threshold:
            if nnz == len(skel_indices):
                skel_indices = grow_int(skel_indices, max(2 * len(skel_indices), 1))
            if k + 1 > max_q:
                max_q *= 2
                Q = grow_float(Q, packed_offset(max_q))

            energy = D[s] - beta[s]
            if not energy > 0.0:
                for m in range(k):
                    active_map[skel_indices[col_start + m]] = -1
                status[0] = j
                status[1] = s
                return skel_indices, col_start, Q, max_q, step_norms, ntrace

            skel_indices[nnz] = s
            nnz += 1
            active_map[s] = k

            a0 = A_indptr[s]
            a1 = A_indptr[s + 1]
            qoff = extend_basis(Q, k, active_map,
                                A_indices[a0:a1], A_data[a0:a1],
                                energy, proj)

            ujw = u[j] * w
            for m in range(k + 1):
                x_sum[skel_indices[col_start + m]] += ujw * Q[qoff + m]

            # the mask hides s and every earlier support row
            aqn = sp_mv(aq_idx, aq_val, A_indptr, A_indices, A_data,
                        k + 1, skel_indices[col_start:col_start + k + 1],
                        Q[qoff:qoff + k + 1], sv, flag, active_map, True)

            tmp_i = s_idx
            s_idx = r_idx
            r_idx = tmp_i
            tmp_v = s_val
            s_val = r_val
            r_val = tmp_v
            rnz = resid_update(r_idx, r_val, beta, rnz, s_idx, s_val, w,
                               aqn, aq_idx, aq_val, active_map, True)
            k += 1

            if rnz > 0:
                s, w, norm = select_row(r_idx, r_val, rnz, D, beta, stop_test)
            else:
                norm = 0.0
            if ntrace == len(step_norms):
                step_norms = grow_float(step_norms, max(2 * len(step_norms), 16))
            step_norms[ntrace] = norm
            ntrace += 1

        heap_sort(k, skel_indices[col_start:col_start + k])
        for m in range(k):
            active_map[skel_indices[col_start + m]] = -1
        col_steps[j] = k
        col_norms[j] = norm

    skel_indptr[nc] = nnz
    step_ptr[nc] = ntrace
    return skel_indices, nnz, Q, max_q, step_norms, ntrace
