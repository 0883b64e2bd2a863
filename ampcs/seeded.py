"""
Tables and fast products for seeded (block-structured) operators.

A seeded operator is split into L row blocks of sizes Mblock[l] and C column
blocks of a common size Nblock. Block (l, c) is sqrt(J[l, c]) times a subset
of Mblock[l] rows ("modes") of the Nblock x Nblock Hadamard or Fourier
matrix, with the sign of half of the rows of every row block flipped.

Indices are 0-based: mode 0 is the constant (DC) row of the transform and is
never used.
"""
from dataclasses import dataclass

import numpy as np

from .errors import ConfigurationError


@dataclass(frozen=True)
class SeededTables:
    """
    sign_flips[l]: rows (local to row block l) whose sign is flipped.
    modes[l][c]:   transform modes used by block (l, c); empty if J[l, c] == 0.

    Built once per run and shared read-only by every iteration.
    """
    sign_flips: tuple
    modes: tuple


def _readonly(a):
    a = np.asarray(a, dtype=np.intp)
    a.setflags(write=False)
    return a


def _draw_modes(rng, col_block_size):
    # random order of the non-constant modes
    perm = rng.permutation(col_block_size)
    return perm[perm != 0]


def check_blocks(J, row_block_sizes, col_block_size):
    J = np.asarray(J)
    sizes = np.asarray(row_block_sizes, dtype=int)
    if J.ndim != 2:
        raise ConfigurationError(f"J must be a matrix, got shape {J.shape}")
    num_block_rows, num_block_cols = J.shape
    if sizes.shape != (num_block_rows,):
        raise ConfigurationError(
            f"{sizes.size} row block sizes given for {num_block_rows} row blocks")
    if col_block_size < 2:
        raise ConfigurationError(f"col_block_size must be at least 2, got {col_block_size}")
    if np.any(sizes < 1) or np.any(sizes > col_block_size - 1):
        raise ConfigurationError(
            f"row block sizes must lie in [1, {col_block_size - 1}], got {sizes.tolist()}")
    if np.any(J < 0):
        raise ConfigurationError("J must be non-negative")
    if np.any(~J.any(axis=0)):
        raise ConfigurationError("every column block needs at least one nonzero J entry")
    return J, sizes


def build_permutations(num_block_rows, num_block_cols, J, row_block_sizes, col_block_size,
                       rng=None):
    """
    Draw the sign flips and the mode assignment of a seeded operator.

    For every row block, floor(Mblock / 2) distinct rows get their sign
    flipped. For every column block, the non-constant modes are put in a
    random order and consumed in contiguous slices of Mblock[l] entries, one
    slice per nonzero J[l, c], top to bottom; when fewer than Mblock[0] (or
    fewer than the slice needs) remain, a fresh ordering is drawn and
    consumption restarts. Zero entries of J get an empty slice.

    `rng` is anything `np.random.default_rng` accepts.
    """
    J, sizes = check_blocks(J, row_block_sizes, col_block_size)
    if J.shape != (num_block_rows, num_block_cols):
        raise ConfigurationError(
            f"J has shape {J.shape}, expected ({num_block_rows}, {num_block_cols})")
    rng = np.random.default_rng(rng)

    sign_flips = tuple(_readonly(np.sort(rng.choice(m, m // 2, replace=False))) for m in sizes)

    modes = [[None] * num_block_cols for _ in range(num_block_rows)]
    for c in range(num_block_cols):
        base = _draw_modes(rng, col_block_size)
        order = base
        u = 0
        for l in range(num_block_rows):
            if J[l, c] == 0:
                modes[l][c] = _readonly(np.empty(0))
                continue
            need = sizes[l]
            if order.size - u < max(sizes[0], need):
                order = rng.permutation(base)
                u = 0
            modes[l][c] = _readonly(order[u:u + need])
            u += need

    return SeededTables(sign_flips, tuple(tuple(row) for row in modes))


def check_banded(J):
    """
    The fast transpose-squared product scans column block c from row block
    max(c - 1, 0) down and stops at the first zero, so the nonzeros of every
    column must form one run starting there.
    """
    J = np.asarray(J)
    for c in range(J.shape[1]):
        start = max(c - 1, 0)
        nonzero = np.flatnonzero(J[:, c])
        run = np.arange(start, start + nonzero.size)
        if nonzero.size == 0 or not np.array_equal(nonzero, run):
            raise ConfigurationError(
                f"column block {c} of J must be nonzero on a single run of row blocks "
                f"starting at row block {start}, got rows {nonzero.tolist()}")


def multiply_transpose_squared(x, J, num_block_rows, num_block_cols, row_block_sizes,
                               col_block_size):
    """
    (G o G)^T x for a seeded operator, G o G the elementwise square.

    Every entry of block (l, c) squares to J[l, c], so each column block of
    the result is the constant sum_l J[l, c] * sum(x over row block l).
    O(M + N) instead of O(M N).
    """
    # zero sentinel past the last row block
    x = np.concatenate((np.ravel(x), np.zeros(col_block_size)))
    offsets = np.concatenate(([0], np.cumsum(row_block_sizes)))
    z = np.zeros(num_block_cols * col_block_size, dtype=np.result_type(x, float))
    for c in range(num_block_cols):
        acc = 0.0
        for l in range(max(c - 1, 0), num_block_rows):
            if J[l, c] == 0:
                break
            acc += J[l, c] * x[offsets[l]:offsets[l + 1]].sum()
        z[c * col_block_size:(c + 1) * col_block_size] = acc
    return z


def multiply_squared(x, J, row_block_sizes, col_block_size):
    """(G o G) x for a seeded operator: row block l is the constant
    sum_c J[l, c] * sum(x over column block c)."""
    block_sums = np.ravel(x).reshape(-1, col_block_size).sum(axis=1)
    return np.repeat(np.asarray(J) @ block_sums, row_block_sizes)


def coupling_matrix(row_block_sizes, num_block_cols, j1=20.0, j2=0.2):
    """
    Band coupling for a seeded operator: 1 on the diagonal, j1 between row
    block l and the previous column block, j2 with the next one.

    Scaled so that columns of the operator have unit squared norm on
    average. Needs at least as many row blocks as column blocks.
    """
    sizes = np.asarray(row_block_sizes, dtype=float)
    num_block_rows = sizes.size
    if num_block_rows < num_block_cols:
        raise ConfigurationError(
            f"need at least {num_block_cols} row blocks, got {num_block_rows}")
    J = np.zeros((num_block_rows, num_block_cols))
    for c in range(num_block_cols):
        if c >= 1:
            J[c - 1, c] = j2
        J[c, c] = 1.0
        if c + 1 < num_block_rows:
            J[c + 1, c] = j1
    column_power = J.T @ sizes
    return J / column_power.mean()
