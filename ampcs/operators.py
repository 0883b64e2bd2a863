"""
Measurement operators seen by the AMP engine.

Every operator provides the four products the iteration needs: G x, G^H y,
(G o G) x and (G o G)^T y, where G o G is the elementwise squared modulus.
"""
import numpy as np
from scipy.linalg import dft, hadamard

from .errors import ConfigurationError
from .seeded import (build_permutations, check_banded, check_blocks, multiply_squared,
                     multiply_transpose_squared)


class Operator:
    """Interface shared by dense and seeded operators."""

    # scalar g of the mean-removal variant that subtracts the global mean of G
    mean_shift = 0.0

    @property
    def shape(self):
        raise NotImplementedError

    @property
    def is_complex(self):
        raise NotImplementedError

    @property
    def row_blocks(self):
        """Row slices over which noise is learned separately."""
        return [slice(0, self.shape[0])]

    def forward(self, x):
        raise NotImplementedError

    def transpose(self, y):
        """Adjoint product G^H y (plain transpose for real operators)."""
        raise NotImplementedError

    def squared(self, x):
        raise NotImplementedError

    def transpose_squared(self, y):
        raise NotImplementedError

    def mean_square(self):
        """Mean of |G_ij|^2 over all entries."""
        raise NotImplementedError


class DenseOperator(Operator):
    """
    Explicit M x N matrix.

    With save_memory=False the squared matrix and contiguous copies of G^H
    and (G o G)^T are kept. With save_memory=True the squared products are
    computed over row chunks and no operator-sized buffer is allocated.
    """

    def __init__(self, G, save_memory=False, mean_shift=0.0, chunk_rows=256):
        G = np.asarray(G)
        if G.ndim != 2:
            raise ConfigurationError(f"G must be a matrix, got shape {G.shape}")
        if not np.iscomplexobj(G):
            G = G.astype(float, copy=False)
        self.G = G
        self.save_memory = save_memory
        self.mean_shift = mean_shift
        self.chunk_rows = max(int(chunk_rows), 1)

        if save_memory:
            self._G2 = self._GH = self._G2T = None
            self._mean_square = sum(
                float(self._chunk_squared(rows).sum()) for rows in self._chunks()) / G.size
        else:
            self._G2 = np.abs(G) ** 2
            self._GH = np.ascontiguousarray(G.conj().T)
            self._G2T = np.ascontiguousarray(self._G2.T)
            self._mean_square = float(self._G2.mean())

    @property
    def shape(self):
        return self.G.shape

    @property
    def is_complex(self):
        return np.iscomplexobj(self.G)

    def _chunks(self):
        M = self.G.shape[0]
        for start in range(0, M, self.chunk_rows):
            yield slice(start, min(start + self.chunk_rows, M))

    def _chunk_squared(self, rows):
        block = self.G[rows]
        if np.iscomplexobj(block):
            return block.real ** 2 + block.imag ** 2
        return block ** 2

    def forward(self, x):
        return self.G @ x

    def transpose(self, y):
        if self._GH is not None:
            return self._GH @ y
        if self.is_complex:
            return np.conj(np.conj(y) @ self.G)
        return y @ self.G

    def squared(self, x):
        if self._G2 is not None:
            return self._G2 @ x
        out = np.empty(self.G.shape[0], dtype=np.result_type(x, float))
        for rows in self._chunks():
            out[rows] = self._chunk_squared(rows) @ x
        return out

    def transpose_squared(self, y):
        if self._G2T is not None:
            return self._G2T @ y
        out = np.zeros(self.G.shape[1], dtype=np.result_type(y, float))
        for rows in self._chunks():
            out += y[rows] @ self._chunk_squared(rows)
        return out

    def mean_square(self):
        return self._mean_square


def remove_mean(G, y, mode):
    """
    Mean-removal preprocessing of a dense problem y = G x + noise.

    mode 0: unchanged.
    mode 1: centre every column of G and centre y, then append one row
            sqrt(M) * column_means with measurement sqrt(M) * mean(y). The
            appended row carries the removed information, so the problem is
            equivalent and gains one measurement.
    mode 2: subtract the scalar mean g of G. The engine then measures against
            y - g * sum(x_hat) at every iteration.

    Returns (G, y, mean_shift).
    """
    G = np.asarray(G)
    y = np.ravel(y)
    if mode == 0:
        return G, y, 0.0
    M = G.shape[0]
    if mode == 1:
        col_mean = G.mean(axis=0)
        y_mean = y.mean()
        G = np.vstack([G - col_mean, np.sqrt(M) * col_mean])
        y = np.append(y - y_mean, np.sqrt(M) * y_mean)
        return G, y, 0.0
    if mode == 2:
        g = G.mean()
        return G - g, y, g
    raise ConfigurationError(f"remove_mean must be 0, 1 or 2, got {mode}")


def fwht(x):
    """
    Unnormalized fast Walsh-Hadamard transform along the last axis, in the
    Sylvester order of scipy.linalg.hadamard. Returns a new array.
    """
    x = np.array(x, dtype=np.result_type(x, float))
    n = x.shape[-1]
    if n & (n - 1):
        raise ValueError(f"length must be a power of 2, got {n}")
    lead = x.shape[:-1]
    h = 1
    while h < n:
        x = x.reshape(lead + (n // (2 * h), 2, h))
        a = x[..., 0, :]
        b = x[..., 1, :]
        x = np.stack((a + b, a - b), axis=-2)
        h *= 2
    return x.reshape(lead + (n,))


class SeededOperator(Operator):
    """
    Block-structured Hadamard or Fourier operator.

    Block (l, c) holds sqrt(J[l, c]) times the rows `tables.modes[l][c]` of
    the col_block_size-point transform, and rows `tables.sign_flips[l]` of
    row block l are negated. Products never materialize the matrix.
    """

    def __init__(self, J, row_block_sizes, col_block_size, transform="hadamard", tables=None,
                 rng=None):
        J, sizes = check_blocks(J, row_block_sizes, col_block_size)
        check_banded(J)
        if transform not in ("hadamard", "fourier"):
            raise ConfigurationError(f"unknown transform {transform!r}")
        if transform == "hadamard" and col_block_size & (col_block_size - 1):
            raise ConfigurationError(
                f"Hadamard blocks need a power-of-2 col_block_size, got {col_block_size}")
        self.J = J.astype(float)
        self.row_block_sizes = sizes
        self.col_block_size = int(col_block_size)
        self.transform = transform
        self.num_block_rows, self.num_block_cols = J.shape
        if tables is None:
            tables = build_permutations(self.num_block_rows, self.num_block_cols, J, sizes,
                                        col_block_size, rng)
        self.tables = tables
        self._offsets = np.concatenate(([0], np.cumsum(sizes)))
        self._blocks = [(l, c, np.sqrt(self.J[l, c]), tables.modes[l][c])
                        for l in range(self.num_block_rows)
                        for c in range(self.num_block_cols) if self.J[l, c] != 0]

    @property
    def shape(self):
        return int(self._offsets[-1]), self.num_block_cols * self.col_block_size

    @property
    def is_complex(self):
        return self.transform == "fourier"

    @property
    def row_blocks(self):
        return [slice(self._offsets[l], self._offsets[l + 1]) for l in range(self.num_block_rows)]

    def _flip(self, y):
        for l, flips in enumerate(self.tables.sign_flips):
            y[self._offsets[l] + flips] *= -1
        return y

    def forward(self, x):
        xb = np.reshape(x, (self.num_block_cols, self.col_block_size))
        if self.transform == "hadamard":
            spectrum = fwht(xb)
        else:
            spectrum = np.fft.fft(xb, axis=1)
        y = np.zeros(self.shape[0], dtype=spectrum.dtype)
        for l, c, scale, modes in self._blocks:
            y[self._offsets[l]:self._offsets[l + 1]] += scale * spectrum[c, modes]
        return self._flip(y)

    def transpose(self, y):
        dtype = complex if self.is_complex else np.result_type(y, float)
        y = self._flip(np.array(y, dtype=dtype))
        spectrum = np.zeros((self.num_block_cols, self.col_block_size), dtype=dtype)
        for l, c, scale, modes in self._blocks:
            spectrum[c, modes] += scale * y[self._offsets[l]:self._offsets[l + 1]]
        if self.transform == "hadamard":
            xb = fwht(spectrum)
        else:
            # F^H v = n * ifft(v)
            xb = self.col_block_size * np.fft.ifft(spectrum, axis=1)
        return xb.reshape(-1)

    def squared(self, x):
        return multiply_squared(x, self.J, self.row_block_sizes, self.col_block_size)

    def transpose_squared(self, y):
        return multiply_transpose_squared(y, self.J, self.num_block_rows, self.num_block_cols,
                                          self.row_block_sizes, self.col_block_size)

    def mean_square(self):
        # every entry of block (l, c) squares to J[l, c]
        M, N = self.shape
        total = (self.J * self.row_block_sizes[:, None]).sum() * self.col_block_size
        return float(total) / (M * N)

    def to_dense(self):
        """Materialize the operator as an explicit matrix."""
        n = self.col_block_size
        T = hadamard(n).astype(float) if self.transform == "hadamard" else dft(n)
        G = np.zeros(self.shape, dtype=T.dtype)
        for l, c, scale, modes in self._blocks:
            G[self._offsets[l]:self._offsets[l + 1], c * n:(c + 1) * n] = scale * T[modes]
        return self._flip(G)
