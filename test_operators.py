import numpy as np
import pytest
from scipy.linalg import hadamard

from ampcs.errors import ConfigurationError
from ampcs.operators import DenseOperator, SeededOperator, fwht, remove_mean
from ampcs.seeded import coupling_matrix


def _seeded(transform, seed=0):
    sizes = [10, 9, 9]
    J = coupling_matrix(sizes, 3)
    return SeededOperator(J, sizes, 16, transform=transform, rng=seed)


def test_fwht_matches_hadamard_matrix():
    x = np.random.default_rng(0).standard_normal((3, 32))
    np.testing.assert_allclose(fwht(x), x @ hadamard(32).T, atol=1e-12)
    with pytest.raises(ValueError):
        fwht(np.ones(12))


@pytest.mark.parametrize("transform", ["hadamard", "fourier"])
def test_seeded_products_match_materialized_matrix(transform):
    op = _seeded(transform)
    G = op.to_dense()
    M, N = op.shape
    assert G.shape == (M, N) == (28, 48)
    assert op.is_complex == (transform == "fourier")

    rng = np.random.default_rng(1)
    x = rng.standard_normal(N)
    y = rng.standard_normal(M)
    if op.is_complex:
        x = x + 1j * rng.standard_normal(N)
        y = y + 1j * rng.standard_normal(M)
    np.testing.assert_allclose(op.forward(x), G @ x, atol=1e-10)
    np.testing.assert_allclose(op.transpose(y), G.conj().T @ y, atol=1e-10)

    G2 = np.abs(G) ** 2
    v = rng.random(N)
    w = rng.random(M)
    np.testing.assert_allclose(op.squared(v), G2 @ v, rtol=1e-10)
    np.testing.assert_allclose(op.transpose_squared(w), G2.T @ w, rtol=1e-10)
    assert op.mean_square() == pytest.approx(G2.mean())


def test_seeded_hadamard_entries():
    op = _seeded("hadamard")
    G = op.to_dense()
    rows = op.row_blocks
    for l in range(op.num_block_rows):
        for c in range(op.num_block_cols):
            block = G[rows[l], c * 16:(c + 1) * 16]
            np.testing.assert_allclose(np.abs(block), np.sqrt(op.J[l, c]))
            # no row of a used block is the constant row of the transform
            if op.J[l, c]:
                assert np.all(np.ptp(block, axis=1) > 0)


def test_seeded_operator_validation():
    J = coupling_matrix([5, 5], 2)
    with pytest.raises(ConfigurationError):
        SeededOperator(J, [5, 5], 12, transform="hadamard")
    with pytest.raises(ConfigurationError):
        SeededOperator(J, [5, 5], 16, transform="wavelet")
    SeededOperator(J, [5, 5], 12, transform="fourier")


@pytest.mark.parametrize("complex_valued", [False, True])
def test_save_memory_matches_save_speed(complex_valued):
    rng = np.random.default_rng(3)
    G = rng.standard_normal((50, 80))
    if complex_valued:
        G = G + 1j * rng.standard_normal((50, 80))
    fast = DenseOperator(G, save_memory=False)
    lean = DenseOperator(G, save_memory=True, chunk_rows=7)

    x = rng.standard_normal(80)
    y = rng.standard_normal(50) + (1j * rng.standard_normal(50) if complex_valued else 0)
    v = rng.random(80)
    w = rng.random(50)
    np.testing.assert_allclose(lean.forward(x), fast.forward(x), rtol=1e-12)
    np.testing.assert_allclose(lean.transpose(y), fast.transpose(y), rtol=1e-12, atol=1e-12)
    np.testing.assert_allclose(lean.squared(v), fast.squared(v), rtol=1e-12)
    np.testing.assert_allclose(lean.transpose_squared(w), fast.transpose_squared(w), rtol=1e-12)
    assert lean.mean_square() == pytest.approx(fast.mean_square(), rel=1e-12)
    np.testing.assert_allclose(fast.transpose(y), G.conj().T @ y, rtol=1e-12, atol=1e-12)


def test_per_column_mean_removal_is_equivalent():
    rng = np.random.default_rng(4)
    G = rng.standard_normal((30, 60)) + 0.5
    x = rng.standard_normal(60)
    y = G @ x
    G1, y1, shift = remove_mean(G, y, 1)
    assert G1.shape == (31, 60) and y1.shape == (31,)
    assert shift == 0.0
    np.testing.assert_allclose(G1[:30].mean(axis=0), 0.0, atol=1e-12)
    np.testing.assert_allclose(G1 @ x, y1, atol=1e-10)


def test_shared_mean_removal_is_equivalent():
    rng = np.random.default_rng(5)
    G = rng.standard_normal((30, 60)) + 0.5
    x = rng.standard_normal(60)
    y = G @ x
    G2, y2, g = remove_mean(G, y, 2)
    assert g == pytest.approx(G.mean())
    assert abs(G2.mean()) < 1e-12
    np.testing.assert_allclose(G2 @ x + g * x.sum(), y2, atol=1e-10)
    assert remove_mean(G, y, 0)[2] == 0.0
    with pytest.raises(ConfigurationError):
        remove_mean(G, y, 3)
