"""Synthetic compressed-sensing problems and a demonstration run."""
import numpy as np
import matplotlib.pyplot as plt

from .api import SeededSpec, reconstruct
from .config import AMPConfig, Method
from .operators import SeededOperator
from .seeded import coupling_matrix


def sparse_signal(n, rho, rng, complex_valued=False):
    """Gauss-Bernoulli signal: each entry nonzero with probability rho."""
    support = rng.random(n) < rho
    if complex_valued:
        values = (rng.standard_normal(n) + 1j * rng.standard_normal(n)) / np.sqrt(2)
    else:
        values = rng.standard_normal(n)
    return np.where(support, values, 0)


def generate_test_problem(m=150, n=500, rho=0.1, var_noise=1e-10, seed=None,
                          complex_valued=False):
    """
    Dense problem y = G x + noise with i.i.d. G entries of variance 1/m, so
    that columns have unit squared norm on average.

    Returns:
        G, y, x_true
    """
    rng = np.random.default_rng(seed)
    if complex_valued:
        G = (rng.standard_normal((m, n)) + 1j * rng.standard_normal((m, n))) / np.sqrt(2 * m)
        noise = np.sqrt(var_noise / 2) * (rng.standard_normal(m) + 1j * rng.standard_normal(m))
    else:
        G = rng.standard_normal((m, n)) / np.sqrt(m)
        noise = np.sqrt(var_noise) * rng.standard_normal(m)
    x_true = sparse_signal(n, rho, rng, complex_valued)
    return G, G @ x_true + noise, x_true


def generate_seeded_problem(row_block_sizes, num_block_cols, col_block_size, rho=0.1,
                            var_noise=1e-10, transform="hadamard", J=None, seed=None):
    """
    Seeded problem. J defaults to `coupling_matrix(row_block_sizes, num_block_cols)`.

    Returns:
        spec (SeededSpec with its tables), y, x_true
    """
    rng = np.random.default_rng(seed)
    if J is None:
        J = coupling_matrix(row_block_sizes, num_block_cols)
    operator = SeededOperator(J, row_block_sizes, col_block_size, transform=transform, rng=rng)
    complex_valued = operator.is_complex
    x_true = sparse_signal(operator.shape[1], rho, rng, complex_valued)
    m = operator.shape[0]
    if complex_valued:
        noise = np.sqrt(var_noise / 2) * (rng.standard_normal(m) + 1j * rng.standard_normal(m))
    else:
        noise = np.sqrt(var_noise) * rng.standard_normal(m)
    spec = SeededSpec(operator.J, operator.row_block_sizes, col_block_size, operator.tables)
    return spec, operator.forward(x_true) + noise, x_true


def plot_convergence(x_true, x_hat, info):
    """Recovered vs true signal and the MSE / step-size histories."""
    fig = plt.figure(figsize=(12, 4))

    plt.subplot(1, 3, 1)
    plt.plot(np.real(x_true), 'b-', label='True signal', alpha=0.7)
    plt.plot(np.real(x_hat), 'r--', label='Recovered', alpha=0.7)
    plt.legend()
    plt.title('Signal Recovery')
    plt.xlabel('Index')
    plt.ylabel('Amplitude')

    plt.subplot(1, 3, 2)
    plt.scatter(np.real(x_true), np.real(x_hat), alpha=0.6)
    lim = np.max(np.abs(np.real(x_true))) if np.size(x_true) else 1.0
    plt.plot([-lim, lim], [-lim, lim], 'r--', alpha=0.5)
    plt.xlabel('True values')
    plt.ylabel('Recovered values')
    plt.title('Recovery Scatter Plot')

    plt.subplot(1, 3, 3)
    if info['mse_history']:
        plt.semilogy(info['mse_history'], label='MSE')
    plt.semilogy(info['diff_history'], label='mean |change|')
    plt.xlabel('Iteration')
    plt.legend()
    plt.title('Convergence')
    plt.grid(True)

    plt.tight_layout()
    return fig


def demo_amp(show=True):
    """Dense AMP followed by seeded Hadamard AMP on synthetic problems."""
    print("=== AMP Demo (dense Gaussian operator) ===")
    m, n, rho = 150, 500, 0.1
    G, y, x_true = generate_test_problem(m, n, rho=rho, seed=0)
    print(f"Problem size: {m} measurements, {n} unknowns")
    print(f"True sparsity: {np.sum(x_true != 0)} non-zeros")

    config = AMPConfig(signal_rho=rho, print_every=20)
    x_hat, _, info = reconstruct(y, G, config, x_true=x_true)
    print(f"Final MSE: {info['mse']:.3e}")
    print(f"Iterations: {info['iterations']}, converged: {info['converged']}")

    print("\n=== AMP Demo (seeded Hadamard operator, learned rho) ===")
    spec, y_s, x_s = generate_seeded_problem([160] * 4, 4, 256, rho=rho, seed=1)
    config = AMPConfig(method=Method.AMP_SEEDED_HADAMARD, learn=True, print_every=20)
    x_hat_s, _, info_s = reconstruct(y_s, config=config, seeded=spec, x_true=x_s)
    print(f"Final MSE: {info_s['mse']:.3e}, learned rho: {info_s['rho']:.4f}")

    fig = plot_convergence(x_true, x_hat, info)
    if show:
        plt.show()
    return x_hat, info, fig


if __name__ == "__main__":
    demo_amp()
