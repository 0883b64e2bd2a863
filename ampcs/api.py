"""Top-level entry point: build the operator and prior for a method and run AMP."""
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .config import AMPConfig, Method
from .engine import run
from .errors import ConfigurationError
from .operators import DenseOperator, SeededOperator, remove_mean
from .priors import make_prior
from .seeded import SeededTables


@dataclass(frozen=True)
class SeededSpec:
    """Block layout of a seeded operator; tables are drawn from config.seed if omitted."""
    J: np.ndarray
    row_block_sizes: Sequence[int]
    col_block_size: int
    tables: Optional[SeededTables] = None


def build_operator(y, config, G=None, seeded=None):
    """
    Operator matching `config.method`, plus the measurements it should be
    run against (mean removal may augment them).
    """
    y = np.ravel(y)
    method = config.method
    if method.is_seeded:
        if seeded is None:
            raise ConfigurationError(f"method {method.value} needs a SeededSpec")
        if config.remove_mean:
            raise ConfigurationError("remove_mean only applies to dense operators")
        transform = "fourier" if method is Method.AMP_SEEDED_FOURIER else "hadamard"
        operator = SeededOperator(seeded.J, seeded.row_block_sizes, seeded.col_block_size,
                                  transform=transform, tables=seeded.tables, rng=config.seed)
        return operator, y

    if G is None:
        raise ConfigurationError(f"method {method.value} needs a measurement matrix G")
    G = np.asarray(G)
    if G.ndim != 2 or G.shape[0] != y.size:
        raise ConfigurationError(f"G has shape {G.shape} but {y.size} measurements were given")
    G, y, shift = remove_mean(G, y, config.remove_mean)
    return DenseOperator(G, save_memory=config.save_memory, mean_shift=shift), y


def reconstruct(y, G=None, config=None, seeded=None, x_true=None):
    """
    Reconstruct x from y = G x + noise.

    Args:
        y: Measurements (length M)
        G: Dense measurement matrix (M x N) for AMP, AMPtap and AMPcomplex
        config: AMPConfig (defaults used if None)
        seeded: SeededSpec for AMPseededFourier / AMPseededHadamard
        x_true: True signal, only used for the MSE history

    Returns:
        x_hat: Estimate
        var_noise: Noise variance per measurement (length M)
        info: Convergence information, learned prior and rho
    """
    config = (config or AMPConfig()).validate()
    m = np.ravel(y).size
    operator, y_run = build_operator(y, config, G=G, seeded=seeded)
    n = operator.shape[1]

    params = dict(config.prior_params)
    if config.signal_rho is not None:
        params["rho"] = config.signal_rho
    params.setdefault("rho", m / (10 * n))
    prior = make_prior(config.prior, **params)

    x_hat, var_noise, info = run(y_run, operator, prior, config, x_true=x_true)
    # drop the row added by per-column mean removal
    var_noise = var_noise[:m]
    info['var_noise'] = var_noise
    return x_hat, var_noise, info
