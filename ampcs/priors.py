"""
Scalar denoisers used by the AMP engine.

Every prior is written as a mixture of components. Against a cavity message
N(x; R, S2) each component k has a log-evidence

    L_k(R, S2) = log weight_k + log  integral  p_k(x) N(R; x, S2) dx

and posterior moments (mean_k, var_k). The posterior of x is the mixture of
the component posteriors with weights softmax(L_k); only differences of the
L_k are ever exponentiated, which keeps the near-deterministic priors
(Binary1, L1 at large beta, very small S2) finite.

Each component also carries a `role`: +1 if its weight is rho, -1 if its
weight is 1 - rho, 0 otherwise. That is all that is needed to get
d log Z / d rho in closed form for every prior.
"""
from collections import namedtuple
from dataclasses import dataclass, fields, replace
from enum import Enum

import numpy as np
from scipy.special import erf, erfcx, log_ndtr, logsumexp

from .errors import ConfigurationError

LOG_2PI = np.log(2 * np.pi)
SQRT2 = np.sqrt(2.0)
SQRT_2_OVER_PI = np.sqrt(2.0 / np.pi)

# lower bounds used when learning pushes a hyperparameter out of its domain
RHO_FLOOR = 1e-12
SCALE_FLOOR = 1e-12

# truncation points (in standard deviations) past which the tail variance
# is taken from its asymptotic expansion
TAIL_SERIES = 100.0


class PriorKind(Enum):
    SPARSE_GAUSS = "SparseGauss"
    SPARSE_GAUSS_CUT = "SparseGaussCut"
    SPARSE_GAUSS_POSITIVE = "SparseGaussPositive"
    TWO_GAUSS = "2Gauss"
    SPARSE_BINARY = "SparseBinary"
    SPARSE_EXPONENTIAL = "SparseExponential"
    SPARSE_CONSTANT = "SparseConstant"
    LAPLACE = "Laplace"
    L1 = "L1"
    BINARY1 = "Binary1"
    COMPLEX = "Complex"


Component = namedtuple("Component", ["log_w", "mean", "var", "role"])


# ---------------------------------------------------------------------------
#  helpers
# ---------------------------------------------------------------------------

def _log(x):
    with np.errstate(divide="ignore"):
        return np.log(x)


def _log_normal(x, mean, var):
    return -0.5 * (x - mean) ** 2 / var - 0.5 * np.log(var) - 0.5 * LOG_2PI


def _log_cnormal(x, mean, var):
    # circular complex Gaussian, var = E|x - mean|^2
    return -np.abs(x - mean) ** 2 / var - np.log(np.pi * var)


def _phi(z):
    return np.exp(-0.5 * z ** 2) / np.sqrt(2 * np.pi)


def truncated_normal(mean, var, lo, hi, with_edge=False):
    """
    Log-mass and moments of N(mean, var) restricted to [lo, hi].

    Returns
    -------
    log_mass : log P(lo <= x <= hi) for x ~ N(mean, var)
    post_mean, post_var : mean and variance of the truncated distribution

    Intervals lying in a tail are reflected onto the upper tail and handled
    through erfcx / log_ndtr, so that masses like 1e-300 keep full relative
    precision. `lo` and `hi` may be infinite.

    With `with_edge`, also returns the truncation point each tail entry is
    measured from (nan off the tail) and log(mass / exp(-a^2 / 2)), a being
    that point in standard units. Callers that add a large exponent to
    log_mass cancel the -a^2 / 2 analytically with these.
    """
    mean, var, lo, hi = np.broadcast_arrays(
        *(np.asarray(v, dtype=float) for v in (mean, var, lo, hi)))
    sigma = np.sqrt(var)

    with np.errstate(all="ignore"):
        alpha = (lo - mean) / sigma
        beta = (hi - mean) / sigma
        flip = beta < 0
        a = np.where(flip, -beta, alpha)
        b = np.where(flip, -alpha, beta)
        tail = a > 0

        # upper tail: mass = Q(a) - Q(b), Q the survival function
        log_qa = log_ndtr(-a)
        d = log_ndtr(-b) - log_qa
        keep = -np.expm1(d)                              # 1 - Q(b)/Q(a)
        mills_a = SQRT_2_OVER_PI / erfcx(a / SQRT2)      # phi(a)/Q(a)
        mills_b = SQRT_2_OVER_PI / erfcx(b / SQRT2)
        r_a_tail = mills_a / keep
        r_b_tail = np.where(np.isinf(b), 0.0, mills_b * np.exp(d) / keep)
        log_mass_tail = log_qa + np.log(keep)

        # the interval contains the mode
        mass = 0.5 * (erf(b / SQRT2) - erf(a / SQRT2))
        r_a_mid = _phi(a) / mass
        r_b_mid = _phi(b) / mass

        r_a = np.where(tail, r_a_tail, r_a_mid)
        r_b = np.where(tail, r_b_tail, r_b_mid)
        log_mass = np.where(tail, log_mass_tail, np.log(mass))

        a_r_a = np.where(np.isinf(a), 0.0, a * r_a)
        b_r_b = np.where(np.isinf(b), 0.0, b * r_b)
        shift = r_a - r_b
        var_std = 1.0 + a_r_a - b_r_b - shift ** 2
        # deep one-sided tail: 1 + a r - r^2 cancels, use 1/a^2 - 6/a^4
        series = tail & (a > TAIL_SERIES) & ((b - a) * a > 50.0)
        var_std = np.where(series, 1.0 / a ** 2 - 6.0 / a ** 4, var_std)

        sign = np.where(flip, -1.0, 1.0)
        post_mean = mean + sign * sigma * shift
        # same tail: mean + sigma r cancels too, measure from the truncation edge
        # with r - a = 1/a - 2/a^3 + 10/a^5
        edge = np.where(flip, hi, lo)
        excess = 1.0 / a - 2.0 / a ** 3 + 10.0 / a ** 5
        post_mean = np.where(series, edge + sign * sigma * excess, post_mean)
        post_var = var * np.maximum(var_std, 0.0)
        if with_edge:
            log_edge_mass = np.log(keep) - np.log(mills_a) - 0.5 * LOG_2PI
            return (log_mass, post_mean, post_var,
                    np.where(tail, edge, np.nan), log_edge_mass)
    return log_mass, post_mean, post_var


def _gaussian_component(R, S2, log_weight, m, var, role):
    return Component(
        log_weight + _log_normal(R, m, S2 + var),
        (m * S2 + R * var) / (S2 + var),
        S2 * var / (S2 + var),
        role)


def _point_component(R, S2, log_weight, value, role):
    return Component(log_weight + _log_normal(R, value, S2), value, 0.0, role)


def _tilted_component(R, S2, log_weight, rate, lo, hi, role):
    """Density proportional to exp(-rate * x) on [lo, hi], weight already
    including its normalization constant."""
    mu = R - rate * S2
    log_mass, mean, var, edge, log_edge_mass = truncated_normal(mu, S2, lo, hi, with_edge=True)
    # ((R - rate S2)^2 - R^2) / (2 S2), written without the cancellation
    log_w = log_weight - rate * R + 0.5 * rate ** 2 * S2 + log_mass
    # on a tail the tilt and -a^2 / 2 reduce to -rate e - (e - R)^2 / (2 S2)
    with np.errstate(invalid="ignore"):
        log_w_edge = log_weight - rate * edge - 0.5 * (edge - R) ** 2 / S2 + log_edge_mass
    return Component(np.where(np.isnan(edge), log_w, log_w_edge), mean, var, role)


def _mixture(components):
    """Combine components into (log_z, mean, var, weights)."""
    log_w = np.stack(np.broadcast_arrays(*(c.log_w for c in components)))
    log_z = logsumexp(log_w, axis=0)
    with np.errstate(invalid="ignore"):
        pi = np.exp(log_w - log_z)
    # point components carry scalar means and variances
    shape = log_w.shape[1:]
    means = np.stack([np.broadcast_to(c.mean, shape) for c in components])
    variances = np.stack([np.broadcast_to(np.asarray(c.var, dtype=float), shape)
                          for c in components])
    live = pi > 0
    a = np.where(live, pi * means, 0).sum(axis=0)
    spread = variances + np.abs(means - a) ** 2
    v = np.where(live, pi * spread, 0.0).sum(axis=0)
    return log_z, a, v, pi


# ---------------------------------------------------------------------------
#  priors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Prior:
    """
    Base class of the scalar priors.

    Subclasses implement `components(R, S2)`, `moments()` and the domain
    checks in `validate()`. `learnable` lists the hyperparameters updated by
    `learn` and `_learning_rate` gives the step scale of each of them.
    """
    rho: float = 0.1

    kind = None
    learnable = ()
    is_complex = False

    def components(self, R, S2):
        raise NotImplementedError

    def moments(self):
        """Unconditional mean and variance of the prior."""
        raise NotImplementedError

    def validate(self):
        if not 0.0 < self.rho <= 1.0:
            raise ConfigurationError(f"{self.kind.value}: rho must lie in (0, 1], got {self.rho}")
        return self

    def posterior(self, R, S2):
        return _mixture(self.components(R, S2))

    def denoise(self, R, S2):
        """Posterior mean and variance for the cavity message N(x; R, S2)."""
        _, a, v, _ = self.posterior(R, S2)
        return a, v

    def log_partition(self, R, S2):
        return self.posterior(R, S2)[0]

    def gradient(self, R, S2):
        """
        d log Z_i / d theta for every learnable hyperparameter theta.

        rho is exact (through the component roles); everything else uses a
        central difference of log Z unless a subclass knows better.
        """
        comps = self.components(R, S2)
        _, _, _, pi = _mixture(comps)
        grads = {}
        for name in self.learnable:
            if name == "rho":
                roles = np.array([c.role for c in comps], dtype=float)
                roles = roles.reshape((-1,) + (1,) * (pi.ndim - 1))
                up = (pi * (roles > 0)).sum(axis=0) / self.rho
                down = (pi * (roles < 0)).sum(axis=0)
                down = down / (1.0 - self.rho) if self.rho < 1.0 else 0.0 * down
                grads[name] = up - down
            else:
                grads[name] = self._numerical_gradient(name, R, S2)
        return grads

    def _numerical_gradient(self, name, R, S2):
        theta = getattr(self, name)
        h = 1e-6 * max(1.0, abs(theta))
        up = replace(self, **{name: theta + h}).log_partition(R, S2)
        down = replace(self, **{name: theta - h}).log_partition(R, S2)
        return (up - down) / (2 * h)

    def _learning_rate(self, name):
        if name == "rho":
            return self.rho * (1.0 - self.rho)
        raise KeyError(name)

    def _clip(self, name, value):
        if name == "rho":
            return float(np.clip(value, RHO_FLOOR, 1.0 - RHO_FLOOR))
        if name.startswith("var") or name in ("expo", "beta"):
            return max(value, SCALE_FLOOR)
        return value

    def learn(self, R, S2, damping=0.0):
        """
        One learning step on the hyperparameters.

        theta <- theta + rate_theta * mean_i(d log Z_i / d theta); the rates
        make the step equal to the EM update for Gaussian components (for
        rho: the mean posterior probability of the active component).
        """
        if not self.learnable:
            return self
        updates = {}
        for name, grad in self.gradient(R, S2).items():
            theta = getattr(self, name)
            target = theta + self._learning_rate(name) * float(np.mean(np.real(grad)))
            target = self._clip(name, target)
            updates[name] = damping * theta + (1.0 - damping) * target
        return replace(self, **updates)

    def params(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class SparseGauss(Prior):
    """(1 - rho) delta(x) + rho N(x; m_gauss, var_gauss)"""
    m_gauss: float = 0.0
    var_gauss: float = 1.0

    kind = PriorKind.SPARSE_GAUSS
    learnable = ("rho", "m_gauss", "var_gauss")

    def validate(self):
        super().validate()
        if not self.var_gauss > 0:
            raise ConfigurationError(f"SparseGauss: var_gauss must be positive, got {self.var_gauss}")
        return self

    def components(self, R, S2):
        return [
            _point_component(R, S2, _log(1.0 - self.rho), 0.0, -1),
            _gaussian_component(R, S2, np.log(self.rho), self.m_gauss, self.var_gauss, +1),
        ]

    def moments(self):
        mean = self.rho * self.m_gauss
        return mean, self.rho * (self.var_gauss + self.m_gauss ** 2) - mean ** 2

    def gradient(self, R, S2):
        _, _, _, pi = _mixture(self.components(R, S2))
        active = pi[1]
        total = S2 + self.var_gauss
        diff = R - self.m_gauss
        grads = {"rho": active / self.rho - (pi[0] / (1.0 - self.rho) if self.rho < 1.0 else 0.0)}
        grads["m_gauss"] = active * diff / total
        grads["var_gauss"] = active * (diff ** 2 - total) / (2 * total ** 2)
        return grads

    def _learning_rate(self, name):
        if name == "m_gauss":
            return self.var_gauss / self.rho
        if name == "var_gauss":
            return 2 * self.var_gauss ** 2 / self.rho
        return super()._learning_rate(name)


@dataclass(frozen=True)
class SparseGaussCut(Prior):
    """(1 - rho) delta(x) + rho N(x; m_gauss, var_gauss) restricted to [x_min, x_max]"""
    m_gauss: float = 0.0
    var_gauss: float = 1.0
    x_min: float = -1.0
    x_max: float = 1.0

    kind = PriorKind.SPARSE_GAUSS_CUT
    learnable = ("rho",)

    def validate(self):
        super().validate()
        if not self.var_gauss > 0:
            raise ConfigurationError(f"SparseGaussCut: var_gauss must be positive, got {self.var_gauss}")
        if not self.x_min < self.x_max:
            raise ConfigurationError(
                f"SparseGaussCut: x_min must be below x_max, got [{self.x_min}, {self.x_max}]")
        return self

    def _prior_log_mass(self):
        return truncated_normal(self.m_gauss, self.var_gauss, self.x_min, self.x_max)

    def components(self, R, S2):
        gauss = _gaussian_component(R, S2, np.log(self.rho), self.m_gauss, self.var_gauss, +1)
        log_mass, mean, var = truncated_normal(gauss.mean, gauss.var, self.x_min, self.x_max)
        prior_log_mass = self._prior_log_mass()[0]
        return [
            _point_component(R, S2, _log(1.0 - self.rho), 0.0, -1),
            Component(gauss.log_w + log_mass - prior_log_mass, mean, var, +1),
        ]

    def moments(self):
        _, m, v = self._prior_log_mass()
        mean = self.rho * float(m)
        return mean, self.rho * float(v + m ** 2) - mean ** 2


@dataclass(frozen=True)
class SparseGaussPositive(Prior):
    """(1 - rho) delta(x) + rho N(x; m_gauss, var_gauss) restricted to x > 0"""
    m_gauss: float = 0.0
    var_gauss: float = 1.0

    kind = PriorKind.SPARSE_GAUSS_POSITIVE
    learnable = ("rho", "m_gauss", "var_gauss")

    def validate(self):
        super().validate()
        if not self.var_gauss > 0:
            raise ConfigurationError(
                f"SparseGaussPositive: var_gauss must be positive, got {self.var_gauss}")
        return self

    def components(self, R, S2):
        gauss = _gaussian_component(R, S2, np.log(self.rho), self.m_gauss, self.var_gauss, +1)
        log_mass, mean, var = truncated_normal(gauss.mean, gauss.var, 0.0, np.inf)
        prior_log_mass = truncated_normal(self.m_gauss, self.var_gauss, 0.0, np.inf)[0]
        return [
            _point_component(R, S2, _log(1.0 - self.rho), 0.0, -1),
            Component(gauss.log_w + log_mass - prior_log_mass, mean, var, +1),
        ]

    def moments(self):
        _, m, v = truncated_normal(self.m_gauss, self.var_gauss, 0.0, np.inf)
        mean = self.rho * float(m)
        return mean, self.rho * float(v + m ** 2) - mean ** 2

    def _learning_rate(self, name):
        if name == "m_gauss":
            return self.var_gauss / self.rho
        if name == "var_gauss":
            return 2 * self.var_gauss ** 2 / self.rho
        return super()._learning_rate(name)


@dataclass(frozen=True)
class TwoGauss(Prior):
    """rho N(x; m_1, var_1) + (1 - rho) N(x; m_2, var_2)"""
    m_1: float = 0.0
    m_2: float = 0.0
    var_1: float = 1.0
    var_2: float = 1e-2

    kind = PriorKind.TWO_GAUSS
    learnable = ("rho", "m_1", "m_2", "var_1", "var_2")

    def validate(self):
        super().validate()
        if not (self.var_1 > 0 and self.var_2 > 0):
            raise ConfigurationError(
                f"2Gauss: variances must be positive, got var_1={self.var_1}, var_2={self.var_2}")
        return self

    def components(self, R, S2):
        return [
            _gaussian_component(R, S2, np.log(self.rho), self.m_1, self.var_1, +1),
            _gaussian_component(R, S2, _log(1.0 - self.rho), self.m_2, self.var_2, -1),
        ]

    def moments(self):
        mean = self.rho * self.m_1 + (1 - self.rho) * self.m_2
        second = (self.rho * (self.var_1 + self.m_1 ** 2)
                  + (1 - self.rho) * (self.var_2 + self.m_2 ** 2))
        return mean, second - mean ** 2

    def _learning_rate(self, name):
        weight = {"1": self.rho, "2": max(1.0 - self.rho, RHO_FLOOR)}
        if name.startswith("m_"):
            return getattr(self, "var_" + name[-1]) / weight[name[-1]]
        if name.startswith("var_"):
            return 2 * getattr(self, name) ** 2 / weight[name[-1]]
        return super()._learning_rate(name)


@dataclass(frozen=True)
class SparseBinary(Prior):
    """(1 - rho) delta(x) + rho delta(x - 1)"""

    kind = PriorKind.SPARSE_BINARY
    learnable = ("rho",)

    def components(self, R, S2):
        return [
            _point_component(R, S2, _log(1.0 - self.rho), 0.0, -1),
            _point_component(R, S2, np.log(self.rho), 1.0, +1),
        ]

    def moments(self):
        return self.rho, self.rho * (1 - self.rho)


@dataclass(frozen=True)
class SparseExponential(Prior):
    """(1 - rho) delta(x) + rho expo exp(-expo x), x > 0"""
    expo: float = 1.0

    kind = PriorKind.SPARSE_EXPONENTIAL
    learnable = ("rho", "expo")

    def validate(self):
        super().validate()
        if not self.expo > 0:
            raise ConfigurationError(f"SparseExponential: expo must be positive, got {self.expo}")
        return self

    def components(self, R, S2):
        return [
            _point_component(R, S2, _log(1.0 - self.rho), 0.0, -1),
            _tilted_component(R, S2, np.log(self.rho) + np.log(self.expo), self.expo,
                              0.0, np.inf, +1),
        ]

    def moments(self):
        mean = self.rho / self.expo
        return mean, 2 * self.rho / self.expo ** 2 - mean ** 2

    def _learning_rate(self, name):
        if name == "expo":
            return self.expo ** 2 / self.rho
        return super()._learning_rate(name)


@dataclass(frozen=True)
class SparseConstant(Prior):
    """(1 - rho) delta(x) + rho U[c_down, c_up]"""
    c_down: float = 0.0
    c_up: float = 1.0

    kind = PriorKind.SPARSE_CONSTANT
    learnable = ("rho",)

    def validate(self):
        super().validate()
        if not self.c_down < self.c_up:
            raise ConfigurationError(
                f"SparseConstant: c_down must be below c_up, got [{self.c_down}, {self.c_up}]")
        return self

    def components(self, R, S2):
        log_weight = np.log(self.rho) - np.log(self.c_up - self.c_down)
        return [
            _point_component(R, S2, _log(1.0 - self.rho), 0.0, -1),
            _tilted_component(R, S2, log_weight, 0.0, self.c_down, self.c_up, +1),
        ]

    def moments(self):
        lo, hi = self.c_down, self.c_up
        mean = self.rho * (lo + hi) / 2
        return mean, self.rho * (lo ** 2 + lo * hi + hi ** 2) / 3 - mean ** 2


@dataclass(frozen=True)
class Laplace(Prior):
    """(1 - rho) delta(x) + rho (beta / 2) exp(-beta |x|)"""
    beta: float = 1.0

    kind = PriorKind.LAPLACE
    learnable = ("rho", "beta")

    def validate(self):
        super().validate()
        if not self.beta > 0:
            raise ConfigurationError(f"Laplace: beta must be positive, got {self.beta}")
        return self

    def components(self, R, S2):
        log_weight = np.log(self.rho) + np.log(self.beta / 2)
        return [
            _point_component(R, S2, _log(1.0 - self.rho), 0.0, -1),
            _tilted_component(R, S2, log_weight, self.beta, 0.0, np.inf, +1),
            _tilted_component(R, S2, log_weight, -self.beta, -np.inf, 0.0, +1),
        ]

    def moments(self):
        return 0.0, 2 * self.rho / self.beta ** 2

    def _learning_rate(self, name):
        if name == "beta":
            return self.beta ** 2 / self.rho
        return super()._learning_rate(name)


def _exponential_half_moments(rate, width):
    """Mass, first and second moment of exp(-rate x) on [0, width]."""
    if width == 0:
        return 0.0, 0.0, 0.0
    if np.isinf(width):
        return 1.0 / rate, 1.0 / rate, 2.0 / rate ** 2
    e = np.exp(-rate * width)
    mass = -np.expm1(-rate * width) / rate
    m1 = (1.0 / rate - e * (width + 1.0 / rate)) / (-np.expm1(-rate * width))
    m2 = (2.0 / rate ** 2 - e * (width ** 2 + 2 * width / rate + 2 / rate ** 2)) \
        / (-np.expm1(-rate * width))
    return mass, m1, m2


@dataclass(frozen=True)
class L1(Prior):
    """
    exp(-beta lam |x|) on [x_min, x_max] at inverse temperature beta.

    The cavity is tempered as well (variance S2 / beta) and the returned
    variance is rescaled by beta, so that for beta -> infinity the posterior
    mean tends to clip(soft_threshold(R, lam S2), x_min, x_max) and the
    variance to S2 on the active set: the LASSO limit. rho is not used.
    """
    x_min: float = -np.inf
    x_max: float = np.inf
    beta: float = 1e3
    lam: float = 1.0

    kind = PriorKind.L1
    learnable = ()

    def validate(self):
        if not self.x_min < self.x_max:
            raise ConfigurationError(f"L1: x_min must be below x_max, got [{self.x_min}, {self.x_max}]")
        if not self.x_min <= 0.0 <= self.x_max:
            raise ConfigurationError(
                f"L1: the interval [{self.x_min}, {self.x_max}] must contain 0")
        if not (self.beta > 0 and self.lam > 0):
            raise ConfigurationError(
                f"L1: beta and lam must be positive, got beta={self.beta}, lam={self.lam}")
        return self

    def components(self, R, S2):
        S2_t = S2 / self.beta
        rate = self.beta * self.lam
        return [
            _tilted_component(R, S2_t, 0.0, rate, 0.0, self.x_max, 0),
            _tilted_component(R, S2_t, 0.0, -rate, self.x_min, 0.0, 0),
        ]

    def denoise(self, R, S2):
        a, v = super().denoise(R, S2)
        return a, self.beta * v

    def moments(self):
        rate = self.beta * self.lam
        mass_p, m1_p, m2_p = _exponential_half_moments(rate, self.x_max)
        mass_n, m1_n, m2_n = _exponential_half_moments(rate, -self.x_min)
        mass = mass_p + mass_n
        mean = (mass_p * m1_p - mass_n * m1_n) / mass
        second = (mass_p * m2_p + mass_n * m2_n) / mass
        return mean, self.beta * (second - mean ** 2)


@dataclass(frozen=True)
class Binary1(Prior):
    """rho delta(x - 1) + (1 - rho) delta(x + 1)"""

    kind = PriorKind.BINARY1
    learnable = ("rho",)

    def components(self, R, S2):
        return [
            _point_component(R, S2, np.log(self.rho), 1.0, +1),
            _point_component(R, S2, _log(1.0 - self.rho), -1.0, -1),
        ]

    def moments(self):
        mean = 2 * self.rho - 1
        return mean, 1 - mean ** 2


@dataclass(frozen=True)
class Complex(Prior):
    """(1 - rho) delta(x) + rho CN(x; m_gauss, var_gauss), complex x."""
    m_gauss: complex = 0.0
    var_gauss: float = 1.0

    kind = PriorKind.COMPLEX
    learnable = ("rho", "var_gauss")
    is_complex = True

    def validate(self):
        super().validate()
        if not self.var_gauss > 0:
            raise ConfigurationError(f"Complex: var_gauss must be positive, got {self.var_gauss}")
        return self

    def components(self, R, S2):
        total = S2 + self.var_gauss
        return [
            Component(_log(1.0 - self.rho) + _log_cnormal(R, 0.0, S2), 0.0, 0.0, -1),
            Component(np.log(self.rho) + _log_cnormal(R, self.m_gauss, total),
                      (self.m_gauss * S2 + R * self.var_gauss) / total,
                      S2 * self.var_gauss / total, +1),
        ]

    def moments(self):
        mean = self.rho * self.m_gauss
        return mean, self.rho * (self.var_gauss + abs(self.m_gauss) ** 2) - abs(mean) ** 2

    def _learning_rate(self, name):
        if name == "var_gauss":
            return self.var_gauss ** 2 / self.rho
        return super()._learning_rate(name)


PRIORS = {cls.kind: cls for cls in (
    SparseGauss, SparseGaussCut, SparseGaussPositive, TwoGauss, SparseBinary,
    SparseExponential, SparseConstant, Laplace, L1, Binary1, Complex)}
assert set(PRIORS) == set(PriorKind)


def make_prior(kind, **params):
    """
    Build and validate a prior from its tag ("SparseGauss", "L1", ...) and
    named hyperparameters.
    """
    try:
        kind = PriorKind(kind.value if isinstance(kind, PriorKind) else kind)
    except ValueError:
        raise ConfigurationError(f"unknown prior {kind!r}") from None
    cls = PRIORS[kind]
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(params) - known)
    if unknown:
        raise ConfigurationError(f"{kind.value}: unknown hyperparameters {unknown}")
    return cls(**params).validate()
