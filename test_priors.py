import numpy as np
import pytest
from scipy import integrate

from ampcs.errors import ConfigurationError
from ampcs.priors import (L1, Binary1, Complex, Laplace, PriorKind, SparseBinary, SparseConstant,
                          SparseExponential, SparseGauss, SparseGaussCut, SparseGaussPositive,
                          TwoGauss, make_prior, truncated_normal)

REAL_PRIORS = [
    SparseGauss(rho=0.2, m_gauss=0.5, var_gauss=2.0),
    SparseGaussCut(rho=0.3, m_gauss=0.2, var_gauss=1.0, x_min=-0.5, x_max=1.5),
    SparseGaussPositive(rho=0.4, m_gauss=0.1, var_gauss=1.0),
    TwoGauss(rho=0.3, m_1=1.0, m_2=-0.5, var_1=0.5, var_2=0.1),
    SparseBinary(rho=0.25),
    SparseExponential(rho=0.2, expo=2.0),
    SparseConstant(rho=0.3, c_down=-1.0, c_up=2.0),
    Laplace(rho=0.1, beta=1.0),
    L1(beta=1e3, lam=1.0),
    Binary1(rho=0.7),
]


@pytest.mark.parametrize("prior", REAL_PRIORS, ids=lambda p: p.kind.value)
def test_uninformative_cavity_returns_prior_moments(prior):
    mean, var = prior.moments()
    a, v = prior.denoise(np.array([0.3]), np.array([1e5]))
    np.testing.assert_allclose(a, mean, rtol=1e-3, atol=1e-4)
    np.testing.assert_allclose(v, var, rtol=1e-3, atol=1e-4)


def test_complex_uninformative_cavity():
    prior = Complex(rho=0.3, m_gauss=0.5 - 0.5j, var_gauss=1.0)
    mean, var = prior.moments()
    a, v = prior.denoise(np.array([0.3 + 0.1j]), np.array([1e5]))
    np.testing.assert_allclose(a, mean, rtol=1e-3, atol=1e-4)
    np.testing.assert_allclose(v, var, rtol=1e-3, atol=1e-4)


def _quadrature_moments(density, R, S2, lo, hi, points=()):
    def weight(x):
        return density(x) * np.exp(-0.5 * (x - R) ** 2 / S2)
    z = integrate.quad(weight, lo, hi, points=points or None, limit=200)[0]
    m1 = integrate.quad(lambda x: x * weight(x), lo, hi, points=points or None, limit=200)[0] / z
    m2 = integrate.quad(lambda x: x * x * weight(x), lo, hi, points=points or None,
                        limit=200)[0] / z
    return m1, m2 - m1 ** 2


@pytest.mark.parametrize("R", [-1.3, 0.2, 0.9, 2.5])
def test_continuous_parts_match_quadrature(R):
    # priors without point masses, checked against direct numerical integration
    S2 = 0.4
    cases = [
        (TwoGauss(rho=0.3, m_1=1.0, m_2=-0.5, var_1=0.5, var_2=0.1),
         lambda x: 0.3 * np.exp(-0.5 * (x - 1.0) ** 2 / 0.5) / np.sqrt(0.5)
         + 0.7 * np.exp(-0.5 * (x + 0.5) ** 2 / 0.1) / np.sqrt(0.1),
         -10.0, 10.0, ()),
        (SparseGaussCut(rho=1.0, m_gauss=0.2, var_gauss=1.0, x_min=-0.5, x_max=1.5),
         lambda x: np.exp(-0.5 * (x - 0.2) ** 2), -0.5, 1.5, ()),
        (SparseExponential(rho=1.0, expo=2.0), lambda x: np.exp(-2.0 * x), 0.0, 30.0, ()),
        (Laplace(rho=1.0, beta=1.5), lambda x: np.exp(-1.5 * np.abs(x)), -30.0, 30.0, (0.0,)),
        (L1(beta=1.0, lam=2.0, x_min=-1.0, x_max=3.0), lambda x: np.exp(-2.0 * np.abs(x)),
         -1.0, 3.0, (0.0,)),
    ]
    for prior, density, lo, hi, points in cases:
        mean, var = _quadrature_moments(density, R, S2, lo, hi, points)
        a, v = prior.denoise(np.array([R]), np.array([S2]))
        np.testing.assert_allclose(a, mean, rtol=1e-6, atol=1e-9, err_msg=prior.kind.value)
        np.testing.assert_allclose(v, var, rtol=1e-6, atol=1e-9, err_msg=prior.kind.value)


def test_sparse_gauss_posterior_in_closed_form():
    prior = SparseGauss(rho=0.2, m_gauss=0.0, var_gauss=1.0)
    R, S2 = np.array([-0.4, 0.0, 1.7]), np.array([0.3, 0.3, 0.3])
    active = 0.2 * np.exp(-0.5 * R ** 2 / 1.3) / np.sqrt(1.3)
    inactive = 0.8 * np.exp(-0.5 * R ** 2 / 0.3) / np.sqrt(0.3)
    pi = active / (active + inactive)
    mean_active = R / 1.3
    var_active = 0.3 / 1.3
    np.testing.assert_allclose(prior.denoise(R, S2)[0], pi * mean_active, rtol=1e-10)
    np.testing.assert_allclose(prior.denoise(R, S2)[1],
                               pi * (var_active + mean_active ** 2) - (pi * mean_active) ** 2,
                               rtol=1e-10)


def test_l1_tends_to_clipped_soft_threshold():
    R = np.array([-2.0, -0.3, 0.1, 0.35, 3.0])
    S2 = np.full(R.shape, 0.5)
    prior = L1(beta=1e4, lam=1.0, x_min=-1.0, x_max=2.0)
    a, _ = prior.denoise(R, S2)
    expected = np.clip(np.sign(R) * np.maximum(np.abs(R) - 0.5, 0.0), -1.0, 2.0)
    np.testing.assert_allclose(a, expected, atol=1e-2)

    unbounded = L1(beta=1e4, lam=1.0)
    a, v = unbounded.denoise(np.array([3.0, 0.1]), np.array([0.5, 0.5]))
    np.testing.assert_allclose(a, [2.5, 0.0], atol=1e-2)
    np.testing.assert_allclose(v[0], 0.5, rtol=1e-2)
    assert v[1] < 1e-2


def test_binary1_is_sign_estimate():
    prior = Binary1(rho=0.5)
    a, v = prior.denoise(np.array([-0.8, 0.0, 0.8]), np.full(3, 0.01))
    np.testing.assert_allclose(a, [-1.0, 0.0, 1.0], atol=1e-12)
    np.testing.assert_allclose(v, [0.0, 1.0, 0.0], atol=1e-12)


def test_small_cavity_variance_stays_finite():
    R = np.array([-3.0, 0.0, 1e-3, 5.0])
    S2 = np.full(R.shape, 1e-14)
    for prior in REAL_PRIORS:
        a, v = prior.denoise(R, S2)
        assert np.all(np.isfinite(a)), prior.kind.value
        assert np.all(np.isfinite(v)) and np.all(v >= 0), prior.kind.value


def test_truncated_normal_far_tail():
    log_mass, mean, var = truncated_normal(0.0, 1.0, 40.0, np.inf)
    # Q(40) ~ phi(40) / 40
    assert np.isclose(log_mass, -0.5 * 40 ** 2 - 0.5 * np.log(2 * np.pi) - np.log(40), atol=1e-3)
    assert 40.0 < mean < 40.03
    assert 0.0 < var < 1e-3


@pytest.mark.parametrize("prior", [
    SparseGauss(rho=0.3, m_gauss=0.2, var_gauss=1.5),
    SparseGaussPositive(rho=0.3, m_gauss=0.2, var_gauss=1.5),
    TwoGauss(rho=0.4, m_1=0.5, m_2=-0.2, var_1=1.0, var_2=0.3),
    SparseExponential(rho=0.3, expo=1.5),
    Laplace(rho=0.3, beta=2.0),
    Binary1(rho=0.6),
], ids=lambda p: p.kind.value)
def test_gradient_matches_finite_differences(prior):
    R = np.linspace(-2.0, 2.0, 9)
    S2 = np.full(R.shape, 0.5)
    grads = prior.gradient(R, S2)
    assert set(grads) == set(prior.learnable)
    for name, grad in grads.items():
        np.testing.assert_allclose(grad, prior._numerical_gradient(name, R, S2),
                                   rtol=1e-5, atol=1e-7, err_msg=name)


def test_rho_learning_is_em_step():
    prior = SparseGauss(rho=0.3, m_gauss=0.0, var_gauss=1.0)
    R = np.array([-1.5, -0.1, 0.05, 0.8, 2.2])
    S2 = np.full(R.shape, 0.2)
    pi = prior.posterior(R, S2)[3]
    learned = prior.learn(R, S2)
    assert np.isclose(learned.rho, pi[1].mean())

    # damping keeps part of the old value
    damped = prior.learn(R, S2, damping=0.5)
    assert np.isclose(damped.rho, 0.5 * 0.3 + 0.5 * pi[1].mean())


def test_learning_stays_in_domain():
    prior = SparseGauss(rho=0.5, m_gauss=0.0, var_gauss=1e-6)
    R = np.zeros(50)
    S2 = np.full(50, 1e-8)
    learned = prior
    for _ in range(20):
        learned = learned.learn(R, S2)
    assert 0.0 < learned.rho < 1.0
    assert learned.var_gauss > 0.0
    assert L1().learn(R, S2) == L1()


def test_make_prior_by_name():
    prior = make_prior("2Gauss", rho=0.2, m_1=1.0)
    assert isinstance(prior, TwoGauss)
    assert prior.kind is PriorKind.TWO_GAUSS
    assert make_prior(PriorKind.COMPLEX).is_complex


@pytest.mark.parametrize("kind, params", [
    ("Gaussian", {}),
    ("SparseGauss", {"var_gauss": -1.0}),
    ("SparseGauss", {"rho": 0.0}),
    ("SparseGauss", {"rho": 1.5}),
    ("SparseGauss", {"sigma": 1.0}),
    ("SparseGaussCut", {"x_min": 1.0, "x_max": 0.0}),
    ("SparseConstant", {"c_down": 2.0, "c_up": 1.0}),
    ("SparseExponential", {"expo": 0.0}),
    ("Laplace", {"beta": -2.0}),
    ("L1", {"x_min": 0.5, "x_max": 2.0}),
    ("L1", {"beta": 0.0}),
    ("2Gauss", {"var_2": 0.0}),
])
def test_invalid_prior_rejected(kind, params):
    with pytest.raises(ConfigurationError):
        make_prior(kind, **params)


@pytest.mark.parametrize("n", [1, 2, 5])
@pytest.mark.parametrize("prior, low, high", [
    (SparseBinary(rho=0.3), 0.0, 1.0),
    (Binary1(rho=0.6), -1.0, 1.0),
], ids=["SparseBinary", "Binary1"])
def test_point_mass_priors_keep_the_input_shape(prior, low, high, n):
    R = np.linspace(-1.0, 1.5, n)
    S2 = np.full(n, 0.2)
    a, v = prior.denoise(R, S2)
    assert a.shape == v.shape == (n,)
    assert prior.posterior(R, S2)[3].shape == (2, n)

    up = prior.rho * np.exp(-0.5 * (R - high) ** 2 / 0.2)
    down = (1 - prior.rho) * np.exp(-0.5 * (R - low) ** 2 / 0.2)
    p = up / (up + down)
    np.testing.assert_allclose(a, low + (high - low) * p, rtol=1e-10)
    np.testing.assert_allclose(v, (high - low) ** 2 * p * (1 - p), rtol=1e-10)


@pytest.mark.parametrize("S2", [1e10, 1e12])
def test_l1_huge_cavity_variance_returns_prior_moments(S2):
    prior = L1(beta=1e3, lam=1.0, x_min=-1.0, x_max=2.0)
    mean, var = prior.moments()
    a, v = prior.denoise(np.array([0.3]), np.array([S2]))
    np.testing.assert_allclose(a, mean, atol=1e-7)
    np.testing.assert_allclose(v, var, rtol=1e-3)
