import warnings

import numpy as np

from .config import AMPConfig, Method
from .errors import ConfigurationError, NumericDivergence

# smallest noise variance noise learning may reach
NOISE_FLOOR = 1e-30


class AMPAlgorithm:
    """
    Approximate Message Passing reconstruction of x from y = G x + noise.

    The measurement side keeps, for every row mu, the mean W and variance V
    of the predicted noiseless measurement; the variable side keeps the
    estimate a and variance v of every x_i. One iteration:

        V, W  <- G^2 v,  G a - V (y - W) / (Delta + V)      (damped)
        S2, R <- 1 / G^2T (1/(Delta + V)),  a + S2 G^H((y - W)/(Delta + V))
        a, v  <- prior.denoise(R, S2)                         (damped)

    followed by the optional prior and noise learning steps.
    """

    def __init__(self, operator, y, prior, config=None):
        """
        Args:
            operator: DenseOperator or SeededOperator (M x N)
            y: Measurements (length M)
            prior: Prior instance from ampcs.priors
            config: AMPConfig, validated here

        Raises:
            ConfigurationError: invalid options, shapes or prior/method pairing
        """
        self.config = (config or AMPConfig()).validate()
        self.operator = operator
        self.prior = prior.validate()
        self.y = np.ravel(y)
        self.m, self.n = operator.shape
        if self.y.size != self.m:
            raise ConfigurationError(
                f"operator has {self.m} rows but {self.y.size} measurements were given")

        method = self.config.method
        if prior.is_complex != method.is_complex:
            raise ConfigurationError(
                f"method {method.value} cannot be used with the {prior.kind.value} prior")
        if not prior.is_complex and (operator.is_complex or np.iscomplexobj(self.y)):
            raise ConfigurationError("complex operator or measurements need a complex method")

        self.tap = method is Method.AMPTAP
        self.g2 = operator.mean_square() if self.tap else None
        self.row_blocks = operator.row_blocks
        self.var_noise = np.full(self.m, float(self.config.var_noise))

        # Store history for analysis
        self.diff_history = []
        self.mse_history = []

    # ------------------------------------------------------------------
    #  products
    # ------------------------------------------------------------------

    def _squared(self, v):
        if self.tap:
            return np.full(self.m, self.g2 * np.sum(v))
        return self.operator.squared(v)

    def _cavity(self, a, y, W, denom):
        """Cavity mean R and variance S2 of every variable."""
        op = self.operator
        if self.tap:
            S2 = np.full(self.n, 1.0 / (self.g2 * np.sum(1.0 / denom)))
            return a + S2 * op.transpose((y - W) / denom), S2
        if self.config.alpha_big:
            # rescaled by min(Delta + V) so that the weights stay <= 1
            scale = denom.min()
            weight = scale / denom
            precision = op.transpose_squared(weight)
            return a + op.transpose((y - W) * weight) / precision, scale / precision
        S2 = 1.0 / op.transpose_squared(1.0 / denom)
        return a + S2 * op.transpose((y - W) / denom), S2

    def _learn_noise(self, y, W, V):
        """Per row block noise re-estimation, damped with dump_learn."""
        delta = self.var_noise
        ratio = 1.0 + V / delta
        num = np.abs(y - W) ** 2 / ratio ** 2
        den = 1.0 / ratio
        target = np.empty_like(delta)
        for rows in self.row_blocks:
            target[rows] = num[rows].sum() / den[rows].sum()
        target = np.maximum(target, NOISE_FLOOR)
        damp = self.config.dump_learn
        return damp * delta + (1.0 - damp) * target

    # ------------------------------------------------------------------
    #  iteration
    # ------------------------------------------------------------------

    def run(self, x_true=None):
        """
        Run AMP until convergence or nb_iter iterations.

        Args:
            x_true: True signal, only used for the MSE history

        Returns:
            x_hat: Estimate (posterior means)
            var_noise: Noise variance per measurement (learned if option_noise)
            info: Dictionary with convergence information

        Raises:
            NumericDivergence: a NaN or Inf appeared in the message state
        """
        config = self.config
        op = self.operator
        y = self.y
        shift = op.mean_shift

        dtype = complex if self.prior.is_complex else float
        mean, var = self.prior.moments()
        a = np.full(self.n, mean, dtype=dtype)
        v = np.full(self.n, float(var))
        W = y.astype(dtype)
        V = self._squared(v)

        converged = False
        diff = np.inf
        mse = None
        for iteration in range(int(config.nb_iter)):
            # the state is initialized, not computed, before the first pass
            damp = config.dump_mes if iteration > 0 else 0.0
            y_eff = y - shift * np.sum(a) if shift else y

            # 1. Measurement side with Onsager correction
            V_new = self._squared(v)
            W_new = op.forward(a) - V_new * (y_eff - W) / (self.var_noise + V)
            V = damp * V + (1.0 - damp) * V_new
            W = damp * W + (1.0 - damp) * W_new

            # 2. Cavity fields and denoising step
            R, S2 = self._cavity(a, y_eff, W, self.var_noise + V)
            a_new, v_new = self.prior.denoise(R, S2)
            a_prev, v_prev = a, v
            a = damp * a + (1.0 - damp) * a_new
            v = damp * v + (1.0 - damp) * v_new

            if not all(np.all(np.isfinite(s)) for s in (a, v, W, V)):
                raise NumericDivergence(
                    f"non-finite message state at iteration {iteration}",
                    iteration=iteration - 1, estimate=a_prev, variance=v_prev)

            # 3. Learning
            if config.learn:
                self.prior = self.prior.learn(R, S2, config.dump_learn)
            if config.option_noise and iteration > 0:
                self.var_noise = self._learn_noise(y_eff, W, V)

            diff = float(np.mean(np.abs(a - a_prev)))
            self.diff_history.append(diff)
            if x_true is not None:
                mse = float(np.mean(np.abs(a - x_true) ** 2))
                self.mse_history.append(mse)

            if config.print_every and iteration % config.print_every == 0:
                line = f"Iteration {iteration}: "
                if mse is not None:
                    line += f"MSE = {mse:.6e}, "
                line += (f"diff = {diff:.3e}, rho = {self.prior.rho:.4f}, "
                         f"var_noise = {self.var_noise.mean():.3e}")
                print(line)

            # Check convergence
            if diff < config.conv:
                converged = True
                if config.print_every:
                    print(f"Converged at iteration {iteration}")
                break

        if not converged:
            warnings.warn(f"AMP stopped after {config.nb_iter} iterations without converging "
                          f"(last diff {diff:.3e}, conv {config.conv:.1e})", RuntimeWarning)

        info = {
            'iterations': len(self.diff_history),
            'converged': converged,
            'status': "converged" if converged else "max_iter",
            'diff_history': self.diff_history,
            'mse_history': self.mse_history,
            'mse': mse,
            'prior': self.prior,
            'rho': self.prior.rho,
            'var_noise': self.var_noise,
            'variance': v,
        }
        return a, self.var_noise, info


def run(y, operator, prior, config=None, x_true=None):
    """Run AMP on a prepared operator and prior; see AMPAlgorithm.run."""
    return AMPAlgorithm(operator, y, prior, config).run(x_true=x_true)
