from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import ConfigurationError


class Method(Enum):
    AMP = "AMP"
    AMPTAP = "AMPtap"
    AMPCOMPLEX = "AMPcomplex"
    AMP_SEEDED_FOURIER = "AMPseededFourier"
    AMP_SEEDED_HADAMARD = "AMPseededHadamard"

    @property
    def is_seeded(self):
        return self in (Method.AMP_SEEDED_FOURIER, Method.AMP_SEEDED_HADAMARD)

    @property
    def is_complex(self):
        return self in (Method.AMPCOMPLEX, Method.AMP_SEEDED_FOURIER)


@dataclass(frozen=True)
class AMPConfig:
    """
    Run options for one reconstruction. Read-only for the whole run.

    Exactly one of `save_memory` / `save_speed` must be set: save_speed keeps
    precomputed squared and transposed copies of a dense operator, save_memory
    recomputes those products on the fly.
    """
    method: Method = Method.AMP
    # memory / speed trade-off (mutually exclusive)
    save_memory: bool = False
    save_speed: bool = True
    # iterations / tolerances
    nb_iter: int = 1000
    conv: float = 1e-8
    print_every: int = 10          # 0 = silent
    # damping
    dump_mes: float = 0.5
    dump_learn: float = 0.0
    # learning
    learn: bool = False            # prior hyperparameters
    option_noise: bool = False     # noise variance
    var_noise: float = 1e-10
    # prior
    prior: str = "SparseGauss"
    prior_params: Mapping[str, Any] = field(default_factory=dict)
    signal_rho: Optional[float] = None   # None -> M / (10 N)
    # operator handling
    remove_mean: int = 0           # 0 off, 1 per-column, 2 shared
    alpha_big: bool = False
    seed: Optional[int] = None     # seeded operator tables

    def __post_init__(self):
        if not isinstance(self.method, Method):
            try:
                object.__setattr__(self, "method", Method(self.method))
            except ValueError:
                raise ConfigurationError(f"unknown method {self.method!r}") from None

    def validate(self) -> "AMPConfig":
        if self.save_memory == self.save_speed:
            raise ConfigurationError(
                "exactly one of save_memory and save_speed must be set "
                f"(got save_memory={self.save_memory}, save_speed={self.save_speed})")
        if int(self.nb_iter) < 1:
            raise ConfigurationError(f"nb_iter must be a positive integer, got {self.nb_iter}")
        if not self.conv > 0:
            raise ConfigurationError(f"conv must be positive, got {self.conv}")
        if int(self.print_every) < 0:
            raise ConfigurationError(f"print_every must be non-negative, got {self.print_every}")
        for name in ("dump_mes", "dump_learn"):
            value = getattr(self, name)
            if not 0.0 <= value < 1.0:
                raise ConfigurationError(f"{name} must lie in [0, 1), got {value}")
        if not self.var_noise > 0:
            raise ConfigurationError(f"var_noise must be positive, got {self.var_noise}")
        if self.signal_rho is not None and not 0.0 < self.signal_rho <= 1.0:
            raise ConfigurationError(f"signal_rho must lie in (0, 1], got {self.signal_rho}")
        if self.remove_mean not in (0, 1, 2):
            raise ConfigurationError(f"remove_mean must be 0, 1 or 2, got {self.remove_mean}")
        return self

    def replace(self, **changes) -> "AMPConfig":
        return replace(self, **changes)
