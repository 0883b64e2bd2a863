from .api import SeededSpec, build_operator, reconstruct
from .config import AMPConfig, Method
from .engine import AMPAlgorithm, run
from .errors import ConfigurationError, NumericDivergence
from .operators import DenseOperator, SeededOperator
from .priors import PriorKind, make_prior
from .seeded import build_permutations, coupling_matrix, multiply_transpose_squared
