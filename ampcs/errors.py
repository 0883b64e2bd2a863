"""Exceptions raised by the AMP reconstruction code."""


class ConfigurationError(ValueError):
    """Invalid option combination, prior hyperparameter or operator shape.

    Always raised before the first iteration runs.
    """


class NumericDivergence(FloatingPointError):
    """
    A NaN or Inf appeared in the message state.

    Carries the last finite state so the caller can inspect it, change the
    configuration (e.g. more damping) and run again.
    """

    def __init__(self, message, iteration=None, estimate=None, variance=None):
        super().__init__(message)
        self.iteration = iteration  # last iteration with a finite state
        self.estimate = estimate
        self.variance = variance
