"""
Exception taxonomy.

Configuration errors are raised while models, partials and parameter sets
are being built and are fatal to run setup. Numerical errors are raised
while propagating, computing observations, or solving normal equations.
"""

from __future__ import annotations


class BatchOdError(Exception):
    """Base class for all errors raised by this package."""


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class InvalidLinkEndConfiguration(BatchOdError, ValueError):
    """Link ends do not contain exactly the roles the observable requires."""


class PartialNotImplemented(BatchOdError, NotImplementedError):
    """No partial derivative is available for this observable/parameter pair."""


class InvalidPropagationSettings(BatchOdError, ValueError):
    """Propagated bodies, accelerations and parameters are inconsistent."""


class InvalidParameterSettings(BatchOdError, ValueError):
    """Estimated parameter definitions are inconsistent or duplicated."""


# ---------------------------------------------------------------------------
# Numerical errors
# ---------------------------------------------------------------------------

class LightTimeConvergenceFailure(BatchOdError, RuntimeError):
    """Light-time iteration did not converge within the iteration limit."""

    def __init__(self, message: str, last_light_time: float, last_change: float):
        super().__init__(message)
        self.last_light_time = last_light_time
        self.last_change = last_change


class TimeOutOfRange(BatchOdError, ValueError):
    """A time-indexed lookup was requested outside its available span."""


class IntegrationError(BatchOdError, RuntimeError):
    """The numerical integrator produced non-finite output."""


class EstimationError(BatchOdError, RuntimeError):
    """An error that aborts an estimation run.

    Attributes:
        pod_output: Partial estimation output holding the history up to the
            last successful iteration, attached by the estimator.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.pod_output = None


class PropagationFailure(EstimationError):
    """Propagation of the dynamics/variational equations failed."""


class SingularNormalEquations(EstimationError):
    """The information matrix cannot be inverted."""
