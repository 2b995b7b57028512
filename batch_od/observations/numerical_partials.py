"""
Numerical observation partials by finite differencing.

Used to verify analytic partials, and as a fallback for parameters without
an analytic formulation. Parameters are perturbed through the environment;
body states through the environment's temporary state overlay.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from ..core.environment import Environment
from ..core.types import LinkEndType
from ..estimation.parameters import (
    EstimatableParameter, get_parameter_value, set_parameter_value
)


def _difference(evaluate: Callable[[np.ndarray], np.ndarray], size: int,
                perturbations: np.ndarray, method: str) -> np.ndarray:
    """Finite-difference Jacobian of ``evaluate(delta)`` at delta = 0."""
    perturbations = np.broadcast_to(np.asarray(perturbations, dtype=float), (size,))
    if method not in ("central", "forward"):
        raise ValueError(f"Unknown differencing method {method!r}")

    nominal = None if method == "central" else np.asarray(evaluate(np.zeros(size)))
    columns = []
    for i in range(size):
        delta = np.zeros(size)
        delta[i] = perturbations[i]
        upper = np.asarray(evaluate(delta))
        if method == "central":
            lower = np.asarray(evaluate(-delta))
            columns.append((upper - lower) / (2.0 * perturbations[i]))
        else:
            columns.append((upper - nominal) / perturbations[i])
    return np.column_stack(columns)


def calculate_numerical_parameter_partial(parameter: EstimatableParameter,
                                          environment: Environment,
                                          perturbations,
                                          observation_function: Callable[[], np.ndarray],
                                          method: str = "central") -> np.ndarray:
    """Partial of an observation function w.r.t. a parameter.

    Args:
        parameter: Parameter to perturb.
        environment: Store holding the parameter value.
        perturbations: Step per parameter entry (scalar or array).
        observation_function: Recomputes the observable with the current
            environment; must re-propagate if the parameter affects dynamics.
        method: "central" or "forward".

    Returns:
        Partial matrix, shape (D, parameter size).
    """
    nominal = get_parameter_value(parameter, environment)

    def evaluate(delta):
        set_parameter_value(parameter, environment, nominal + delta)
        return observation_function()

    try:
        return _difference(evaluate, parameter.size, perturbations, method)
    finally:
        set_parameter_value(parameter, environment, nominal)


def calculate_numerical_link_end_state_partial(model, t: float,
                                               reference_link_end: LinkEndType,
                                               body: str, perturbations,
                                               method: str = "central") -> np.ndarray:
    """Partial of an observation w.r.t. a body's Cartesian state.

    The perturbation is applied to the body's whole state history, so
    light-time effects are included.

    Returns:
        Partial matrix, shape (D, 6).
    """
    environment = model.environment

    def evaluate(delta):
        with environment.perturbed_state(body, delta):
            return model.compute_observation(t, reference_link_end)

    return _difference(evaluate, 6, perturbations, method)
