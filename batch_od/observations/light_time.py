"""
One-way light-time solution.

Solves

    t_rx - t_tx = |r_rx(t_rx) - r_tx(t_tx)| / c + sum(corrections)

by fixed-point iteration, with either the reception or the transmission
time held fixed. Corrections are evaluated with the current link-end
states and times in each iteration.
"""

from __future__ import annotations

import numpy as np

from ..core.config import LightTimeConvergenceConfig
from ..core.constants import C_LIGHT
from ..core.environment import Environment
from ..core.errors import LightTimeConvergenceFailure
from ..core.logging_config import get_logger
from ..core.types import (
    LightTimeCorrectionSettings, LightTimeCorrectionType, LinkEndId
)

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Corrections
# ---------------------------------------------------------------------------

class FirstOrderRelativisticCorrection:
    """Shapiro delay of a signal passing a set of point masses.

        dt = sum_k 2 mu_k / c^3 * ln((r_t + r_r + r_tr) / (r_t + r_r - r_tr))

    with r_t, r_r the distances of transmitter and receiver from body k and
    r_tr the transmitter-receiver distance. Body positions are evaluated at
    the mid-point of the light-time interval.

    Attributes:
        perturbing_bodies: Names of the bodies causing the delay.
    """

    correction_type = LightTimeCorrectionType.FIRST_ORDER_RELATIVISTIC

    def __init__(self, perturbing_bodies: list[str], environment: Environment):
        self.perturbing_bodies = list(perturbing_bodies)
        self.environment = environment

    def body_contribution(self, body: str, state_tx: np.ndarray, state_rx: np.ndarray,
                          t_tx: float, t_rx: float) -> float:
        """Delay [s] caused by a single body."""
        mu = self.environment.body(body).gravitational_parameter
        r_body = self.environment.body_state(body, 0.5 * (t_tx + t_rx))[0:3]
        r_t = np.linalg.norm(state_tx[0:3] - r_body)
        r_r = np.linalg.norm(state_rx[0:3] - r_body)
        r_tr = np.linalg.norm(state_rx[0:3] - state_tx[0:3])
        return 2.0 * mu / C_LIGHT ** 3 * np.log((r_t + r_r + r_tr) / (r_t + r_r - r_tr))

    def calculate(self, state_tx: np.ndarray, state_rx: np.ndarray,
                  t_tx: float, t_rx: float) -> float:
        """Total delay [s]."""
        return sum(self.body_contribution(body, state_tx, state_rx, t_tx, t_rx)
                   for body in self.perturbing_bodies)


def create_light_time_correction(settings: LightTimeCorrectionSettings,
                                 environment: Environment):
    """Build a correction object from its settings."""
    if settings.correction_type == LightTimeCorrectionType.FIRST_ORDER_RELATIVISTIC:
        for body in settings.perturbing_bodies:
            if body not in environment:
                raise KeyError(f"Perturbing body {body!r} not in environment")
        return FirstOrderRelativisticCorrection(settings.perturbing_bodies, environment)
    raise ValueError(f"Light-time correction {settings.correction_type} is not implemented")


# ---------------------------------------------------------------------------
# Light-time calculator
# ---------------------------------------------------------------------------

class LightTimeCalculator:
    """Iterative light-time solution between a transmitter and a receiver.

    Attributes:
        transmitter: Transmitting link end.
        receiver: Receiving link end.
        environment: Source of link-end states.
        corrections: Light-time corrections, applied in order.
        convergence: Tolerance and iteration limit.
    """

    def __init__(self, transmitter: LinkEndId, receiver: LinkEndId,
                 environment: Environment, corrections: list = None,
                 convergence: LightTimeConvergenceConfig = None):
        self.transmitter = transmitter
        self.receiver = receiver
        self.environment = environment
        self.corrections = [] if corrections is None else list(corrections)
        self.convergence = convergence or LightTimeConvergenceConfig()

    def total_correction(self, state_tx: np.ndarray, state_rx: np.ndarray,
                         t_tx: float, t_rx: float) -> float:
        """Sum of all corrections [s]."""
        return sum(c.calculate(state_tx, state_rx, t_tx, t_rx) for c in self.corrections)

    def _light_time(self, state_tx, state_rx, t_tx, t_rx) -> float:
        distance = np.linalg.norm(state_rx[0:3] - state_tx[0:3])
        return distance / C_LIGHT + self.total_correction(state_tx, state_rx, t_tx, t_rx)

    def calculate_with_link_end_states(self, t: float, is_time_at_reception: bool = True
                                       ) -> tuple[float, tuple[float, np.ndarray],
                                                  tuple[float, np.ndarray]]:
        """Solve the light-time equation.

        Args:
            t: Fixed reference time [s].
            is_time_at_reception: True if t is the reception time, False if
                it is the transmission time.

        Returns:
            light_time: Converged light time [s].
            transmitter: (t_tx, state_tx).
            receiver: (t_rx, state_rx).

        Raises:
            LightTimeConvergenceFailure: If the iteration limit is reached.
        """
        state_of = self.environment.state_of
        tolerance = self.convergence.tolerance_s

        if is_time_at_reception:
            t_rx = t
            state_rx = state_of(self.receiver, t_rx)
        else:
            t_tx = t
            state_tx = state_of(self.transmitter, t_tx)

        light_time = 0.0
        change = np.inf
        for _ in range(self.convergence.max_iterations):
            if is_time_at_reception:
                t_tx = t - light_time
                state_tx = state_of(self.transmitter, t_tx)
            else:
                t_rx = t + light_time
                state_rx = state_of(self.receiver, t_rx)

            new_light_time = self._light_time(state_tx, state_rx, t_tx, t_rx)
            change = abs(new_light_time - light_time)
            light_time = new_light_time
            if change < tolerance:
                break
        else:
            logger.warning(
                "Light time between %s and %s at t=%.6f s did not converge "
                "after %d iterations (last change %.3e s)",
                self.transmitter, self.receiver, t,
                self.convergence.max_iterations, change
            )
            raise LightTimeConvergenceFailure(
                f"Light time between {self.transmitter} and {self.receiver} did "
                f"not converge after {self.convergence.max_iterations} iterations",
                last_light_time=light_time, last_change=change
            )

        # Final link-end states consistent with the converged light time
        if is_time_at_reception:
            t_tx = t - light_time
            state_tx = state_of(self.transmitter, t_tx)
        else:
            t_rx = t + light_time
            state_rx = state_of(self.receiver, t_rx)

        return light_time, (t_tx, state_tx), (t_rx, state_rx)

    def calculate_light_time(self, t: float, is_time_at_reception: bool = True) -> float:
        """Converged light time [s]."""
        return self.calculate_with_link_end_states(t, is_time_at_reception)[0]
