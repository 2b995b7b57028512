"""
Fixed-step numerical integrator.

Classical fourth-order Runge-Kutta with the ``advance(state, t, dt)``
interface. Adaptive integration goes through scipy.integrate.solve_ivp in
the propagator instead.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from ..core.errors import IntegrationError


class RungeKutta4Integrator:
    """Classical RK4 for y' = f(t, y).

    Attributes:
        rhs: Callable f(t, y) -> dy/dt.
    """

    def __init__(self, rhs: Callable[[float, np.ndarray], np.ndarray]):
        self.rhs = rhs

    def advance(self, state: np.ndarray, t: float, dt: float
                ) -> tuple[np.ndarray, float]:
        """Take one step of size dt.

        Args:
            state: State vector at t.
            t: Current time [s].
            dt: Step size [s] (may be negative).

        Returns:
            new_state: State at t + dt.
            new_t: t + dt.

        Raises:
            IntegrationError: If the new state has non-finite entries.
        """
        k1 = self.rhs(t, state)
        k2 = self.rhs(t + 0.5 * dt, state + 0.5 * dt * k1)
        k3 = self.rhs(t + 0.5 * dt, state + 0.5 * dt * k2)
        k4 = self.rhs(t + dt, state + dt * k3)

        new_state = state + (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)
        if not np.all(np.isfinite(new_state)):
            raise IntegrationError(
                f"Non-finite state after RK4 step from t={t:.3f} s (dt={dt:g} s)"
            )
        return new_state, t + dt

    def integrate(self, y0: np.ndarray, t0: float, tf: float, step: float
                  ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Integrate from t0 to tf, shortening the final step to land on tf.

        Returns:
            times: Node times, shape (M,).
            states: States at the nodes, shape (M, n).
            derivatives: f(t, y) at the nodes, shape (M, n).
        """
        direction = 1.0 if tf >= t0 else -1.0
        step = direction * abs(step)

        times = [t0]
        states = [np.asarray(y0, dtype=float).copy()]
        derivatives = [self.rhs(t0, states[0])]

        t, y = t0, states[0]
        while direction * (tf - t) > 1e-9 * abs(step):
            dt = step if direction * (tf - (t + step)) >= 0.0 else tf - t
            y, t = self.advance(y, t, dt)
            if direction * (tf - t) <= 1e-9 * abs(step):
                t = tf
            times.append(t)
            states.append(y)
            derivatives.append(self.rhs(t, y))

        return np.array(times), np.array(states), np.array(derivatives)
