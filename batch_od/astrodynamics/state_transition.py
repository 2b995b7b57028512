"""
Time-indexed access to the propagated states and the combined
state-transition/sensitivity matrix Psi(t) = [Phi(t, t0) | S(t)].

The interface is a persistent object re-filled after every propagation and
read-only in between, so it can be queried concurrently by observation
managers.
"""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from ..core.errors import TimeOutOfRange


class StateTransitionAndSensitivityMatrixInterface:
    """Lookup of Phi(t, t0), S(t) and body states at arbitrary epochs.

    Values at stored integration epochs are returned exactly; between epochs
    the integrator's dense output is used.

    Attributes:
        bodies: Propagated bodies in row order.
        n_parameters: Total number of estimated scalars N.
    """

    def __init__(self, bodies: list[str], n_parameters: int):
        self.bodies = list(bodies)
        self.n_parameters = n_parameters
        self._times: Optional[np.ndarray] = None
        self._values: Optional[np.ndarray] = None
        self._dense: Optional[Callable[[float], np.ndarray]] = None

    @property
    def n_state(self) -> int:
        return 6 * len(self.bodies)

    @property
    def is_set(self) -> bool:
        return self._times is not None

    @property
    def time_span(self) -> tuple[float, float]:
        """(earliest, latest) propagated time [s]."""
        if self._times is None:
            raise TimeOutOfRange("No propagation has been stored")
        return float(self._times.min()), float(self._times.max())

    def update(self, times: np.ndarray, values: np.ndarray,
               dense: Callable[[float], np.ndarray]) -> None:
        """Replace the stored history with a new propagation.

        Args:
            times: Stored epochs [s], monotonic, shape (M,).
            values: Augmented vectors at the epochs, shape (M, 6n + 6n*N).
            dense: Callable t -> augmented vector, valid on the time span.
        """
        order = np.argsort(times)
        self._times = np.asarray(times, dtype=float)[order]
        self._values = np.asarray(values, dtype=float)[order]
        self._dense = dense

    def _augmented_at(self, t: float) -> np.ndarray:
        t_min, t_max = self.time_span
        if t < t_min or t > t_max:
            raise TimeOutOfRange(
                f"Time {t:.6f} s outside propagated span [{t_min:.6f}, {t_max:.6f}] s"
            )
        idx = np.searchsorted(self._times, t)
        if idx < len(self._times) and self._times[idx] == t:
            return self._values[idx]
        return np.asarray(self._dense(t), dtype=float)

    def full_matrix(self, t: float) -> np.ndarray:
        """Psi(t) = [Phi | S], shape (6n, N)."""
        y = self._augmented_at(t)
        return y[self.n_state:].reshape(self.n_state, self.n_parameters)

    def state_transition_matrix(self, t: float) -> np.ndarray:
        """Phi(t, t0), shape (6n, 6n)."""
        return self.full_matrix(t)[:, :self.n_state]

    def sensitivity_matrix(self, t: float) -> np.ndarray:
        """S(t), shape (6n, N - 6n)."""
        return self.full_matrix(t)[:, self.n_state:]

    def body_matrix(self, body: str, t: float) -> np.ndarray:
        """Rows of Psi(t) belonging to one body, shape (6, N)."""
        i = self.bodies.index(body)
        return self.full_matrix(t)[6 * i:6 * i + 6]

    def states_at(self, t: float) -> np.ndarray:
        """Propagated states, shape (n, 6)."""
        return self._augmented_at(t)[:self.n_state].reshape(-1, 6)

    def body_state(self, body: str, t: float) -> np.ndarray:
        """Propagated state of one body [km, km/s]."""
        i = self.bodies.index(body)
        return self._augmented_at(t)[6 * i:6 * i + 6].copy()


class PropagatedEphemeris:
    """Ephemeris of a propagated body backed by the current propagation."""

    def __init__(self, interface: StateTransitionAndSensitivityMatrixInterface,
                 body: str):
        self.interface = interface
        self.body = body

    def state_at(self, t: float) -> np.ndarray:
        return self.interface.body_state(self.body, t)
