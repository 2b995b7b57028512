"""
Equations of motion assembler.

Constructs the full derivative vector for numerical integration of the
propagated bodies together with their variational equations:

    y = [x_1 (6), ..., x_n (6), Psi (6n x N, row-major)]

with the combined variational matrix Psi = [Phi | S], where Phi is the
6n x 6n state transition matrix and S the 6n x (N - 6n) sensitivity matrix:

    dPhi/dt = A(t) * Phi
    dS/dt   = A(t) * S + B(t)

A(t) is block-diagonal (one 6x6 block per body) because accelerations are
only exerted by bodies that are not propagated.
"""

from __future__ import annotations

import numpy as np

from ..core.environment import Environment


def initial_variational_state(initial_states: list[np.ndarray],
                              n_parameters: int) -> np.ndarray:
    """Augmented initial vector with Psi(t0) = [I | 0]."""
    n_state = 6 * len(initial_states)
    psi0 = np.zeros((n_state, n_parameters))
    psi0[:, :n_state] = np.eye(n_state)
    return np.concatenate([np.concatenate(initial_states), psi0.ravel()])


def split_variational_state(y: np.ndarray, n_bodies: int, n_parameters: int
                            ) -> tuple[np.ndarray, np.ndarray]:
    """Split an augmented vector into body states (n, 6) and Psi (6n, N)."""
    n_state = 6 * n_bodies
    return (y[:n_state].reshape(n_bodies, 6),
            y[n_state:].reshape(n_state, n_parameters))


def eom_variational(t: float, y: np.ndarray,
                    bodies: list[str],
                    acceleration_models: dict[str, list],
                    environment: Environment,
                    parameters: list,
                    parameter_columns: list[tuple[int, int]],
                    n_parameters: int
                    ) -> np.ndarray:
    """Derivative of the augmented state for all propagated bodies.

    Args:
        t: Integration time [seconds since the environment reference epoch].
        y: Augmented state vector, see module docstring.
        bodies: Propagated body names, in Psi row order.
        acceleration_models: Acceleration models acting on each body.
        environment: Store used to resolve exerting bodies.
        parameters: Non-initial-state parameters.
        parameter_columns: (start, size) column range of each entry of
            ``parameters`` in Psi.
        n_parameters: Total number of estimated scalars N.

    Returns:
        dy_dt: Time derivative of y, same shape.
    """
    n = len(bodies)
    states, psi = split_variational_state(y, n, n_parameters)

    d_states = np.zeros((n, 6))
    d_psi = np.zeros_like(psi)

    for i, body in enumerate(bodies):
        state = states[i]
        a_total = np.zeros(3)
        da_dx_total = np.zeros((3, 6))
        B = np.zeros((6, n_parameters))

        for model in acceleration_models.get(body, []):
            a, da_dx, partials = model.acceleration_and_partials(
                state, t, environment, parameters
            )
            a_total += a
            da_dx_total += da_dx
            for (start, size), da_dp in zip(parameter_columns, partials):
                if da_dp is not None:
                    B[3:6, start:start + size] += da_dp

        # A = [[  0_3x3,   I_3x3  ],
        #      [da/dr_3x3, da/dv_3x3]]
        A = np.zeros((6, 6))
        A[0:3, 3:6] = np.eye(3)
        A[3:6, :] = da_dx_total

        rows = slice(6 * i, 6 * i + 6)
        d_states[i, 0:3] = state[3:6]
        d_states[i, 3:6] = a_total
        d_psi[rows] = A @ psi[rows] + B

    return np.concatenate([d_states.ravel(), d_psi.ravel()])
