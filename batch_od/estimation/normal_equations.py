"""
Normal equations of the weighted least-squares problem.

    (P_a^-1 + H^T W H) dx = P_a^-1 (x_a - x) + H^T W r

The system is normalized by D = sqrt(diag(N)) before it is checked for
conditioning and solved by Cholesky factorization:

    N_n = D^-1 N D^-1,   N_n (D dx) = D^-1 b
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve, eigvalsh

from ..core.errors import SingularNormalEquations


class NormalEquations:
    """Accumulator of the information matrix and right-hand side.

    Attributes:
        information_matrix: N = P_a^-1 + sum H^T W H, shape (N, N).
        right_hand_side: b = P_a^-1 (x_a - x) + sum H^T W r, shape (N,).
        n_observations: Number of scalar observations accumulated.
    """

    def __init__(self, n_parameters: int,
                 inverse_a_priori_covariance: Optional[np.ndarray] = None,
                 a_priori_deviation: Optional[np.ndarray] = None):
        self.n_parameters = n_parameters
        if inverse_a_priori_covariance is None:
            self.information_matrix = np.zeros((n_parameters, n_parameters))
        else:
            self.information_matrix = np.array(inverse_a_priori_covariance, dtype=float)
        if a_priori_deviation is None:
            self.right_hand_side = np.zeros(n_parameters)
        else:
            self.right_hand_side = self.information_matrix @ np.asarray(a_priori_deviation,
                                                                         dtype=float)
        self.n_observations = 0

    def accumulate(self, design_matrix: np.ndarray, residuals: np.ndarray,
                   weights: np.ndarray) -> None:
        """Add H^T W H and H^T W r of a block of observations (W diagonal)."""
        weighted = design_matrix * weights[:, np.newaxis]
        self.information_matrix += design_matrix.T @ weighted
        self.right_hand_side += weighted.T @ residuals
        self.n_observations += len(residuals)

    def add(self, other: "NormalEquations") -> None:
        """Reduce another accumulator into this one."""
        self.information_matrix += other.information_matrix
        self.right_hand_side += other.right_hand_side
        self.n_observations += other.n_observations

    def solve(self, singularity_tolerance: float = 1e-15
              ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Solve for the parameter correction.

        See ``solve_normal_equations``.
        """
        return solve_normal_equations(self.information_matrix, self.right_hand_side,
                                      singularity_tolerance)


def solve_normal_equations(information_matrix: np.ndarray, right_hand_side: np.ndarray,
                           singularity_tolerance: float = 1e-15
                           ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Solve N dx = b with normalization and a conditioning check.

    Args:
        information_matrix: Symmetric N, shape (n, n).
        right_hand_side: b, shape (n,).
        singularity_tolerance: Smallest allowed ratio of smallest to largest
            eigenvalue of the normalized matrix.

    Returns:
        correction: dx, shape (n,).
        normalization: D = sqrt(diag(N)), shape (n,).
        inverse_normalized_information: N_n^-1, shape (n, n).

    Raises:
        SingularNormalEquations: If a parameter has no information or the
            normalized matrix is (numerically) singular.
    """
    diagonal = np.diag(information_matrix)
    unobservable = np.flatnonzero(diagonal <= 0.0)
    if len(unobservable) > 0:
        raise SingularNormalEquations(
            f"No information on parameter(s) {unobservable.tolist()}"
        )

    normalization = np.sqrt(diagonal)
    normalized = information_matrix / np.outer(normalization, normalization)

    eigenvalues = eigvalsh(normalized)
    if eigenvalues[0] <= singularity_tolerance * eigenvalues[-1]:
        raise SingularNormalEquations(
            f"Normalized information matrix is singular (eigenvalue ratio "
            f"{eigenvalues[0] / eigenvalues[-1]:.3e} below {singularity_tolerance:g})"
        )

    try:
        factor = cho_factor(normalized)
    except LinAlgError as exc:
        raise SingularNormalEquations(
            f"Cholesky factorization of information matrix failed: {exc}") from exc

    correction = cho_solve(factor, right_hand_side / normalization) / normalization
    inverse_normalized = cho_solve(factor, np.eye(len(normalization)))
    return correction, normalization, inverse_normalized
