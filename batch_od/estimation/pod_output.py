"""
Estimation output.

Holds the per-iteration history of a run and the normal-equation solution
of the iteration with the lowest residual RMS. Built up while the estimator
runs; attached to estimation errors when a run aborts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from ..core.types import TerminationReason


@dataclass
class PodOutput:
    """Result of a batch estimation run.

    Attributes:
        parameter_names: Description of each parameter entry.
        parameter_history: Parameter vector linearized about in each iteration.
        correction_history: Correction solved for in each iteration.
        residual_history: Residuals (observed - computed) per iteration.
        rms_history: Unweighted residual RMS per iteration.
        weights: Weight of each scalar observation.
        final_parameters: Parameters of the best iteration (None if aborted).
        best_iteration: Index of the iteration with the lowest RMS.
        information_matrix: Unnormalized information matrix of the best iteration.
        normalization_terms: sqrt(diag(information_matrix)).
        inverse_normalized_information: Inverse of the normalized information matrix.
        design_matrix: Design matrix of the best iteration, if saved.
        termination_reason: Why the run stopped.
    """
    parameter_names: list[str]
    parameter_history: list[np.ndarray] = field(default_factory=list)
    correction_history: list[np.ndarray] = field(default_factory=list)
    residual_history: list[np.ndarray] = field(default_factory=list)
    rms_history: list[float] = field(default_factory=list)
    weights: Optional[np.ndarray] = None
    final_parameters: Optional[np.ndarray] = None
    best_iteration: Optional[int] = None
    information_matrix: Optional[np.ndarray] = None
    normalization_terms: Optional[np.ndarray] = None
    inverse_normalized_information: Optional[np.ndarray] = None
    design_matrix: Optional[np.ndarray] = None
    termination_reason: Optional[TerminationReason] = None

    @property
    def number_of_iterations(self) -> int:
        return len(self.rms_history)

    @property
    def best_rms(self) -> float:
        return self.rms_history[self.best_iteration]

    @property
    def best_residuals(self) -> np.ndarray:
        return self.residual_history[self.best_iteration]

    @property
    def normalized_information_matrix(self) -> np.ndarray:
        d = self.normalization_terms
        return self.information_matrix / np.outer(d, d)

    @property
    def normalized_covariance(self) -> np.ndarray:
        return self.inverse_normalized_information

    @property
    def covariance(self) -> np.ndarray:
        """Unnormalized a posteriori covariance."""
        d = self.normalization_terms
        return self.inverse_normalized_information / np.outer(d, d)

    @property
    def formal_errors(self) -> np.ndarray:
        return np.sqrt(np.diag(self.covariance))

    @property
    def correlations(self) -> np.ndarray:
        sigma = self.formal_errors
        return self.covariance / np.outer(sigma, sigma)

    def summary(self) -> str:
        """Multi-line human-readable summary."""
        lines = [f"Iterations: {self.number_of_iterations}"]
        for i, rms in enumerate(self.rms_history):
            marker = " *" if i == self.best_iteration else ""
            lines.append(f"  {i}: RMS {rms:.6e}{marker}")
        if self.termination_reason is not None:
            lines.append(f"Termination: {self.termination_reason.name}")
        if self.final_parameters is not None and self.normalization_terms is not None:
            for name, value, sigma in zip(self.parameter_names, self.final_parameters,
                                          self.formal_errors):
                lines.append(f"  {name}: {value:.12g} +/- {sigma:.3e}")
        return "\n".join(lines)
