"""
Batch orbit determination.

Iterative weighted least squares:

    propagate -> linearize/accumulate -> solve -> update -> check convergence

The final estimate is the parameter vector of the iteration with the lowest
residual RMS; the environment is reset to it and re-propagated before the
run returns.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np

from ..astrodynamics.propagator import PropagationSettings, VariationalEquationsSolver
from ..astrodynamics.state_transition import StateTransitionAndSensitivityMatrixInterface
from ..core.config import ConvergenceConfig, EstimationConfig, LightTimeConvergenceConfig
from ..core.environment import Environment
from ..core.errors import EstimationError, PropagationFailure, SingularNormalEquations
from ..core.logging_config import get_logger
from ..core.types import (
    LinkEnds, ObservableType, ObservationBatch, ObservationSettings,
    TerminationReason, observable_name
)
from ..observations.observation_manager import ObservationManager, create_observation_manager
from ..observations.simulation import ObservationSimulator
from .convergence import EstimationConvergenceChecker
from .normal_equations import NormalEquations
from .parameters import EstimatedParameterSet
from .pod_output import PodOutput

logger = get_logger(__name__)

WeightsKey = tuple[ObservableType, LinkEnds]


class OrbitDeterminationManager:
    """Owns the variational solver and the observation managers of a run.

    Attributes:
        environment: Body, bias and parameter-value store.
        parameter_set: Estimated parameters.
        solver: Variational equations solver.
        observation_managers: One manager per observable type.
        config: Estimation settings.
    """

    def __init__(self, environment: Environment,
                 parameter_set: EstimatedParameterSet,
                 propagation_settings: PropagationSettings,
                 observation_settings: dict[ObservableType, dict[LinkEnds, ObservationSettings]],
                 config: Optional[EstimationConfig] = None,
                 light_time_convergence: Optional[LightTimeConvergenceConfig] = None):
        self.environment = environment
        self.parameter_set = parameter_set
        self.config = config or EstimationConfig()

        self.solver = VariationalEquationsSolver(environment, propagation_settings,
                                                 parameter_set)
        self.observation_managers: dict[ObservableType, ObservationManager] = {
            observable_type: create_observation_manager(
                observable_type, per_link_ends, environment, parameter_set,
                self.solver.interface, light_time_convergence)
            for observable_type, per_link_ends in observation_settings.items()
        }

    @property
    def state_transition_interface(self) -> StateTransitionAndSensitivityMatrixInterface:
        return self.solver.interface

    @property
    def observation_simulators(self) -> dict[ObservableType, ObservationSimulator]:
        """Simulators sharing the models of the observation managers."""
        return {observable_type: ObservationSimulator(observable_type, manager.models)
                for observable_type, manager in self.observation_managers.items()}

    def propagate(self) -> StateTransitionAndSensitivityMatrixInterface:
        """Propagate with the current parameter values."""
        return self.solver.integrate()

    # ------------------------------------------------------------------
    # Linearization
    # ------------------------------------------------------------------

    def _check_batches(self, batches: list[ObservationBatch]) -> None:
        for batch in batches:
            manager = self.observation_managers.get(batch.observable_type)
            if manager is None:
                raise ValueError(
                    f"No observation model for {observable_name(batch.observable_type)}")
            manager.model(batch.link_ends)

    def _linearize_batch(self, batch: ObservationBatch, weights: np.ndarray
                         ) -> tuple[np.ndarray, np.ndarray, NormalEquations]:
        manager = self.observation_managers[batch.observable_type]
        residuals, design = manager.compute_residuals_and_partials(batch)
        contribution = NormalEquations(self.parameter_set.parameter_count)
        contribution.accumulate(design, residuals, weights)
        return residuals, design, contribution

    def _linearize(self, batches: list[ObservationBatch], weights: list[np.ndarray]):
        workers = self.config.number_of_workers
        if workers > 1 and len(batches) > 1:
            with ThreadPoolExecutor(max_workers=workers) as ex:
                return list(ex.map(self._linearize_batch, batches, weights))
        return [self._linearize_batch(b, w) for b, w in zip(batches, weights)]

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def estimate(self, observation_batches: list[ObservationBatch],
                 inverse_a_priori_covariance: Optional[np.ndarray] = None,
                 weights: Optional[dict[WeightsKey, np.ndarray]] = None,
                 a_priori_parameters: Optional[np.ndarray] = None,
                 convergence: Optional[ConvergenceConfig] = None) -> PodOutput:
        """Run the iterative least-squares estimation.

        Args:
            observation_batches: Observations to fit.
            inverse_a_priori_covariance: P_a^-1, shape (N, N). None or zeros
                mean no prior constraint.
            weights: Per-observation weights overriding those of the batches,
                keyed by (observable type, link ends); scalar or shape (K,).
            a_priori_parameters: x_a; defaults to the values at the start of
                the run.
            convergence: Overrides the configured termination criteria.

        Returns:
            PodOutput of the run. The environment holds the best estimate.

        Raises:
            PropagationFailure: Propagation failed; ``pod_output`` holds the
                history so far and the environment is reset to the best
                iteration reached.
            SingularNormalEquations: The information matrix is singular;
                ``pod_output`` holds the history so far.
        """
        cfg = self.config
        pset = self.parameter_set
        n_parameters = pset.parameter_count
        self._check_batches(observation_batches)

        if inverse_a_priori_covariance is None:
            inverse_a_priori_covariance = np.zeros((n_parameters, n_parameters))
        inverse_a_priori_covariance = np.asarray(inverse_a_priori_covariance, dtype=float)
        if inverse_a_priori_covariance.shape != (n_parameters, n_parameters):
            raise ValueError(
                f"Inverse a priori covariance must be {n_parameters}x{n_parameters}, "
                f"got {inverse_a_priori_covariance.shape}")

        initial_values = pset.get_values()
        a_priori = initial_values if a_priori_parameters is None else np.asarray(
            a_priori_parameters, dtype=float)

        batch_weights = []
        for batch in observation_batches:
            w = batch.weights
            if weights is not None and (batch.observable_type, batch.link_ends) in weights:
                w = np.broadcast_to(np.asarray(
                    weights[(batch.observable_type, batch.link_ends)], dtype=float),
                    batch.times.shape)
                if np.any(w < 0.0):
                    raise ValueError("Observation weights must be non-negative")
            batch_weights.append(np.repeat(w, batch.observable_size))

        output = PodOutput(parameter_names=pset.entry_names(),
                           weights=np.concatenate(batch_weights) if batch_weights else None)
        checker = EstimationConvergenceChecker(convergence or cfg.convergence)

        best = None
        iteration = 0
        while True:
            current = pset.get_values()

            if iteration > 0 or cfg.reintegrate_on_first_iteration:
                self._propagate_or_abort(output, TerminationReason.PROPAGATION_FAILURE)

            normal_equations = NormalEquations(n_parameters, inverse_a_priori_covariance,
                                               a_priori - current)
            results = self._linearize(observation_batches, batch_weights)
            for _, _, contribution in results:
                normal_equations.add(contribution)
            residuals = np.concatenate([r for r, _, _ in results]) if results else np.zeros(0)

            rms = float(np.sqrt(np.mean(residuals ** 2))) if len(residuals) else 0.0
            output.parameter_history.append(current)
            output.residual_history.append(residuals)
            output.rms_history.append(rms)
            if cfg.log_iterations:
                logger.info("Iteration %d: residual RMS %.6e (%d observations)",
                            iteration, rms, normal_equations.n_observations)

            try:
                correction, normalization, inverse_normalized = normal_equations.solve(
                    cfg.singularity_tolerance)
            except SingularNormalEquations as exc:
                self._abort(output, exc, TerminationReason.SINGULAR_NORMAL_EQUATIONS)
                raise

            output.correction_history.append(correction)
            if best is None or rms < output.rms_history[best]:
                best = iteration
                output.best_iteration = iteration
                output.information_matrix = normal_equations.information_matrix
                output.normalization_terms = normalization
                output.inverse_normalized_information = inverse_normalized
                if cfg.save_design_matrix:
                    output.design_matrix = np.vstack([d for _, d, _ in results])

            pset.set_values(current + correction)

            reason = checker.check(iteration, rms)
            if reason is not None:
                output.termination_reason = reason
                break
            iteration += 1

        pset.set_values(output.parameter_history[best])
        self._propagate_or_abort(output, TerminationReason.PROPAGATION_FAILURE)
        output.final_parameters = output.parameter_history[best]

        logger.info("Estimation terminated after %d iterations (%s); best iteration %d, "
                    "RMS %.6e", output.number_of_iterations, output.termination_reason.name,
                    best, output.best_rms)
        return output

    def _propagate_or_abort(self, output: PodOutput, reason: TerminationReason) -> None:
        try:
            self.propagate()
        except PropagationFailure as exc:
            self._abort(output, exc, reason)
            self._restore_best(output)
            raise

    def _restore_best(self, output: PodOutput) -> None:
        """Reset the environment to the best linearization point and re-propagate."""
        if output.best_iteration is None:
            return
        best = output.parameter_history[output.best_iteration]
        if np.array_equal(self.parameter_set.get_values(), best):
            return
        self.parameter_set.set_values(best)
        self.propagate()

    def _abort(self, output: PodOutput, exc: EstimationError,
               reason: TerminationReason) -> None:
        output.termination_reason = reason
        exc.pod_output = output
        logger.error("Estimation aborted after %d iterations: %s",
                     output.number_of_iterations, exc)
