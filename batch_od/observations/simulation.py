"""
Observation simulation.

Creates ObservationBatch objects from observation models, optionally with
Gaussian noise drawn from a seeded numpy generator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from ..core.config import LightTimeConvergenceConfig
from ..core.environment import Environment
from ..core.errors import LightTimeConvergenceFailure
from ..core.logging_config import get_logger
from ..core.types import (
    LinkEndType, LinkEnds, ObservableType, ObservationBatch, ObservationSettings,
    observable_name
)
from .observation_models import ObservationModel, create_observation_model

logger = get_logger(__name__)


@dataclass
class ObservationSimulationSettings:
    """Which observations to simulate.

    Attributes:
        observable_type: Observable to simulate.
        link_ends: Link ends of the observable.
        times: Observation times [s] at the reference link end.
        reference_link_end: Link end whose time is the observation time.
        noise_std: Standard deviation of white Gaussian noise, scalar or one
            value per observable component. Zero for noiseless data.
        weights: Weights attached to the simulated batch.
    """
    observable_type: ObservableType
    link_ends: LinkEnds
    times: np.ndarray
    reference_link_end: LinkEndType = LinkEndType.RECEIVER
    noise_std: Union[float, np.ndarray] = 0.0
    weights: Optional[np.ndarray] = None


class ObservationSimulator:
    """Computes observables for all link ends of one observable type.

    Attributes:
        observable_type: Observable simulated.
        models: Observation model per link ends.
    """

    def __init__(self, observable_type: ObservableType,
                 models: dict[LinkEnds, ObservationModel]):
        self.observable_type = observable_type
        self.models = models

    def simulate(self, link_ends: LinkEnds, times: np.ndarray,
                 reference_link_end: LinkEndType = LinkEndType.RECEIVER,
                 skip_light_time_failures: bool = False
                 ) -> tuple[np.ndarray, np.ndarray]:
        """Noise-free observables at the given times.

        Args:
            link_ends: Link ends to simulate.
            times: Observation times [s].
            reference_link_end: Link end whose time is fixed; ignored for
                position observables.
            skip_light_time_failures: Drop observations whose light time does
                not converge instead of raising.

        Returns:
            times: Times of the simulated observations, shape (K,).
            values: Observables, shape (K, D).
        """
        model = self.models[link_ends]
        if self.observable_type == ObservableType.POSITION_OBSERVABLE:
            reference_link_end = LinkEndType.OBSERVED_BODY
        kept_times, values = [], []
        for t in np.atleast_1d(times):
            try:
                values.append(model.compute_observation(t, reference_link_end))
            except LightTimeConvergenceFailure:
                if not skip_light_time_failures:
                    raise
                logger.warning("Skipping %s observation at t=%.3f s: light time did not converge",
                               observable_name(self.observable_type), t)
                continue
            kept_times.append(t)
        return np.array(kept_times), np.array(values).reshape(len(kept_times), model.size)


def create_observation_simulators(
        observation_settings: dict[ObservableType, dict[LinkEnds, ObservationSettings]],
        environment: Environment,
        light_time_convergence: LightTimeConvergenceConfig = None
) -> dict[ObservableType, ObservationSimulator]:
    """One simulator per observable type, from observation settings."""
    simulators = {}
    for observable_type, per_link_ends in observation_settings.items():
        models = {link_ends: create_observation_model(link_ends, settings, environment,
                                                      light_time_convergence)
                  for link_ends, settings in per_link_ends.items()}
        simulators[observable_type] = ObservationSimulator(observable_type, models)
    return simulators


def simulate_observations(simulation_settings: list[ObservationSimulationSettings],
                          simulators: dict[ObservableType, ObservationSimulator],
                          seed: Optional[int] = None,
                          skip_light_time_failures: bool = False
                          ) -> list[ObservationBatch]:
    """Simulate observation batches.

    Args:
        simulation_settings: Observations to simulate.
        simulators: Simulator per observable type.
        seed: Seed of the noise generator.
        skip_light_time_failures: Drop observations whose light time does
            not converge instead of raising.

    Returns:
        One ObservationBatch per entry of ``simulation_settings``.
    """
    rng = np.random.default_rng(seed)
    batches = []
    for settings in simulation_settings:
        simulator = simulators[settings.observable_type]
        times, values = simulator.simulate(settings.link_ends, settings.times,
                                           settings.reference_link_end,
                                           skip_light_time_failures)
        noise_std = np.asarray(settings.noise_std, dtype=float)
        if np.any(noise_std > 0.0):
            values = values + rng.normal(0.0, 1.0, values.shape) * noise_std

        weights = settings.weights
        if weights is not None and len(times) != len(settings.times):
            kept = np.isin(np.atleast_1d(settings.times), times)
            weights = np.broadcast_to(weights, kept.shape)[kept]

        batches.append(ObservationBatch(
            observable_type=settings.observable_type,
            link_ends=settings.link_ends,
            times=times,
            observations=values,
            weights=weights,
            reference_link_end=settings.reference_link_end,
        ))
    return batches
