"""
Observation manager.

For one observable type, combines the observation models, their direct
partials and the state-transition interface into simulated observables,
residuals and design-matrix rows:

    H = sum_{link ends e} scaling(e) @ Psi_{body(e)}(t_e) + direct partials

Each link end is chained with Psi at its own link-end time.
"""

from __future__ import annotations

import numpy as np

from ..astrodynamics.state_transition import StateTransitionAndSensitivityMatrixInterface
from ..core.config import LightTimeConvergenceConfig
from ..core.environment import Environment
from ..core.types import (
    LinkEndType, LinkEnds, ObservableType, ObservationBatch, ObservationBiasType,
    ObservationSettings, observable_name, observable_size, required_link_end_types
)
from ..estimation.parameters import EstimatedParameterSet
from .observation_models import ObservationModel, create_observation_model
from .observation_partials import (
    ConstantAdditiveBiasPartial, ConstantRelativeBiasPartial,
    DirectObservationPartial, create_observation_partials
)
from .position_partial_scaling import create_position_partial_scaling

_BIAS_PARTIALS = (ConstantAdditiveBiasPartial, ConstantRelativeBiasPartial)


class ObservationManager:
    """Observables and partials for all link ends of one observable type.

    Attributes:
        observable_type: Observable handled by this manager.
        models: Observation model per link ends.
        direct_partials: Direct parameter partials per link ends.
        environment: Body and bias store.
        parameter_set: Estimated parameters defining the columns of H.
        state_transition_interface: Current Phi/S lookup.
    """

    def __init__(self, observable_type: ObservableType,
                 models: dict[LinkEnds, ObservationModel],
                 direct_partials: dict[LinkEnds, list[DirectObservationPartial]],
                 environment: Environment,
                 parameter_set: EstimatedParameterSet,
                 state_transition_interface: StateTransitionAndSensitivityMatrixInterface):
        self.observable_type = observable_type
        self.models = models
        self.direct_partials = direct_partials
        self.environment = environment
        self.parameter_set = parameter_set
        self.state_transition_interface = state_transition_interface

    @property
    def size(self) -> int:
        return observable_size(self.observable_type)

    def model(self, link_ends: LinkEnds) -> ObservationModel:
        try:
            return self.models[link_ends]
        except KeyError:
            raise KeyError(
                f"No {observable_name(self.observable_type)} model for {link_ends!r}"
            ) from None

    def compute_observations(self, link_ends: LinkEnds, times: np.ndarray,
                             reference_link_end: LinkEndType = LinkEndType.RECEIVER
                             ) -> np.ndarray:
        """Simulated observables, shape (K, D)."""
        model = self.model(link_ends)
        return np.array([model.compute_observation(t, reference_link_end) for t in times])

    def compute_observations_and_partials(self, link_ends: LinkEnds, times: np.ndarray,
                                          reference_link_end: LinkEndType = LinkEndType.RECEIVER
                                          ) -> tuple[np.ndarray, np.ndarray]:
        """Simulated observables and their partials w.r.t. all parameters.

        Returns:
            values: Simulated observables, shape (K, D).
            partials: Design-matrix rows, time-major, shape (K*D, N).
        """
        model = self.model(link_ends)
        partials = self.direct_partials.get(link_ends, [])
        interface = self.state_transition_interface
        roles = required_link_end_types(self.observable_type)
        n_parameters = self.parameter_set.parameter_count
        size = self.size

        # Private scaling per call: safe for concurrent batches
        scaling = create_position_partial_scaling(self.observable_type, link_ends,
                                                  self.environment)

        values = np.zeros((len(times), size))
        design = np.zeros((len(times) * size, n_parameters))
        for k, t in enumerate(times):
            ideal, link_end_times, states = model.compute_ideal_observation_with_link_end_data(
                t, reference_link_end)
            values[k] = ideal + model.bias(ideal)
            scaling.update(link_end_times, states, reference_link_end, ideal)

            rows = np.zeros((size, n_parameters))
            for index, role in enumerate(roles):
                body = link_ends[role].body
                if body in interface.bodies:
                    rows += scaling.scaling(role) @ interface.body_matrix(
                        body, link_end_times[index])

            bias_rows = []
            for partial in partials:
                start, width = self.parameter_set.index_range(partial.parameter)
                term = partial.partial(scaling, link_end_times, states, ideal)
                if isinstance(partial, _BIAS_PARTIALS):
                    bias_rows.append((start, width, term))
                else:
                    rows[:, start:start + width] += term

            if model.bias_type == ObservationBiasType.CONSTANT_RELATIVE:
                factor = 1.0 + self.environment.observation_bias(self.observable_type, link_ends)
                rows *= factor[:, np.newaxis]
            for start, width, term in bias_rows:
                rows[:, start:start + width] += term

            design[k * size:(k + 1) * size] = rows

        return values, design

    def compute_residuals_and_partials(self, batch: ObservationBatch
                                       ) -> tuple[np.ndarray, np.ndarray]:
        """Residuals (observed - computed) and design matrix of a batch.

        Returns:
            residuals: Shape (K*D,).
            partials: Shape (K*D, N).
        """
        values, design = self.compute_observations_and_partials(
            batch.link_ends, batch.times, batch.reference_link_end)
        return batch.flat_observations - values.reshape(-1), design


def create_observation_manager(observable_type: ObservableType,
                               settings_per_link_ends: dict[LinkEnds, ObservationSettings],
                               environment: Environment,
                               parameter_set: EstimatedParameterSet,
                               state_transition_interface: StateTransitionAndSensitivityMatrixInterface,
                               light_time_convergence: LightTimeConvergenceConfig = None
                               ) -> ObservationManager:
    """Build models and direct partials for every link ends of one observable.

    Raises:
        InvalidLinkEndConfiguration: On link ends not matching the observable.
        PartialNotImplemented: On parameters without a partial for this observable.
    """
    models = {}
    direct_partials = {}
    for link_ends, settings in settings_per_link_ends.items():
        if settings.observable_type != observable_type:
            raise ValueError(
                f"Settings for {observable_name(settings.observable_type)} given to "
                f"{observable_name(observable_type)} manager"
            )
        model = create_observation_model(link_ends, settings, environment,
                                         light_time_convergence)
        models[link_ends] = model
        direct_partials[link_ends] = create_observation_partials(
            observable_type, link_ends, model, parameter_set.parameters, environment)

    return ObservationManager(observable_type, models, direct_partials, environment,
                              parameter_set, state_transition_interface)
