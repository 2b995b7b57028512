"""
Observation models.

One model per (observable type, link ends). A model returns the observable
value together with the times and states of the participating link ends,
in link-end index order (transmitter, receiver; or observed body). Those
times and states are what the partial-derivative layer differentiates at.

Observables:
    - One-way range [km]: c * light time, including corrections.
    - One-way Doppler [-]: third-order Taylor expansion of
      (1 - beta_tx) / (1 - beta_rx) - 1, beta = r_hat . v / c.
    - Angular position [rad]: right ascension and declination of the
      transmitter as seen from the receiver.
    - Cartesian position [km]: position of the observed body; no light time.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..core.config import LightTimeConvergenceConfig
from ..core.constants import C_LIGHT
from ..core.environment import Environment
from ..core.errors import InvalidLinkEndConfiguration
from ..core.types import (
    LinkEndType, LinkEnds, ObservableType, ObservationBiasType,
    ObservationSettings, observable_name, observable_size
)
from .light_time import LightTimeCalculator, create_light_time_correction

DOPPLER_TAYLOR_ORDER = 3


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

def doppler_series(beta_rx: float, order: int = DOPPLER_TAYLOR_ORDER
                   ) -> tuple[float, float]:
    """Truncated series sum_{i=1..order} beta^i of 1/(1-beta) - 1, and its derivative."""
    s = sum(beta_rx ** i for i in range(1, order + 1))
    ds = sum(i * beta_rx ** (i - 1) for i in range(1, order + 1))
    return s, ds


def one_way_doppler(state_tx: np.ndarray, state_rx: np.ndarray) -> float:
    """First-order one-way Doppler from link-end states."""
    los = state_rx[0:3] - state_tx[0:3]
    r_hat = los / np.linalg.norm(los)
    beta_tx = np.dot(r_hat, state_tx[3:6]) / C_LIGHT
    beta_rx = np.dot(r_hat, state_rx[3:6]) / C_LIGHT
    s, _ = doppler_series(beta_rx)
    return -beta_tx + s * (1.0 - beta_tx)


def right_ascension_declination(position_tx: np.ndarray,
                                position_rx: np.ndarray) -> np.ndarray:
    """Right ascension and declination [rad] of the transmitter seen from the receiver."""
    e = position_tx - position_rx
    return np.array([
        np.arctan2(e[1], e[0]),
        np.arctan2(e[2], np.hypot(e[0], e[1])),
    ])


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class ObservationModel:
    """Base observation model.

    Attributes:
        observable_type: Observable computed by this model.
        link_ends: Participating link ends.
        environment: Source of states and observation biases.
        bias_type: Type of the observation bias, or None.
    """

    observable_type: ObservableType = None

    def __init__(self, link_ends: LinkEnds, environment: Environment,
                 bias_type: Optional[ObservationBiasType] = None):
        link_ends.validate_for(self.observable_type)
        self.link_ends = link_ends
        self.environment = environment
        self.bias_type = bias_type

    @property
    def size(self) -> int:
        return observable_size(self.observable_type)

    def _check_reference(self, reference_link_end: LinkEndType) -> None:
        if reference_link_end not in self.link_ends:
            raise InvalidLinkEndConfiguration(
                f"Reference link end {reference_link_end.name} not in "
                f"{observable_name(self.observable_type)} link ends {self.link_ends!r}"
            )

    def compute_ideal_observation_with_link_end_data(
            self, t: float, reference_link_end: LinkEndType
    ) -> tuple[np.ndarray, list[float], list[np.ndarray]]:
        """Observable without bias, plus link-end times and states.

        Returns:
            value: Observable, shape (D,).
            times: Link-end times in link-end index order.
            states: Link-end states in link-end index order.
        """
        raise NotImplementedError

    def bias(self, ideal: np.ndarray) -> np.ndarray:
        """Bias added to an ideal observable."""
        if self.bias_type is None:
            return np.zeros(self.size)
        value = self.environment.observation_bias(self.observable_type, self.link_ends)
        if self.bias_type == ObservationBiasType.CONSTANT_ADDITIVE:
            return value
        elif self.bias_type == ObservationBiasType.CONSTANT_RELATIVE:
            return value * ideal
        raise ValueError(f"Unknown observation bias type {self.bias_type}")

    def compute_observation_with_link_end_data(
            self, t: float, reference_link_end: LinkEndType
    ) -> tuple[np.ndarray, list[float], list[np.ndarray]]:
        """Observable including bias, plus link-end times and states."""
        ideal, times, states = self.compute_ideal_observation_with_link_end_data(
            t, reference_link_end)
        return ideal + self.bias(ideal), times, states

    def compute_observation(self, t: float,
                            reference_link_end: LinkEndType = LinkEndType.RECEIVER
                            ) -> np.ndarray:
        return self.compute_observation_with_link_end_data(t, reference_link_end)[0]


class LightTimeObservationModel(ObservationModel):
    """Base for models with one transmitter and one receiver.

    Attributes:
        light_time_calculator: Light-time solution between the link ends.
    """

    def __init__(self, link_ends: LinkEnds, environment: Environment,
                 light_time_calculator: LightTimeCalculator,
                 bias_type: Optional[ObservationBiasType] = None):
        super().__init__(link_ends, environment, bias_type)
        self.light_time_calculator = light_time_calculator

    def _solve_light_time(self, t: float, reference_link_end: LinkEndType):
        self._check_reference(reference_link_end)
        light_time, (t_tx, state_tx), (t_rx, state_rx) = (
            self.light_time_calculator.calculate_with_link_end_states(
                t, reference_link_end == LinkEndType.RECEIVER)
        )
        return light_time, [t_tx, t_rx], [state_tx, state_rx]


class OneWayRangeModel(LightTimeObservationModel):
    observable_type = ObservableType.ONE_WAY_RANGE

    def compute_ideal_observation_with_link_end_data(self, t, reference_link_end):
        light_time, times, states = self._solve_light_time(t, reference_link_end)
        return np.array([C_LIGHT * light_time]), times, states


class OneWayDopplerModel(LightTimeObservationModel):
    observable_type = ObservableType.ONE_WAY_DOPPLER

    def compute_ideal_observation_with_link_end_data(self, t, reference_link_end):
        _, times, states = self._solve_light_time(t, reference_link_end)
        return np.array([one_way_doppler(states[0], states[1])]), times, states


class AngularPositionModel(LightTimeObservationModel):
    observable_type = ObservableType.ANGULAR_POSITION

    def compute_ideal_observation_with_link_end_data(self, t, reference_link_end):
        _, times, states = self._solve_light_time(t, reference_link_end)
        value = right_ascension_declination(states[0][0:3], states[1][0:3])
        return value, times, states


class PositionObservableModel(ObservationModel):
    observable_type = ObservableType.POSITION_OBSERVABLE

    def compute_ideal_observation_with_link_end_data(self, t, reference_link_end):
        self._check_reference(reference_link_end)
        state = self.environment.state_of(self.link_ends[LinkEndType.OBSERVED_BODY], t)
        return state[0:3].copy(), [t], [state]


_MODEL_CLASSES = {
    ObservableType.ONE_WAY_RANGE: OneWayRangeModel,
    ObservableType.ONE_WAY_DOPPLER: OneWayDopplerModel,
    ObservableType.ANGULAR_POSITION: AngularPositionModel,
}


def create_observation_model(link_ends: LinkEnds, settings: ObservationSettings,
                             environment: Environment,
                             light_time_convergence: LightTimeConvergenceConfig = None
                             ) -> ObservationModel:
    """Build an observation model from its settings.

    Registers the bias value of ``settings`` in the environment's bias store,
    unless a value is already present there.

    Raises:
        InvalidLinkEndConfiguration: If the link ends do not match the observable.
    """
    observable_type = settings.observable_type
    link_ends.validate_for(observable_type)

    bias_type = None
    if settings.bias_settings is not None:
        bias_type = settings.bias_settings.bias_type
        value = settings.bias_settings.value
        if value.shape != (observable_size(observable_type),):
            raise ValueError(
                f"Bias for {observable_name(observable_type)} must have "
                f"{observable_size(observable_type)} entries, got {value.shape}"
            )
        if not environment.has_observation_bias(observable_type, link_ends):
            environment.set_observation_bias(observable_type, link_ends, value)

    if observable_type == ObservableType.POSITION_OBSERVABLE:
        if settings.light_time_corrections:
            raise InvalidLinkEndConfiguration(
                "Position observables do not take light-time corrections")
        return PositionObservableModel(link_ends, environment, bias_type)

    corrections = [create_light_time_correction(c, environment)
                   for c in settings.light_time_corrections]
    calculator = LightTimeCalculator(
        link_ends[LinkEndType.TRANSMITTER], link_ends[LinkEndType.RECEIVER],
        environment, corrections, light_time_convergence
    )
    return _MODEL_CLASSES[observable_type](link_ends, environment, calculator, bias_type)
