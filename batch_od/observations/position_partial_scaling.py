"""
Position-partial scaling.

Maps a perturbation of a link end's Cartesian state at its own link-end time
to the resulting change in the observable, including the change of the
light-time solution. The scaling is updated once per observation with the
link-end times and states from the observation model, and then shared by
every partial of that observation.

For a one-way link with reference link end F and free link end N (the end
whose time follows from the light time):

    r_hat = (r_rx - r_tx) / |r_rx - r_tx|
    beta  = r_hat . v_N / c
    d(lt)/d(r_rx) = -d(lt)/d(r_tx) = r_hat / (c (1 - beta))

and the observable changes through the time shift of link end N by
G_N [v_N; a_N] d(t_N), with d(t_N) = -d(lt) for a transmitter and +d(lt)
for a receiver.
"""

from __future__ import annotations

import numpy as np

from ..core.constants import C_LIGHT
from ..core.environment import Environment
from ..core.errors import PartialNotImplemented
from ..core.types import (
    LinkEndType, LinkEnds, ObservableType, observable_name
)
from .observation_models import doppler_series


class PositionPartialScaling:
    """Base class of observable-specific scalings."""

    observable_type: ObservableType = None

    def update(self, times: list[float], states: list[np.ndarray],
               reference_link_end: LinkEndType, ideal_value: np.ndarray) -> None:
        raise NotImplementedError

    def scaling(self, link_end_type: LinkEndType) -> np.ndarray:
        """d(observable)/d(state of link end), shape (D, 6)."""
        raise NotImplementedError

    def light_time_correction_scaling(self) -> np.ndarray:
        """d(observable)/d(light-time correction [s]), shape (D,)."""
        raise PartialNotImplemented(
            f"{observable_name(self.observable_type)} has no light-time dependence"
        )


class OneWayLinkPositionPartialScaling(PositionPartialScaling):
    """Scaling for observables between a transmitter and a receiver.

    Subclasses provide the direct gradients of the geometric observable with
    respect to the two link-end states at fixed times.

    Attributes:
        link_ends: Link ends of the observation.
        environment: Source of link-end accelerations.
    """

    # d(observable)/d(c * light time) for observables defined through the
    # light time itself
    range_light_time_factor = 0.0

    def __init__(self, link_ends: LinkEnds, environment: Environment):
        self.link_ends = link_ends
        self.environment = environment
        self._scalings: dict[LinkEndType, np.ndarray] = {}
        self._light_time_scaling = None

    def direct_gradients(self, state_tx: np.ndarray, state_rx: np.ndarray
                         ) -> tuple[np.ndarray, np.ndarray]:
        """Gradients (D x 6) of the observable w.r.t. transmitter and receiver states."""
        raise NotImplementedError

    def update(self, times, states, reference_link_end, ideal_value):
        t_tx, t_rx = times
        state_tx, state_rx = states
        grad_tx, grad_rx = self.direct_gradients(state_tx, state_rx)

        los = state_rx[0:3] - state_tx[0:3]
        r_hat = los / np.linalg.norm(los)

        if reference_link_end == LinkEndType.RECEIVER:
            free_end, t_free, state_free, grad_free, sign = (
                LinkEndType.TRANSMITTER, t_tx, state_tx, grad_tx, -1.0)
        else:
            free_end, t_free, state_free, grad_free, sign = (
                LinkEndType.RECEIVER, t_rx, state_rx, grad_rx, 1.0)

        acceleration = self.environment.acceleration_of(self.link_ends[free_end], t_free)
        state_rate = np.concatenate([state_free[3:6], acceleration])
        beta = np.dot(r_hat, state_free[3:6]) / C_LIGHT

        # Observable change per second of light time
        light_time_sensitivity = grad_free @ (sign * state_rate)
        light_time_gradient = np.concatenate([r_hat / (C_LIGHT * (1.0 - beta)), np.zeros(3)])

        self._scalings = {
            LinkEndType.TRANSMITTER: grad_tx - np.outer(light_time_sensitivity, light_time_gradient),
            LinkEndType.RECEIVER: grad_rx + np.outer(light_time_sensitivity, light_time_gradient),
        }
        self._light_time_scaling = (light_time_sensitivity / (1.0 - beta)
                                    + self.range_light_time_factor * C_LIGHT)

    def scaling(self, link_end_type):
        return self._scalings[link_end_type]

    def light_time_correction_scaling(self):
        return self._light_time_scaling


class OneWayRangeScaling(OneWayLinkPositionPartialScaling):
    observable_type = ObservableType.ONE_WAY_RANGE
    range_light_time_factor = 1.0

    def direct_gradients(self, state_tx, state_rx):
        los = state_rx[0:3] - state_tx[0:3]
        r_hat = los / np.linalg.norm(los)
        grad_rx = np.zeros((1, 6))
        grad_rx[0, 0:3] = r_hat
        return -grad_rx, grad_rx


class OneWayDopplerScaling(OneWayLinkPositionPartialScaling):
    observable_type = ObservableType.ONE_WAY_DOPPLER

    def direct_gradients(self, state_tx, state_rx):
        los = state_rx[0:3] - state_tx[0:3]
        rho = np.linalg.norm(los)
        r_hat = los / rho
        v_tx, v_rx = state_tx[3:6], state_rx[3:6]
        beta_tx = np.dot(r_hat, v_tx) / C_LIGHT
        beta_rx = np.dot(r_hat, v_rx) / C_LIGHT

        s, ds = doppler_series(beta_rx)
        dD_dbeta_tx = -1.0 - s
        dD_dbeta_rx = ds * (1.0 - beta_tx)

        # d(r_hat . v)/d(r_rx) = v^T (I - r_hat r_hat^T) / rho
        projector = (np.eye(3) - np.outer(r_hat, r_hat)) / (rho * C_LIGHT)
        dbeta_tx_dr_rx = v_tx @ projector
        dbeta_rx_dr_rx = v_rx @ projector

        d_position_rx = dD_dbeta_tx * dbeta_tx_dr_rx + dD_dbeta_rx * dbeta_rx_dr_rx

        grad_rx = np.zeros((1, 6))
        grad_tx = np.zeros((1, 6))
        grad_rx[0, 0:3] = d_position_rx
        grad_tx[0, 0:3] = -d_position_rx
        grad_rx[0, 3:6] = dD_dbeta_rx * r_hat / C_LIGHT
        grad_tx[0, 3:6] = dD_dbeta_tx * r_hat / C_LIGHT
        return grad_tx, grad_rx


class AngularPositionScaling(OneWayLinkPositionPartialScaling):
    observable_type = ObservableType.ANGULAR_POSITION

    def direct_gradients(self, state_tx, state_rx):
        e = state_tx[0:3] - state_rx[0:3]
        rho_xy2 = e[0] ** 2 + e[1] ** 2
        rho_xy = np.sqrt(rho_xy2)
        rho2 = rho_xy2 + e[2] ** 2

        d_ra = np.array([-e[1], e[0], 0.0]) / rho_xy2
        d_dec = np.array([-e[0] * e[2], -e[1] * e[2], rho_xy2]) / (rho2 * rho_xy)

        grad_tx = np.zeros((2, 6))
        grad_tx[0, 0:3] = d_ra
        grad_tx[1, 0:3] = d_dec
        return grad_tx, -grad_tx


class PositionObservableScaling(PositionPartialScaling):
    """Cartesian position of the observed body: d(obs)/d(state) = [I 0]."""

    observable_type = ObservableType.POSITION_OBSERVABLE

    def __init__(self, link_ends: LinkEnds, environment: Environment):
        self.link_ends = link_ends
        self.environment = environment

    def update(self, times, states, reference_link_end, ideal_value):
        pass

    def scaling(self, link_end_type):
        if link_end_type != LinkEndType.OBSERVED_BODY:
            raise KeyError(link_end_type)
        return np.hstack([np.eye(3), np.zeros((3, 3))])


_SCALING_CLASSES = {
    ObservableType.ONE_WAY_RANGE: OneWayRangeScaling,
    ObservableType.ONE_WAY_DOPPLER: OneWayDopplerScaling,
    ObservableType.ANGULAR_POSITION: AngularPositionScaling,
    ObservableType.POSITION_OBSERVABLE: PositionObservableScaling,
}


def create_position_partial_scaling(observable_type: ObservableType,
                                    link_ends: LinkEnds,
                                    environment: Environment) -> PositionPartialScaling:
    """Scaling object for an observable type and link ends."""
    link_ends.validate_for(observable_type)
    return _SCALING_CLASSES[observable_type](link_ends, environment)
