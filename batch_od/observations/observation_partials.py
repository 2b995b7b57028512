"""
Observation partials.

Partials with respect to link-end Cartesian states come from the
position-partial scaling; the observation manager chains them with Psi.
This module adds the *direct* partials: parameters that enter the
observable without going through the propagated states.

    - constant additive bias:     d(obs)/d(b) = I
    - constant relative bias:     d(obs)/d(b) = diag(ideal observable)
    - ground station position:    scaling(link end) @ [R^T; dR^T]
    - GM of a body that delays the signal (first-order relativistic
      correction): light-time-correction scaling * dt_body / GM
"""

from __future__ import annotations

import numpy as np

from ..core.environment import Environment
from ..core.errors import InvalidParameterSettings, PartialNotImplemented
from ..core.types import (
    LinkEndType, LinkEnds, ObservableType, ParameterType, observable_name,
    required_link_end_types
)
from ..estimation.parameters import EstimatableParameter, bias_type_of
from .light_time import FirstOrderRelativisticCorrection
from .position_partial_scaling import PositionPartialScaling


class DirectObservationPartial:
    """Partial of an observable w.r.t. one parameter, evaluated per observation.

    Attributes:
        parameter: The parameter differentiated against.
    """

    def __init__(self, parameter: EstimatableParameter):
        self.parameter = parameter

    def partial(self, scaling: PositionPartialScaling, times: list[float],
                states: list[np.ndarray], ideal_value: np.ndarray) -> np.ndarray:
        """Partial matrix, shape (D, parameter size)."""
        raise NotImplementedError


class ConstantAdditiveBiasPartial(DirectObservationPartial):
    def partial(self, scaling, times, states, ideal_value):
        return np.eye(len(ideal_value))


class ConstantRelativeBiasPartial(DirectObservationPartial):
    def partial(self, scaling, times, states, ideal_value):
        return np.diag(ideal_value)


class GroundStationPositionPartial(DirectObservationPartial):
    """Partial w.r.t. the body-fixed position of a station.

    Attributes:
        roles: Link-end roles (with their index) held by the station.
        environment: Source of body rotations.
        link_ends: Link ends of the observable.
    """

    def __init__(self, parameter: EstimatableParameter, roles: list[tuple[int, LinkEndType]],
                 link_ends: LinkEnds, environment: Environment):
        super().__init__(parameter)
        self.roles = roles
        self.link_ends = link_ends
        self.environment = environment

    def partial(self, scaling, times, states, ideal_value):
        total = np.zeros((len(ideal_value), 3))
        for index, role in self.roles:
            station_partial = self.environment.station_position_partial(
                self.link_ends[role], times[index])
            total += scaling.scaling(role) @ station_partial
        return total


class LightTimeGravitationalParameterPartial(DirectObservationPartial):
    """Partial w.r.t. the GM of a body in a relativistic light-time correction."""

    def __init__(self, parameter: EstimatableParameter,
                 corrections: list[FirstOrderRelativisticCorrection],
                 environment: Environment):
        super().__init__(parameter)
        self.corrections = corrections
        self.environment = environment

    def partial(self, scaling, times, states, ideal_value):
        mu = self.environment.body(self.parameter.body).gravitational_parameter
        delay = sum(c.body_contribution(self.parameter.body, states[0], states[1],
                                        times[0], times[1])
                    for c in self.corrections)
        return (scaling.light_time_correction_scaling() * delay / mu).reshape(-1, 1)


def create_observation_partials(observable_type: ObservableType, link_ends: LinkEnds,
                                model, parameters: list[EstimatableParameter],
                                environment: Environment
                                ) -> list[DirectObservationPartial]:
    """Direct partials of one observation model w.r.t. the given parameters.

    Parameters that influence the observable only through the propagated
    states get no entry here.

    Raises:
        PartialNotImplemented: If a parameter enters the observable in a way
            that has no analytic partial.
        InvalidParameterSettings: If an estimated bias does not match the
            bias type of the model.
    """
    partials = []
    for parameter in parameters:
        ptype = parameter.parameter_type
        if ptype == ParameterType.INITIAL_BODY_STATE:
            continue

        elif ptype == ParameterType.GRAVITATIONAL_PARAMETER:
            calculator = getattr(model, "light_time_calculator", None)
            if calculator is None:
                continue
            corrections = [c for c in calculator.corrections
                           if isinstance(c, FirstOrderRelativisticCorrection)
                           and parameter.body in c.perturbing_bodies]
            if corrections:
                partials.append(LightTimeGravitationalParameterPartial(
                    parameter, corrections, environment))

        elif ptype in (ParameterType.RADIATION_PRESSURE_COEFFICIENT,
                       ParameterType.DRAG_COEFFICIENT):
            continue

        elif ptype in (ParameterType.CONSTANT_ADDITIVE_OBSERVATION_BIAS,
                       ParameterType.CONSTANT_RELATIVE_OBSERVATION_BIAS):
            if parameter.observable_type != observable_type or parameter.link_ends != link_ends:
                continue
            if model.bias_type != bias_type_of(parameter):
                raise InvalidParameterSettings(
                    f"Estimated {parameter.describe()} but the model bias is "
                    f"{model.bias_type}"
                )
            if ptype == ParameterType.CONSTANT_ADDITIVE_OBSERVATION_BIAS:
                partials.append(ConstantAdditiveBiasPartial(parameter))
            elif observable_type == ObservableType.ANGULAR_POSITION:
                raise PartialNotImplemented(
                    f"Relative bias partial not implemented for "
                    f"{observable_name(observable_type)}"
                )
            else:
                partials.append(ConstantRelativeBiasPartial(parameter))

        elif ptype == ParameterType.GROUND_STATION_POSITION:
            roles = [(index, role) for index, role
                     in enumerate(required_link_end_types(observable_type))
                     if link_ends[role].body == parameter.body
                     and link_ends[role].reference_point == parameter.reference_point]
            if not roles:
                continue
            if observable_type == ObservableType.POSITION_OBSERVABLE:
                raise PartialNotImplemented(
                    "Ground station position partial not implemented for position observables"
                )
            partials.append(GroundStationPositionPartial(parameter, roles, link_ends, environment))

        else:
            raise PartialNotImplemented(f"No observation partial for {ptype}")

    return partials


def link_end_state_partial(scaling: PositionPartialScaling, link_ends: LinkEnds,
                           observable_type: ObservableType, body: str) -> np.ndarray:
    """Partial of the observable w.r.t. a body's state, summed over its link ends.

    Every link end on ``body`` is differentiated at its own time, so the
    result is the partial for a perturbation applied to the body's whole
    trajectory.
    """
    total = None
    for role in required_link_end_types(observable_type):
        if link_ends[role].body == body:
            term = scaling.scaling(role)
            total = term.copy() if total is None else total + term
    if total is None:
        raise KeyError(f"Body {body!r} is not part of link ends {link_ends!r}")
    return total
