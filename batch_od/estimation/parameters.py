"""
Estimatable parameters.

A parameter is an immutable descriptor: its type plus the body, station or
observable it is attached to. Values are never held by the descriptor; they
are read from and written into the Environment, so every model that resolves
the same body sees an update immediately.

The EstimatedParameterSet fixes the ordering (initial states first) and the
index range of each entry in the global parameter vector for a run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..core.environment import Environment
from ..core.errors import InvalidParameterSettings
from ..core.types import (
    LinkEnds, ObservableType, ObservationBiasType, ParameterType,
    observable_name, observable_size
)


@dataclass(frozen=True)
class EstimatableParameter:
    """Identifier of one estimated quantity.

    Attributes:
        parameter_type: Kind of parameter.
        body: Body the parameter belongs to (None for observation biases).
        reference_point: Ground station name for station positions.
        observable_type: Observable of an observation bias.
        link_ends: Link ends of an observation bias.
    """
    parameter_type: ParameterType
    body: Optional[str] = None
    reference_point: Optional[str] = None
    observable_type: Optional[ObservableType] = None
    link_ends: Optional[LinkEnds] = None

    @property
    def size(self) -> int:
        """Number of scalar entries of this parameter."""
        if self.parameter_type == ParameterType.INITIAL_BODY_STATE:
            return 6
        elif self.parameter_type == ParameterType.GROUND_STATION_POSITION:
            return 3
        elif self.parameter_type in (ParameterType.CONSTANT_ADDITIVE_OBSERVATION_BIAS,
                                     ParameterType.CONSTANT_RELATIVE_OBSERVATION_BIAS):
            return observable_size(self.observable_type)
        return 1

    @property
    def is_initial_state(self) -> bool:
        return self.parameter_type == ParameterType.INITIAL_BODY_STATE

    @property
    def is_observation_bias(self) -> bool:
        return self.parameter_type in (ParameterType.CONSTANT_ADDITIVE_OBSERVATION_BIAS,
                                       ParameterType.CONSTANT_RELATIVE_OBSERVATION_BIAS)

    def describe(self) -> str:
        """Human-readable description."""
        name = self.parameter_type.name.lower().replace("_", " ")
        if self.is_observation_bias:
            return f"{name} ({observable_name(self.observable_type)}, {self.link_ends!r})"
        if self.reference_point is not None:
            return f"{name} of {self.body}/{self.reference_point}"
        return f"{name} of {self.body}"


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def initial_translational_state(body: str) -> EstimatableParameter:
    return EstimatableParameter(ParameterType.INITIAL_BODY_STATE, body)


def gravitational_parameter(body: str) -> EstimatableParameter:
    return EstimatableParameter(ParameterType.GRAVITATIONAL_PARAMETER, body)


def radiation_pressure_coefficient(body: str) -> EstimatableParameter:
    return EstimatableParameter(ParameterType.RADIATION_PRESSURE_COEFFICIENT, body)


def drag_coefficient(body: str) -> EstimatableParameter:
    return EstimatableParameter(ParameterType.DRAG_COEFFICIENT, body)


def constant_additive_observation_bias(link_ends: LinkEnds,
                                       observable_type: ObservableType
                                       ) -> EstimatableParameter:
    return EstimatableParameter(ParameterType.CONSTANT_ADDITIVE_OBSERVATION_BIAS,
                                observable_type=observable_type, link_ends=link_ends)


def constant_relative_observation_bias(link_ends: LinkEnds,
                                       observable_type: ObservableType
                                       ) -> EstimatableParameter:
    return EstimatableParameter(ParameterType.CONSTANT_RELATIVE_OBSERVATION_BIAS,
                                observable_type=observable_type, link_ends=link_ends)


def ground_station_position(body: str, station: str) -> EstimatableParameter:
    return EstimatableParameter(ParameterType.GROUND_STATION_POSITION, body, station)


def bias_type_of(parameter: EstimatableParameter) -> ObservationBiasType:
    """Observation bias type that a bias parameter estimates."""
    if parameter.parameter_type == ParameterType.CONSTANT_ADDITIVE_OBSERVATION_BIAS:
        return ObservationBiasType.CONSTANT_ADDITIVE
    elif parameter.parameter_type == ParameterType.CONSTANT_RELATIVE_OBSERVATION_BIAS:
        return ObservationBiasType.CONSTANT_RELATIVE
    raise InvalidParameterSettings(f"{parameter.describe()} is not an observation bias")


# ---------------------------------------------------------------------------
# Value access
# ---------------------------------------------------------------------------

def get_parameter_value(parameter: EstimatableParameter,
                        environment: Environment) -> np.ndarray:
    """Current value of a parameter, read from the environment."""
    ptype = parameter.parameter_type
    if ptype == ParameterType.INITIAL_BODY_STATE:
        value = environment.body(parameter.body).initial_state
    elif ptype == ParameterType.GRAVITATIONAL_PARAMETER:
        value = environment.body(parameter.body).gravitational_parameter
    elif ptype == ParameterType.RADIATION_PRESSURE_COEFFICIENT:
        value = environment.body(parameter.body).radiation_pressure.cr
    elif ptype == ParameterType.DRAG_COEFFICIENT:
        value = environment.body(parameter.body).drag.cd
    elif parameter.is_observation_bias:
        value = environment.observation_bias(parameter.observable_type, parameter.link_ends)
    elif ptype == ParameterType.GROUND_STATION_POSITION:
        value = environment.body(parameter.body).ground_stations[parameter.reference_point]
    else:
        raise InvalidParameterSettings(f"Unknown parameter type {ptype}")
    return np.atleast_1d(np.asarray(value, dtype=float)).copy()


def set_parameter_value(parameter: EstimatableParameter,
                        environment: Environment, value: np.ndarray) -> None:
    """Write a parameter value into the environment."""
    value = np.atleast_1d(np.asarray(value, dtype=float))
    if value.shape != (parameter.size,):
        raise InvalidParameterSettings(
            f"Value of {parameter.describe()} must have {parameter.size} entries, "
            f"got {value.shape}"
        )
    ptype = parameter.parameter_type
    if ptype == ParameterType.INITIAL_BODY_STATE:
        environment.body(parameter.body).initial_state = value.copy()
    elif ptype == ParameterType.GRAVITATIONAL_PARAMETER:
        environment.body(parameter.body).gravitational_parameter = float(value[0])
    elif ptype == ParameterType.RADIATION_PRESSURE_COEFFICIENT:
        environment.body(parameter.body).radiation_pressure.cr = float(value[0])
    elif ptype == ParameterType.DRAG_COEFFICIENT:
        environment.body(parameter.body).drag.cd = float(value[0])
    elif parameter.is_observation_bias:
        environment.set_observation_bias(parameter.observable_type, parameter.link_ends, value)
    elif ptype == ParameterType.GROUND_STATION_POSITION:
        environment.body(parameter.body).add_ground_station(parameter.reference_point, value)
    else:
        raise InvalidParameterSettings(f"Unknown parameter type {ptype}")


def _check_parameter_backing(parameter: EstimatableParameter,
                             environment: Environment) -> None:
    """Raise InvalidParameterSettings if the environment cannot hold the value."""
    ptype = parameter.parameter_type
    if parameter.is_observation_bias:
        if parameter.observable_type is None or parameter.link_ends is None:
            raise InvalidParameterSettings(
                f"{parameter.describe()} needs an observable type and link ends")
        return

    if parameter.body not in environment:
        raise InvalidParameterSettings(
            f"Body {parameter.body!r} of {parameter.describe()} not in environment")
    body = environment.body(parameter.body)
    if ptype == ParameterType.INITIAL_BODY_STATE and body.initial_state is None:
        raise InvalidParameterSettings(f"Body {body.name!r} has no initial state")
    elif ptype == ParameterType.RADIATION_PRESSURE_COEFFICIENT and body.radiation_pressure is None:
        raise InvalidParameterSettings(f"Body {body.name!r} has no radiation pressure properties")
    elif ptype == ParameterType.DRAG_COEFFICIENT and body.drag is None:
        raise InvalidParameterSettings(f"Body {body.name!r} has no drag properties")
    elif (ptype == ParameterType.GROUND_STATION_POSITION
          and parameter.reference_point not in body.ground_stations):
        raise InvalidParameterSettings(
            f"Body {body.name!r} has no ground station {parameter.reference_point!r}")


# ---------------------------------------------------------------------------
# Parameter set
# ---------------------------------------------------------------------------

class EstimatedParameterSet:
    """Ordered collection of estimated parameters bound to an environment.

    Initial translational states come first, in the order given; all other
    parameters follow in the order given. The layout is fixed at construction.

    Attributes:
        environment: Store the parameter values are read from and written to.
        parameters: Ordered parameter descriptors.
    """

    def __init__(self, parameters: list[EstimatableParameter],
                 environment: Environment):
        seen = set()
        for parameter in parameters:
            if parameter in seen:
                raise InvalidParameterSettings(
                    f"Parameter {parameter.describe()} is estimated more than once")
            seen.add(parameter)
            _check_parameter_backing(parameter, environment)

        self.environment = environment
        self.parameters = ([p for p in parameters if p.is_initial_state]
                           + [p for p in parameters if not p.is_initial_state])

        self._ranges: dict[EstimatableParameter, tuple[int, int]] = {}
        start = 0
        for parameter in self.parameters:
            self._ranges[parameter] = (start, parameter.size)
            start += parameter.size
        self._count = start

    def __len__(self) -> int:
        return len(self.parameters)

    def __iter__(self):
        return iter(self.parameters)

    @property
    def parameter_count(self) -> int:
        """Total number of scalar entries N."""
        return self._count

    @property
    def initial_state_parameters(self) -> list[EstimatableParameter]:
        return [p for p in self.parameters if p.is_initial_state]

    @property
    def non_state_parameters(self) -> list[EstimatableParameter]:
        return [p for p in self.parameters if not p.is_initial_state]

    @property
    def estimated_bodies(self) -> list[str]:
        """Bodies whose initial state is estimated, in parameter order."""
        return [p.body for p in self.initial_state_parameters]

    @property
    def initial_state_size(self) -> int:
        return 6 * len(self.initial_state_parameters)

    def index_range(self, parameter: EstimatableParameter) -> tuple[int, int]:
        """Start index and size of a parameter in the global vector."""
        try:
            return self._ranges[parameter]
        except KeyError:
            raise InvalidParameterSettings(
                f"Parameter {parameter.describe()} is not estimated") from None

    def get_values(self) -> np.ndarray:
        """Concatenated current values, shape (N,)."""
        if not self.parameters:
            return np.zeros(0)
        return np.concatenate([get_parameter_value(p, self.environment)
                               for p in self.parameters])

    def set_values(self, values: np.ndarray) -> None:
        """Write a full parameter vector into the environment."""
        values = np.asarray(values, dtype=float)
        if values.shape != (self._count,):
            raise InvalidParameterSettings(
                f"Expected {self._count} parameter values, got {values.shape}")
        for parameter in self.parameters:
            start, size = self._ranges[parameter]
            set_parameter_value(parameter, self.environment, values[start:start + size])

    def apply_correction(self, correction: np.ndarray) -> np.ndarray:
        """Add a correction to the current values and return the new vector."""
        new_values = self.get_values() + np.asarray(correction, dtype=float)
        self.set_values(new_values)
        return new_values

    def describe(self) -> str:
        """One line per parameter with its index range."""
        lines = []
        for parameter in self.parameters:
            start, size = self._ranges[parameter]
            lines.append(f"[{start}:{start + size}] {parameter.describe()}")
        return "\n".join(lines)

    def entry_names(self) -> list[str]:
        """Description of every scalar entry of the parameter vector."""
        names = []
        for parameter in self.parameters:
            description = parameter.describe()
            if parameter.size == 1:
                names.append(description)
            else:
                names.extend(f"{description} [{i}]" for i in range(parameter.size))
        return names
