"""
Foundational data types for orbit determination.

All observation, settings and result data flows through these enums and
dataclasses.
Convention:
    - Distances: km
    - Time: seconds since the environment reference epoch
    - Velocity: km/s
    - Angles: radians
    - Doppler: dimensionless (df_B/df_A - 1)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Union

import numpy as np

from .errors import InvalidLinkEndConfiguration


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ObservableType(Enum):
    """Observable identifiers."""
    ONE_WAY_RANGE = auto()
    ONE_WAY_DOPPLER = auto()
    ANGULAR_POSITION = auto()       # [right ascension, declination]
    POSITION_OBSERVABLE = auto()    # Cartesian position of a single body


class LinkEndType(Enum):
    """Role of a participant in an observation."""
    TRANSMITTER = auto()
    RECEIVER = auto()
    OBSERVED_BODY = auto()


class LightTimeCorrectionType(Enum):
    """Light-time correction identifiers."""
    FIRST_ORDER_RELATIVISTIC = auto()


class ObservationBiasType(Enum):
    """System-dependent observation error identifiers."""
    CONSTANT_ADDITIVE = auto()
    CONSTANT_RELATIVE = auto()      # bias = value * ideal observable


class ParameterType(Enum):
    """Estimatable parameter identifiers."""
    INITIAL_BODY_STATE = auto()
    GRAVITATIONAL_PARAMETER = auto()
    RADIATION_PRESSURE_COEFFICIENT = auto()
    DRAG_COEFFICIENT = auto()
    CONSTANT_ADDITIVE_OBSERVATION_BIAS = auto()
    CONSTANT_RELATIVE_OBSERVATION_BIAS = auto()
    GROUND_STATION_POSITION = auto()


class ShadowModel(Enum):
    """Eclipse shadow model type."""
    NONE = auto()
    CYLINDRICAL = auto()
    CONICAL = auto()


class PropagationStatus(Enum):
    """Lifecycle of the variational equations solver for one iteration."""
    NOT_STARTED = auto()
    INTEGRATING = auto()
    CONVERGED = auto()
    FAILED = auto()


class TerminationReason(Enum):
    """Why an estimation run stopped."""
    MAXIMUM_ITERATIONS = auto()
    RESIDUAL_CHANGE = auto()
    MINIMUM_RESIDUAL = auto()
    PROPAGATION_FAILURE = auto()
    SINGULAR_NORMAL_EQUATIONS = auto()


# ---------------------------------------------------------------------------
# Observable properties
# ---------------------------------------------------------------------------

_OBSERVABLE_NAMES = {
    ObservableType.ONE_WAY_RANGE: "OneWayRange",
    ObservableType.ONE_WAY_DOPPLER: "OneWayDoppler",
    ObservableType.ANGULAR_POSITION: "AngularPosition",
    ObservableType.POSITION_OBSERVABLE: "CartesianPosition",
}

_OBSERVABLE_SIZES = {
    ObservableType.ONE_WAY_RANGE: 1,
    ObservableType.ONE_WAY_DOPPLER: 1,
    ObservableType.ANGULAR_POSITION: 2,
    ObservableType.POSITION_OBSERVABLE: 3,
}

# Ordered: the position in the tuple is the index of the link end in the
# link-end times/states returned by an observation model.
_LINK_END_ORDER = {
    ObservableType.ONE_WAY_RANGE: (LinkEndType.TRANSMITTER, LinkEndType.RECEIVER),
    ObservableType.ONE_WAY_DOPPLER: (LinkEndType.TRANSMITTER, LinkEndType.RECEIVER),
    ObservableType.ANGULAR_POSITION: (LinkEndType.TRANSMITTER, LinkEndType.RECEIVER),
    ObservableType.POSITION_OBSERVABLE: (LinkEndType.OBSERVED_BODY,),
}


def observable_name(observable_type: ObservableType) -> str:
    """Name string associated with an observable type."""
    return _OBSERVABLE_NAMES[observable_type]


def observable_type_from_name(name: str) -> ObservableType:
    """Observable type associated with a name string.

    Raises:
        ValueError: If no observable has this name.
    """
    for observable_type, observable_name_ in _OBSERVABLE_NAMES.items():
        if observable_name_ == name:
            return observable_type
    raise ValueError(f"Could not find observable name {name!r}")


def observable_size(observable_type: ObservableType) -> int:
    """Number of scalar components of a single observation."""
    return _OBSERVABLE_SIZES[observable_type]


def required_link_end_types(observable_type: ObservableType) -> tuple[LinkEndType, ...]:
    """Link-end roles an observable needs, in link-end index order."""
    return _LINK_END_ORDER[observable_type]


def link_end_index(observable_type: ObservableType, link_end_type: LinkEndType) -> int:
    """Index of a link end in the times/states list of an observable.

    Raises:
        InvalidLinkEndConfiguration: If the role does not take part in the observable.
    """
    order = _LINK_END_ORDER[observable_type]
    if link_end_type not in order:
        raise InvalidLinkEndConfiguration(
            f"Link end {link_end_type.name} does not take part in "
            f"{observable_name(observable_type)} observables"
        )
    return order.index(link_end_type)


# ---------------------------------------------------------------------------
# Link ends
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LinkEndId:
    """A body, or a reference point (ground station) on a body.

    Attributes:
        body: Name of the body.
        reference_point: Name of the ground station on the body, or None
            for the body's centre of mass.
    """
    body: str
    reference_point: Optional[str] = None

    def __str__(self) -> str:
        if self.reference_point is None:
            return self.body
        return f"{self.body}/{self.reference_point}"


LinkEndLike = Union[LinkEndId, str, tuple]


def _as_link_end_id(value: LinkEndLike) -> LinkEndId:
    if isinstance(value, LinkEndId):
        return value
    if isinstance(value, str):
        return LinkEndId(value)
    return LinkEndId(*value)


class LinkEnds(Mapping):
    """Immutable, hashable mapping from link-end role to participant.

    Values may be given as LinkEndId, a body name, or a (body, station) tuple.

    Example:
        LinkEnds({LinkEndType.TRANSMITTER: ("Earth", "Station1"),
                  LinkEndType.RECEIVER: "Vehicle"})
    """

    def __init__(self, link_ends: Mapping):
        ends = {}
        for role, value in link_ends.items():
            if not isinstance(role, LinkEndType):
                raise InvalidLinkEndConfiguration(f"{role!r} is not a link end type")
            ends[role] = _as_link_end_id(value)
        self._ends = dict(sorted(ends.items(), key=lambda item: item[0].value))
        self._hash = hash(frozenset(self._ends.items()))

    def __getitem__(self, role: LinkEndType) -> LinkEndId:
        return self._ends[role]

    def __iter__(self):
        return iter(self._ends)

    def __len__(self) -> int:
        return len(self._ends)

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other) -> bool:
        if isinstance(other, LinkEnds):
            return self._ends == other._ends
        return NotImplemented

    def __repr__(self) -> str:
        inner = ", ".join(f"{role.name}: {end}" for role, end in self._ends.items())
        return f"LinkEnds({{{inner}}})"

    def bodies(self) -> set[str]:
        """Names of all bodies participating in these link ends."""
        return {end.body for end in self._ends.values()}

    def validate_for(self, observable_type: ObservableType) -> None:
        """Check that exactly the roles required by an observable are present.

        Raises:
            InvalidLinkEndConfiguration: On missing or superfluous roles.
        """
        required = set(required_link_end_types(observable_type))
        present = set(self._ends)
        if present != required:
            missing = sorted(r.name for r in required - present)
            extra = sorted(r.name for r in present - required)
            raise InvalidLinkEndConfiguration(
                f"Error when making {observable_name(observable_type)} model: "
                f"missing link ends {missing}, unexpected link ends {extra}"
            )


# ---------------------------------------------------------------------------
# Orbital Elements
# ---------------------------------------------------------------------------

@dataclass
class OrbitalElements:
    """Classical Keplerian orbital elements.

    Attributes:
        a: Semi-major axis [km].
        e: Eccentricity.
        i: Inclination [rad].
        raan: Right ascension of ascending node [rad].
        aop: Argument of perigee [rad].
        ta: True anomaly [rad].
    """
    a: float
    e: float
    i: float
    raan: float
    aop: float
    ta: float


# ---------------------------------------------------------------------------
# Observation settings
# ---------------------------------------------------------------------------

@dataclass
class LightTimeCorrectionSettings:
    """Base settings for a light-time correction."""
    correction_type: LightTimeCorrectionType


@dataclass
class FirstOrderRelativisticCorrectionSettings(LightTimeCorrectionSettings):
    """First-order relativistic (Shapiro) light-time correction.

    Attributes:
        perturbing_bodies: Names of the bodies whose gravity delays the signal.
    """
    correction_type: LightTimeCorrectionType = field(
        default=LightTimeCorrectionType.FIRST_ORDER_RELATIVISTIC, init=False
    )
    perturbing_bodies: list[str] = field(default_factory=list)


@dataclass
class ObservationBiasSettings:
    """Settings for a constant observation bias.

    Attributes:
        bias_type: Additive or relative bias.
        value: Bias vector, one entry per observable component.
    """
    bias_type: ObservationBiasType
    value: np.ndarray

    def __post_init__(self):
        self.value = np.atleast_1d(np.asarray(self.value, dtype=float))


@dataclass
class ObservationSettings:
    """Settings for one observable type and set of link ends.

    Attributes:
        observable_type: Observable to model.
        light_time_corrections: Corrections applied, in order, in the
            light-time equation.
        bias_settings: Optional observation bias.
    """
    observable_type: ObservableType
    light_time_corrections: list[LightTimeCorrectionSettings] = field(default_factory=list)
    bias_settings: Optional[ObservationBiasSettings] = None


# ---------------------------------------------------------------------------
# Observation data
# ---------------------------------------------------------------------------

@dataclass
class ObservationBatch:
    """Time-ordered observations for one observable type and set of link ends.

    Attributes:
        observable_type: Observable type of all entries.
        link_ends: Link ends of all entries.
        times: Observation times [s], shape (K,).
        observations: Observed values, shape (K, D) with D the observable size.
        weights: Non-negative weights, shape (K,). Defaults to ones.
        reference_link_end: Link end whose time is the observation time.
    """
    observable_type: ObservableType
    link_ends: LinkEnds
    times: np.ndarray
    observations: np.ndarray
    weights: Optional[np.ndarray] = None
    reference_link_end: LinkEndType = LinkEndType.RECEIVER

    def __post_init__(self):
        self.times = np.atleast_1d(np.asarray(self.times, dtype=float))
        size = observable_size(self.observable_type)
        self.observations = np.asarray(self.observations, dtype=float).reshape(
            len(self.times), size
        )
        if self.weights is None:
            self.weights = np.ones(len(self.times))
        else:
            self.weights = np.broadcast_to(
                np.asarray(self.weights, dtype=float), self.times.shape
            ).copy()
        if np.any(self.weights < 0.0):
            raise ValueError("Observation weights must be non-negative")
        if self.observable_type is ObservableType.POSITION_OBSERVABLE:
            self.reference_link_end = LinkEndType.OBSERVED_BODY

    @property
    def n_observations(self) -> int:
        return len(self.times)

    @property
    def observable_size(self) -> int:
        return self.observations.shape[1]

    @property
    def flat_observations(self) -> np.ndarray:
        """Observations stacked time-major, shape (K*D,)."""
        return self.observations.reshape(-1)

    @property
    def flat_weights(self) -> np.ndarray:
        """Weights repeated per observable component, shape (K*D,)."""
        return np.repeat(self.weights, self.observable_size)
