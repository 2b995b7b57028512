"""
Simulation environment.

A single store owns every body and its physical-model properties. Models
(accelerations, observation models, parameters) refer to bodies by name or
integer handle and resolve them at evaluation time, so parameter updates
written into the store are seen by every model without re-construction.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from .constants import (
    MJD_J2000, R_EARTH, RHO_REF_KG_M3, H_REF_KM, SCALE_HEIGHT_KM
)
from .errors import TimeOutOfRange
from .frames import body_fixed_to_inertial_state
from .types import LinkEndId, LinkEnds, ObservableType, ShadowModel


# ---------------------------------------------------------------------------
# Body properties
# ---------------------------------------------------------------------------

@dataclass
class RadiationPressureProperties:
    """Cannonball radiation pressure target properties.

    Attributes:
        cr: Reflectivity coefficient [dimensionless].
        area_m2: Cross-sectional area [m²].
        mass_kg: Mass [kg].
        source_body: Name of the radiating body.
        occulting_body: Name of the body casting the shadow.
        shadow_model: Eclipse model.
        occulting_radius_km: Radius of the occulting body [km].
    """
    cr: float
    area_m2: float
    mass_kg: float
    source_body: str = "Sun"
    occulting_body: str = "Earth"
    shadow_model: ShadowModel = ShadowModel.CYLINDRICAL
    occulting_radius_km: float = R_EARTH

    @property
    def area_over_mass(self) -> float:
        """Area-to-mass ratio [m²/kg]."""
        return self.area_m2 / self.mass_kg


@dataclass
class ExponentialAtmosphere:
    """Exponential atmosphere density model.

    Attributes:
        reference_density: Density at the reference altitude [kg/m³].
        reference_altitude_km: Reference altitude [km].
        scale_height_km: Density scale height [km].
        body_radius_km: Radius used to compute altitude [km].
    """
    reference_density: float = RHO_REF_KG_M3
    reference_altitude_km: float = H_REF_KM
    scale_height_km: float = SCALE_HEIGHT_KM
    body_radius_km: float = R_EARTH

    def density(self, altitude_km: float) -> float:
        """Atmospheric density [kg/m³] at an altitude [km]."""
        return self.reference_density * np.exp(
            -(altitude_km - self.reference_altitude_km) / self.scale_height_km
        )


@dataclass
class DragProperties:
    """Aerodynamic drag target properties.

    Attributes:
        cd: Drag coefficient [dimensionless].
        area_m2: Reference area [m²].
        mass_kg: Mass [kg].
        atmosphere_body: Name of the body whose atmosphere is traversed.
    """
    cd: float
    area_m2: float
    mass_kg: float
    atmosphere_body: str = "Earth"

    @property
    def area_over_mass(self) -> float:
        return self.area_m2 / self.mass_kg


@dataclass
class Body:
    """A body and all the physical-model data attached to it.

    Attributes:
        name: Unique body name.
        gravitational_parameter: GM [km³/s²].
        ephemeris: Object with ``state_at(t)``; for propagated bodies this is
            replaced by the current propagation history.
        rotation_model: Object with ``rotation_at(t) -> (R, dR)``.
        ground_stations: Body-fixed station positions [km], by name.
        radiation_pressure: Radiation pressure target properties.
        drag: Drag target properties.
        atmosphere: Atmosphere surrounding this body.
        initial_state: Initial state [km, km/s] for propagated bodies.
    """
    name: str
    gravitational_parameter: float = 0.0
    ephemeris: Optional[object] = None
    rotation_model: Optional[object] = None
    ground_stations: dict[str, np.ndarray] = field(default_factory=dict)
    radiation_pressure: Optional[RadiationPressureProperties] = None
    drag: Optional[DragProperties] = None
    atmosphere: Optional[ExponentialAtmosphere] = None
    initial_state: Optional[np.ndarray] = None

    def add_ground_station(self, name: str, position_body_fixed: np.ndarray) -> None:
        """Register a body-fixed reference point [km]."""
        self.ground_stations[name] = np.asarray(position_body_fixed, dtype=float).copy()


# ---------------------------------------------------------------------------
# Environment store
# ---------------------------------------------------------------------------

BodyKey = Union[int, str]


class Environment:
    """Store of all bodies, observation biases and temporary perturbations.

    Attributes:
        epoch_ref_mjd_tt: Epoch [MJD TT] corresponding to t = 0.
    """

    def __init__(self, epoch_ref_mjd_tt: float = MJD_J2000):
        self.epoch_ref_mjd_tt = epoch_ref_mjd_tt
        self._bodies: list[Body] = []
        self._handles: dict[str, int] = {}
        self._observation_biases: dict[tuple[ObservableType, LinkEnds], np.ndarray] = {}
        self._state_perturbations: dict[str, np.ndarray] = {}

    # ------------------------------------------------------------------
    # Bodies
    # ------------------------------------------------------------------

    def add_body(self, body: Body) -> int:
        """Add a body and return its handle."""
        if body.name in self._handles:
            raise ValueError(f"Body {body.name!r} already exists in environment")
        self._handles[body.name] = len(self._bodies)
        self._bodies.append(body)
        return self._handles[body.name]

    def handle(self, name: str) -> int:
        """Integer handle of a body."""
        try:
            return self._handles[name]
        except KeyError:
            raise KeyError(f"No body named {name!r} in environment") from None

    def body(self, key: BodyKey) -> Body:
        """Resolve a handle or name to its body."""
        if isinstance(key, str):
            key = self.handle(key)
        return self._bodies[key]

    def __contains__(self, name: str) -> bool:
        return name in self._handles

    @property
    def body_names(self) -> list[str]:
        return [b.name for b in self._bodies]

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def body_state(self, key: BodyKey, t: float) -> np.ndarray:
        """Inertial state of a body's centre at time t [s]."""
        body = self.body(key)
        if body.ephemeris is None:
            raise ValueError(f"Body {body.name!r} has no ephemeris")
        state = np.asarray(body.ephemeris.state_at(t), dtype=float)
        delta = self._state_perturbations.get(body.name)
        if delta is not None:
            state = state + delta
        return state

    def state_of(self, link_end: LinkEndId, t: float) -> np.ndarray:
        """Inertial state of a link end (body centre or ground station)."""
        state = self.body_state(link_end.body, t)
        if link_end.reference_point is None:
            return state
        body = self.body(link_end.body)
        R, dR = body.rotation_model.rotation_at(t)
        station = body.ground_stations[link_end.reference_point]
        return state + body_fixed_to_inertial_state(station, R, dR)

    def station_position_partial(self, link_end: LinkEndId, t: float) -> np.ndarray:
        """Partial of a station's inertial state w.r.t. its body-fixed position.

        Returns:
            6x3 matrix [R^T; dR^T].
        """
        body = self.body(link_end.body)
        R, dR = body.rotation_model.rotation_at(t)
        return np.vstack([R.T, dR.T])

    def acceleration_of(self, link_end: LinkEndId, t: float,
                        step_s: float = 1.0) -> np.ndarray:
        """Inertial acceleration of a link end by differencing velocities [km/s²].

        Central differences are used where the ephemeris covers t ± step_s.
        Near the ends of a bounded ephemeris (a propagated arc) the stencil
        becomes one-sided.

        Raises:
            TimeOutOfRange: The ephemeris covers neither side of t.
        """
        def velocity(epoch):
            return self.state_of(link_end, epoch)[3:6]

        try:
            v_plus = velocity(t + step_s)
        except TimeOutOfRange:
            return (velocity(t) - velocity(t - step_s)) / step_s
        try:
            v_minus = velocity(t - step_s)
        except TimeOutOfRange:
            return (v_plus - velocity(t)) / step_s
        return (v_plus - v_minus) / (2.0 * step_s)

    @contextmanager
    def perturbed_state(self, body_name: str, delta: np.ndarray):
        """Temporarily add a constant offset to a body's state history.

        Used by numerical partials; not safe to use concurrently.
        """
        previous = self._state_perturbations.get(body_name)
        base = np.zeros(6) if previous is None else previous
        self._state_perturbations[body_name] = base + np.asarray(delta, dtype=float)
        try:
            yield
        finally:
            if previous is None:
                del self._state_perturbations[body_name]
            else:
                self._state_perturbations[body_name] = previous

    # ------------------------------------------------------------------
    # Observation biases
    # ------------------------------------------------------------------

    def has_observation_bias(self, observable_type: ObservableType,
                             link_ends: LinkEnds) -> bool:
        return (observable_type, link_ends) in self._observation_biases

    def observation_bias(self, observable_type: ObservableType,
                         link_ends: LinkEnds) -> np.ndarray:
        """Current bias vector for an observable and link ends."""
        return self._observation_biases[(observable_type, link_ends)]

    def set_observation_bias(self, observable_type: ObservableType,
                             link_ends: LinkEnds, value: np.ndarray) -> None:
        self._observation_biases[(observable_type, link_ends)] = np.atleast_1d(
            np.asarray(value, dtype=float)
        ).copy()
