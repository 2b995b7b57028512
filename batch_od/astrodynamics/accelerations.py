"""
Acceleration models.

Each model acts on one propagated body and is exerted by one body whose
state comes from an ephemeris. Models hold body names only and resolve
masses, properties and states from the Environment at evaluation time.

All models expose

    acceleration_and_partials(state, t, environment, parameters)
        -> (a, da_dstate (3x6), [da_dp or None for each parameter])

where ``state`` is the inertial state of the undergoing body and
``parameters`` the non-initial-state estimated parameters. A None entry
means the acceleration does not depend on that parameter.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..core.constants import J2, R_EARTH
from ..core.environment import Environment
from ..core.types import ParameterType
from .drag import exponential_drag
from .gravity import two_body, zonal_j2
from .srp import cannonball_srp, compute_shadow_factor
from .thirdbody import third_body_acceleration


def _position_jacobian(da_dr: np.ndarray, da_dv: Optional[np.ndarray] = None) -> np.ndarray:
    """Stack position and velocity Jacobians into a 3x6 matrix."""
    da_dx = np.zeros((3, 6))
    da_dx[:, 0:3] = da_dr
    if da_dv is not None:
        da_dx[:, 3:6] = da_dv
    return da_dx


class AccelerationModel:
    """Base class for acceleration models.

    Attributes:
        body_undergoing: Name of the accelerated (propagated) body.
        body_exerting: Name of the body causing the acceleration.
    """

    def __init__(self, body_undergoing: str, body_exerting: str):
        self.body_undergoing = body_undergoing
        self.body_exerting = body_exerting

    def acceleration_and_partials(self, state: np.ndarray, t: float,
                                  environment: Environment, parameters: list
                                  ) -> tuple[np.ndarray, np.ndarray, list]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return (f"{type(self).__name__}({self.body_undergoing!r} <- "
                f"{self.body_exerting!r})")


# ---------------------------------------------------------------------------
# Gravity
# ---------------------------------------------------------------------------

class PointMassGravity(AccelerationModel):
    """Point-mass attraction of the exerting body."""

    def acceleration_and_partials(self, state, t, environment, parameters):
        mu = environment.body(self.body_exerting).gravitational_parameter
        r = state[0:3] - environment.body_state(self.body_exerting, t)[0:3]
        a, da_dr = two_body(r, mu)

        partials = []
        for parameter in parameters:
            if (parameter.parameter_type == ParameterType.GRAVITATIONAL_PARAMETER
                    and parameter.body == self.body_exerting):
                partials.append((a / mu).reshape(3, 1))
            else:
                partials.append(None)
        return a, _position_jacobian(da_dr), partials


class J2Gravity(AccelerationModel):
    """J2 zonal perturbation of the exerting body.

    The body's rotation axis is assumed aligned with the inertial z-axis.

    Attributes:
        j2: Unnormalized J2 coefficient.
        equatorial_radius_km: Reference radius [km].
    """

    def __init__(self, body_undergoing: str, body_exerting: str,
                 j2: float = J2, equatorial_radius_km: float = R_EARTH):
        super().__init__(body_undergoing, body_exerting)
        self.j2 = j2
        self.equatorial_radius_km = equatorial_radius_km

    def acceleration_and_partials(self, state, t, environment, parameters):
        mu = environment.body(self.body_exerting).gravitational_parameter
        r = state[0:3] - environment.body_state(self.body_exerting, t)[0:3]
        a, da_dr = zonal_j2(r, mu, self.equatorial_radius_km, self.j2)

        partials = []
        for parameter in parameters:
            if (parameter.parameter_type == ParameterType.GRAVITATIONAL_PARAMETER
                    and parameter.body == self.body_exerting):
                partials.append((a / mu).reshape(3, 1))
            else:
                partials.append(None)
        return a, _position_jacobian(da_dr), partials


class ThirdBodyGravity(AccelerationModel):
    """Third-body perturbation in a frame centred on ``central_body``.

    Attributes:
        central_body: Body at the origin of the propagation frame.
    """

    def __init__(self, body_undergoing: str, body_exerting: str, central_body: str):
        super().__init__(body_undergoing, body_exerting)
        self.central_body = central_body

    def acceleration_and_partials(self, state, t, environment, parameters):
        mu = environment.body(self.body_exerting).gravitational_parameter
        r_central = environment.body_state(self.central_body, t)[0:3]
        r_sat = state[0:3] - r_central
        r_body = environment.body_state(self.body_exerting, t)[0:3] - r_central
        a, da_dr = third_body_acceleration(r_sat, r_body, mu)

        partials = []
        for parameter in parameters:
            if (parameter.parameter_type == ParameterType.GRAVITATIONAL_PARAMETER
                    and parameter.body == self.body_exerting):
                partials.append((a / mu).reshape(3, 1))
            else:
                partials.append(None)
        return a, _position_jacobian(da_dr), partials


# ---------------------------------------------------------------------------
# Non-gravitational
# ---------------------------------------------------------------------------

class CannonballRadiationPressure(AccelerationModel):
    """Cannonball radiation pressure from the undergoing body's properties.

    The source and occulting bodies are taken from the body's
    RadiationPressureProperties.
    """

    def __init__(self, body_undergoing: str, source_body: str = "Sun"):
        super().__init__(body_undergoing, source_body)

    def acceleration_and_partials(self, state, t, environment, parameters):
        props = environment.body(self.body_undergoing).radiation_pressure
        r_occulting = environment.body_state(props.occulting_body, t)[0:3]
        r_sat = state[0:3] - r_occulting
        r_sun = environment.body_state(self.body_exerting, t)[0:3] - r_occulting

        shadow = compute_shadow_factor(r_sat, r_sun, props.occulting_radius_km,
                                       props.shadow_model)
        # Linear in Cr: evaluate for Cr = 1 and scale
        a_unit, da_dr_unit = cannonball_srp(r_sat, r_sun, 1.0,
                                            props.area_over_mass, shadow)
        a = props.cr * a_unit

        partials = []
        for parameter in parameters:
            if (parameter.parameter_type == ParameterType.RADIATION_PRESSURE_COEFFICIENT
                    and parameter.body == self.body_undergoing):
                partials.append(a_unit.reshape(3, 1))
            else:
                partials.append(None)
        return a, _position_jacobian(props.cr * da_dr_unit), partials


class ExponentialDrag(AccelerationModel):
    """Drag through the exponential atmosphere of the exerting body.

    The atmosphere co-rotates with the body's rotation model.
    """

    def __init__(self, body_undergoing: str, atmosphere_body: str = "Earth"):
        super().__init__(body_undergoing, atmosphere_body)

    def acceleration_and_partials(self, state, t, environment, parameters):
        props = environment.body(self.body_undergoing).drag
        central = environment.body(self.body_exerting)
        atmosphere = central.atmosphere

        relative = state - environment.body_state(self.body_exerting, t)
        r, v = relative[0:3], relative[3:6]
        altitude = np.linalg.norm(r) - atmosphere.body_radius_km
        if central.rotation_model is None:
            omega = np.zeros(3)
        else:
            omega = central.rotation_model.angular_velocity

        # Linear in Cd: evaluate for Cd = 1 and scale
        a_unit, da_dr_unit, da_dv_unit = exponential_drag(
            r, v, omega, atmosphere.density(altitude), atmosphere.scale_height_km,
            1.0, props.area_over_mass
        )
        a = props.cd * a_unit

        partials = []
        for parameter in parameters:
            if (parameter.parameter_type == ParameterType.DRAG_COEFFICIENT
                    and parameter.body == self.body_undergoing):
                partials.append(a_unit.reshape(3, 1))
            else:
                partials.append(None)
        return a, _position_jacobian(props.cd * da_dr_unit, props.cd * da_dv_unit), partials
