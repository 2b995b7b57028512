"""
Solar Radiation Pressure - cannonball model.

Provides SRP acceleration and Jacobian for variational-equation integration,
plus cylindrical and conical shadow (eclipse) functions.

The cannonball model assumes a spherical spacecraft with constant
cross-section. The acceleration is:

    a = -nu * Cr * (A/m) * P_sun * (AU/d_sun)^2 * s_hat

where nu is the shadow factor, Cr is reflectivity, A/m is area-to-mass,
P_sun is solar pressure at 1 AU, d_sun is satellite-sun distance, and
s_hat is the satellite-to-sun unit vector.

Reference: Montenbruck & Gill, "Satellite Orbits", Sec. 3.4
"""

from __future__ import annotations

import numpy as np
from ..core.constants import SOLAR_PRESSURE_1AU, AU_KM, R_EARTH, R_SUN
from ..core.types import ShadowModel


def cannonball_srp(r_sat: np.ndarray, r_sun: np.ndarray,
                   cr: float, area_over_mass_m2_kg: float,
                   shadow_factor: float = 1.0
                   ) -> tuple[np.ndarray, np.ndarray]:
    """Cannonball SRP acceleration and Jacobian.

    Args:
        r_sat: Satellite position [km], shape (3,).
        r_sun: Sun position [km], shape (3,), in the same frame as r_sat.
        cr: Reflectivity coefficient (typically 1.2-1.8).
        area_over_mass_m2_kg: Area-to-mass ratio [m^2/kg].
        shadow_factor: Eclipse factor, 0=full shadow, 1=full sunlight.

    Returns:
        a: SRP acceleration [km/s^2], shape (3,).
        da_dr: Jacobian da/dr w.r.t. satellite position, shape (3,3).
    """
    if shadow_factor <= 0.0:
        return np.zeros(3), np.zeros((3, 3))

    # Vector from satellite to sun
    d = r_sun - r_sat
    d_mag = np.linalg.norm(d)
    if d_mag < 1e-6:
        return np.zeros(3), np.zeros((3, 3))

    # a = K * (r_sat - r_sun) / d^3, pointing away from the sun.
    # Cr * (A/m) * P_1AU is in m/s^2; /1000 converts to km/s^2.
    K = shadow_factor * cr * area_over_mass_m2_kg * SOLAR_PRESSURE_1AU * AU_KM ** 2 / 1000.0
    d3 = d_mag ** 3
    d5 = d_mag ** 5

    a = -K * d / d3
    da_dr = K * (np.eye(3) / d3 - 3.0 * np.outer(d, d) / d5)

    return a, da_dr


def shadow_function_cylindrical(r_sat: np.ndarray, r_sun: np.ndarray,
                                r_occulting: float = R_EARTH) -> float:
    """Cylindrical shadow model.

    Binary: 0.0 (full shadow) or 1.0 (full sunlight).
    The satellite is in shadow if it is behind the occulting body (anti-sun
    side) and its perpendicular distance to the body-Sun line is less than
    the body radius.

    Args:
        r_sat: Satellite position relative to the occulting body [km].
        r_sun: Sun position relative to the occulting body [km].
        r_occulting: Occulting body radius [km].

    Returns:
        Shadow factor: 0.0 or 1.0.
    """
    sun_hat = r_sun / np.linalg.norm(r_sun)

    along = np.dot(r_sat, sun_hat)
    if along >= 0.0:
        return 1.0

    perp = r_sat - along * sun_hat
    if np.linalg.norm(perp) < r_occulting:
        return 0.0
    return 1.0


def shadow_function_conical(r_sat: np.ndarray, r_sun: np.ndarray,
                            r_occulting: float = R_EARTH,
                            r_sun_radius_km: float = R_SUN
                            ) -> float:
    """Conical (penumbra/umbra) shadow model.

    Models the penumbral transition using the apparent angular sizes of the
    Sun and the occulting body as seen from the satellite.

    Args:
        r_sat: Satellite position relative to the occulting body [km].
        r_sun: Sun position relative to the occulting body [km].
        r_occulting: Occulting body radius [km].
        r_sun_radius_km: Solar radius [km].

    Returns:
        Shadow factor in [0, 1]. 1=full sun, 0=full umbra.
    """
    d_sun = np.linalg.norm(r_sun - r_sat)
    d_body = np.linalg.norm(r_sat)

    if d_sun < 1.0 or d_body < 1.0:
        return 1.0

    alpha_sun = np.arcsin(min(r_sun_radius_km / d_sun, 1.0))
    alpha_body = np.arcsin(min(r_occulting / d_body, 1.0))

    # Angular separation between Sun and body centres seen from the satellite
    cos_sep = np.dot(r_sun - r_sat, -r_sat) / (d_sun * d_body)
    sep = np.arccos(np.clip(cos_sep, -1.0, 1.0))

    if sep >= alpha_sun + alpha_body:
        return 1.0
    if sep <= alpha_body - alpha_sun:
        return 0.0

    # Penumbral transition, linear in separation
    pen_width = 2.0 * alpha_sun
    if pen_width < 1e-15:
        return float(sep > alpha_body)

    frac = (sep - (alpha_body - alpha_sun)) / pen_width
    return float(np.clip(frac, 0.0, 1.0))


def compute_shadow_factor(r_sat: np.ndarray, r_sun: np.ndarray,
                          r_occulting: float,
                          model: ShadowModel) -> float:
    """Compute shadow factor using the configured model.

    Args:
        r_sat: Satellite position relative to the occulting body [km].
        r_sun: Sun position relative to the occulting body [km].
        r_occulting: Occulting body radius [km].
        model: Shadow model type.

    Returns:
        Shadow factor in [0, 1].
    """
    if model == ShadowModel.NONE:
        return 1.0
    elif model == ShadowModel.CYLINDRICAL:
        return shadow_function_cylindrical(r_sat, r_sun, r_occulting)
    elif model == ShadowModel.CONICAL:
        return shadow_function_conical(r_sat, r_sun, r_occulting)
    return 1.0
