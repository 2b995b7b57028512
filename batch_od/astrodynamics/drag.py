"""
Atmospheric drag in a co-rotating exponential atmosphere.

    a = -1/2 * rho(h) * Cd * (A/m) * |v_rel| * v_rel,   v_rel = v - omega x r

rho [kg/m^3], A/m [m^2/kg] and v_rel [km/s] give 1/m * km^2/s^2; the factor
1000 converts the result to km/s^2.

Reference: Montenbruck & Gill, "Satellite Orbits", Sec. 3.5
"""

from __future__ import annotations

import numpy as np

from ..core.frames import skew


def exponential_drag(r: np.ndarray, v: np.ndarray, omega: np.ndarray,
                     density: float, scale_height_km: float,
                     cd: float, area_over_mass_m2_kg: float
                     ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Drag acceleration and its Jacobians.

    Args:
        r: Position relative to the atmosphere's body [km], shape (3,).
        v: Inertial velocity relative to the body [km/s], shape (3,).
        omega: Angular velocity of the atmosphere [rad/s], shape (3,).
        density: Density at the current altitude [kg/m^3].
        scale_height_km: Density scale height [km].
        cd: Drag coefficient.
        area_over_mass_m2_kg: Area-to-mass ratio [m^2/kg].

    Returns:
        a: Drag acceleration [km/s^2], shape (3,).
        da_dr: Jacobian da/dr, shape (3,3).
        da_dv: Jacobian da/dv, shape (3,3).
    """
    v_rel = v - np.cross(omega, r)
    v_rel_mag = np.linalg.norm(v_rel)
    if v_rel_mag == 0.0 or density == 0.0:
        return np.zeros(3), np.zeros((3, 3)), np.zeros((3, 3))

    b = 0.5 * cd * area_over_mass_m2_kg * 1000.0
    a = -b * density * v_rel_mag * v_rel

    da_dvrel = -b * density * (v_rel_mag * np.eye(3)
                               + np.outer(v_rel, v_rel) / v_rel_mag)

    # d(rho)/dr = -rho/H * r_hat
    r_hat = r / np.linalg.norm(r)
    drho_dr = -density / scale_height_km * r_hat

    da_dr = da_dvrel @ (-skew(omega)) + np.outer(a / density, drho_dr)
    da_dv = da_dvrel

    return a, da_dr, da_dv
