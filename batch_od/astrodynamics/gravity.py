"""
Gravitational acceleration models.

Each function returns the acceleration vector AND its Jacobian (da/dr)
for variational-equation integration. The Jacobian is the 3x3 matrix of
partial derivatives of acceleration with respect to position.

Positions are relative to the attracting body's centre of mass.

References:
    Montenbruck & Gill, "Satellite Orbits", Ch. 3
    Vallado, "Fundamentals of Astrodynamics and Applications", Ch. 8
"""

from __future__ import annotations

import numpy as np
from ..core.constants import MU_EARTH, R_EARTH, J2


# ===================================================================
# Two-body
# ===================================================================

def two_body(r: np.ndarray, mu: float = MU_EARTH
             ) -> tuple[np.ndarray, np.ndarray]:
    """Point-mass gravitational acceleration.

    Args:
        r: Position vector relative to the attracting body [km], shape (3,).
        mu: Gravitational parameter [km^3/s^2].

    Returns:
        a: Acceleration vector [km/s^2], shape (3,).
        da_dr: Jacobian da/dr, shape (3,3).
    """
    r_mag = np.linalg.norm(r)
    r3 = r_mag ** 3

    a = -mu * r / r3
    da_dr = -mu / r3 * (np.eye(3) - 3.0 * np.outer(r, r) / r_mag ** 2)

    return a, da_dr


# ===================================================================
# J2 - analytical acceleration + analytical Jacobian
# ===================================================================

def zonal_j2(r: np.ndarray, mu: float = MU_EARTH,
             re: float = R_EARTH, j2: float = J2
             ) -> tuple[np.ndarray, np.ndarray]:
    """J2 zonal harmonic perturbation acceleration and analytical Jacobian.

    Uses the Cartesian form:
        a_i = -(3/2)*mu*J2*re^2 * r_i / r^5 * f_i
    where f_xy = (5*z^2/r^2 - 1), f_z = (5*z^2/r^2 - 3).

    The position must be expressed in a frame whose z-axis is the body's
    rotation axis.

    Args:
        r: Position [km], shape (3,).
        mu: Gravitational parameter [km^3/s^2].
        re: Equatorial radius [km].
        j2: J2 coefficient.

    Returns:
        a: Perturbation acceleration [km/s^2], shape (3,).
        da_dr: Jacobian da/dr, shape (3,3).
    """
    x, y, z = r
    r_mag = np.linalg.norm(r)
    r2 = r_mag ** 2
    r5 = r_mag ** 5
    r7 = r_mag ** 7
    z2 = z ** 2
    S = z2 / r2  # sin^2(latitude)

    k = 1.5 * mu * j2 * re ** 2

    fxy = 5.0 * S - 1.0
    fz = 5.0 * S - 3.0

    a = np.array([
        -k * x / r5 * fxy,
        -k * y / r5 * fxy,
        -k * z / r5 * fz,
    ])

    # a_i = -k * r_i / r^5 * f_i(S), S = z^2/r^2
    # dS/dr_j = -2*z^2*r_j/r^4 for j=x,y; dS/dz = 2*z*(r^2-z^2)/r^4
    dS = np.array([
        -2.0 * z2 * x / (r2 * r2),
        -2.0 * z2 * y / (r2 * r2),
        2.0 * z * (r2 - z2) / (r2 * r2),
    ])

    da_dr = np.zeros((3, 3))
    for i in range(3):
        f_i = fxy if i < 2 else fz
        for j in range(3):
            delta_ij = 1.0 if i == j else 0.0
            da_dr[i, j] = -k * (
                delta_ij / r5 * f_i
                + r[i] * (-5.0 * r[j] / r7) * f_i
                + r[i] / r5 * 5.0 * dS[j]
            )

    return a, da_dr
