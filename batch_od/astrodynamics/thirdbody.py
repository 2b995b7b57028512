"""
Third-body gravitational perturbations.

Uses the standard formulation that avoids loss of significance:
    a = mu_body * [ (r_body - r_sat)/|r_body - r_sat|^3 - r_body/|r_body|^3 ]

The first term is the direct attraction of the satellite by the body.
The second term is the indirect acceleration (the central body is also
accelerated by the third body; since we integrate in a frame centred on
the central body, this must be subtracted).

Reference: Montenbruck & Gill, "Satellite Orbits", Eq. 3.57
"""

from __future__ import annotations

import numpy as np


def third_body_acceleration(r_sat: np.ndarray, r_body: np.ndarray,
                            mu_body: float
                            ) -> tuple[np.ndarray, np.ndarray]:
    """Point-mass third-body gravitational perturbation acceleration.

    Args:
        r_sat: Satellite position w.r.t. the central body [km], shape (3,).
        r_body: Third body position w.r.t. the central body [km], shape (3,).
        mu_body: Third body gravitational parameter [km^3/s^2].

    Returns:
        a: Perturbation acceleration [km/s^2], shape (3,).
        da_dr: Jacobian da/dr w.r.t. satellite position, shape (3,3).
    """
    # Vector from satellite to body
    d = r_body - r_sat
    d_mag = np.linalg.norm(d)
    d3 = d_mag ** 3

    rb3 = np.linalg.norm(r_body) ** 3

    a = mu_body * (d / d3 - r_body / rb3)

    # Only the direct term depends on r_sat; dd/dr_sat = -I
    d5 = d_mag ** 5
    da_dr = -mu_body * (np.eye(3) / d3 - 3.0 * np.outer(d, d) / d5)

    return a, da_dr
