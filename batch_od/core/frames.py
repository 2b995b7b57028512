"""
Reference frame transformations and rotation models.

Provides rotation matrices and their time derivatives between the inertial
frame (ECI, J2000) and body-fixed frames. Rotation models expose
``rotation_at(t) -> (R, dR)`` with ``r_body = R · r_inertial``.

CRITICAL: velocity transformations must account for frame rotation.
"""

from __future__ import annotations

import numpy as np
from .constants import OMEGA_EARTH, MJD_J2000, TWO_PI


def skew(v: np.ndarray) -> np.ndarray:
    """Skew-symmetric cross-product matrix [v×].

    Args:
        v: 3-vector.

    Returns:
        3x3 skew-symmetric matrix such that [v×]·w = v × w.
    """
    return np.array([
        [0., -v[2], v[1]],
        [v[2], 0., -v[0]],
        [-v[1], v[0], 0.]
    ])


def gmst_from_mjd_tt(mjd_tt: float) -> float:
    """Greenwich Mean Sidereal Time from MJD in Terrestrial Time.

    Simplified IAU expression. Accuracy ~0.1 arcsec.

    Args:
        mjd_tt: Modified Julian Date in TT.

    Returns:
        GMST in radians, wrapped to [0, 2π).
    """
    # Julian centuries from J2000.0
    T = (mjd_tt - MJD_J2000) / 36525.0

    # GMST in seconds of time (simplified, ignoring UT1-UTC)
    gmst_sec = (67310.54841
                + (876600.0 * 3600.0 + 8640184.812866) * T
                + 0.093104 * T**2
                - 6.2e-6 * T**3)

    gmst_rad = (gmst_sec / 86400.0) * TWO_PI
    return gmst_rad % TWO_PI


def z_rotation(angle: float, rate: float) -> tuple[np.ndarray, np.ndarray]:
    """Rotation about z by ``angle`` and its derivative for a constant ``rate``.

    Args:
        angle: Rotation angle [rad].
        rate: Rotation rate [rad/s].

    Returns:
        R: 3x3 rotation matrix, r_body = R · r_inertial.
        dR: 3x3 time derivative of R.
    """
    c, s = np.cos(angle), np.sin(angle)

    R = np.array([
        [c,  s, 0.],
        [-s, c, 0.],
        [0., 0., 1.]
    ])

    dR = rate * np.array([
        [-s, c, 0.],
        [-c, -s, 0.],
        [0., 0., 0.]
    ])

    return R, dR


class SimpleRotationalEphemeris:
    """Uniform rotation about the inertial z-axis.

    Attributes:
        initial_angle: Rotation angle at t = 0 [rad].
        rotation_rate: Constant rotation rate [rad/s].
    """

    def __init__(self, initial_angle: float = 0.0,
                 rotation_rate: float = OMEGA_EARTH):
        self.initial_angle = initial_angle
        self.rotation_rate = rotation_rate

    def rotation_at(self, t: float) -> tuple[np.ndarray, np.ndarray]:
        """Inertial-to-body rotation and its derivative at time t [s]."""
        return z_rotation(self.initial_angle + self.rotation_rate * t,
                          self.rotation_rate)

    @property
    def angular_velocity(self) -> np.ndarray:
        """Inertial angular velocity vector [rad/s]."""
        return np.array([0.0, 0.0, self.rotation_rate])


class GmstRotationModel(SimpleRotationalEphemeris):
    """Earth rotation from GMST (no precession/nutation).

    GMST is evaluated once at the reference epoch; the angle then advances
    uniformly at ``OMEGA_EARTH`` with time kept in seconds.

    Args:
        epoch_ref_mjd_tt: Epoch [MJD TT] corresponding to t = 0.
    """

    def __init__(self, epoch_ref_mjd_tt: float = MJD_J2000):
        super().__init__(gmst_from_mjd_tt(epoch_ref_mjd_tt), OMEGA_EARTH)
        self.epoch_ref_mjd_tt = epoch_ref_mjd_tt


def body_fixed_to_inertial_state(r_body_fixed: np.ndarray,
                                 R: np.ndarray, dR: np.ndarray) -> np.ndarray:
    """Inertial state of a point fixed in a rotating body frame.

    Args:
        r_body_fixed: Body-fixed position [km], shape (3,).
        R: Inertial-to-body rotation matrix.
        dR: Time derivative of R.

    Returns:
        Inertial [r, v] relative to the body centre, shape (6,).
    """
    return np.concatenate([R.T @ r_body_fixed, dR.T @ r_body_fixed])
