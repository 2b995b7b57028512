"""
Ephemeris providers.

Every provider exposes ``state_at(t) -> [x, y, z, vx, vy, vz]`` in the
inertial frame (ECI, J2000) with t in seconds since the environment
reference epoch.

Sun: Low-precision formula from Meeus/Montenbruck, ~0.01 deg accuracy.
Moon: Simplified Brown theory from Montenbruck & Gill, ~0.1 deg accuracy.

References:
    Montenbruck & Gill, "Satellite Orbits", Sec. 3.3.2 (Sun), 3.3.3 (Moon)
    Meeus, "Astronomical Algorithms", Ch. 25
"""

from __future__ import annotations

import math

import numpy as np
from scipy.interpolate import CubicSpline

from ..core.constants import MJD_J2000, AU_KM, R_EARTH, SECONDS_PER_DAY
from ..core.errors import TimeOutOfRange
from ..core.types import OrbitalElements


class Ephemeris:
    """Time-to-state lookup service."""

    def state_at(self, t: float) -> np.ndarray:
        raise NotImplementedError


class ConstantEphemeris(Ephemeris):
    """Fixed inertial state (e.g. the central body at the frame origin)."""

    def __init__(self, state: np.ndarray = None):
        self.state = np.zeros(6) if state is None else np.asarray(state, dtype=float).copy()

    def state_at(self, t: float) -> np.ndarray:
        return self.state.copy()


# ===================================================================
# Two-body analytic
# ===================================================================

def solve_kepler_equation(M: float, e: float, tolerance: float = 1e-14,
                          max_iter: int = 50) -> float:
    """Solve Kepler's equation for eccentric anomaly by Newton-Raphson.

    Args:
        M: Mean anomaly [rad].
        e: Eccentricity (< 1).
        tolerance: Convergence tolerance [rad].
        max_iter: Maximum iterations.

    Returns:
        Eccentric anomaly E [rad].
    """
    E = M if e < 0.8 else math.pi
    for _ in range(max_iter):
        f = E - e * math.sin(E) - M
        if abs(f) < tolerance:
            break
        E -= f / (1.0 - e * math.cos(E))
    return E


def keplerian_to_cartesian(elements: OrbitalElements, mu: float) -> np.ndarray:
    """Convert classical elements to an inertial Cartesian state.

    Args:
        elements: Keplerian elements (angles in radians, a in km).
        mu: Gravitational parameter [km^3/s^2].

    Returns:
        State [r, v] [km, km/s], shape (6,).
    """
    a, e, nu = elements.a, elements.e, elements.ta
    p = a * (1.0 - e ** 2)
    r_mag = p / (1.0 + e * math.cos(nu))

    r_pf = np.array([r_mag * math.cos(nu), r_mag * math.sin(nu), 0.0])
    v_pf = math.sqrt(mu / p) * np.array([-math.sin(nu), e + math.cos(nu), 0.0])

    cO, sO = math.cos(elements.raan), math.sin(elements.raan)
    ci, si = math.cos(elements.i), math.sin(elements.i)
    cw, sw = math.cos(elements.aop), math.sin(elements.aop)

    # Perifocal to inertial: R3(-raan) R1(-i) R3(-aop)
    R = np.array([
        [cO * cw - sO * sw * ci, -cO * sw - sO * cw * ci, sO * si],
        [sO * cw + cO * sw * ci, -sO * sw + cO * cw * ci, -cO * si],
        [sw * si, cw * si, ci],
    ])

    return np.concatenate([R @ r_pf, R @ v_pf])


class KeplerEphemeris(Ephemeris):
    """Unperturbed elliptic orbit around a point mass.

    Args:
        elements: Elements at ``epoch_s``.
        mu: Central body gravitational parameter [km^3/s^2].
        epoch_s: Epoch of the elements [s].
        central_ephemeris: Optional ephemeris of the central body; its state
            is added to the Keplerian state.
    """

    def __init__(self, elements: OrbitalElements, mu: float,
                 epoch_s: float = 0.0, central_ephemeris: Ephemeris = None):
        if not 0.0 <= elements.e < 1.0:
            raise ValueError("KeplerEphemeris supports elliptic orbits only")
        self.elements = elements
        self.mu = mu
        self.epoch_s = epoch_s
        self.central_ephemeris = central_ephemeris

        e, nu = elements.e, elements.ta
        E0 = 2.0 * math.atan2(math.sqrt(1.0 - e) * math.sin(nu / 2.0),
                              math.sqrt(1.0 + e) * math.cos(nu / 2.0))
        self._mean_anomaly_at_epoch = E0 - e * math.sin(E0)
        self._mean_motion = math.sqrt(mu / elements.a ** 3)

    def state_at(self, t: float) -> np.ndarray:
        e = self.elements.e
        M = self._mean_anomaly_at_epoch + self._mean_motion * (t - self.epoch_s)
        M = math.remainder(M, 2.0 * math.pi)
        E = solve_kepler_equation(M, e)
        nu = 2.0 * math.atan2(math.sqrt(1.0 + e) * math.sin(E / 2.0),
                              math.sqrt(1.0 - e) * math.cos(E / 2.0))
        el = self.elements
        state = keplerian_to_cartesian(
            OrbitalElements(el.a, el.e, el.i, el.raan, el.aop, nu), self.mu
        )
        if self.central_ephemeris is not None:
            state = state + self.central_ephemeris.state_at(t)
        return state


# ===================================================================
# Tabulated
# ===================================================================

class TabulatedEphemeris(Ephemeris):
    """Cubic-spline interpolation of a tabulated state history.

    Args:
        times: Strictly increasing epochs [s], shape (N,), N >= 2.
        states: States at the epochs, shape (N, 6).
    """

    def __init__(self, times: np.ndarray, states: np.ndarray):
        self.times = np.asarray(times, dtype=float)
        self.states = np.asarray(states, dtype=float)
        self._interpolator = CubicSpline(self.times, self.states, axis=0)

    def state_at(self, t: float) -> np.ndarray:
        if t < self.times[0] or t > self.times[-1]:
            raise TimeOutOfRange(
                f"Time {t:.3f} s outside tabulated ephemeris span "
                f"[{self.times[0]:.3f}, {self.times[-1]:.3f}] s"
            )
        return self._interpolator(t)


# ===================================================================
# Analytic Sun and Moon
# ===================================================================

def sun_position_eci(mjd_tt: float) -> np.ndarray:
    """Compute Sun position in ECI (J2000) frame.

    Low-precision analytical model based on the simplified solar coordinates
    from Montenbruck & Gill, "Satellite Orbits", Sec. 3.3.2.

    Args:
        mjd_tt: Modified Julian Date in Terrestrial Time.

    Returns:
        r_sun: Sun ECI position [km], shape (3,).
    """
    # Julian centuries from J2000.0
    T = (mjd_tt - MJD_J2000) / 36525.0

    # Mean anomaly of the Sun [deg]
    M = 357.5256 + 35999.049 * T
    M_rad = np.deg2rad(M % 360.0)

    # Ecliptic longitude of the Sun [deg]
    lam = 280.460 + 36000.770 * T
    lam += 1.9146 * np.sin(M_rad) + 0.0200 * np.sin(2.0 * M_rad)
    lam_rad = np.deg2rad(lam % 360.0)

    # Distance from Earth to Sun [AU]
    r_au = 1.00014 - 0.01671 * np.cos(M_rad) - 0.00014 * np.cos(2.0 * M_rad)

    # Obliquity of the ecliptic [deg]
    eps_rad = np.deg2rad(23.4393 - 0.0130 * T)

    r_km = r_au * AU_KM

    return np.array([
        r_km * np.cos(lam_rad),
        r_km * np.sin(lam_rad) * np.cos(eps_rad),
        r_km * np.sin(lam_rad) * np.sin(eps_rad),
    ])


def moon_position_eci(mjd_tt: float) -> np.ndarray:
    """Compute Moon position in ECI (J2000) frame.

    Simplified Brown theory from Montenbruck & Gill, "Satellite Orbits",
    Sec. 3.3.3. Accuracy ~0.1-0.3 deg, ~500 km in position.

    Args:
        mjd_tt: Modified Julian Date in Terrestrial Time.

    Returns:
        r_moon: Moon ECI position [km], shape (3,).
    """
    T = (mjd_tt - MJD_J2000) / 36525.0

    # Fundamental arguments [deg]
    L0 = 218.3165 + 481267.8813 * T      # Mean longitude of the Moon
    l = 134.9634 + 477198.8676 * T       # Mean anomaly of the Moon
    lp = 357.5291 + 35999.0503 * T       # Mean anomaly of the Sun
    D = 297.8502 + 445267.1115 * T       # Mean elongation of the Moon
    F = 93.2720 + 483202.0175 * T        # Mean argument of latitude

    l_r = np.deg2rad(l % 360.0)
    lp_r = np.deg2rad(lp % 360.0)
    D_r = np.deg2rad(D % 360.0)
    F_r = np.deg2rad(F % 360.0)

    # Ecliptic longitude [deg]
    dL = (6.2888 * np.sin(l_r)
          + 1.2740 * np.sin(2.0 * D_r - l_r)
          + 0.6583 * np.sin(2.0 * D_r)
          + 0.2136 * np.sin(2.0 * l_r)
          - 0.1851 * np.sin(lp_r)
          - 0.1143 * np.sin(2.0 * F_r)
          + 0.0588 * np.sin(2.0 * (D_r - l_r))
          + 0.0572 * np.sin(2.0 * D_r - lp_r - l_r)
          + 0.0533 * np.sin(2.0 * D_r + l_r)
          + 0.0459 * np.sin(2.0 * D_r - lp_r)
          + 0.0410 * np.sin(lp_r - l_r)
          - 0.0348 * np.sin(D_r)
          - 0.0305 * np.sin(lp_r + l_r))

    lam = np.deg2rad((L0 + dL) % 360.0)

    # Ecliptic latitude [deg]
    beta = np.deg2rad(5.1282 * np.sin(F_r)
                      + 0.2806 * np.sin(l_r + F_r)
                      + 0.2777 * np.sin(l_r - F_r)
                      + 0.1733 * np.sin(2.0 * D_r - F_r))

    # Parallax [deg] -> distance
    dP = (0.9508
          + 0.0518 * np.cos(l_r)
          + 0.0095 * np.cos(2.0 * D_r - l_r)
          + 0.0078 * np.cos(2.0 * D_r)
          + 0.0028 * np.cos(2.0 * l_r))
    r_moon_km = R_EARTH / np.sin(np.deg2rad(dP))

    x_ecl = r_moon_km * np.cos(beta) * np.cos(lam)
    y_ecl = r_moon_km * np.cos(beta) * np.sin(lam)
    z_ecl = r_moon_km * np.sin(beta)

    # Rotate from ecliptic to equatorial
    eps_rad = np.deg2rad(23.4393 - 0.0130 * T)
    cos_eps, sin_eps = np.cos(eps_rad), np.sin(eps_rad)

    return np.array([
        x_ecl,
        y_ecl * cos_eps - z_ecl * sin_eps,
        y_ecl * sin_eps + z_ecl * cos_eps,
    ])


class AnalyticBodyEphemeris(Ephemeris):
    """Geocentric ephemeris from a position-only analytic model.

    Velocity is obtained by central differencing of the position model.

    Args:
        position_function: Callable(mjd_tt) -> position [km].
        epoch_ref_mjd_tt: Epoch [MJD TT] corresponding to t = 0.
        velocity_step_s: Differencing step [s].
    """

    def __init__(self, position_function, epoch_ref_mjd_tt: float = MJD_J2000,
                 velocity_step_s: float = 60.0):
        self.position_function = position_function
        self.epoch_ref_mjd_tt = epoch_ref_mjd_tt
        self.velocity_step_s = velocity_step_s

    def _position(self, t: float) -> np.ndarray:
        return self.position_function(self.epoch_ref_mjd_tt + t / SECONDS_PER_DAY)

    def state_at(self, t: float) -> np.ndarray:
        h = self.velocity_step_s
        v = (self._position(t + h) - self._position(t - h)) / (2.0 * h)
        return np.concatenate([self._position(t), v])


def sun_ephemeris(epoch_ref_mjd_tt: float = MJD_J2000) -> AnalyticBodyEphemeris:
    """Analytic geocentric Sun ephemeris."""
    return AnalyticBodyEphemeris(sun_position_eci, epoch_ref_mjd_tt)


def moon_ephemeris(epoch_ref_mjd_tt: float = MJD_J2000) -> AnalyticBodyEphemeris:
    """Analytic geocentric Moon ephemeris."""
    return AnalyticBodyEphemeris(moon_position_eci, epoch_ref_mjd_tt)
