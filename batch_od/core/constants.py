"""
Physical and mathematical constants.

Sources:
    - EGM2008 for gravity field coefficients
    - IAU 2012 for astronomical constants
    - IERS conventions for Earth parameters
"""

import numpy as np

# ---------------------------------------------------------------------------
# Mathematical constants
# ---------------------------------------------------------------------------
TWO_PI = 2.0 * np.pi
DEG2RAD = np.pi / 180.0

# ---------------------------------------------------------------------------
# Time constants
# ---------------------------------------------------------------------------
MJD_J2000 = 51544.5                     # MJD of J2000.0 epoch (2000-01-01 12:00 TT)
SECONDS_PER_DAY = 86400.0

# ---------------------------------------------------------------------------
# Earth parameters
# ---------------------------------------------------------------------------
MU_EARTH = 398600.4418                  # Gravitational parameter [km³/s²]
R_EARTH = 6378.137                      # Equatorial radius [km]
OMEGA_EARTH = 7.2921150e-5              # Earth rotation rate [rad/s]

# Zonal harmonic (unnormalized, from EGM2008)
J2 = 1.08262668355e-3

# Exponential atmosphere reference values (Vallado, 400-450 km band)
RHO_REF_KG_M3 = 3.725e-12               # Density at reference altitude [kg/m³]
H_REF_KM = 400.0                        # Reference altitude [km]
SCALE_HEIGHT_KM = 58.515                # Density scale height [km]

# ---------------------------------------------------------------------------
# Solar parameters
# ---------------------------------------------------------------------------
MU_SUN = 1.32712440018e11              # Sun gravitational parameter [km³/s²]
R_SUN = 696000.0                        # Solar radius [km]
AU_KM = 149597870.7                     # Astronomical unit [km]
SOLAR_FLUX_1AU = 1361.0                 # Total solar irradiance at 1 AU [W/m²]
C_LIGHT = 299792.458                    # Speed of light [km/s]
SOLAR_PRESSURE_1AU = SOLAR_FLUX_1AU / (C_LIGHT * 1e3)  # N/m² at 1 AU

# ---------------------------------------------------------------------------
# Lunar parameters
# ---------------------------------------------------------------------------
MU_MOON = 4902.800066                   # Moon gravitational parameter [km³/s²]
