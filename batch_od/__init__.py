"""
Batch Orbit Determination
=========================
Iterative weighted least-squares estimation of initial states and model
parameters from one-way range, one-way Doppler, angular position and
Cartesian position observations.

Architecture:
    - Environment store of bodies, ground stations and observation biases
    - Numerical propagation of dynamics and variational equations (Phi, S)
    - Light-time solution with relativistic corrections
    - Observation models with analytic and numerical partials
    - Normal-equation accumulation with a priori information and
      convergence control
"""

__version__ = "0.1.0"
