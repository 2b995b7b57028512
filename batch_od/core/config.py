"""
Estimation configuration.

Configuration objects for the integrator, light-time solution and the
iterative least-squares estimator. All are already-validated value objects;
file-based loading is left to the caller.
"""

from dataclasses import dataclass, field


@dataclass
class IntegratorConfig:
    """Numerical integrator configuration.

    Uses scipy's DOP853 (8th-order Dormand-Prince) by default. Setting
    ``method="RK4"`` selects the built-in fixed-step Runge-Kutta integrator
    with step ``fixed_step_s``.
    Tight tolerances are required for accurate STM integration.
    """
    method: str = "DOP853"
    rtol: float = 1e-12
    atol: float = 1e-12
    max_step_s: float = 300.0       # Maximum step size [seconds]
    fixed_step_s: float = 10.0      # Step size for fixed-step methods [seconds]
    output_step_s: float = 60.0     # Stored history cadence [seconds]

    @property
    def is_fixed_step(self) -> bool:
        return self.method.upper() == "RK4"

    def describe(self) -> str:
        """Human-readable description of the integrator."""
        if self.is_fixed_step:
            return f"RK4 (fixed step {self.fixed_step_s} s)"
        return f"{self.method} (rtol={self.rtol:g}, atol={self.atol:g})"


@dataclass
class LightTimeConvergenceConfig:
    """Light-time iteration settings.

    Attributes:
        tolerance_s: Absolute change in light time [s] below which the
            iteration is converged.
        max_iterations: Iterations before LightTimeConvergenceFailure.
    """
    tolerance_s: float = 1e-10
    max_iterations: int = 50


@dataclass
class ConvergenceConfig:
    """Termination criteria of the iterative estimator.

    Each criterion independently stops the iteration.

    Attributes:
        maximum_iterations: Hard iteration limit.
        minimum_residual_change: Relative residual RMS change below which an
            iteration counts as "without improvement".
        minimum_residual: Residual RMS below which the run is converged.
        iterations_without_improvement: Consecutive iterations without
            improvement that stop the run.
    """
    maximum_iterations: int = 5
    minimum_residual_change: float = 0.0
    minimum_residual: float = 1e-20
    iterations_without_improvement: int = 2


@dataclass
class EstimationConfig:
    """Top-level estimation configuration.

    Attributes:
        convergence: Termination criteria.
        reintegrate_on_first_iteration: Propagate before the first
            linearization. If False, the caller must have propagated already.
        save_design_matrix: Keep the design matrix of the best iteration.
        number_of_workers: Threads used to linearize observation batches
            (1 = serial).
        singularity_tolerance: Reciprocal condition number of the normalized
            information matrix below which it is treated as singular.
        log_iterations: Log residual RMS per iteration at INFO level.
    """
    convergence: ConvergenceConfig = field(default_factory=ConvergenceConfig)
    reintegrate_on_first_iteration: bool = True
    save_design_matrix: bool = False
    number_of_workers: int = 1
    singularity_tolerance: float = 1e-15
    log_iterations: bool = True

    def describe(self) -> str:
        """Human-readable description of the estimation settings."""
        c = self.convergence
        return (f"max {c.maximum_iterations} iterations, "
                f"min residual {c.minimum_residual:g}, "
                f"min change {c.minimum_residual_change:g} "
                f"x{c.iterations_without_improvement}, "
                f"{self.number_of_workers} worker(s)")
