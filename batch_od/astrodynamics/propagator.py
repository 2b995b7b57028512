"""
Variational equations propagator.

Wraps scipy.integrate.solve_ivp (DOP853 by default), or the built-in
fixed-step RK4, with:
    - Joint integration of body states and Psi = [Phi | S]
    - Dense output for interpolation between stored epochs
    - Installation of the propagated histories as body ephemerides
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from scipy.integrate import solve_ivp
from scipy.interpolate import CubicHermiteSpline

from ..core.config import IntegratorConfig
from ..core.environment import Environment
from ..core.errors import IntegrationError, InvalidPropagationSettings, PropagationFailure
from ..core.logging_config import get_logger
from ..core.types import PropagationStatus
from .eom import eom_variational, initial_variational_state
from .integrators import RungeKutta4Integrator
from .state_transition import PropagatedEphemeris, StateTransitionAndSensitivityMatrixInterface

logger = get_logger(__name__)


@dataclass
class PropagationSettings:
    """Translational propagation settings.

    Attributes:
        bodies_to_propagate: Names of the propagated bodies.
        acceleration_models: Acceleration models acting on each propagated body.
        initial_time: Start of the arc [s]; initial states refer to this time.
        final_time: End of the arc [s].
        integrator: Integrator configuration.
    """
    bodies_to_propagate: list[str]
    acceleration_models: dict[str, list]
    initial_time: float
    final_time: float
    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)


class VariationalEquationsSolver:
    """Integrates the dynamics and variational equations of the propagated bodies.

    The propagated bodies must be exactly the bodies whose initial state is
    estimated; their order in Psi follows the parameter set.

    Attributes:
        environment: Body store.
        settings: Propagation settings.
        parameter_set: Estimated parameters defining the columns of Psi.
        interface: Lookup of Phi/S and states, refilled by every integration.
        status: Current PropagationStatus.
    """

    def __init__(self, environment: Environment, settings: PropagationSettings,
                 parameter_set):
        self.environment = environment
        self.settings = settings
        self.parameter_set = parameter_set
        self._validate()

        self.bodies = parameter_set.estimated_bodies
        self.interface = StateTransitionAndSensitivityMatrixInterface(
            self.bodies, parameter_set.parameter_count
        )
        self.status = PropagationStatus.NOT_STARTED

    def _validate(self) -> None:
        settings = self.settings
        propagated = list(settings.bodies_to_propagate)
        estimated = self.parameter_set.estimated_bodies

        if len(set(propagated)) != len(propagated):
            raise InvalidPropagationSettings("A body is propagated more than once")
        if set(propagated) != set(estimated):
            raise InvalidPropagationSettings(
                f"Propagated bodies {sorted(propagated)} differ from bodies with "
                f"estimated initial state {sorted(estimated)}"
            )
        if settings.final_time == settings.initial_time:
            raise InvalidPropagationSettings("Propagation arc has zero length")

        for body in propagated:
            if body not in self.environment:
                raise InvalidPropagationSettings(f"Propagated body {body!r} not in environment")

        for body, models in settings.acceleration_models.items():
            if body not in propagated:
                raise InvalidPropagationSettings(
                    f"Accelerations given for {body!r}, which is not propagated")
            for model in models:
                if model.body_undergoing != body:
                    raise InvalidPropagationSettings(
                        f"{model!r} listed under {body!r}")
                exerting = [model.body_exerting, getattr(model, "central_body", None)]
                for name in exerting:
                    if name is None:
                        continue
                    if name in propagated:
                        raise InvalidPropagationSettings(
                            f"{model!r}: accelerations exerted by propagated bodies "
                            f"are not supported")
                    if name not in self.environment:
                        raise InvalidPropagationSettings(
                            f"{model!r}: body {name!r} not in environment")

    # ------------------------------------------------------------------

    def integrate(self) -> StateTransitionAndSensitivityMatrixInterface:
        """Propagate with the current parameter values.

        Refills ``interface`` and installs the propagated histories as the
        ephemerides of the propagated bodies.

        Raises:
            PropagationFailure: On integrator failure or non-finite output.
        """
        settings = self.settings
        cfg = settings.integrator
        t0, tf = settings.initial_time, settings.final_time

        n_parameters = self.parameter_set.parameter_count
        non_state = self.parameter_set.non_state_parameters
        columns = [self.parameter_set.index_range(p) for p in non_state]
        y0 = initial_variational_state(
            [np.asarray(self.environment.body(b).initial_state, dtype=float)
             for b in self.bodies],
            n_parameters
        )

        def rhs(t, y):
            return eom_variational(t, y, self.bodies, settings.acceleration_models,
                                  self.environment, non_state, columns, n_parameters)

        self.status = PropagationStatus.INTEGRATING
        logger.debug("Integrating %d bodies, %d parameters over [%.1f, %.1f] s with %s",
                     len(self.bodies), n_parameters, t0, tf, cfg.describe())

        try:
            if cfg.is_fixed_step:
                times, values, dense = self._integrate_fixed_step(rhs, y0, t0, tf, cfg)
            else:
                times, values, dense = self._integrate_adaptive(rhs, y0, t0, tf, cfg)
        except IntegrationError as exc:
            self.status = PropagationStatus.FAILED
            raise PropagationFailure(str(exc)) from exc

        if not np.all(np.isfinite(values)):
            self.status = PropagationStatus.FAILED
            raise PropagationFailure(
                f"Non-finite state or variational matrix in [{t0:.1f}, {tf:.1f}] s"
            )

        # Psi(t0) = [I | 0] exactly
        values[0] = y0

        self.interface.update(times, values, dense)
        for body in self.bodies:
            self.environment.body(body).ephemeris = PropagatedEphemeris(self.interface, body)

        self.status = PropagationStatus.CONVERGED
        logger.debug("Integration finished: %d stored epochs", len(times))
        return self.interface

    def _integrate_adaptive(self, rhs, y0, t0, tf, cfg):
        """Core integration call wrapping scipy.integrate.solve_ivp."""
        direction = 1.0 if tf > t0 else -1.0
        t_eval = np.arange(t0, tf, direction * cfg.output_step_s)
        if len(t_eval) == 0 or t_eval[-1] != tf:
            t_eval = np.append(t_eval, tf)

        result = solve_ivp(
            rhs,
            t_span=(t0, tf),
            y0=y0,
            method=cfg.method,
            rtol=cfg.rtol,
            atol=cfg.atol,
            max_step=cfg.max_step_s,
            dense_output=True,
            t_eval=t_eval,
        )

        if not result.success:
            raise IntegrationError(
                f"Integration failed: {result.message} "
                f"(t_start={t0:.1f}, t_end={tf:.1f})"
            )
        if result.t[-1] != tf:
            raise IntegrationError(
                f"Integration stopped at t={result.t[-1]:.1f} before t_end={tf:.1f}"
            )

        return result.t, result.y.T.copy(), result.sol

    def _integrate_fixed_step(self, rhs, y0, t0, tf, cfg):
        """Fixed-step RK4 with cubic Hermite interpolation between nodes."""
        integrator = RungeKutta4Integrator(rhs)
        times, values, derivatives = integrator.integrate(y0, t0, tf, cfg.fixed_step_s)

        order = np.argsort(times)
        spline = CubicHermiteSpline(times[order], values[order], derivatives[order], axis=0)
        return times, values, spline
