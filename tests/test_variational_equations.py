import unittest

import numpy as np

from batch_od.astrodynamics.accelerations import AccelerationModel, PointMassGravity, ThirdBodyGravity
from batch_od.astrodynamics.propagator import PropagationSettings, VariationalEquationsSolver
from batch_od.astrodynamics.state_transition import PropagatedEphemeris
from batch_od.core.config import IntegratorConfig
from batch_od.core.environment import Body
from batch_od.core.errors import InvalidPropagationSettings, PropagationFailure, TimeOutOfRange
from batch_od.core.types import LinkEndId, PropagationStatus
from batch_od.estimation.parameters import (
    EstimatedParameterSet, drag_coefficient, gravitational_parameter,
    initial_translational_state, radiation_pressure_coefficient
)
from batch_od.observations.numerical_partials import calculate_numerical_parameter_partial

import od_test_cases as cases

ARC_S = 1800.0


class NonFiniteAcceleration(AccelerationModel):
    """Acceleration model that breaks the integration."""

    def __init__(self, body_undergoing):
        super().__init__(body_undergoing, "Earth")

    def acceleration_and_partials(self, state, t, environment, parameters):
        return np.full(3, np.nan), np.zeros((3, 6)), [None] * len(parameters)


def assert_columns_close(test, analytic, numerical, rtol, names):
    for j in range(analytic.shape[1]):
        error = np.linalg.norm(analytic[:, j] - numerical[:, j])
        scale = np.linalg.norm(numerical[:, j])
        test.assertLessEqual(error, rtol * scale,
                             f"column {names[j]}: error {error:.3e}, norm {scale:.3e}")


class TestVariationalEquations(unittest.TestCase):

    def setUp(self):
        self.env = cases.create_environment()
        self.parameters = EstimatedParameterSet([
            gravitational_parameter("Earth"),
            initial_translational_state(cases.VEHICLE),
            radiation_pressure_coefficient(cases.VEHICLE),
            drag_coefficient(cases.VEHICLE),
        ], self.env)
        self.solver = VariationalEquationsSolver(
            self.env, cases.propagation_settings(perturbed=True, final_time=ARC_S),
            self.parameters)

    def final_state(self):
        self.solver.integrate()
        return self.solver.interface.body_state(cases.VEHICLE, ARC_S)

    def test_initial_states_come_first(self):
        self.assertTrue(self.parameters.parameters[0].is_initial_state)
        self.assertEqual(self.parameters.index_range(gravitational_parameter("Earth")), (6, 1))
        self.assertEqual(self.solver.interface.n_state, 6)

    def test_initial_conditions_exact(self):
        self.assertEqual(self.solver.status, PropagationStatus.NOT_STARTED)
        interface = self.solver.integrate()
        self.assertEqual(self.solver.status, PropagationStatus.CONVERGED)

        self.assertTrue(np.array_equal(interface.state_transition_matrix(0.0), np.eye(6)))
        self.assertTrue(np.array_equal(interface.sensitivity_matrix(0.0), np.zeros((6, 3))))
        self.assertTrue(np.array_equal(interface.body_state(cases.VEHICLE, 0.0),
                                       cases.vehicle_initial_state()))
        self.assertEqual(interface.full_matrix(ARC_S).shape, (6, 9))

    def test_propagated_ephemeris_installed(self):
        interface = self.solver.integrate()
        ephemeris = self.env.body(cases.VEHICLE).ephemeris
        self.assertIsInstance(ephemeris, PropagatedEphemeris)
        np.testing.assert_array_equal(self.env.state_of(LinkEndId(cases.VEHICLE), 777.0),
                                      interface.body_state(cases.VEHICLE, 777.0))

    def test_state_transition_matrix(self):
        self.solver.integrate()
        analytic = self.solver.interface.state_transition_matrix(ARC_S)

        numerical = calculate_numerical_parameter_partial(
            initial_translational_state(cases.VEHICLE), self.env,
            [1e-1, 1e-1, 1e-1, 1e-4, 1e-4, 1e-4], self.final_state)
        assert_columns_close(self, analytic, numerical, 1e-5,
                             ["x", "y", "z", "vx", "vy", "vz"])

    def test_sensitivity_matrix(self):
        self.solver.integrate()
        analytic = self.solver.interface.sensitivity_matrix(ARC_S)

        columns = []
        for parameter, step in ((gravitational_parameter("Earth"), 10.0),
                                (radiation_pressure_coefficient(cases.VEHICLE), 0.1),
                                (drag_coefficient(cases.VEHICLE), 0.1)):
            columns.append(calculate_numerical_parameter_partial(
                parameter, self.env, step, self.final_state))
        numerical = np.hstack(columns)

        assert_columns_close(self, analytic[:, 0:1], numerical[:, 0:1], 1e-5, ["mu"])
        assert_columns_close(self, analytic[:, 1:3], numerical[:, 1:3], 1e-3, ["Cr", "Cd"])

    def test_values_restored_after_numerical_partial(self):
        before = self.parameters.get_values()
        calculate_numerical_parameter_partial(
            drag_coefficient(cases.VEHICLE), self.env, 0.1, self.final_state)
        np.testing.assert_array_equal(self.parameters.get_values(), before)

    def test_time_out_of_range(self):
        with self.assertRaises(TimeOutOfRange):
            self.solver.interface.full_matrix(10.0)
        self.solver.integrate()
        with self.assertRaises(TimeOutOfRange):
            self.solver.interface.full_matrix(ARC_S + 1.0)
        with self.assertRaises(TimeOutOfRange):
            self.env.state_of(LinkEndId(cases.VEHICLE), -1.0)

    def test_fixed_step_integrator(self):
        reference = self.solver.integrate()
        x_ref = reference.body_state(cases.VEHICLE, ARC_S)
        phi_ref = reference.state_transition_matrix(ARC_S)

        env = cases.create_environment()
        parameters = EstimatedParameterSet([initial_translational_state(cases.VEHICLE)], env)
        settings = cases.propagation_settings(
            perturbed=True, final_time=ARC_S,
            integrator=IntegratorConfig(method="RK4", fixed_step_s=10.0))
        interface = VariationalEquationsSolver(env, settings, parameters).integrate()

        np.testing.assert_allclose(interface.body_state(cases.VEHICLE, ARC_S)[0:3],
                                   x_ref[0:3], atol=1e-5)
        assert_columns_close(self, interface.state_transition_matrix(ARC_S), phi_ref, 1e-6,
                             ["x", "y", "z", "vx", "vy", "vz"])
        # Between nodes the Hermite interpolant is used
        self.assertEqual(interface.body_state(cases.VEHICLE, 1234.5).shape, (6,))

    def test_backward_propagation(self):
        env = cases.create_environment()
        parameters = EstimatedParameterSet([initial_translational_state(cases.VEHICLE)], env)
        settings = cases.propagation_settings(final_time=-600.0)
        interface = VariationalEquationsSolver(env, settings, parameters).integrate()
        self.assertEqual(interface.time_span, (-600.0, 0.0))
        self.assertTrue(np.array_equal(interface.state_transition_matrix(0.0), np.eye(6)))

    def test_non_finite_dynamics(self):
        env = cases.create_environment()
        parameters = EstimatedParameterSet([initial_translational_state(cases.VEHICLE)], env)
        settings = PropagationSettings(
            [cases.VEHICLE], {cases.VEHICLE: [NonFiniteAcceleration(cases.VEHICLE)]},
            0.0, 600.0, IntegratorConfig(method="RK4"))
        solver = VariationalEquationsSolver(env, settings, parameters)
        with self.assertRaises(PropagationFailure):
            solver.integrate()
        self.assertEqual(solver.status, PropagationStatus.FAILED)


class TestPropagationSettingsValidation(unittest.TestCase):

    def setUp(self):
        self.env = cases.create_environment()
        self.env.add_body(Body("Chaser", ephemeris=None,
                               initial_state=cases.vehicle_initial_state() + 1.0))

    def solver(self, bodies, models, estimated=None, final_time=600.0):
        estimated = bodies if estimated is None else estimated
        parameters = EstimatedParameterSet(
            [initial_translational_state(b) for b in estimated], self.env)
        return VariationalEquationsSolver(
            self.env, PropagationSettings(bodies, models, 0.0, final_time), parameters)

    def test_propagated_bodies_must_be_estimated(self):
        with self.assertRaises(InvalidPropagationSettings):
            self.solver([cases.VEHICLE, "Chaser"],
                        {cases.VEHICLE: [PointMassGravity(cases.VEHICLE, "Earth")]},
                        estimated=[cases.VEHICLE])

    def test_acceleration_exerted_by_propagated_body(self):
        with self.assertRaises(InvalidPropagationSettings):
            self.solver([cases.VEHICLE, "Chaser"],
                        {"Chaser": [PointMassGravity("Chaser", cases.VEHICLE)]})

    def test_central_body_propagated(self):
        with self.assertRaises(InvalidPropagationSettings):
            self.solver([cases.VEHICLE, "Chaser"],
                        {"Chaser": [ThirdBodyGravity("Chaser", "Sun", cases.VEHICLE)]})

    def test_model_listed_under_wrong_body(self):
        with self.assertRaises(InvalidPropagationSettings):
            self.solver([cases.VEHICLE, "Chaser"],
                        {"Chaser": [PointMassGravity(cases.VEHICLE, "Earth")]})

    def test_zero_length_arc(self):
        with self.assertRaises(InvalidPropagationSettings):
            self.solver([cases.VEHICLE], {}, final_time=0.0)

    def test_two_bodies(self):
        solver = self.solver([cases.VEHICLE, "Chaser"], {
            cases.VEHICLE: [PointMassGravity(cases.VEHICLE, "Earth")],
            "Chaser": [PointMassGravity("Chaser", "Earth")],
        })
        interface = solver.integrate()
        self.assertEqual(interface.state_transition_matrix(600.0).shape, (12, 12))
        # Uncoupled dynamics: off-diagonal blocks stay zero
        np.testing.assert_array_equal(interface.state_transition_matrix(600.0)[0:6, 6:12],
                                      np.zeros((6, 6)))


if __name__ == '__main__':
    unittest.main()
