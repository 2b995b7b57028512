import unittest

import numpy as np

from batch_od.astrodynamics.ephemeris import ConstantEphemeris
from batch_od.core.config import LightTimeConvergenceConfig
from batch_od.core.constants import C_LIGHT, MU_EARTH
from batch_od.core.environment import Body
from batch_od.core.errors import LightTimeConvergenceFailure
from batch_od.core.types import FirstOrderRelativisticCorrectionSettings, LinkEndId
from batch_od.observations.light_time import (
    FirstOrderRelativisticCorrection, LightTimeCalculator, create_light_time_correction
)

import od_test_cases as cases


class TestLightTime(unittest.TestCase):

    def setUp(self):
        self.env = cases.create_environment()
        self.vehicle = LinkEndId(cases.VEHICLE)
        self.calculator = LightTimeCalculator(self.vehicle, cases.STATION_1, self.env)

    def test_static_link_ends(self):
        env = cases.create_environment()
        env.add_body(Body("A", ephemeris=ConstantEphemeris(np.array([0.0, 0.0, 0.0, 0, 0, 0]))))
        env.add_body(Body("B", ephemeris=ConstantEphemeris(np.array([3.0e5, 4.0e5, 0, 0, 0, 0]))))
        calculator = LightTimeCalculator(LinkEndId("A"), LinkEndId("B"), env)
        self.assertAlmostEqual(calculator.calculate_light_time(100.0), 5.0e5 / C_LIGHT, places=14)

    def test_converged_light_time_satisfies_equation(self):
        t = 1000.0
        lt, (t_tx, state_tx), (t_rx, state_rx) = self.calculator.calculate_with_link_end_states(t)
        self.assertEqual(t_rx, t)
        self.assertAlmostEqual(t_rx - t_tx, lt, delta=1e-12)

        # Re-evaluating the light-time equation at the solution changes nothing
        residual = np.linalg.norm(state_rx[0:3] - state_tx[0:3]) / C_LIGHT - lt
        self.assertLess(abs(residual), 1e-10)

        # States are those of the link ends at the link-end times
        np.testing.assert_allclose(state_tx, self.env.state_of(self.vehicle, t_tx), atol=1e-12)
        np.testing.assert_allclose(state_rx, self.env.state_of(cases.STATION_1, t), atol=1e-12)

    def test_reception_and_transmission_reference_agree(self):
        lt_rx, (t_tx, _), _ = self.calculator.calculate_with_link_end_states(
            2000.0, is_time_at_reception=True)
        lt_tx, _, (t_rx, _) = self.calculator.calculate_with_link_end_states(
            t_tx, is_time_at_reception=False)
        self.assertAlmostEqual(t_rx, 2000.0, delta=1e-9)
        self.assertAlmostEqual(lt_rx, lt_tx, delta=1e-9)

    def test_non_convergence_raises(self):
        calculator = LightTimeCalculator(
            self.vehicle, cases.STATION_1, self.env,
            convergence=LightTimeConvergenceConfig(tolerance_s=1e-15, max_iterations=1))
        with self.assertLogs("batch_od", level="WARNING"):
            with self.assertRaises(LightTimeConvergenceFailure) as ctx:
                calculator.calculate_light_time(500.0)
        self.assertGreater(ctx.exception.last_light_time, 0.0)
        self.assertGreater(ctx.exception.last_change, 1e-15)

    def test_relativistic_correction(self):
        settings = FirstOrderRelativisticCorrectionSettings(perturbing_bodies=["Earth"])
        correction = create_light_time_correction(settings, self.env)
        self.assertIsInstance(correction, FirstOrderRelativisticCorrection)

        corrected = LightTimeCalculator(self.vehicle, cases.STATION_1, self.env, [correction])
        t = 1500.0
        lt, (t_tx, state_tx), (t_rx, state_rx) = corrected.calculate_with_link_end_states(t)

        r_t = np.linalg.norm(state_tx[0:3])
        r_r = np.linalg.norm(state_rx[0:3])
        r_tr = np.linalg.norm(state_rx[0:3] - state_tx[0:3])
        expected = 2.0 * MU_EARTH / C_LIGHT ** 3 * np.log((r_t + r_r + r_tr) / (r_t + r_r - r_tr))
        self.assertGreater(expected, 0.0)
        self.assertAlmostEqual(correction.calculate(state_tx, state_rx, t_tx, t_rx),
                               expected, delta=1e-18)

        geometric = self.calculator.calculate_light_time(t)
        self.assertAlmostEqual(lt - geometric, expected, delta=1e-12)

    def test_unknown_perturbing_body(self):
        settings = FirstOrderRelativisticCorrectionSettings(perturbing_bodies=["Jupiter"])
        with self.assertRaises(KeyError):
            create_light_time_correction(settings, self.env)


if __name__ == '__main__':
    unittest.main()
