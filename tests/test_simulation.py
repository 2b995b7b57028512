import unittest

import numpy as np

from batch_od.core.config import LightTimeConvergenceConfig
from batch_od.core.errors import LightTimeConvergenceFailure
from batch_od.core.types import LinkEndType, ObservableType, ObservationSettings
from batch_od.observations.simulation import (
    ObservationSimulationSettings, create_observation_simulators, simulate_observations
)

import od_test_cases as cases

TIMES = np.array([100.0, 200.0, 300.0])


class TestObservationSimulation(unittest.TestCase):

    def setUp(self):
        self.env = cases.create_environment()
        self.settings = {
            ObservableType.ONE_WAY_RANGE: {
                cases.downlink(): ObservationSettings(ObservableType.ONE_WAY_RANGE)},
            ObservableType.POSITION_OBSERVABLE: {
                cases.observed_vehicle(): ObservationSettings(ObservableType.POSITION_OBSERVABLE)},
        }
        self.simulators = create_observation_simulators(self.settings, self.env)

    def test_noiseless_batches(self):
        batches = simulate_observations([
            ObservationSimulationSettings(ObservableType.ONE_WAY_RANGE, cases.downlink(), TIMES),
            ObservationSimulationSettings(ObservableType.POSITION_OBSERVABLE,
                                          cases.observed_vehicle(), TIMES, weights=2.0),
        ], self.simulators)

        range_batch, position_batch = batches
        self.assertEqual(range_batch.observations.shape, (3, 1))
        self.assertEqual(range_batch.reference_link_end, LinkEndType.RECEIVER)
        self.assertEqual(position_batch.observations.shape, (3, 3))
        self.assertEqual(position_batch.reference_link_end, LinkEndType.OBSERVED_BODY)
        np.testing.assert_array_equal(position_batch.weights, [2.0, 2.0, 2.0])

        model = self.simulators[ObservableType.ONE_WAY_RANGE].models[cases.downlink()]
        self.assertEqual(range_batch.observations[1, 0], model.compute_observation(200.0)[0])

    def test_seeded_noise(self):
        settings = [ObservationSimulationSettings(ObservableType.POSITION_OBSERVABLE,
                                                  cases.observed_vehicle(), TIMES,
                                                  noise_std=1e-3)]
        noiseless = simulate_observations(
            [ObservationSimulationSettings(ObservableType.POSITION_OBSERVABLE,
                                           cases.observed_vehicle(), TIMES)],
            self.simulators)[0]
        first = simulate_observations(settings, self.simulators, seed=7)[0]
        second = simulate_observations(settings, self.simulators, seed=7)[0]

        np.testing.assert_array_equal(first.observations, second.observations)
        noise = first.observations - noiseless.observations
        self.assertTrue(np.all(noise != 0.0))
        self.assertLess(np.max(np.abs(noise)), 1e-2)

    def test_light_time_failures(self):
        simulators = create_observation_simulators(
            self.settings, self.env,
            LightTimeConvergenceConfig(tolerance_s=1e-15, max_iterations=1))
        settings = [ObservationSimulationSettings(ObservableType.ONE_WAY_RANGE,
                                                  cases.downlink(), TIMES, weights=[1.0, 2.0, 3.0])]
        with self.assertLogs("batch_od", level="WARNING"):
            with self.assertRaises(LightTimeConvergenceFailure):
                simulate_observations(settings, simulators)

            batch = simulate_observations(settings, simulators, skip_light_time_failures=True)[0]
        self.assertEqual(batch.n_observations, 0)
        self.assertEqual(batch.weights.shape, (0,))


if __name__ == '__main__':
    unittest.main()
