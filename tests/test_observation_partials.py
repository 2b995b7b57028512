import unittest

import numpy as np

from batch_od.core.errors import InvalidParameterSettings, PartialNotImplemented
from batch_od.core.types import (
    FirstOrderRelativisticCorrectionSettings, LinkEndType, LinkEnds, ObservableType,
    ObservationBiasSettings, ObservationBiasType, ObservationSettings
)
from batch_od.estimation.parameters import (
    constant_additive_observation_bias, constant_relative_observation_bias,
    gravitational_parameter, ground_station_position
)
from batch_od.observations.numerical_partials import (
    calculate_numerical_link_end_state_partial, calculate_numerical_parameter_partial
)
from batch_od.observations.observation_models import create_observation_model
from batch_od.observations.observation_partials import (
    ConstantAdditiveBiasPartial, ConstantRelativeBiasPartial, GroundStationPositionPartial,
    LightTimeGravitationalParameterPartial, create_observation_partials, link_end_state_partial
)
from batch_od.observations.position_partial_scaling import create_position_partial_scaling

import od_test_cases as cases

STATE_PERTURBATION = np.array([1e-2, 1e-2, 1e-2, 1e-5, 1e-5, 1e-5])

# Absolute tolerance per observable, on top of a relative tolerance
ATOL = {
    ObservableType.ONE_WAY_RANGE: 1e-7,
    ObservableType.ONE_WAY_DOPPLER: 1e-14,
    ObservableType.ANGULAR_POSITION: 1e-11,
    ObservableType.POSITION_OBSERVABLE: 1e-9,
}


class TestLinkEndStatePartials(unittest.TestCase):
    """Analytic position-partial scaling against finite differences of the observable."""

    def setUp(self):
        self.env = cases.create_environment()

    def check_state_partial(self, observable_type, link_ends, reference_link_end, body, t=900.0):
        model = create_observation_model(link_ends, ObservationSettings(observable_type), self.env)
        scaling = create_position_partial_scaling(observable_type, link_ends, self.env)
        ideal, times, states = model.compute_ideal_observation_with_link_end_data(
            t, reference_link_end)
        scaling.update(times, states, reference_link_end, ideal)
        analytic = link_end_state_partial(scaling, link_ends, observable_type, body)

        numerical = calculate_numerical_link_end_state_partial(
            model, t, reference_link_end, body, STATE_PERTURBATION)

        self.assertEqual(analytic.shape, (model.size, 6))
        np.testing.assert_allclose(analytic, numerical, rtol=1e-6, atol=ATOL[observable_type],
                                   err_msg=f"{observable_type.name} w.r.t. {body}")

    def test_light_time_observables(self):
        for observable_type in cases.observable_types():
            for link_ends in (cases.downlink(), cases.uplink()):
                for reference in (LinkEndType.RECEIVER, LinkEndType.TRANSMITTER):
                    for body in (cases.VEHICLE, "Earth"):
                        with self.subTest(observable=observable_type.name,
                                          link_ends=link_ends, reference=reference.name,
                                          body=body):
                            self.check_state_partial(observable_type, link_ends, reference, body)

    def test_position_observable(self):
        self.check_state_partial(ObservableType.POSITION_OBSERVABLE, cases.observed_vehicle(),
                                 LinkEndType.OBSERVED_BODY, cases.VEHICLE)

    def test_body_not_in_link_ends(self):
        link_ends = cases.downlink()
        scaling = create_position_partial_scaling(ObservableType.ONE_WAY_RANGE, link_ends,
                                                  self.env)
        with self.assertRaises(KeyError):
            link_end_state_partial(scaling, link_ends, ObservableType.ONE_WAY_RANGE, "Sun")


class TestDirectParameterPartials(unittest.TestCase):
    """Partials of observables w.r.t. parameters that do not enter the dynamics."""

    def setUp(self):
        self.env = cases.create_environment()

    def direct_partial(self, model, parameter, t, reference_link_end=LinkEndType.RECEIVER):
        observable_type = model.observable_type
        partials = create_observation_partials(observable_type, model.link_ends, model,
                                               [parameter], self.env)
        self.assertEqual(len(partials), 1)
        scaling = create_position_partial_scaling(observable_type, model.link_ends, self.env)
        ideal, times, states = model.compute_ideal_observation_with_link_end_data(
            t, reference_link_end)
        scaling.update(times, states, reference_link_end, ideal)
        return partials[0], partials[0].partial(scaling, times, states, ideal)

    def test_ground_station_position(self):
        parameter = ground_station_position("Earth", "Station1")
        for observable_type in cases.observable_types():
            for link_ends in (cases.downlink(), cases.uplink()):
                with self.subTest(observable=observable_type.name, link_ends=link_ends):
                    model = create_observation_model(
                        link_ends, ObservationSettings(observable_type), self.env)
                    partial, analytic = self.direct_partial(model, parameter, 1200.0)
                    self.assertIsInstance(partial, GroundStationPositionPartial)
                    numerical = calculate_numerical_parameter_partial(
                        parameter, self.env, 1e-2, lambda: model.compute_observation(1200.0))
                    np.testing.assert_allclose(analytic, numerical, rtol=1e-6,
                                               atol=ATOL[observable_type])

    def test_station_not_in_link_ends_has_no_partial(self):
        model = create_observation_model(cases.downlink(cases.STATION_2),
                                         ObservationSettings(ObservableType.ONE_WAY_RANGE),
                                         self.env)
        partials = create_observation_partials(
            ObservableType.ONE_WAY_RANGE, model.link_ends, model,
            [ground_station_position("Earth", "Station1")], self.env)
        self.assertEqual(partials, [])

    def test_gravitational_parameter_through_relativistic_correction(self):
        settings = ObservationSettings(
            ObservableType.ONE_WAY_RANGE,
            light_time_corrections=[
                FirstOrderRelativisticCorrectionSettings(perturbing_bodies=["Earth"])])
        model = create_observation_model(cases.downlink(), settings, self.env)
        parameter = gravitational_parameter("Earth")

        partial, analytic = self.direct_partial(model, parameter, 1500.0)
        self.assertIsInstance(partial, LightTimeGravitationalParameterPartial)
        # The vehicle follows a fixed Keplerian ephemeris: only the delay depends on mu
        numerical = calculate_numerical_parameter_partial(
            parameter, self.env, 1e4, lambda: model.compute_observation(1500.0))
        self.assertGreater(analytic[0, 0], 0.0)
        np.testing.assert_allclose(analytic, numerical, rtol=1e-4)

    def test_gravitational_parameter_without_correction_has_no_partial(self):
        model = create_observation_model(cases.downlink(),
                                         ObservationSettings(ObservableType.ONE_WAY_RANGE),
                                         self.env)
        partials = create_observation_partials(
            ObservableType.ONE_WAY_RANGE, model.link_ends, model,
            [gravitational_parameter("Earth")], self.env)
        self.assertEqual(partials, [])

    def test_additive_bias(self):
        link_ends = cases.downlink()
        settings = ObservationSettings(
            ObservableType.ANGULAR_POSITION,
            bias_settings=ObservationBiasSettings(ObservationBiasType.CONSTANT_ADDITIVE,
                                                  [1e-5, 2e-5]))
        model = create_observation_model(link_ends, settings, self.env)
        parameter = constant_additive_observation_bias(link_ends, ObservableType.ANGULAR_POSITION)

        partial, analytic = self.direct_partial(model, parameter, 700.0)
        self.assertIsInstance(partial, ConstantAdditiveBiasPartial)
        np.testing.assert_array_equal(analytic, np.eye(2))
        numerical = calculate_numerical_parameter_partial(
            parameter, self.env, 1e-6, lambda: model.compute_observation(700.0))
        np.testing.assert_allclose(analytic, numerical, atol=1e-8)

    def test_relative_bias(self):
        link_ends = cases.downlink()
        settings = ObservationSettings(
            ObservableType.ONE_WAY_RANGE,
            bias_settings=ObservationBiasSettings(ObservationBiasType.CONSTANT_RELATIVE, [1e-3]))
        model = create_observation_model(link_ends, settings, self.env)
        parameter = constant_relative_observation_bias(link_ends, ObservableType.ONE_WAY_RANGE)

        partial, analytic = self.direct_partial(model, parameter, 700.0)
        self.assertIsInstance(partial, ConstantRelativeBiasPartial)
        numerical = calculate_numerical_parameter_partial(
            parameter, self.env, 1e-6, lambda: model.compute_observation(700.0))
        np.testing.assert_allclose(analytic, numerical, rtol=1e-7)

    def test_relative_bias_on_angular_position_not_implemented(self):
        link_ends = cases.downlink()
        settings = ObservationSettings(
            ObservableType.ANGULAR_POSITION,
            bias_settings=ObservationBiasSettings(ObservationBiasType.CONSTANT_RELATIVE,
                                                  [0.0, 0.0]))
        model = create_observation_model(link_ends, settings, self.env)
        parameter = constant_relative_observation_bias(link_ends, ObservableType.ANGULAR_POSITION)
        with self.assertRaises(PartialNotImplemented):
            create_observation_partials(ObservableType.ANGULAR_POSITION, link_ends, model,
                                        [parameter], self.env)

    def test_bias_type_mismatch(self):
        link_ends = cases.downlink()
        settings = ObservationSettings(
            ObservableType.ONE_WAY_RANGE,
            bias_settings=ObservationBiasSettings(ObservationBiasType.CONSTANT_ADDITIVE, [0.0]))
        model = create_observation_model(link_ends, settings, self.env)
        parameter = constant_relative_observation_bias(link_ends, ObservableType.ONE_WAY_RANGE)
        with self.assertRaises(InvalidParameterSettings):
            create_observation_partials(ObservableType.ONE_WAY_RANGE, link_ends, model,
                                        [parameter], self.env)

    def test_station_partial_on_position_observable_not_implemented(self):
        self.env.body(cases.VEHICLE).add_ground_station("Antenna", np.zeros(3))
        link_ends = LinkEnds({LinkEndType.OBSERVED_BODY: (cases.VEHICLE, "Antenna")})
        model = create_observation_model(
            link_ends, ObservationSettings(ObservableType.POSITION_OBSERVABLE), self.env)
        with self.assertRaises(PartialNotImplemented):
            create_observation_partials(
                ObservableType.POSITION_OBSERVABLE, link_ends, model,
                [ground_station_position(cases.VEHICLE, "Antenna")], self.env)


if __name__ == '__main__':
    unittest.main()
