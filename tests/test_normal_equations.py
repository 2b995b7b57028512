import unittest

import numpy as np

from batch_od.core.config import ConvergenceConfig
from batch_od.core.errors import EstimationError, SingularNormalEquations
from batch_od.core.types import TerminationReason
from batch_od.estimation.convergence import EstimationConvergenceChecker
from batch_od.estimation.normal_equations import NormalEquations, solve_normal_equations
from batch_od.estimation.pod_output import PodOutput


class TestNormalEquations(unittest.TestCase):

    def setUp(self):
        rng = np.random.default_rng(42)
        self.H = rng.normal(size=(40, 4)) * np.array([1.0, 1e3, 1e-4, 10.0])
        self.x = np.array([0.5, -2e-3, 30.0, 1.5])

    def test_exact_linear_solution(self):
        eq = NormalEquations(4)
        eq.accumulate(self.H, self.H @ self.x, np.ones(40))
        correction, normalization, inverse_normalized = eq.solve()
        np.testing.assert_allclose(correction, self.x, rtol=1e-9)
        np.testing.assert_allclose(normalization, np.sqrt(np.diag(self.H.T @ self.H)))
        self.assertEqual(eq.n_observations, 40)

        normalized = eq.information_matrix / np.outer(normalization, normalization)
        np.testing.assert_allclose(inverse_normalized @ normalized, np.eye(4), atol=1e-10)

    def test_accumulation_in_blocks(self):
        whole = NormalEquations(4)
        whole.accumulate(self.H, self.H @ self.x, np.ones(40))

        split = NormalEquations(4)
        for block in (slice(0, 15), slice(15, 40)):
            part = NormalEquations(4)
            part.accumulate(self.H[block], self.H[block] @ self.x, np.ones(block.stop - block.start))
            split.add(part)

        np.testing.assert_allclose(split.information_matrix, whole.information_matrix)
        np.testing.assert_allclose(split.right_hand_side, whole.right_hand_side)
        self.assertEqual(split.n_observations, 40)

    def test_weight_scaling(self):
        r = self.H @ self.x
        base = NormalEquations(4)
        base.accumulate(self.H, r, np.ones(40))
        scaled = NormalEquations(4)
        scaled.accumulate(self.H, r, np.full(40, 4.0))

        np.testing.assert_allclose(scaled.information_matrix, 4.0 * base.information_matrix)
        dx_base, d_base, p_base = base.solve()
        dx_scaled, d_scaled, p_scaled = scaled.solve()
        np.testing.assert_allclose(dx_scaled, dx_base, rtol=1e-10)
        covariance_base = p_base / np.outer(d_base, d_base)
        covariance_scaled = p_scaled / np.outer(d_scaled, d_scaled)
        np.testing.assert_allclose(covariance_scaled, covariance_base / 4.0, rtol=1e-10)

    def test_zero_weights_ignore_observations(self):
        r = self.H @ self.x
        r_corrupted = r.copy()
        r_corrupted[:5] += 100.0
        weights = np.ones(40)
        weights[:5] = 0.0
        eq = NormalEquations(4)
        eq.accumulate(self.H, r_corrupted, weights)
        np.testing.assert_allclose(eq.solve()[0], self.x, rtol=1e-9)

    def test_a_priori(self):
        deviation = np.array([1.0, 2.0, 3.0, 4.0])
        tight = NormalEquations(4, np.eye(4) * 1e32, deviation)
        tight.accumulate(self.H, self.H @ self.x, np.ones(40))
        np.testing.assert_allclose(tight.solve()[0], deviation, rtol=1e-8)

        prior_only = NormalEquations(4, np.diag([1.0, 2.0, 3.0, 4.0]), deviation)
        np.testing.assert_allclose(prior_only.solve()[0], deviation, rtol=1e-12)

    def test_zero_column(self):
        H = self.H.copy()
        H[:, 2] = 0.0
        eq = NormalEquations(4)
        eq.accumulate(H, H @ self.x, np.ones(40))
        with self.assertRaises(SingularNormalEquations):
            eq.solve()

    def test_linearly_dependent_columns(self):
        H = np.array([[1.0, 1.0, 0.0],
                      [2.0, 2.0, 1.0],
                      [0.0, 0.0, 3.0],
                      [1.0, 1.0, 1.0]])
        with self.assertRaises(SingularNormalEquations) as ctx:
            solve_normal_equations(H.T @ H, H.T @ np.ones(4))
        self.assertIsInstance(ctx.exception, EstimationError)
        self.assertIsNone(ctx.exception.pod_output)


class TestConvergenceChecker(unittest.TestCase):

    def test_maximum_iterations(self):
        checker = EstimationConvergenceChecker(ConvergenceConfig(maximum_iterations=3))
        self.assertIsNone(checker.check(0, 10.0))
        self.assertIsNone(checker.check(1, 5.0))
        self.assertEqual(checker.check(2, 1.0), TerminationReason.MAXIMUM_ITERATIONS)

    def test_minimum_residual_takes_precedence(self):
        checker = EstimationConvergenceChecker(ConvergenceConfig(maximum_iterations=1,
                                                                 minimum_residual=1e-3))
        self.assertEqual(checker.check(0, 1e-4), TerminationReason.MINIMUM_RESIDUAL)

    def test_iterations_without_improvement(self):
        checker = EstimationConvergenceChecker(ConvergenceConfig(
            maximum_iterations=10, minimum_residual_change=0.01,
            iterations_without_improvement=2))
        self.assertIsNone(checker.check(0, 1.0))
        self.assertIsNone(checker.check(1, 0.5))
        self.assertIsNone(checker.check(2, 0.498))      # below 1 % improvement
        self.assertIsNone(checker.check(3, 0.1))        # counter reset
        self.assertIsNone(checker.check(4, 0.2))
        self.assertEqual(checker.check(5, 0.0999), TerminationReason.RESIDUAL_CHANGE)
        self.assertAlmostEqual(checker.best_rms, 0.0999)

    def test_reset(self):
        checker = EstimationConvergenceChecker(ConvergenceConfig(iterations_without_improvement=1))
        checker.check(0, 1.0)
        self.assertEqual(checker.check(1, 2.0), TerminationReason.RESIDUAL_CHANGE)
        checker.reset()
        self.assertEqual(checker.best_rms, np.inf)
        self.assertIsNone(checker.check(0, 2.0))


class TestPodOutput(unittest.TestCase):

    def test_covariance_products(self):
        information = np.array([[4.0, 1.0], [1.0, 9.0]])
        correction, normalization, inverse_normalized = solve_normal_equations(
            information, np.zeros(2))
        output = PodOutput(parameter_names=["a", "b"], rms_history=[3.0, 1.0, 2.0],
                           best_iteration=1, information_matrix=information,
                           normalization_terms=normalization,
                           inverse_normalized_information=inverse_normalized,
                           final_parameters=np.array([1.0, 2.0]))
        np.testing.assert_allclose(output.covariance, np.linalg.inv(information), rtol=1e-12)
        np.testing.assert_allclose(output.formal_errors,
                                   np.sqrt(np.diag(np.linalg.inv(information))))
        np.testing.assert_allclose(np.diag(output.correlations), [1.0, 1.0])
        np.testing.assert_allclose(np.diag(output.normalized_information_matrix), [1.0, 1.0])
        self.assertEqual(output.number_of_iterations, 3)
        self.assertEqual(output.best_rms, 1.0)
        self.assertIn("1: RMS", output.summary())


if __name__ == '__main__':
    unittest.main()
