"""
Termination policy of the iterative estimator.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..core.config import ConvergenceConfig
from ..core.types import TerminationReason


class EstimationConvergenceChecker:
    """Decides after each iteration whether the estimation stops.

    An iteration counts as an improvement when its residual RMS is lower
    than the best RMS so far by more than ``minimum_residual_change``
    (relative). The criteria are checked in the order: minimum residual,
    iterations without improvement, maximum iterations.

    Attributes:
        config: Thresholds.
        best_rms: Lowest RMS seen so far.
        iterations_without_improvement: Consecutive non-improving iterations.
    """

    def __init__(self, config: ConvergenceConfig):
        self.config = config
        self.reset()

    def reset(self) -> None:
        self.best_rms = np.inf
        self.iterations_without_improvement = 0

    def check(self, iteration: int, rms: float) -> Optional[TerminationReason]:
        """Register the RMS of an iteration (0-based).

        Returns:
            The reason to stop, or None to continue.
        """
        cfg = self.config
        if rms < cfg.minimum_residual:
            return TerminationReason.MINIMUM_RESIDUAL

        if rms < self.best_rms * (1.0 - cfg.minimum_residual_change):
            self.iterations_without_improvement = 0
        else:
            self.iterations_without_improvement += 1
        self.best_rms = min(self.best_rms, rms)

        if self.iterations_without_improvement >= cfg.iterations_without_improvement:
            return TerminationReason.RESIDUAL_CHANGE
        if iteration + 1 >= cfg.maximum_iterations:
            return TerminationReason.MAXIMUM_ITERATIONS
        return None
