"""
Privacy Accounting for Federated Learning

Implements the Gaussian mechanism used to perturb the global model after
aggregation, and the ledger that tracks cumulative privacy spend.

Accounting note:
    Spend is tracked as ``epsilon_per_round * rounds_executed``. This is a
    placeholder linear composition, not a validated privacy guarantee; a
    production deployment should use an RDP or advanced-composition
    accountant.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from edufed.federated.exceptions import InvalidArgument

logger = logging.getLogger(__name__)


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class PrivacyLedger:
    """Cumulative privacy spend."""

    epsilon_per_round: float = 1.0
    rounds_executed: int = 0

    @property
    def cumulative_epsilon(self) -> float:
        """Total epsilon spent so far."""
        return self.epsilon_per_round * self.rounds_executed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "epsilon_per_round": self.epsilon_per_round,
            "rounds_executed": self.rounds_executed,
            "cumulative_epsilon": self.cumulative_epsilon,
        }


# =============================================================================
# Privacy Accountant
# =============================================================================


class PrivacyAccountant:
    """
    Gaussian-mechanism noise and privacy budget bookkeeping.

    Noise is calibrated as ``sigma = sensitivity / epsilon``, matching the
    simplified mechanism the coordinator has always used.

    Example:
        accountant = PrivacyAccountant(epsilon_per_round=1.0, seed=42)
        noisy = accountant.privatize(weights, epsilon=1.0, sensitivity=2.0)
        accountant.spend(1.0)
        accountant.remaining_budget(total_budget=10.0)  # 9.0
    """

    def __init__(
        self,
        epsilon_per_round: float = 1.0,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
    ):
        """
        Initialize accountant.

        Args:
            epsilon_per_round: Privacy budget charged for each completed round
            seed: Seed for a private generator (ignored if rng is given)
            rng: Explicit random generator
        """
        if epsilon_per_round <= 0:
            raise InvalidArgument(
                f"epsilon_per_round must be positive, got {epsilon_per_round}"
            )
        self.ledger = PrivacyLedger(epsilon_per_round=epsilon_per_round)
        self._rng = rng if rng is not None else np.random.default_rng(seed)

    @property
    def cumulative_epsilon(self) -> float:
        return self.ledger.cumulative_epsilon

    @property
    def rounds_executed(self) -> int:
        return self.ledger.rounds_executed

    def gaussian_noise(self, mean: float = 0.0, std: float = 1.0) -> float:
        """
        Draw one sample from N(mean, std) with the Box-Muller transform.

        Args:
            mean: Distribution mean
            std: Standard deviation (must be non-negative)

        Returns:
            Gaussian sample
        """
        if std < 0:
            raise InvalidArgument(f"std must be non-negative, got {std}")
        # 1 - U keeps u1 in (0, 1] so log() is finite
        u1 = 1.0 - float(self._rng.random())
        u2 = float(self._rng.random())
        z0 = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return mean + std * z0

    def noise_scale(self, epsilon: float, sensitivity: float) -> float:
        """Gaussian noise scale for the given privacy parameters."""
        if epsilon <= 0:
            raise InvalidArgument(
                f"epsilon must be positive, got {epsilon}",
                {"epsilon": epsilon},
            )
        if sensitivity <= 0:
            raise InvalidArgument(
                f"sensitivity must be positive, got {sensitivity}",
                {"sensitivity": sensitivity},
            )
        return sensitivity / epsilon

    def privatize(
        self,
        values: np.ndarray | list[float],
        epsilon: float,
        sensitivity: float,
    ) -> np.ndarray:
        """
        Add independent Gaussian noise to every value.

        Does not touch the ledger; call ``spend`` once the round commits.

        Args:
            values: Values to perturb
            epsilon: Privacy parameter for this release
            sensitivity: L2 sensitivity bound

        Returns:
            New array of perturbed values
        """
        sigma = self.noise_scale(epsilon, sensitivity)
        array = np.asarray(values, dtype=np.float64)

        # Vectorized Box-Muller, same transform as gaussian_noise()
        u1 = 1.0 - self._rng.random(array.shape)
        u2 = self._rng.random(array.shape)
        z0 = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)

        return array + sigma * z0

    def spend(self, epsilon: float | None = None) -> None:
        """
        Charge one round of privacy budget.

        Each call counts as exactly one round at ``epsilon_per_round``; the
        argument is accepted for call-site symmetry and not used in the sum.
        """
        self.ledger.rounds_executed += 1
        logger.debug(
            f"Privacy spend: rounds={self.ledger.rounds_executed}, "
            f"cumulative_epsilon={self.ledger.cumulative_epsilon:.4f}"
        )

    def remaining_budget(self, total_budget: float) -> float:
        """Budget left out of ``total_budget``, floored at zero."""
        return max(0.0, total_budget - self.ledger.cumulative_epsilon)

    def is_exhausted(self, total_budget: float) -> bool:
        """Check if budget is exhausted."""
        return self.ledger.cumulative_epsilon >= total_budget

    def get_metrics(self, total_budget: float | None = None) -> dict[str, Any]:
        """Get privacy metrics."""
        metrics = self.ledger.to_dict()
        if total_budget is not None:
            metrics["total_budget"] = total_budget
            metrics["remaining_budget"] = self.remaining_budget(total_budget)
            metrics["budget_exhausted"] = self.is_exhausted(total_budget)
        return metrics
