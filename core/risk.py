"""
Misclassification risk and query cost used by value-of-information selection.
"""

from typing import Iterable, Sequence

import numpy as np


class RiskObjective:
    """
    Expected risk over labeled and unlabeled instances.

    Args:
        risk_matrix: 2x2 matrix R[true][predicted] of misclassification costs
        costs: Cost of querying a negative (costs[0]) or positive (costs[1]) label
        gains: Per-class gains, kept with the objective's configuration
    """

    def __init__(
        self,
        risk_matrix: Sequence[Sequence[float]] = ((0.0, 1.0), (1.0, 0.0)),
        costs: Sequence[float] = (1.0, 1.0),
        gains: Sequence[float] = (1.0 / 3.0, 1.0 / 3.0),
    ) -> None:
        self.risk_matrix = np.asarray(risk_matrix, dtype=float)
        self.costs = np.asarray(costs, dtype=float)
        self.gains = np.asarray(gains, dtype=float)
        if self.risk_matrix.shape != (2, 2):
            raise ValueError(f"risk_matrix must be 2x2, got {self.risk_matrix.shape}")
        if self.costs.shape != (2,):
            raise ValueError(f"costs must have length 2, got {self.costs.shape}")
        if np.any(self.risk_matrix < 0) or np.any(self.costs < 0):
            raise ValueError("risk_matrix and costs must be non-negative")

    def labeled_risk(self, label, probability):
        """Risk of a labeled instance given its label and P(label = True)."""
        probability = np.asarray(probability, dtype=float)
        label = np.asarray(label, dtype=bool)
        risk = np.where(
            label,
            self.risk_matrix[1, 0] * (1.0 - probability),
            self.risk_matrix[0, 1] * probability,
        )
        return float(risk) if risk.ndim == 0 else risk

    def unlabeled_risk(self, probability):
        """Expected risk of an unlabeled instance given P(label = True)."""
        probability = np.asarray(probability, dtype=float)
        risk = (
            (self.risk_matrix[1, 0] + self.risk_matrix[0, 1])
            * probability
            * (1.0 - probability)
        )
        return float(risk) if risk.ndim == 0 else risk

    def query_cost(self, probability):
        """Expected cost of querying a label with P(label = True) = probability."""
        probability = np.asarray(probability, dtype=float)
        cost = self.costs[1] * probability + self.costs[0] * (1.0 - probability)
        return float(cost) if cost.ndim == 0 else cost

    def total_risk(
        self,
        labels: np.ndarray,
        probabilities: np.ndarray,
        labeled: Iterable[int],
        unlabeled: Iterable[int],
    ) -> float:
        """Sum of labeled risk over `labeled` and unlabeled risk over `unlabeled`."""
        labels = np.asarray(labels, dtype=bool)
        probabilities = np.asarray(probabilities, dtype=float)
        labeled = np.fromiter(labeled, dtype=int)
        unlabeled = np.fromiter(unlabeled, dtype=int)
        labeled_total = np.sum(
            self.labeled_risk(labels[labeled], probabilities[labeled])
        )
        unlabeled_total = np.sum(self.unlabeled_risk(probabilities[unlabeled]))
        return float(labeled_total + unlabeled_total)

    def mean_risk(
        self,
        labels: np.ndarray,
        probabilities: np.ndarray,
        labeled: Iterable[int],
        unlabeled: Iterable[int],
    ) -> float:
        labeled = list(labeled)
        unlabeled = list(unlabeled)
        count = len(labeled) + len(unlabeled)
        if count == 0:
            return 0.0
        return self.total_risk(labels, probabilities, labeled, unlabeled) / count
