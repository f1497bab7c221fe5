"""
Prediction quality metrics for binary probabilistic classifiers.
"""

import logging
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, brier_score_loss, mean_squared_error

logger = logging.getLogger(__name__)

AGGREGATE_COLUMNS = ("log_prob", "accuracy", "brier_score")


class Metrics:
    """
    Metrics for a sequence of predictions against true labels.

    Args:
        true_labels: Boolean ground truth
        estimates: Predicted P(label = True), aligned with `true_labels`
        name: Label used in log output
    """

    def __init__(
        self, true_labels: Sequence[bool], estimates: Sequence[float], name: str = ""
    ) -> None:
        self.true_labels = np.asarray(true_labels, dtype=bool)
        self.estimates = np.asarray(estimates, dtype=float)
        self.name = name
        if self.true_labels.shape != self.estimates.shape:
            raise ValueError(
                f"True labels ({len(self.true_labels)}) and estimates "
                f"({len(self.estimates)}) must have the same length"
            )

    def __len__(self) -> int:
        return len(self.true_labels)

    @property
    def correct(self) -> np.ndarray:
        return self.true_labels == (self.estimates > 0.5)

    @property
    def log_prob_of_truth(self) -> np.ndarray:
        with np.errstate(divide="ignore"):
            return np.where(
                self.true_labels, np.log(self.estimates), np.log1p(-self.estimates)
            )

    @property
    def mean_squared_error(self) -> float:
        if len(self) == 0:
            return float("nan")
        return float(mean_squared_error(self.true_labels.astype(float), self.estimates))

    @property
    def sum_log_prob_of_truth(self) -> float:
        if len(self) == 0:
            return float("nan")
        return float(np.sum(self.log_prob_of_truth))

    @property
    def average_accuracy(self) -> float:
        if len(self) == 0:
            return float("nan")
        return float(accuracy_score(self.true_labels, self.estimates > 0.5))

    @property
    def brier_score(self) -> float:
        if len(self) == 0:
            return float("nan")
        return float(
            brier_score_loss(self.true_labels.astype(int), self.estimates, pos_label=1)
        )

    @property
    def cumulative_log_prob_of_truth(self) -> np.ndarray:
        return np.cumsum(self.log_prob_of_truth)

    @property
    def cumulative_accuracy(self) -> np.ndarray:
        return np.cumsum(self.correct) / np.arange(1, len(self) + 1)

    @property
    def cumulative_brier_score(self) -> np.ndarray:
        squared = (self.true_labels.astype(float) - self.estimates) ** 2
        return np.cumsum(squared) / np.arange(1, len(self) + 1)

    def to_dict(self) -> Dict[str, float]:
        return {
            "mse": _round_metric(self.mean_squared_error),
            "log_prob": _round_metric(self.sum_log_prob_of_truth),
            "accuracy": _round_metric(self.average_accuracy),
            "brier_score": _round_metric(self.brier_score),
        }

    def log_summary(self) -> None:
        logger.info(
            "%s: MSE %.2f, Error rate %.2f, Log prob of truth %.2f",
            self.name,
            self.mean_squared_error,
            1.0 - self.average_accuracy,
            self.sum_log_prob_of_truth,
        )


class MetricsCollection:
    """
    Aggregates cumulative online metrics across residents.

    Averages are taken position by position over the shortest prediction sequence.
    """

    def __init__(self) -> None:
        self.metrics: List[Metrics] = []
        self.aggregates: pd.DataFrame | None = None

    def add(self, metrics: Metrics, log_summary: bool = False) -> None:
        self.metrics.append(metrics)
        if log_summary:
            metrics.log_summary()

    @property
    def minimum_length(self) -> int:
        return min(len(m) for m in self.metrics)

    def recompute_aggregate_metrics(self) -> pd.DataFrame:
        """
        Returns:
            DataFrame indexed by instance position with mean and std columns
        """
        if not self.metrics:
            raise ValueError("Cannot aggregate metrics: no metrics have been added yet")
        length = self.minimum_length
        per_metric = {
            "log_prob": [m.cumulative_log_prob_of_truth[:length] for m in self.metrics],
            "accuracy": [m.cumulative_accuracy[:length] for m in self.metrics],
            "brier_score": [m.cumulative_brier_score[:length] for m in self.metrics],
        }
        self.aggregates = _column_statistics(per_metric)
        return self.aggregates


class HoldoutMetricsCollection:
    """
    Aggregates per-step holdout metrics across residents.

    `metrics[r][t]` holds the holdout metrics of resident r after step t.
    Residents that stopped early contribute to the steps they reached.
    """

    def __init__(self, metrics: List[List[Metrics]] | None = None) -> None:
        self.metrics: List[List[Metrics]] = metrics if metrics is not None else []
        self.aggregates: pd.DataFrame | None = None

    def add_resident(self, metrics: List[Metrics]) -> None:
        self.metrics.append(metrics)

    def recompute_aggregate_metrics(self) -> pd.DataFrame:
        if not self.metrics or not any(self.metrics):
            raise ValueError("Cannot aggregate metrics: no metrics have been added yet")
        per_metric = {
            "log_prob": [
                [m.sum_log_prob_of_truth for m in row] for row in self.metrics
            ],
            "accuracy": [[m.average_accuracy for m in row] for row in self.metrics],
            "brier_score": [[m.brier_score for m in row] for row in self.metrics],
        }
        self.aggregates = _column_statistics(per_metric)
        return self.aggregates


def _column_statistics(per_metric: Dict[str, List[Sequence[float]]]) -> pd.DataFrame:
    columns = {}
    for metric_name in AGGREGATE_COLUMNS:
        frame = pd.DataFrame([list(row) for row in per_metric[metric_name]])
        columns[f"average_{metric_name}"] = frame.mean(axis=0)
        columns[f"std_{metric_name}"] = frame.std(axis=0, ddof=0)
    result = pd.DataFrame(columns)
    result.index.name = "step"
    return result


def _round_metric(value: float, digits: int = 6) -> float:
    if np.isnan(value):
        return value
    return round(float(value), digits)
