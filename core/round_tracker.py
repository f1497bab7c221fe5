"""
Round tracking utilities for active learning experiments.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


SUMMARY_METRIC_RULES = {
    "auc_accuracy": ("mean", "accuracy"),
    "final_accuracy": ("last", "accuracy"),
    "final_brier_score": ("last", "brier_score"),
    "best_log_prob": ("max", "log_prob"),
}


class RoundTracker:
    """
    Tracks the index selected for each resident at each active learning step.
    """

    def __init__(self) -> None:
        self.rounds: List[Dict[str, Any]] = []

    def track_round(
        self,
        experiment: str,
        strategy: str,
        resident: int,
        step: int,
        selected_index: int,
        value: float,
        labeled_size: int,
        unlabeled_size: int,
        metrics: Dict[str, float],
    ) -> None:
        """
        Track the selection made in a round.

        Args:
            experiment: Experiment name (e.g. strategy plus transfer setting)
            strategy: Name of the learner that made the selection
            resident: Resident the selection was made for
            step: Zero-based step within the resident's loop
            selected_index: Index moved to the labeled set
            value: Selection value reported by the learner
            labeled_size: Labeled set size after the selection
            unlabeled_size: Unlabeled set size after the selection
            metrics: Holdout metrics for the round
        """
        self.rounds.append(
            {
                "experiment": experiment,
                "strategy": strategy,
                "resident": resident,
                "step": step,
                "selected_index": int(selected_index),
                "value": float(value),
                "labeled_size": labeled_size,
                "unlabeled_size": unlabeled_size,
                **metrics,
            }
        )

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.rounds)

    def compute_summary_metrics(self) -> Dict[str, Dict[str, float]]:
        """
        Compute summary metrics defined by `SUMMARY_METRIC_RULES`.

        Each rule is applied to every resident's learning curve and the
        results are averaged across residents, per experiment.
        """
        if not self.rounds:
            raise ValueError(
                "Cannot compute summary metrics: no rounds have been tracked yet"
            )

        df = self.to_dataframe()
        summary: Dict[str, Dict[str, float]] = {}
        for experiment, group in df.groupby("experiment", sort=False):
            summary_values: Dict[str, float] = {}
            for metric_name, (rule, metric_column) in SUMMARY_METRIC_RULES.items():
                if metric_column not in group.columns:
                    raise ValueError(
                        f"Metric column {metric_column} not found in rounds"
                    )
                per_resident = []
                for _, curve in group.sort_values("step").groupby("resident"):
                    values = curve[metric_column].to_numpy(dtype=float)
                    if rule == "mean":
                        per_resident.append(float(np.mean(values)))
                    elif rule == "last":
                        per_resident.append(float(values[-1]))
                    elif rule == "max":
                        per_resident.append(float(np.max(values)))
                    else:
                        raise ValueError(
                            f"Unknown summary metric rule '{rule}' for {metric_name}"
                        )
                summary_values[metric_name] = float(np.mean(per_resident))
            summary_values["completed_rounds"] = int(len(group))
            summary[str(experiment)] = summary_values
        return summary

    def save_to_csv(self, output_path: Path) -> None:
        """
        Save rounds to CSV file.

        Args:
            output_path: Path to save rounds
        """
        self.to_dataframe().to_csv(output_path, index=False)
        logger.info(f"Rounds saved to {output_path}")
