"""
Experiment runners.

Batch, online and active experiments share one classifier. Active
experiments run one learner per resident, each starting from the same
priors, and evaluate every step on the resident's holdout data.
"""

import logging
from typing import Optional, Sequence

from core.binary_model import BinaryModel
from core.data_loader import DataSet
from core.marginals import Marginals
from core.metrics_calculator import HoldoutMetricsCollection, Metrics, MetricsCollection
from core.query_strategies import ActiveLearnerBase
from core.round_tracker import RoundTracker

logger = logging.getLogger(__name__)


class Experiment:
    """
    Runs batch, online or active learning over a multi-resident data set.

    Args:
        model: Classifier used for training and prediction
        name: Label for log output and tracked rounds
        learners: One active learner per resident (active experiments only)
        round_tracker: Receives one row per active selection
        update_iterations: EP sweeps when retraining on a selected instance
        online_iterations: EP sweeps when retraining in online experiments
    """

    def __init__(
        self,
        model: BinaryModel,
        name: str = "",
        learners: Optional[Sequence[ActiveLearnerBase]] = None,
        round_tracker: Optional[RoundTracker] = None,
        update_iterations: int = 50,
        online_iterations: int = 10,
    ) -> None:
        self.model = model
        self.name = name
        self.learners = list(learners) if learners is not None else None
        self.round_tracker = round_tracker or RoundTracker()
        self.update_iterations = update_iterations
        self.online_iterations = online_iterations

        self.posteriors: Optional[Marginals] = None
        self.individual_posteriors: list[Marginals] = []
        self.metrics: Optional[MetricsCollection] = None
        self.holdout_metrics: Optional[HoldoutMetricsCollection] = None

    def run_batch(
        self, data_set: DataSet, priors: Marginals, num_iterations: int = 1
    ) -> Marginals:
        """Train on all residents at once (e.g. a community model)."""
        logger.info(f"Running batch experiment: {self.name}")
        self.posteriors = self.model.train(data_set, priors, num_iterations)
        return self.posteriors

    def run_online(
        self, data_set: DataSet, holdout_set: DataSet, priors: Marginals
    ) -> MetricsCollection:
        """
        Predict each instance in turn, then train on it.

        Returns:
            Cumulative metrics of the online predictions across residents
        """
        logger.info(f"Running online experiment: {self.name}")
        self.metrics = MetricsCollection()
        self.holdout_metrics = HoldoutMetricsCollection()
        self.individual_posteriors = []

        for resident in range(data_set.num_residents):
            posterior = priors.copy()
            holdout = holdout_set.subset(resident)
            estimates = []
            collection = []
            for index in range(data_set.num_instances[resident]):
                datum = data_set.subset(resident, index)
                estimates.append(float(self.model.test(datum, posterior)[0][0]))
                holdout_probabilities = self.model.test(holdout, posterior)[0]
                collection.append(
                    Metrics(holdout.labels[0], holdout_probabilities, name=self.name)
                )
                posterior = self.model.train(datum, posterior, self.online_iterations)

            self.individual_posteriors.append(posterior)
            self.metrics.add(
                Metrics(data_set.labels[resident], estimates, name=self.name),
                log_summary=True,
            )
            self.holdout_metrics.add_resident(collection)
            self._log_resident(resident, collection)

        if any(self.holdout_metrics.metrics):
            self.holdout_metrics.recompute_aggregate_metrics()
        if self.metrics.metrics and self.metrics.minimum_length > 0:
            self.metrics.recompute_aggregate_metrics()
        return self.metrics

    def run_active(
        self,
        data_set: DataSet,
        holdout_set: DataSet,
        num_selections: int,
        priors: Marginals,
        seed_per_class: int = 0,
    ) -> HoldoutMetricsCollection:
        """
        Run the active learning loop for every resident.

        Each step predicts the resident's data and holdout set, asks the
        resident's learner for an index, marks it labeled and retrains on it.
        A resident's loop stops early when its unlabeled pool is empty.

        Args:
            data_set: Pool data, one resident per learner
            holdout_set: Evaluation data, one resident per learner
            num_selections: Maximum number of steps per resident
            priors: Starting beliefs for every resident
            seed_per_class: Labeled instances of each class to transfer before the loop

        Returns:
            Holdout metrics per resident and step
        """
        if self.learners is None:
            raise ValueError("Active learners not provided")
        if len(self.learners) != data_set.num_residents:
            raise ValueError(
                f"Expected {data_set.num_residents} learners, got {len(self.learners)}"
            )

        logger.info(f"Running active experiment: {self.name}")
        self.holdout_metrics = HoldoutMetricsCollection()
        self.individual_posteriors = []

        for resident, learner in enumerate(self.learners):
            posterior = priors.copy()
            resident_data = data_set.subset(resident)
            holdout = holdout_set.subset(resident)

            if seed_per_class > 0:
                moved = learner.transfer(0, seed_per_class)
                if moved:
                    seed_data = data_set.subset(resident, moved)
                    posterior = self.model.train(
                        seed_data, posterior, self.update_iterations
                    )

            collection = []
            for step in range(num_selections):
                probabilities = self.model.test(resident_data, posterior)[0]
                holdout_probabilities = self.model.test(holdout, posterior)[0]
                if not learner.unlabeled:
                    logger.info(
                        "Empty unlabeled set. Stopping resident %d after %d steps.",
                        resident,
                        step,
                    )
                    break

                learner.set_belief_state(posterior)
                index, value = learner.get_arg_max_voi(probabilities)
                learner.update_model(index)
                posterior = self.model.train(
                    data_set.subset(resident, index), posterior, self.update_iterations
                )

                metrics = Metrics(
                    holdout.labels[0], holdout_probabilities, name=self.name
                )
                collection.append(metrics)
                self.round_tracker.track_round(
                    experiment=self.name,
                    strategy=learner.name,
                    resident=resident,
                    step=step,
                    selected_index=index,
                    value=value,
                    labeled_size=len(learner.labeled),
                    unlabeled_size=len(learner.unlabeled),
                    metrics=metrics.to_dict(),
                )

            self.individual_posteriors.append(posterior)
            self.holdout_metrics.add_resident(collection)
            self._log_resident(resident, collection)

        if any(self.holdout_metrics.metrics):
            self.holdout_metrics.recompute_aggregate_metrics()
        return self.holdout_metrics

    def _log_resident(self, resident: int, collection: list[Metrics]) -> None:
        if not collection:
            logger.info(
                "%s, Resident %d, no holdout metrics recorded", self.name, resident
            )
            return
        accuracies = [m.average_accuracy for m in collection]
        logger.info(
            "%s, Resident %d, Hold out accuracy %.2f, Accuracies %s",
            self.name,
            resident,
            sum(accuracies) / len(accuracies),
            ", ".join(f"{a:.2f}" for a in accuracies),
        )
