"""
Query strategy implementations.

Every learner is bound to one resident's data and owns the labeled /
unlabeled partition over it. `get_arg_max_voi` picks the next index to
query from the current predictive probabilities and beliefs;
`update_model` records that the index has been labeled.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence

import numpy as np

from core.binary_model import BinaryModel
from core.data_loader import DataSet
from core.exceptions import EmptyUnlabeledPoolError, ImproperBeliefError
from core.marginals import Marginals
from core.partition import LabelPartition
from core.risk import RiskObjective

logger = logging.getLogger(__name__)


class SelectionDirection(Enum):
    """Whether a learner picks the candidate with the largest or smallest value."""

    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"

    def flipped(self) -> "SelectionDirection":
        if self is SelectionDirection.MAXIMIZE:
            return SelectionDirection.MINIMIZE
        return SelectionDirection.MAXIMIZE

    def improves(self, value: float, incumbent: float) -> bool:
        if self is SelectionDirection.MAXIMIZE:
            return value > incumbent
        return value < incumbent


class ActiveLearnerBase(ABC):
    """
    Abstract base class for active learners.

    Each concrete learner implements `_select` to score the unlabeled pool.
    Reversible learners flip their selection direction when `reversed` is set.
    """

    default_direction: SelectionDirection = SelectionDirection.MAXIMIZE
    supports_reversal: bool = False
    requires_priors: bool = False

    def __init__(
        self,
        name: Optional[str] = None,
        data_set: Optional[DataSet] = None,
        reversed: bool = False,
        seed: Optional[int] = None,
    ) -> None:
        self._name = name or self.__class__.__name__
        self._reversed = False
        self.reversed = reversed
        self._transfer_rng = np.random.default_rng(seed)
        self._data_set: Optional[DataSet] = None
        self._partition: Optional[LabelPartition] = None
        self._beliefs: Optional[Marginals] = None
        self.data_set = data_set

    @property
    def name(self) -> str:
        if self._reversed:
            return f"{self._name}_REVERSED"
        return self._name

    @property
    def reversed(self) -> bool:
        return self._reversed

    @reversed.setter
    def reversed(self, value: bool) -> None:
        if value and not self.supports_reversal:
            raise ValueError(f"{self.__class__.__name__} cannot be reversed")
        self._reversed = bool(value)

    @property
    def direction(self) -> SelectionDirection:
        if self._reversed:
            return self.default_direction.flipped()
        return self.default_direction

    @property
    def data_set(self) -> Optional[DataSet]:
        return self._data_set

    @data_set.setter
    def data_set(self, value: Optional[DataSet]) -> None:
        """Setting the data set resets the partition: everything becomes unlabeled."""
        self._data_set = value
        if value is None:
            self._partition = None
        else:
            self._partition = LabelPartition(max(value.num_instances, default=0))

    @property
    def partition(self) -> LabelPartition:
        if self._partition is None:
            raise ValueError("data_set must be set before using the learner")
        return self._partition

    @property
    def labeled(self) -> list[int]:
        return self.partition.labeled

    @labeled.setter
    def labeled(self, indices: Iterable[int]) -> None:
        """Replace the labeled set; every other index becomes unlabeled."""
        self._partition = LabelPartition.from_indices(
            self.partition.size, labeled=indices
        )

    @property
    def unlabeled(self) -> list[int]:
        return self.partition.unlabeled

    @unlabeled.setter
    def unlabeled(self, indices: Iterable[int]) -> None:
        """Replace the unlabeled set; every other index becomes labeled."""
        self._partition = LabelPartition.from_indices(
            self.partition.size, unlabeled=indices
        )

    def set_partition(self, labeled: Iterable[int], unlabeled: Iterable[int]) -> None:
        """
        Replace both index sets at once.

        Raises:
            ValueError: If the sets overlap or do not cover every index
        """
        self._partition = LabelPartition.from_indices(
            self.partition.size, labeled=labeled, unlabeled=unlabeled
        )

    @property
    def beliefs(self) -> Optional[Marginals]:
        return self._beliefs

    def set_belief_state(self, priors: Marginals) -> None:
        """Store a copy of the beliefs used when `get_arg_max_voi` gets no priors."""
        self._beliefs = priors.copy()

    def set_transfer_seed(self, seed: Optional[int]) -> None:
        """Reset the generator used by `transfer`."""
        self._transfer_rng = np.random.default_rng(seed)

    def transfer(self, resident: int = 0, count_per_class: int = 0) -> list[int]:
        """
        Seed the labeled set with `count_per_class` random instances of each class.

        Returns:
            Indices moved to the labeled set
        """
        labels = self.data_set.labels[resident]
        moved = self.partition.transfer_seed(
            labels, count_per_class, self._transfer_rng
        )
        if moved:
            logger.info(f"{self.name}: transferred seed indices {moved}")
        return moved

    def get_arg_max_voi(
        self, probabilities: Sequence[float], priors: Optional[Marginals] = None
    ) -> tuple[int, float]:
        """
        Select the next index to label (template method).

        Args:
            probabilities: P(label = True) for every instance of the resident
            priors: Current beliefs; defaults to the stored belief state.
                Required by model-based learners

        Returns:
            Tuple of (selected index, its selection value)

        Raises:
            EmptyUnlabeledPoolError: If no unlabeled indices remain
        """
        unlabeled = self.unlabeled
        if not unlabeled:
            raise EmptyUnlabeledPoolError()
        if priors is None:
            priors = self._beliefs
        if self.requires_priors and priors is None:
            raise ValueError(f"{self.name} requires priors to select an index")
        probabilities = np.asarray(probabilities, dtype=float)
        if len(probabilities) < self.partition.size:
            raise ValueError(
                f"Expected {self.partition.size} probabilities, "
                f"got {len(probabilities)}"
            )
        index, value = self._select(unlabeled, probabilities, priors)
        self._log_round(index, value)
        return index, value

    def update_model(self, index: int) -> None:
        """Move `index` to the labeled set; AlreadyLabeledError if already there."""
        self.partition.move_to_labeled(index)

    @abstractmethod
    def _select(
        self,
        unlabeled: list[int],
        probabilities: np.ndarray,
        priors: Optional[Marginals],
    ) -> tuple[int, float]:
        """
        Strategy-specific selection logic.

        Args:
            unlabeled: Unlabeled indices in ascending order (never empty)
            probabilities: P(label = True) for every instance
            priors: Current beliefs

        Returns:
            Tuple of (selected index, its selection value)
        """
        pass

    def _best(
        self, candidates: Sequence[int], values: dict[int, float]
    ) -> tuple[int, float]:
        """First candidate (in the given order) whose value is not beaten strictly."""
        best_index = candidates[0]
        best_value = values[best_index]
        for index in candidates[1:]:
            if self.direction.improves(values[index], best_value):
                best_index = index
                best_value = values[index]
        return int(best_index), float(best_value)

    def _log_round(self, index: int, value: float) -> None:
        logger.info(f"{self.name}: selected index {index} (value={value:.6g})")


class RandomLearner(ActiveLearnerBase):
    """Selects an unlabeled index uniformly at random."""

    def __init__(self, seed: int = 0, data_set: Optional[DataSet] = None) -> None:
        super().__init__("RANDOM", data_set=data_set, seed=seed)
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def _select(self, unlabeled, probabilities, priors):
        return int(self.rng.choice(unlabeled)), 0.0


class UncertaintyLearner(ActiveLearnerBase):
    """
    Selects the instance whose predicted probability is closest to 0.5.

    When reversed, selects the most certain instance instead.
    """

    default_direction = SelectionDirection.MINIMIZE
    supports_reversal = True

    def __init__(
        self, reversed: bool = False, data_set: Optional[DataSet] = None
    ) -> None:
        super().__init__("UNCERTAINTY", data_set=data_set, reversed=reversed)

    @property
    def name(self) -> str:
        return "CERTAINTY" if self.reversed else self._name

    def _select(self, unlabeled, probabilities, priors):
        distances = {index: abs(0.5 - probabilities[index]) for index in unlabeled}
        return self._best(unlabeled, distances)


class VOILearner(ActiveLearnerBase):
    """
    Selects the instance with the largest value of information.

    For each candidate the classifier is retrained as if the candidate had
    been labeled positive and as if negative; the expected total risk after
    labeling, plus the expected query cost, is compared with the current
    total risk. All hypotheses operate on copies of the labels and the
    partition.
    """

    supports_reversal = True
    requires_priors = True

    def __init__(
        self,
        model: BinaryModel,
        risk: Optional[RiskObjective] = None,
        reversed: bool = False,
        hypothesis_iterations: int = 1,
        n_jobs: int = 1,
        data_set: Optional[DataSet] = None,
    ) -> None:
        super().__init__("VOI", data_set=data_set, reversed=reversed)
        self.model = model
        self.risk = risk or RiskObjective()
        self.hypothesis_iterations = hypothesis_iterations
        self.n_jobs = n_jobs

    def candidate_values(
        self, probabilities: Sequence[float], priors: Marginals
    ) -> dict[int, float]:
        """Value of information for every unlabeled index."""
        probabilities = np.asarray(probabilities, dtype=float)
        labels = self.data_set.labels[0].copy()
        partition = self.partition.copy()
        current_risk = self.risk.total_risk(
            labels, probabilities, partition.labeled, partition.unlabeled
        )
        candidates = partition.unlabeled

        def evaluate(index: int) -> float:
            return self._value_of(
                index, current_risk, labels, partition, probabilities, priors
            )

        if self.n_jobs > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=self.n_jobs) as executor:
                values = list(executor.map(evaluate, candidates))
        else:
            values = [evaluate(index) for index in candidates]
        return dict(zip(candidates, values))

    def _select(self, unlabeled, probabilities, priors):
        values = self.candidate_values(probabilities, priors)
        return self._best(unlabeled, values)

    def _value_of(
        self,
        index: int,
        current_risk: float,
        labels: np.ndarray,
        partition: LabelPartition,
        probabilities: np.ndarray,
        priors: Marginals,
    ) -> float:
        probability = probabilities[index]
        hypothetical = partition.with_labeled(index)
        positive_risk = self._hypothesis_risk(
            index, True, labels, hypothetical, priors
        )
        negative_risk = self._hypothesis_risk(
            index, False, labels, hypothetical, priors
        )
        estimated_risk = (
            positive_risk * (1.0 - probability) + negative_risk * probability
        )
        value = current_risk - estimated_risk - self.risk.query_cost(probability)
        logger.debug(
            "VOI index=%d p=%.4f risk(+)=%.4f risk(-)=%.4f voi=%.4f",
            index,
            probability,
            positive_risk,
            negative_risk,
            value,
        )
        return value

    def _hypothesis_risk(
        self,
        index: int,
        label: bool,
        labels: np.ndarray,
        partition: LabelPartition,
        priors: Marginals,
    ) -> float:
        hypothetical_labels = labels.copy()
        hypothetical_labels[index] = label
        datum = self.data_set.subset(0, index).with_label(0, 0, label)
        posteriors = train_hypothesis(
            self.model, datum, priors, self.hypothesis_iterations
        )
        probabilities = self.model.test(self.data_set, posteriors)[0]
        return self.risk.total_risk(
            hypothetical_labels, probabilities, partition.labeled, partition.unlabeled
        )


class EvidenceLearner(ActiveLearnerBase):
    """
    Selects, from a shortlist of the most uncertain instances, the one whose
    hypothetical labels are hardest to tell apart by model evidence.

    When reversed, evidence is computed under the priors rather than under
    beliefs retrained on the hypothetical label.
    """

    default_direction = SelectionDirection.MINIMIZE
    supports_reversal = True
    requires_priors = True

    def __init__(
        self,
        model: BinaryModel,
        reversed: bool = False,
        shortlist_size: int = 10,
        seed: int = 12345,
        hypothesis_iterations: int = 1,
        data_set: Optional[DataSet] = None,
    ) -> None:
        super().__init__("EVIDENCE", data_set=data_set, reversed=reversed)
        if shortlist_size < 1:
            raise ValueError("shortlist_size must be >= 1")
        self.model = model
        self.shortlist_size = shortlist_size
        self.hypothesis_iterations = hypothesis_iterations
        self.rng = np.random.default_rng(seed)

    @property
    def direction(self) -> SelectionDirection:
        return SelectionDirection.MINIMIZE

    def shortlist(self, unlabeled: list[int], priors: Marginals) -> list[int]:
        """Unlabeled indices closest to p = 0.5 under the priors, random tie order."""
        probabilities = self.model.test(self.data_set, priors)[0]
        shuffled = [int(i) for i in self.rng.permutation(unlabeled)]
        ordered = sorted(shuffled, key=lambda i: abs(probabilities[i] - 0.5))
        return ordered[: self.shortlist_size]

    def _select(self, unlabeled, probabilities, priors):
        candidates = self.shortlist(unlabeled, priors)
        scores = {index: self.expected_evidence(index, priors) for index in candidates}
        return self._best(candidates, scores)

    def expected_evidence(self, index: int, priors: Marginals) -> float:
        """Symmetric evidence ratio between the positive and negative hypotheses."""
        evidence_indices = sorted(set(self.labeled) | {index})
        subset = self.data_set.subset(0, evidence_indices)
        position = evidence_indices.index(index)

        evidences = {}
        for label in (True, False):
            data = subset.with_label(0, position, label)
            if self.reversed:
                posteriors = priors
            else:
                datum = self.data_set.subset(0, index).with_label(0, 0, label)
                posteriors = train_hypothesis(
                    self.model, datum, priors, self.hypothesis_iterations
                )
            evidences[label] = (
                self.model.compute_evidence(data, priors),
                self.model.compute_evidence(data, posteriors),
            )

        positive_prior, positive_posterior = evidences[True]
        negative_prior, negative_posterior = evidences[False]
        prior_ratio = _ratio(positive_prior.log_odds, negative_prior.log_odds)
        posterior_ratio = _ratio(
            positive_posterior.log_odds, negative_posterior.log_odds
        )
        combined_ratio = _ratio(
            positive_prior.log_odds + positive_posterior.log_prob_true(),
            negative_prior.log_odds + negative_posterior.log_prob_true(),
        )
        logger.debug(
            "Evidence index=%d prior_ratio=%.4f posterior_ratio=%.4f "
            "combined_ratio=%.4f",
            index,
            prior_ratio,
            posterior_ratio,
            combined_ratio,
        )
        if combined_ratio == 0 or not np.isfinite(combined_ratio):
            return float("inf")
        return float(max(combined_ratio, 1.0 / combined_ratio))


def train_hypothesis(
    model: BinaryModel, datum: DataSet, priors: Marginals, num_iterations: int
) -> Marginals:
    """Retrain on a hypothetically labeled instance, falling back to the priors."""
    try:
        return model.train(datum, priors, num_iterations)
    except ImproperBeliefError as exc:
        logger.debug("Hypothesis training failed (%s); falling back to priors", exc)
        return priors


def create_learners(
    factory: Callable[..., ActiveLearnerBase],
    data_set: DataSet,
    reversed: Optional[bool] = None,
    seed: Optional[int] = None,
) -> list[ActiveLearnerBase]:
    """
    Build one learner per resident, each bound to that resident's data.

    Args:
        factory: Callable returning a fresh learner (e.g. a Hydra partial)
        data_set: Multi-resident data set
        reversed: When given, applied to learners that support reversal
        seed: When given, resident r seeds its transfer generator with seed + r

    Returns:
        List of learners, one per resident
    """
    learners = []
    for resident in range(data_set.num_residents):
        learner = factory()
        if reversed is not None and learner.supports_reversal:
            learner.reversed = reversed
        if seed is not None:
            learner.set_transfer_seed(seed + resident)
        learner.data_set = data_set.subset(resident)
        learners.append(learner)
    return learners


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return float("inf")
    return numerator / denominator

