"""
Synthetic hierarchical binary data for toy experiments.
"""

import logging
from typing import Optional

import numpy as np

from core.data_loader import DataSet
from core.distributions import Gamma, Gaussian

logger = logging.getLogger(__name__)


class ToyData:
    """
    Generates residents whose weights are drawn around shared community weights.

    Community weight f is N(a_f, 1/b_f) with a_f sampled from
    `true_prior_mean` and b_f from `true_prior_precision`; every resident
    samples its own weights from the community weights. An instance is
    informative with probability 1 - noisy_proportion (features uniform in
    [-0.5, 0.5)), otherwise all of its features are zero. The label is the
    sign of the weighted sum plus unit Gaussian noise.
    """

    def __init__(
        self,
        num_residents: int = 5,
        num_features: int = 10,
        use_bias: bool = False,
        true_prior_mean: Optional[Gaussian] = None,
        true_prior_precision: Optional[Gamma] = None,
        seed: Optional[int] = None,
    ) -> None:
        if num_residents < 1 or num_features < 1:
            raise ValueError("num_residents and num_features must be >= 1")
        self.num_residents = num_residents
        self.num_features = num_features
        self.use_bias = use_bias
        self.true_prior_mean = true_prior_mean or Gaussian(0.0, 1.0)
        self.true_prior_precision = true_prior_precision or Gamma(1.0, 1.0)
        self.rng = np.random.default_rng(seed)

        self.community_weights: Optional[list[Gaussian]] = None
        self.weights: Optional[np.ndarray] = None
        self.data_set: Optional[DataSet] = None
        self.holdout_set: Optional[DataSet] = None

    @property
    def num_features_including_bias(self) -> int:
        return self.num_features + (1 if self.use_bias else 0)

    def compute_weights(self) -> np.ndarray:
        """Sample community weights and per-resident weights."""
        self.community_weights = [
            Gaussian(
                self.true_prior_mean.sample(self.rng),
                1.0 / self.true_prior_precision.sample(self.rng),
            )
            for _ in range(self.num_features_including_bias)
        ]
        self.weights = np.array(
            [
                [w.sample(self.rng) for w in self.community_weights]
                for _ in range(self.num_residents)
            ]
        )
        return self.weights

    def generate(
        self, noisy_proportion: float, num_instances: int, holdout: bool = False
    ) -> Optional[DataSet]:
        """
        Generate `num_instances` instances per resident.

        Args:
            noisy_proportion: Probability that an instance has all-zero features
            num_instances: Instances per resident
            holdout: Store the result as the holdout set instead of the data set

        Returns:
            The generated DataSet, or None when num_instances is 0
        """
        if not 0.0 <= noisy_proportion <= 1.0:
            raise ValueError("noisy_proportion must be between 0.0 and 1.0")
        if num_instances == 0:
            return None
        if self.weights is None:
            self.compute_weights()

        width = self.num_features_including_bias
        features = []
        labels = []
        for resident in range(self.num_residents):
            informative = self.rng.random(num_instances) > noisy_proportion
            values = self.rng.random((num_instances, width)) - 0.5
            values[~informative] = 0.0
            if self.use_bias:
                values[:, self.num_features] = -1.0
            scores = values @ self.weights[resident] + self.rng.normal(
                0.0, 1.0, num_instances
            )
            features.append(values)
            labels.append(scores > 0)

        data_set = DataSet(features=features, labels=labels)
        if holdout:
            self.holdout_set = data_set
        else:
            self.data_set = data_set
        logger.info(
            "Generated %s set: %d residents x %d instances, %d features",
            "holdout" if holdout else "training",
            self.num_residents,
            num_instances,
            width,
        )
        return data_set
