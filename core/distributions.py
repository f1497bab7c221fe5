"""
Scalar distributions used for weight beliefs and label predictions.
"""

from dataclasses import dataclass

import numpy as np
from scipy.special import expit, log_expit


@dataclass
class Gaussian:
    """Univariate Gaussian parameterized by mean and variance."""

    mean: float = 0.0
    variance: float = 1.0

    def __post_init__(self) -> None:
        if not self.variance > 0:
            raise ValueError(f"Gaussian variance must be positive, got {self.variance}")

    @property
    def precision(self) -> float:
        return 1.0 / self.variance

    @classmethod
    def from_natural(cls, mean_times_precision: float, precision: float) -> "Gaussian":
        """Build a Gaussian from its natural parameters."""
        return cls(mean=mean_times_precision / precision, variance=1.0 / precision)

    def copy(self) -> "Gaussian":
        return Gaussian(mean=self.mean, variance=self.variance)

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.normal(self.mean, np.sqrt(self.variance)))


@dataclass
class Gamma:
    """Gamma distribution parameterized by shape and rate."""

    shape: float = 1.0
    rate: float = 1.0

    def __post_init__(self) -> None:
        if not (self.shape > 0 and self.rate > 0):
            raise ValueError(
                "Gamma shape and rate must be positive, "
                f"got shape={self.shape} rate={self.rate}"
            )

    @property
    def mean(self) -> float:
        return self.shape / self.rate

    @property
    def variance(self) -> float:
        return self.shape / self.rate**2

    def copy(self) -> "Gamma":
        return Gamma(shape=self.shape, rate=self.rate)

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.gamma(self.shape, 1.0 / self.rate))


@dataclass
class Bernoulli:
    """
    Bernoulli distribution stored as log odds.

    Model evidence is also reported as a Bernoulli whose log odds hold the
    log evidence, so `log_prob_true` gives log(sigmoid(log evidence)).
    """

    log_odds: float = 0.0

    @classmethod
    def from_probability(cls, probability: float) -> "Bernoulli":
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"Probability must be in [0, 1], got {probability}")
        with np.errstate(divide="ignore"):
            return cls(log_odds=float(np.log(probability) - np.log1p(-probability)))

    def mean(self) -> float:
        return float(expit(self.log_odds))

    def log_prob_true(self) -> float:
        return float(log_expit(self.log_odds))

    def log_prob_false(self) -> float:
        return float(log_expit(-self.log_odds))

    def copy(self) -> "Bernoulli":
        return Bernoulli(log_odds=self.log_odds)
