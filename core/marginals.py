"""
Belief state over the classifier weights.
"""

from dataclasses import dataclass

from core.distributions import Gamma, Gaussian


@dataclass
class Marginals:
    """
    Posterior (or prior) beliefs for the hierarchical weight model.

    Attributes:
        weight_means: Per-feature belief over the shared weight mean
        weight_precisions: Per-feature belief over the shared weight precision
        weights: Optional per-resident, per-feature weight posteriors
    """

    weight_means: list[Gaussian]
    weight_precisions: list[Gamma]
    weights: list[list[Gaussian]] | None = None

    def __post_init__(self) -> None:
        if len(self.weight_means) != len(self.weight_precisions):
            raise ValueError(
                f"Weight means ({len(self.weight_means)}) and weight precisions "
                f"({len(self.weight_precisions)}) must have the same length"
            )

    @property
    def num_features(self) -> int:
        return len(self.weight_means)

    def copy(self) -> "Marginals":
        """Return a deep copy; no distribution is shared with the original."""
        weights = None
        if self.weights is not None:
            weights = [[w.copy() for w in resident] for resident in self.weights]
        return Marginals(
            weight_means=[m.copy() for m in self.weight_means],
            weight_precisions=[p.copy() for p in self.weight_precisions],
            weights=weights,
        )

    def with_precisions_from(self, other: "Marginals") -> "Marginals":
        """Combine these weight means with the weight precisions of `other`."""
        if other.num_features != self.num_features:
            raise ValueError(
                f"Feature count mismatch: {self.num_features} vs {other.num_features}"
            )
        return Marginals(
            weight_means=[m.copy() for m in self.weight_means],
            weight_precisions=[p.copy() for p in other.weight_precisions],
        )

    @classmethod
    def create_priors(
        cls,
        num_features: int,
        mean: float = 0.0,
        variance: float = 1.0,
        shape: float = 1.0,
        rate: float = 1.0,
    ) -> "Marginals":
        """Independent identical priors for every feature."""
        if num_features < 1:
            raise ValueError("num_features must be >= 1")
        return cls(
            weight_means=[Gaussian(mean, variance) for _ in range(num_features)],
            weight_precisions=[Gamma(shape, rate) for _ in range(num_features)],
        )
