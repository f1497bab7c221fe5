"""
Unit tests for the scalar distributions and the Marginals belief state.
"""

import numpy as np
import pytest

from core.distributions import Bernoulli, Gamma, Gaussian
from core.marginals import Marginals


class TestGaussian:
    def test_natural_parameters_round_trip_to_moments(self):
        g = Gaussian.from_natural(mean_times_precision=6.0, precision=2.0)
        assert g.mean == pytest.approx(3.0)
        assert g.variance == pytest.approx(0.5)
        assert g.precision == pytest.approx(2.0)

    def test_non_positive_variance_raises(self):
        with pytest.raises(ValueError):
            Gaussian(0.0, 0.0)

    def test_sample_uses_generator(self):
        a = Gaussian(1.0, 4.0).sample(np.random.default_rng(3))
        b = Gaussian(1.0, 4.0).sample(np.random.default_rng(3))
        assert a == b


class TestGamma:
    def test_moments(self):
        g = Gamma(shape=2.0, rate=4.0)
        assert g.mean == pytest.approx(0.5)
        assert g.variance == pytest.approx(0.125)

    def test_invalid_parameters_raise(self):
        with pytest.raises(ValueError):
            Gamma(shape=0.0, rate=1.0)


class TestBernoulli:
    def test_zero_log_odds_is_even(self):
        b = Bernoulli(0.0)
        assert b.mean() == pytest.approx(0.5)
        assert b.log_prob_true() == pytest.approx(np.log(0.5))

    def test_from_probability(self):
        b = Bernoulli.from_probability(0.8)
        assert b.log_odds == pytest.approx(np.log(4.0))
        assert b.mean() == pytest.approx(0.8)
        assert b.log_prob_false() == pytest.approx(np.log(0.2))

    def test_log_prob_true_is_stable_for_large_negative_log_odds(self):
        assert Bernoulli(-800.0).log_prob_true() == pytest.approx(-800.0)


class TestMarginals:
    def test_create_priors(self):
        priors = Marginals.create_priors(3, mean=1.0, variance=2.0, shape=3.0, rate=4.0)
        assert priors.num_features == 3
        assert all(m.mean == 1.0 and m.variance == 2.0 for m in priors.weight_means)
        assert all(p.shape == 3.0 and p.rate == 4.0 for p in priors.weight_precisions)
        assert priors.weights is None

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            Marginals(weight_means=[Gaussian()], weight_precisions=[])

    def test_copy_is_deep(self):
        priors = Marginals.create_priors(2)
        priors.weights = [[Gaussian(), Gaussian()]]
        clone = priors.copy()

        clone.weight_means[0].mean = 5.0
        clone.weight_precisions[1].rate = 7.0
        clone.weights[0][0].mean = 9.0

        assert priors.weight_means[0].mean == 0.0
        assert priors.weight_precisions[1].rate == 1.0
        assert priors.weights[0][0].mean == 0.0

    def test_with_precisions_from_combines_beliefs(self):
        posterior = Marginals.create_priors(2, mean=4.0, shape=9.0)
        posterior.weights = [[Gaussian(), Gaussian()]]
        flat = Marginals.create_priors(2)

        combined = posterior.with_precisions_from(flat)

        assert [m.mean for m in combined.weight_means] == [4.0, 4.0]
        assert [p.shape for p in combined.weight_precisions] == [1.0, 1.0]
        assert combined.weights is None

    def test_with_precisions_from_checks_feature_count(self):
        with pytest.raises(ValueError):
            Marginals.create_priors(2).with_precisions_from(Marginals.create_priors(3))
