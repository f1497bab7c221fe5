"""
Hierarchical Bayesian probit classifier.

Each resident r has weights w_r with w_rf ~ N(m_f, 1/tau_f), where the
shared weight means m_f and precisions tau_f carry Gaussian and Gamma
beliefs. A label is true when w_r . x plus unit-precision Gaussian noise is
positive. Per-resident weight posteriors are fitted by expectation
propagation; the shared beliefs are then updated from those posteriors.
"""

import logging

import numpy as np
from scipy.stats import norm

from core.data_loader import DataSet
from core.distributions import Bernoulli, Gamma, Gaussian
from core.exceptions import ImproperBeliefError
from core.marginals import Marginals

logger = logging.getLogger(__name__)

_MIN_MESSAGE_PRECISION = 1e-10


class BinaryModel:
    """
    Train, test and evidence computations as pure functions of (dataset, priors).

    The model holds no per-call state, so one instance can be shared by
    several learners and by hypothesis evaluation.
    """

    def __init__(self, noise_precision: float = 1.0, damping: float = 1.0) -> None:
        """
        Args:
            noise_precision: Precision of the Gaussian noise added to the score
            damping: Step size in (0, 1] for EP site updates
        """
        if noise_precision <= 0:
            raise ValueError("noise_precision must be positive")
        if not 0.0 < damping <= 1.0:
            raise ValueError("damping must be in (0, 1]")
        self.noise_precision = noise_precision
        self.noise_variance = 1.0 / noise_precision
        self.damping = damping

    def train(
        self, dataset: DataSet, priors: Marginals, num_iterations: int = 10
    ) -> Marginals:
        """
        Infer posterior beliefs given labeled data.

        Args:
            dataset: Labeled data, one entry per resident
            priors: Beliefs over the shared weight means and precisions
            num_iterations: Number of EP sweeps over each resident's data

        Returns:
            Posterior Marginals including per-resident weight posteriors

        Raises:
            ImproperBeliefError: If a cavity or posterior variance becomes
                non-positive or non-finite
        """
        if num_iterations < 1:
            raise ValueError("num_iterations must be >= 1")
        self._check_features(dataset, priors)
        mu0, v0 = self._effective_prior(priors)
        expected_precision = np.array([p.mean for p in priors.weight_precisions])

        mean_precision = np.array([1.0 / m.variance for m in priors.weight_means])
        mean_natural = np.array([m.mean / m.variance for m in priors.weight_means])

        resident_posteriors = []
        for features, labels in zip(dataset.features, dataset.labels):
            mu, covariance = self._fit_resident(
                features, self._signs(labels), mu0, v0, num_iterations
            )
            variances = np.diag(covariance).copy()
            resident_posteriors.append((mu, variances))

            # Likelihood message to w_rf, forwarded to m_f through N(w; m, 1/E[tau])
            message_precision = 1.0 / variances - 1.0 / v0
            message_natural = mu / variances - mu0 / v0
            informative = message_precision > _MIN_MESSAGE_PRECISION
            if not np.any(informative):
                continue
            lam = message_precision[informative]
            message_mean = message_natural[informative] / lam
            message_variance = 1.0 / lam + 1.0 / expected_precision[informative]
            mean_precision[informative] += 1.0 / message_variance
            mean_natural[informative] += message_mean / message_variance

        posterior_mean = mean_natural / mean_precision
        posterior_variance = 1.0 / mean_precision
        if not (np.all(np.isfinite(posterior_mean)) and np.all(posterior_variance > 0)):
            raise ImproperBeliefError("Weight mean posterior is improper")

        shape = np.array([p.shape for p in priors.weight_precisions], dtype=float)
        rate = np.array([p.rate for p in priors.weight_precisions], dtype=float)
        for mu, variances in resident_posteriors:
            informative = 1.0 / variances - 1.0 / v0 > _MIN_MESSAGE_PRECISION
            shape[informative] += 0.5
            rate[informative] += 0.5 * (
                (mu[informative] - posterior_mean[informative]) ** 2
                + variances[informative]
                + posterior_variance[informative]
            )

        posteriors = Marginals(
            weight_means=[
                Gaussian(float(m), float(v))
                for m, v in zip(posterior_mean, posterior_variance)
            ],
            weight_precisions=[Gamma(float(a), float(b)) for a, b in zip(shape, rate)],
            weights=[
                [Gaussian(float(m), float(v)) for m, v in zip(mu, variances)]
                for mu, variances in resident_posteriors
            ],
        )
        logger.debug(
            "Trained on %d instances across %d residents",
            sum(dataset.num_instances),
            dataset.num_residents,
        )
        return posteriors

    def test(self, dataset: DataSet, priors: Marginals) -> list[np.ndarray]:
        """
        Predictive probability that each label is true.

        Returns:
            One array of P(label = True) per resident
        """
        self._check_features(dataset, priors)
        mu0, v0 = self._effective_prior(priors)
        probabilities = []
        for features in dataset.features:
            if len(features) == 0:
                probabilities.append(np.zeros(0))
                continue
            means = features @ mu0
            variances = (features**2) @ v0
            scale = np.sqrt(self.noise_variance + variances)
            probabilities.append(norm.cdf(means / scale))
        return probabilities

    def compute_evidence(self, dataset: DataSet, priors: Marginals) -> Bernoulli:
        """
        Log model evidence from a single sequential pass over the data.

        Returns:
            Bernoulli whose log odds equal the log evidence
        """
        self._check_features(dataset, priors)
        mu0, v0 = self._effective_prior(priors)
        log_evidence = 0.0
        for features, labels in zip(dataset.features, dataset.labels):
            signs = self._signs(labels)
            mu = mu0.copy()
            covariance = np.diag(v0)
            for x, y in zip(features, signs):
                sx = covariance @ x
                v_s = float(x @ sx)
                m_s = float(x @ mu)
                log_z, m_new, v_new = self._moment_match(m_s, v_s, y)
                log_evidence += log_z
                if v_s <= 0:
                    continue
                if not (np.isfinite(v_new) and v_new > 0):
                    raise ImproperBeliefError(
                        f"Non-positive variance {v_new} while computing evidence"
                    )
                delta_tau = 1.0 / v_new - 1.0 / v_s
                delta_nu = m_new / v_new - m_s / v_s
                mu, covariance = self._rank_one_update(
                    mu, covariance, sx, v_s, m_s, delta_tau, delta_nu
                )
        return Bernoulli(log_odds=float(log_evidence))

    def _fit_resident(
        self,
        features: np.ndarray,
        signs: np.ndarray,
        mu0: np.ndarray,
        v0: np.ndarray,
        num_iterations: int,
    ) -> tuple[np.ndarray, np.ndarray]:
        mu = mu0.copy()
        covariance = np.diag(v0)
        if len(features) == 0:
            return mu, covariance

        site_tau = np.zeros(len(features))
        site_nu = np.zeros(len(features))
        # all-zero feature vectors carry no information about the weights
        active = np.flatnonzero(np.any(features != 0, axis=1))

        for _ in range(num_iterations):
            for i in active:
                x = features[i]
                sx = covariance @ x
                v_s = float(x @ sx)
                m_s = float(x @ mu)
                cavity_tau = 1.0 / v_s - site_tau[i]
                if not (np.isfinite(cavity_tau) and cavity_tau > 0):
                    raise ImproperBeliefError(
                        f"Non-positive cavity precision {cavity_tau} at instance {i}"
                    )
                v_c = 1.0 / cavity_tau
                m_c = v_c * (m_s / v_s - site_nu[i])

                _, m_new, v_new = self._moment_match(m_c, v_c, signs[i])
                if not (np.isfinite(v_new) and v_new > 0):
                    raise ImproperBeliefError(
                        f"Non-positive posterior variance {v_new} at instance {i}"
                    )

                new_tau = 1.0 / v_new - cavity_tau
                new_nu = m_new / v_new - m_c * cavity_tau
                delta_tau = self.damping * (new_tau - site_tau[i])
                delta_nu = self.damping * (new_nu - site_nu[i])

                mu, covariance = self._rank_one_update(
                    mu, covariance, sx, v_s, m_s, delta_tau, delta_nu
                )
                site_tau[i] += delta_tau
                site_nu[i] += delta_nu
        return mu, covariance

    def _moment_match(
        self, m_c: float, v_c: float, y: float
    ) -> tuple[float, float, float]:
        """Log normalizer and moments of N(s; m_c, v_c) * Phi(y * s / sqrt(noise))."""
        total_variance = self.noise_variance + v_c
        denom = np.sqrt(total_variance)
        z = y * m_c / denom
        log_z = float(norm.logcdf(z))
        ratio = float(np.exp(norm.logpdf(z) - log_z))
        m_new = m_c + y * v_c * ratio / denom
        v_new = v_c - v_c**2 * ratio * (z + ratio) / total_variance
        return log_z, m_new, v_new

    def _rank_one_update(
        self,
        mu: np.ndarray,
        covariance: np.ndarray,
        sx: np.ndarray,
        v_s: float,
        m_s: float,
        delta_tau: float,
        delta_nu: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        scale = 1.0 + delta_tau * v_s
        if not (np.isfinite(scale) and scale > 0):
            raise ImproperBeliefError(f"Improper rank-one update (scale={scale})")
        covariance = covariance - (delta_tau / scale) * np.outer(sx, sx)
        mu = mu + ((delta_nu - delta_tau * m_s) / scale) * sx
        return mu, covariance

    def _effective_prior(self, priors: Marginals) -> tuple[np.ndarray, np.ndarray]:
        """Moment-matched prior N(E[m_f], Var[m_f] + 1/E[tau_f]) for each weight."""
        mu0 = np.array([m.mean for m in priors.weight_means], dtype=float)
        v0 = np.array(
            [
                m.variance + 1.0 / p.mean
                for m, p in zip(priors.weight_means, priors.weight_precisions)
            ],
            dtype=float,
        )
        return mu0, v0

    @staticmethod
    def _signs(labels: np.ndarray) -> np.ndarray:
        return np.where(np.asarray(labels, dtype=bool), 1.0, -1.0)

    @staticmethod
    def _check_features(dataset: DataSet, priors: Marginals) -> None:
        num_features = dataset.num_features
        if num_features and num_features != priors.num_features:
            raise ValueError(
                f"Dataset has {num_features} features but priors describe "
                f"{priors.num_features}"
            )
