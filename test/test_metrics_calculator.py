"""
Unit tests for prediction metrics and their aggregation across residents.
"""

import math

import numpy as np
import pytest

from core.metrics_calculator import HoldoutMetricsCollection, Metrics, MetricsCollection


class TestMetrics:
    def test_perfectly_confident_predictions(self):
        metrics = Metrics([True, False], [1.0, 0.0])

        assert metrics.average_accuracy == 1.0
        assert metrics.mean_squared_error == 0.0
        assert metrics.brier_score == 0.0
        assert metrics.sum_log_prob_of_truth == 0.0

    def test_mixed_predictions(self):
        metrics = Metrics([True, False, True, False], [0.8, 0.3, 0.4, 0.6])

        np.testing.assert_array_equal(metrics.correct, [True, True, False, False])
        assert metrics.average_accuracy == 0.5
        assert metrics.sum_log_prob_of_truth == pytest.approx(
            math.log(0.8) + math.log(0.7) + math.log(0.4) + math.log(0.4)
        )
        expected_squared = (0.04 + 0.09 + 0.36 + 0.36) / 4
        assert metrics.mean_squared_error == pytest.approx(expected_squared)
        assert metrics.brier_score == pytest.approx(expected_squared)

    def test_half_is_not_a_positive_prediction(self):
        metrics = Metrics([True, False], [0.5, 0.5])
        assert metrics.average_accuracy == 0.5

    def test_cumulative_curves(self):
        metrics = Metrics([True, False, True], [0.9, 0.8, 0.6])

        np.testing.assert_allclose(metrics.cumulative_accuracy, [1.0, 0.5, 2 / 3])
        np.testing.assert_allclose(
            metrics.cumulative_log_prob_of_truth,
            np.cumsum(np.log([0.9, 0.2, 0.6])),
        )
        np.testing.assert_allclose(
            metrics.cumulative_brier_score,
            [0.01, (0.01 + 0.64) / 2, (0.01 + 0.64 + 0.16) / 3],
        )

    def test_empty_metrics_are_nan(self):
        metrics = Metrics([], [])
        assert math.isnan(metrics.average_accuracy)
        assert math.isnan(metrics.to_dict()["brier_score"])

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError, match="same length"):
            Metrics([True, False], [0.5])

    def test_to_dict_keys(self):
        assert set(Metrics([True], [0.7]).to_dict()) == {
            "mse",
            "log_prob",
            "accuracy",
            "brier_score",
        }


class TestMetricsCollection:
    def test_aggregates_over_shortest_sequence(self):
        collection = MetricsCollection()
        collection.add(Metrics([True, True, True], [0.9, 0.9, 0.1]))
        collection.add(Metrics([True, False], [0.9, 0.9]))

        aggregates = collection.recompute_aggregate_metrics()

        assert collection.minimum_length == 2
        assert len(aggregates) == 2
        assert aggregates["average_accuracy"].tolist() == pytest.approx([1.0, 0.75])
        assert aggregates["std_accuracy"].tolist() == pytest.approx([0.0, 0.25])

    def test_empty_collection_raises(self):
        with pytest.raises(ValueError, match="no metrics"):
            MetricsCollection().recompute_aggregate_metrics()


class TestHoldoutMetricsCollection:
    def test_average_and_population_std_per_step(self):
        collection = HoldoutMetricsCollection()
        collection.add_resident([Metrics([True, False], [0.9, 0.1])])
        collection.add_resident([Metrics([True, False], [0.1, 0.1])])

        aggregates = collection.recompute_aggregate_metrics()

        assert aggregates.index.name == "step"
        assert aggregates.loc[0, "average_accuracy"] == pytest.approx(0.75)
        assert aggregates.loc[0, "std_accuracy"] == pytest.approx(0.25)
        assert {
            "average_log_prob",
            "std_log_prob",
            "average_brier_score",
            "std_brier_score",
        } <= set(aggregates.columns)

    def test_residents_that_stopped_early_only_count_where_present(self):
        collection = HoldoutMetricsCollection()
        collection.add_resident(
            [Metrics([True], [0.9]), Metrics([True], [0.2]), Metrics([True], [0.9])]
        )
        collection.add_resident([Metrics([True], [0.1])])

        aggregates = collection.recompute_aggregate_metrics()

        assert len(aggregates) == 3
        assert aggregates.loc[0, "average_accuracy"] == pytest.approx(0.5)
        assert aggregates.loc[1, "average_accuracy"] == pytest.approx(0.0)
        assert aggregates.loc[2, "std_accuracy"] == pytest.approx(0.0)

    def test_no_metrics_raises(self):
        with pytest.raises(ValueError):
            HoldoutMetricsCollection([[], []]).recompute_aggregate_metrics()
