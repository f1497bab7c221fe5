"""
Integration tests for batch, online and active experiments.
"""

import numpy as np
import pytest

from core.binary_model import BinaryModel
from core.data_loader import DataSet
from core.experiment import Experiment
from core.marginals import Marginals
from core.query_strategies import RandomLearner, UncertaintyLearner, create_learners
from core.round_tracker import RoundTracker
from core.toy_data import ToyData


class _SpyLearner(UncertaintyLearner):
    def __init__(self, data_set=None):
        super().__init__(data_set=data_set)
        self.updates = []

    def update_model(self, index):
        self.updates.append(index)
        super().update_model(index)


def _toy_sets(num_residents=2, num_instances=6, seed=0):
    toy = ToyData(num_residents=num_residents, num_features=2, seed=seed)
    pool = toy.generate(noisy_proportion=0.0, num_instances=num_instances)
    holdout = toy.generate(noisy_proportion=0.0, num_instances=10, holdout=True)
    return pool, holdout


class TestActiveExperiment:
    def test_stops_when_pool_is_exhausted(self):
        pool, holdout = _toy_sets(num_residents=1, num_instances=2)
        learner = _SpyLearner(data_set=pool.subset(0))
        experiment = Experiment(BinaryModel(), name="SPY", learners=[learner])

        holdout_metrics = experiment.run_active(
            pool, holdout, num_selections=5, priors=Marginals.create_priors(2)
        )

        assert sorted(learner.updates) == [0, 1]
        assert learner.unlabeled == []
        assert learner.beliefs is not None
        assert len(experiment.round_tracker.rounds) == 2
        assert len(holdout_metrics.metrics[0]) == 2

    def test_one_round_per_resident_and_step(self):
        pool, holdout = _toy_sets(num_residents=2, num_instances=6)
        tracker = RoundTracker()
        learners = create_learners(UncertaintyLearner, pool)
        experiment = Experiment(
            BinaryModel(), name="US", learners=learners, round_tracker=tracker
        )

        experiment.run_active(pool, holdout, 3, Marginals.create_priors(2))

        frame = tracker.to_dataframe()
        assert len(frame) == 6
        assert frame.groupby("resident")["step"].apply(list).tolist() == [
            [0, 1, 2],
            [0, 1, 2],
        ]
        assert (frame["labeled_size"] + frame["unlabeled_size"] == 6).all()
        assert len(experiment.individual_posteriors) == 2
        assert len(experiment.holdout_metrics.aggregates) == 3

    def test_first_round_is_scored_with_the_starting_beliefs(self):
        features = np.array([[0.3, -0.2], [-0.1, 0.4]])
        pool = DataSet(features=[features], labels=[[True, False]])
        holdout = DataSet(features=[features], labels=[[True, False]])
        learner = RandomLearner(seed=0, data_set=pool.subset(0))
        experiment = Experiment(BinaryModel(), learners=[learner])

        experiment.run_active(pool, holdout, 1, Marginals.create_priors(2))

        first = experiment.round_tracker.rounds[0]
        assert first["accuracy"] == 0.5
        assert first["brier_score"] == pytest.approx(0.25)

    def test_seed_per_class_labels_before_the_loop(self):
        features = np.array([[0.4, 0.1], [-0.3, 0.2], [0.2, -0.4], [-0.1, -0.3]])
        pool = DataSet(features=[features], labels=[[True, False, True, False]])
        learners = create_learners(UncertaintyLearner, pool, seed=3)
        experiment = Experiment(BinaryModel(), name="US", learners=learners)

        experiment.run_active(
            pool, pool, 5, Marginals.create_priors(2), seed_per_class=1
        )

        rounds = experiment.round_tracker.rounds
        assert len(rounds) == 2
        assert rounds[0]["labeled_size"] == 3
        assert rounds[-1]["unlabeled_size"] == 0

    def test_requires_one_learner_per_resident(self):
        pool, holdout = _toy_sets(num_residents=2)
        experiment = Experiment(
            BinaryModel(), learners=[UncertaintyLearner(data_set=pool.subset(0))]
        )
        with pytest.raises(ValueError, match="Expected 2 learners"):
            experiment.run_active(pool, holdout, 1, Marginals.create_priors(2))

    def test_requires_learners(self):
        pool, holdout = _toy_sets(num_residents=1)
        with pytest.raises(ValueError, match="not provided"):
            Experiment(BinaryModel()).run_active(
                pool, holdout, 1, Marginals.create_priors(2)
            )


class TestOnlineExperiment:
    def test_predicts_every_instance_once(self):
        pool, holdout = _toy_sets(num_residents=2, num_instances=4)
        experiment = Experiment(BinaryModel(), name="ONLINE", online_iterations=2)

        metrics = experiment.run_online(pool, holdout, Marginals.create_priors(2))

        assert [len(m) for m in metrics.metrics] == [4, 4]
        assert len(metrics.aggregates) == 4
        assert len(experiment.holdout_metrics.metrics[1]) == 4
        assert len(experiment.individual_posteriors) == 2

    def test_first_prediction_uses_the_priors(self):
        pool, holdout = _toy_sets(num_residents=1, num_instances=3)
        experiment = Experiment(BinaryModel())

        metrics = experiment.run_online(pool, holdout, Marginals.create_priors(2))

        assert metrics.metrics[0].estimates[0] == pytest.approx(0.5)


class TestBatchExperiment:
    def test_returns_community_posteriors(self):
        pool, _ = _toy_sets(num_residents=3, num_instances=8)
        priors = Marginals.create_priors(2)
        experiment = Experiment(BinaryModel(), name="COMMUNITY")

        posteriors = experiment.run_batch(pool, priors)

        assert experiment.posteriors is posteriors
        assert posteriors.num_features == 2
        assert len(posteriors.weights) == 3
        assert priors.weights is None
