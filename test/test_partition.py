"""
Unit tests for LabelPartition.
"""

import numpy as np
import pytest

from core.exceptions import AlreadyLabeledError
from core.partition import LabelPartition


def _assert_partition_invariant(partition: LabelPartition) -> None:
    labeled = set(partition.labeled)
    unlabeled = set(partition.unlabeled)
    assert labeled.isdisjoint(unlabeled)
    assert labeled | unlabeled == set(range(partition.size))


class TestLabelPartition:
    def test_initially_everything_is_unlabeled(self):
        partition = LabelPartition(4)
        assert partition.labeled == []
        assert partition.unlabeled == [0, 1, 2, 3]
        assert not partition.is_exhausted

    def test_invariant_holds_after_every_move(self):
        partition = LabelPartition(6)
        for index in [3, 0, 5, 1, 4, 2]:
            partition.move_to_labeled(index)
            _assert_partition_invariant(partition)
        assert partition.is_exhausted

    def test_moving_twice_raises(self):
        partition = LabelPartition(3)
        partition.move_to_labeled(1)
        with pytest.raises(AlreadyLabeledError):
            partition.move_to_labeled(1)
        _assert_partition_invariant(partition)

    def test_out_of_range_index_raises(self):
        with pytest.raises(IndexError):
            LabelPartition(3).move_to_labeled(3)

    def test_copy_and_with_labeled_do_not_touch_original(self):
        partition = LabelPartition(3)
        hypothetical = partition.with_labeled(2)
        clone = partition.copy()
        clone.move_to_labeled(0)

        assert partition.labeled == []
        assert hypothetical.labeled == [2]
        assert clone.labeled == [0]

    def test_initial_labeled_indices(self):
        partition = LabelPartition(4, labeled=[2, 0])
        assert partition.labeled == [0, 2]
        assert partition.unlabeled == [1, 3]


class TestTransferSeed:
    def test_one_per_class_on_five_examples(self):
        labels = np.array([True, False, True, False, True])
        partition = LabelPartition(5)

        moved = partition.transfer_seed(labels, 1, np.random.default_rng(0))

        assert len(partition.labeled) == 2
        assert len(partition.unlabeled) == 3
        assert sorted(labels[partition.labeled].tolist()) == [False, True]
        assert len(moved) == 2
        assert labels[moved[0]] == False  # noqa: E712
        assert labels[moved[1]] == True  # noqa: E712
        _assert_partition_invariant(partition)

    def test_zero_count_is_noop(self):
        partition = LabelPartition(3)
        rng = np.random.default_rng()
        assert partition.transfer_seed(np.ones(3, dtype=bool), 0, rng) == []
        assert partition.labeled == []

    def test_fewer_available_than_requested_moves_all_available(self):
        labels = np.array([True, True, False, True])
        partition = LabelPartition(4)

        partition.transfer_seed(labels, 2, np.random.default_rng(1))

        assert 2 in partition.labeled
        assert len(partition.labeled) == 3
        assert sum(labels[partition.labeled]) == 2

    def test_skips_already_labeled_indices(self):
        labels = np.array([False, True, False])
        partition = LabelPartition(3, labeled=[0])

        partition.transfer_seed(labels, 1, np.random.default_rng(2))

        assert partition.labeled == [0, 1, 2]

    def test_label_length_must_match(self):
        with pytest.raises(ValueError):
            LabelPartition(3).transfer_seed(
                np.ones(2, dtype=bool), 1, np.random.default_rng()
            )


class TestFromIndices:
    def test_labeled_only_takes_the_complement(self):
        partition = LabelPartition.from_indices(5, labeled=[3, 1])
        assert partition.labeled == [1, 3]
        assert partition.unlabeled == [0, 2, 4]
        _assert_partition_invariant(partition)

    def test_unlabeled_only_takes_the_complement(self):
        partition = LabelPartition.from_indices(4, unlabeled=[2])
        assert partition.labeled == [0, 1, 3]
        assert partition.unlabeled == [2]

    def test_both_sets_must_be_disjoint(self):
        with pytest.raises(ValueError, match="both labeled and unlabeled"):
            LabelPartition.from_indices(3, labeled=[0, 1], unlabeled=[1, 2])

    def test_both_sets_must_cover_every_index(self):
        with pytest.raises(ValueError, match="neither labeled nor unlabeled"):
            LabelPartition.from_indices(4, labeled=[0], unlabeled=[1, 2])

    def test_rejects_out_of_range_and_duplicate_indices(self):
        with pytest.raises(ValueError, match="outside"):
            LabelPartition.from_indices(3, labeled=[3])
        with pytest.raises(ValueError, match="duplicates"):
            LabelPartition.from_indices(3, unlabeled=[1, 1])

    def test_moves_continue_after_rebuilding(self):
        partition = LabelPartition.from_indices(3, labeled=[0], unlabeled=[1, 2])
        partition.move_to_labeled(2)
        with pytest.raises(AlreadyLabeledError):
            partition.move_to_labeled(0)
        _assert_partition_invariant(partition)
