"""
Labeled / unlabeled index bookkeeping for a single resident.
"""

import logging
from typing import Iterable

import numpy as np

from core.exceptions import AlreadyLabeledError

logger = logging.getLogger(__name__)


class LabelPartition:
    """
    Disjoint labeled and unlabeled sets over the indices [0, size).

    Every index starts unlabeled and can move to the labeled set exactly once.
    """

    def __init__(self, size: int, labeled: Iterable[int] | None = None) -> None:
        if size < 0:
            raise ValueError("size must be >= 0")
        self.size = size
        self._labeled: set[int] = set()
        self._unlabeled: set[int] = set(range(size))
        for index in labeled or ():
            self.move_to_labeled(index)

    @property
    def labeled(self) -> list[int]:
        """Labeled indices in ascending order."""
        return sorted(self._labeled)

    @property
    def unlabeled(self) -> list[int]:
        """Unlabeled indices in ascending order."""
        return sorted(self._unlabeled)

    @property
    def is_exhausted(self) -> bool:
        return not self._unlabeled

    def is_labeled(self, index: int) -> bool:
        return index in self._labeled

    def move_to_labeled(self, index: int) -> None:
        """
        Move an index from the unlabeled to the labeled set.

        Raises:
            AlreadyLabeledError: If the index is already labeled
            IndexError: If the index is outside [0, size)
        """
        index = int(index)
        if index in self._labeled:
            raise AlreadyLabeledError(index)
        if index not in self._unlabeled:
            raise IndexError(f"Index {index} is outside [0, {self.size})")
        self._unlabeled.remove(index)
        self._labeled.add(index)

    def with_labeled(self, index: int) -> "LabelPartition":
        """Return a copy with `index` moved to the labeled set; self is unchanged."""
        partition = self.copy()
        partition.move_to_labeled(index)
        return partition

    def transfer_seed(
        self,
        labels: np.ndarray,
        count_per_class: int,
        rng: np.random.Generator,
    ) -> list[int]:
        """
        Move up to `count_per_class` randomly chosen unlabeled indices of each class.

        Classes are seeded in order (negative, then positive). A class with
        fewer unlabeled members than requested contributes all of them.

        Args:
            labels: True labels for every index
            count_per_class: Number of indices to move per class
            rng: Random generator used to shuffle the unlabeled indices

        Returns:
            Indices moved to the labeled set, in the order they were moved
        """
        if count_per_class < 0:
            raise ValueError("count_per_class must be >= 0")
        if len(labels) != self.size:
            raise ValueError(
                f"Labels ({len(labels)}) must cover all {self.size} indices"
            )
        moved: list[int] = []
        if count_per_class == 0:
            return moved

        for target in (False, True):
            candidates = rng.permutation(self.unlabeled)
            chosen = [int(i) for i in candidates if bool(labels[i]) == target]
            chosen = chosen[:count_per_class]
            if len(chosen) < count_per_class:
                logger.warning(
                    "Requested %d seed instances with label %s but only %d available",
                    count_per_class,
                    target,
                    len(chosen),
                )
            for index in chosen:
                self.move_to_labeled(index)
            moved.extend(chosen)
        return moved

    @classmethod
    def from_indices(
        cls,
        size: int,
        labeled: Iterable[int] | None = None,
        unlabeled: Iterable[int] | None = None,
    ) -> "LabelPartition":
        """
        Build a partition from explicit index sets.

        When only one set is given the other is its complement in [0, size).

        Raises:
            ValueError: If an index repeats, falls outside [0, size), appears in
                both sets, or the two sets do not cover [0, size)
        """
        all_indices = set(range(size))
        labeled_set = _index_set(labeled, size, "labeled")
        unlabeled_set = _index_set(unlabeled, size, "unlabeled")
        if labeled_set is None and unlabeled_set is None:
            labeled_set = set()
        if labeled_set is None:
            labeled_set = all_indices - unlabeled_set
        if unlabeled_set is None:
            unlabeled_set = all_indices - labeled_set

        overlap = labeled_set & unlabeled_set
        if overlap:
            raise ValueError(
                f"Indices {sorted(overlap)} are both labeled and unlabeled"
            )
        missing = all_indices - labeled_set - unlabeled_set
        if missing:
            raise ValueError(
                f"Indices {sorted(missing)} are neither labeled nor unlabeled"
            )

        partition = cls(size)
        partition._labeled = labeled_set
        partition._unlabeled = unlabeled_set
        return partition

    def copy(self) -> "LabelPartition":
        partition = LabelPartition(0)
        partition.size = self.size
        partition._labeled = set(self._labeled)
        partition._unlabeled = set(self._unlabeled)
        return partition

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        return (
            f"LabelPartition(size={self.size}, labeled={len(self._labeled)}, "
            f"unlabeled={len(self._unlabeled)})"
        )


def _index_set(
    indices: Iterable[int] | None, size: int, name: str
) -> set[int] | None:
    if indices is None:
        return None
    values = [int(i) for i in indices]
    result = set(values)
    if len(result) != len(values):
        raise ValueError(f"{name} indices contain duplicates")
    outside = sorted(i for i in result if not 0 <= i < size)
    if outside:
        raise ValueError(f"{name} indices {outside} are outside [0, {size})")
    return result
