"""
Data containers and loading utilities for per-resident binary data.

Every resident contributes an ordered sequence of (feature vector, label)
pairs. Datasets are loaded from JSON (keys `s`, `y`, `x`) or CSV files
(columns `subject`, `label` and one column per feature).
"""

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class DataSet:
    """
    Container for per-resident features and binary labels.

    Attributes:
        features: One (n_instances, n_features) array per resident
        labels: One boolean array of length n_instances per resident
    """

    features: list[np.ndarray]
    labels: list[np.ndarray]

    def __post_init__(self) -> None:
        """Validate dataset after initialization."""
        if len(self.features) != len(self.labels):
            raise ValueError(
                f"Features ({len(self.features)}) and labels "
                f"({len(self.labels)}) must have the same number of residents"
            )
        self.features = [np.asarray(f, dtype=float) for f in self.features]
        self.labels = [np.asarray(y, dtype=bool) for y in self.labels]
        num_features = None
        for resident, (features, labels) in enumerate(zip(self.features, self.labels)):
            if features.ndim != 2:
                if features.size == 0:
                    features = features.reshape(0, 0)
                else:
                    features = features.reshape(len(labels), -1)
                self.features[resident] = features
            if len(features) != len(labels):
                raise ValueError(
                    f"Resident {resident}: features ({len(features)}) and labels "
                    f"({len(labels)}) must have the same length"
                )
            if len(features) == 0:
                continue
            if num_features is None:
                num_features = features.shape[1]
            elif features.shape[1] != num_features:
                raise ValueError(
                    f"Resident {resident} has {features.shape[1]} features, "
                    f"expected {num_features}"
                )

    @property
    def num_residents(self) -> int:
        return len(self.features)

    @property
    def num_instances(self) -> list[int]:
        return [len(labels) for labels in self.labels]

    @property
    def num_features(self) -> int:
        for features in self.features:
            if len(features):
                return features.shape[1]
        return 0

    def subset(
        self, resident: int, indices: int | Sequence[int] | None = None
    ) -> "DataSet":
        """
        Return a single-resident dataset.

        Args:
            resident: Resident to extract
            indices: Instance index or indices to keep; all instances when None

        Returns:
            New DataSet; label arrays are copies of the source arrays
        """
        return self.subset_residents([resident], indices)

    def subset_residents(
        self, residents: Sequence[int], indices: int | Sequence[int] | None = None
    ) -> "DataSet":
        """Return a dataset restricted to the given residents (and instances)."""
        if indices is not None:
            indices = np.atleast_1d(np.asarray(indices, dtype=int))
        features: list[np.ndarray] = []
        labels: list[np.ndarray] = []
        for resident in residents:
            if indices is None:
                features.append(self.features[resident].copy())
                labels.append(self.labels[resident].copy())
            else:
                features.append(self.features[resident][indices].copy())
                labels.append(self.labels[resident][indices].copy())
        return DataSet(features=features, labels=labels)

    def with_label(self, resident: int, index: int, value: bool) -> "DataSet":
        """Return a copy of this dataset with a single label replaced."""
        labels = [y.copy() for y in self.labels]
        labels[resident][index] = bool(value)
        return DataSet(features=[f.copy() for f in self.features], labels=labels)

    def split_train_test(self, train_proportion: float) -> tuple["DataSet", "DataSet"]:
        """
        Split every resident into a leading train part and a trailing test part.

        Args:
            train_proportion: Fraction of each resident's instances used for
                training, rounded up

        Returns:
            Tuple of (train, test) datasets
        """
        if not 0.0 <= train_proportion <= 1.0:
            raise ValueError("train_proportion must be between 0.0 and 1.0")
        counts = [math.ceil(train_proportion * n) for n in self.num_instances]
        train = DataSet(
            features=[f[:c].copy() for f, c in zip(self.features, counts)],
            labels=[y[:c].copy() for y, c in zip(self.labels, counts)],
        )
        test = DataSet(
            features=[f[c:].copy() for f, c in zip(self.features, counts)],
            labels=[y[c:].copy() for y, c in zip(self.labels, counts)],
        )
        return train, test


class DataLoader:
    """
    Load subject-tagged binary data from a JSON or CSV file.
    """

    def __init__(self, path: str) -> None:
        """
        Initialize the data loader.

        Args:
            path: JSON file with keys `s`, `y`, `x` or CSV file with
                `subject`, `label` and feature columns.
        """
        self.path = path
        self.subjects: np.ndarray | None = None
        self.labels: np.ndarray | None = None
        self.features: np.ndarray | None = None

    def load(self) -> "DataLoader":
        """Read the file into memory and return self."""
        path = Path(self.path)
        if not path.exists():
            raise FileNotFoundError(f"Data file {path} does not exist.")
        logger.info(f"Loading data from {path}")

        if path.suffix.lower() == ".json":
            raw = json.loads(path.read_text())
            missing = [key for key in ("s", "y", "x") if key not in raw]
            if missing:
                raise ValueError(f"Keys {missing} not found in {path}")
            subjects = np.asarray(raw["s"], dtype=int)
            labels = np.asarray(raw["y"], dtype=bool)
            features = np.asarray(raw["x"], dtype=float)
        else:
            df = pd.read_csv(path)
            missing = [col for col in ("subject", "label") if col not in df.columns]
            if missing:
                raise ValueError(
                    f"Columns {missing} not found in {path}. "
                    f"Available columns: {list(df.columns)}"
                )
            subjects = df["subject"].to_numpy(dtype=int)
            labels = df["label"].to_numpy(dtype=bool)
            features = df.drop(columns=["subject", "label"]).to_numpy(dtype=float)

        if not (len(subjects) == len(labels) == len(features)):
            raise ValueError(
                f"Subjects ({len(subjects)}), labels ({len(labels)}) and features "
                f"({len(features)}) must have the same length"
            )
        self.subjects = subjects
        self.labels = labels
        self.features = features.reshape(len(labels), -1)
        logger.info(
            "Loaded %d instances from %d subjects with %d features",
            self.num_instances,
            self.num_subjects,
            self.num_features,
        )
        return self

    @property
    def num_instances(self) -> int:
        return len(self._require_loaded())

    @property
    def num_subjects(self) -> int:
        self._require_loaded()
        return len(np.unique(self.subjects))

    @property
    def num_features(self) -> int:
        self._require_loaded()
        return self.features.shape[1]

    def get_dataset(
        self,
        subjects: Sequence[int],
        add_bias: bool = False,
        selected_features: Sequence[int] | None = None,
        keep_proportion: float = 1.0,
    ) -> DataSet:
        """
        Build a DataSet with one resident per requested subject.

        Args:
            subjects: Subject ids, in resident order
            add_bias: Append a constant 1.0 feature
            selected_features: Feature column indices to keep; all when None or empty
            keep_proportion: Fraction of each subject's leading instances to keep

        Returns:
            DataSet with len(subjects) residents
        """
        self._require_loaded()
        if not 0.0 <= keep_proportion <= 1.0:
            raise ValueError("keep_proportion must be between 0.0 and 1.0")

        columns = (
            sorted(set(int(c) for c in selected_features))
            if selected_features
            else list(range(self.num_features))
        )
        features: list[np.ndarray] = []
        labels: list[np.ndarray] = []
        for subject in subjects:
            mask = self.subjects == subject
            if not np.any(mask):
                logger.warning("Subject %s has no instances in %s", subject, self.path)
            feats = self.features[mask][:, columns]
            if add_bias:
                feats = np.hstack([feats, np.ones((len(feats), 1))])
            n_keep = int(round(keep_proportion * len(feats)))
            features.append(feats[:n_keep])
            labels.append(self.labels[mask][:n_keep])
        return DataSet(features=features, labels=labels)

    def _require_loaded(self) -> np.ndarray:
        if self.labels is None:
            self.load()
        return self.labels
