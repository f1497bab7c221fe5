"""
Core components for active transfer learning experiments.

This package contains the belief model, the labeled/unlabeled bookkeeping,
the selection policies and the experiment runners.
"""

from core.binary_model import BinaryModel
from core.data_loader import DataLoader, DataSet
from core.experiment import Experiment
from core.marginals import Marginals
from core.query_strategies import ActiveLearnerBase, SelectionDirection
from core.round_tracker import RoundTracker

__all__ = [
    "ActiveLearnerBase",
    "BinaryModel",
    "DataLoader",
    "DataSet",
    "Experiment",
    "Marginals",
    "RoundTracker",
    "SelectionDirection",
]
