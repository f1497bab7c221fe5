"""
Exceptions raised by the active learning components.
"""


class ActiveLearningError(Exception):
    """Base class for errors raised by the active learning harness."""


class AlreadyLabeledError(ActiveLearningError):
    """Raised when an already labeled index is moved to the labeled set again."""

    def __init__(self, index: int) -> None:
        super().__init__(f"The selected index {index} is already in the labeled set.")
        self.index = index


class ImproperBeliefError(ActiveLearningError):
    """Raised when inference produces a non-normalizable belief (negative variance)."""


class EmptyUnlabeledPoolError(ActiveLearningError):
    """Raised when a selection is requested but no unlabeled indices remain."""

    def __init__(self) -> None:
        super().__init__("Cannot select from an empty unlabeled pool.")
