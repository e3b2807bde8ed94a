"""Exception types raised by the classification pipeline and its coordinator."""

from __future__ import annotations


class ClassificationError(Exception):
    """Base class for failures inside the classification pipeline."""


class InvalidImageError(ClassificationError, ValueError):
    """The source pixel buffer is empty or not a supported layout."""


class AssetLoadError(ClassificationError):
    """The model or label asset is missing or corrupt. Fatal for the pipeline instance."""


class NotLoadedError(ClassificationError):
    """Inference was attempted on an engine without a loaded model."""


class ShapeMismatchError(ClassificationError, ValueError):
    """The input tensor does not match the engine's declared input shape."""

    def __init__(self, expected: tuple[int, ...], actual: tuple[int, ...]) -> None:
        super().__init__(f"Expected tensor of shape {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class ClassificationCancelledError(ClassificationError):
    """The request was aborted before inference started."""


class CoordinatorError(Exception):
    """Base class for state machine misuse."""


class InvalidTransitionError(CoordinatorError):
    """The event has no transition from the current state."""

    def __init__(self, event: str, state: str) -> None:
        super().__init__(f"Event '{event}' is not valid in state '{state}'")
        self.event = event
        self.state = state


class PipelineBusyError(CoordinatorError):
    """A classification is already in flight."""
