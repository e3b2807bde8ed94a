"""Classification result types and the classifier protocol."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import threading

    import numpy as np
    from numpy.typing import NDArray


@dataclass(frozen=True)
class ClassificationResult:
    """A single classification prediction."""

    label: str
    confidence: float


@dataclass(frozen=True)
class ClassificationOutcome:
    """Ranked predictions plus the time spent inside the network, in whole milliseconds.

    Unpacks as ``results, elapsed_ms = outcome``.
    """

    results: tuple[ClassificationResult, ...]
    elapsed_ms: int

    def __iter__(self) -> Iterator[object]:
        yield self.results
        yield self.elapsed_ms


class ImageClassifier(Protocol):
    """Protocol for image classification pipelines."""

    def classify(
        self,
        pixels: NDArray[np.generic],
        cancel_event: threading.Event | None = None,
    ) -> ClassificationOutcome:
        """Classify an image and return ranked results.

        Args:
            pixels: Decoded RGB(A) or packed ARGB pixel buffer of any size.
            cancel_event: Abort signal checked once, before inference starts.

        Returns:
            Results sorted by confidence (descending) and the inference time.
        """
        ...

    def close(self) -> None:
        """Release model resources."""
        ...
