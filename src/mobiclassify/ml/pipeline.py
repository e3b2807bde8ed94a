"""Preprocess -> infer -> rank, as one synchronous call."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from mobiclassify.errors import ClassificationCancelledError
from mobiclassify.ml.image_classifier import ClassificationOutcome
from mobiclassify.ml.ranking import MAX_RESULTS, rank

if TYPE_CHECKING:
    import threading

    import numpy as np
    from numpy.typing import NDArray

    from mobiclassify.ml.engine import ClassificationEngine
    from mobiclassify.ml.labels import LabelTable
    from mobiclassify.ml.preprocessing import ImagePreprocessor

logger = logging.getLogger(__name__)


class ClassificationPipeline:
    """Composes the preprocessor, the inference engine and the ranker.

    The pipeline owns the engine: ``close()`` releases the model.
    """

    def __init__(
        self,
        engine: ClassificationEngine,
        labels: LabelTable,
        preprocessor: ImagePreprocessor,
        max_results: int = MAX_RESULTS,
    ) -> None:
        self._engine = engine
        self._labels = labels
        self._preprocessor = preprocessor
        self._max_results = max_results

    @property
    def labels(self) -> LabelTable:
        return self._labels

    @property
    def engine(self) -> ClassificationEngine:
        return self._engine

    def classify(
        self,
        pixels: NDArray[np.generic],
        cancel_event: threading.Event | None = None,
    ) -> ClassificationOutcome:
        """Classify one image.

        Only the forward pass is timed; preprocessing and ranking are excluded
        from ``elapsed_ms``.

        Raises:
            InvalidImageError: From the preprocessor.
            NotLoadedError: From the engine.
            ShapeMismatchError: From the engine.
            ClassificationCancelledError: If ``cancel_event`` was set before inference.
        """
        tensor = self._preprocessor.preprocess(pixels)

        if cancel_event is not None and cancel_event.is_set():
            raise ClassificationCancelledError("Classification cancelled before inference")

        start = time.perf_counter()
        output = self._engine.execute(tensor)
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        results = rank(output, self._labels, self._max_results)
        logger.debug("Classified image in %d ms (top=%s)", elapsed_ms, results[0].label if results else None)
        return ClassificationOutcome(results=tuple(results), elapsed_ms=elapsed_ms)

    def close(self) -> None:
        """Release the engine's model resources."""
        self._engine.close()
