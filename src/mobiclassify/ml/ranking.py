"""Top-K ranking of the network's output vector."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from mobiclassify.ml.image_classifier import ClassificationResult

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from mobiclassify.ml.labels import LabelTable

MAX_RESULTS = 5


def rank(output: ArrayLike, labels: LabelTable, k: int = MAX_RESULTS) -> list[ClassificationResult]:
    """Return the ``k`` highest-confidence results, best first.

    Confidences are passed through unchanged. Equal confidences keep their
    index order, and indices past the end of ``labels`` are named "Unknown".
    """
    if k <= 0:
        return []

    scores = np.asarray(output).reshape(-1)
    order = np.argsort(-scores, kind="stable")[:k]
    return [ClassificationResult(label=labels.name_for(int(i)), confidence=float(scores[i])) for i in order]
