"""Pipeline state values observed by the UI.

``PipelineState`` is a closed union; consumers match on the concrete class.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import ClassVar

from mobiclassify.errors import ClassificationError
from mobiclassify.ml.image_classifier import ClassificationResult


class StateKind(StrEnum):
    IDLE = "idle"
    SELECTING = "selecting"
    PROCESSING = "processing"
    SHOWING_RESULTS = "showing_results"
    FAILED = "failed"


@dataclass(frozen=True)
class Idle:
    kind: ClassVar[StateKind] = StateKind.IDLE


@dataclass(frozen=True)
class Selecting:
    """The caller is choosing an image source."""

    kind: ClassVar[StateKind] = StateKind.SELECTING


@dataclass(frozen=True)
class Processing:
    """A classification is running on the worker."""

    kind: ClassVar[StateKind] = StateKind.PROCESSING


@dataclass(frozen=True)
class ShowingResults:
    """Results are ready to display.

    The state owns ``image`` until the machine leaves it; the coordinator
    releases it on ``dismiss``.
    """

    kind: ClassVar[StateKind] = StateKind.SHOWING_RESULTS

    results: tuple[ClassificationResult, ...]
    image: object = field(compare=False, repr=False)
    elapsed_ms: int


@dataclass(frozen=True)
class Failed:
    """The last classification raised; ``error`` says why."""

    kind: ClassVar[StateKind] = StateKind.FAILED

    error: ClassificationError


PipelineState = Idle | Selecting | Processing | ShowingResults | Failed
