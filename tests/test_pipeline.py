"""Tests for the synchronous classification pipeline."""

from __future__ import annotations

import threading
from unittest.mock import patch

import numpy as np
import pytest

from mobiclassify.errors import (
    ClassificationCancelledError,
    InvalidImageError,
    NotLoadedError,
    ShapeMismatchError,
)
from mobiclassify.ml.engine import EngineStatus
from mobiclassify.ml.image_classifier import ClassificationOutcome, ClassificationResult
from mobiclassify.ml.labels import LabelTable
from mobiclassify.ml.pipeline import ClassificationPipeline
from mobiclassify.ml.preprocessing import Preprocessor

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

BREEDS = ["golden retriever", "Labrador retriever", "cocker spaniel"]


class FakeEngine:
    """In-memory engine returning a fixed probability vector."""

    def __init__(self, output: np.ndarray, error: Exception | None = None) -> None:
        self._output = output
        self._error = error
        self.tensors: list[np.ndarray] = []
        self.closed = False

    @property
    def status(self) -> EngineStatus:
        return EngineStatus.NOT_LOADED if self.closed else EngineStatus.READY

    @property
    def input_shape(self) -> tuple[int, ...]:
        return (224, 224, 3)

    @property
    def output_length(self) -> int | None:
        return len(self._output)

    def execute(self, tensor: np.ndarray) -> np.ndarray:
        self.tensors.append(tensor)
        if self._error is not None:
            raise self._error
        return self._output

    def close(self) -> None:
        self.closed = True


def _dog_output() -> np.ndarray:
    output = np.full(1000, 0.00003, dtype=np.float32)
    output[:3] = [0.89, 0.05, 0.03]
    return output


def _labels() -> LabelTable:
    return LabelTable(BREEDS + [f"class {i}" for i in range(3, 1000)])


def _image(height: int = 480, width: int = 640) -> np.ndarray:
    return np.full((height, width, 4), 200, dtype=np.uint8)


def _pipeline(engine: FakeEngine, max_results: int = 5) -> ClassificationPipeline:
    return ClassificationPipeline(engine, _labels(), Preprocessor(), max_results=max_results)


# ---------------------------------------------------------------------------
# classify()
# ---------------------------------------------------------------------------


class TestClassify:
    def test_returns_top_five_results(self) -> None:
        engine = FakeEngine(_dog_output())

        outcome = _pipeline(engine).classify(_image())

        assert isinstance(outcome, ClassificationOutcome)
        assert len(outcome.results) == 5
        assert outcome.results[:3] == (
            ClassificationResult("golden retriever", pytest.approx(0.89)),
            ClassificationResult("Labrador retriever", pytest.approx(0.05)),
            ClassificationResult("cocker spaniel", pytest.approx(0.03)),
        )

    def test_outcome_unpacks_as_results_and_elapsed(self) -> None:
        results, elapsed_ms = _pipeline(FakeEngine(_dog_output())).classify(_image())
        assert results[0].label == "golden retriever"
        assert isinstance(elapsed_ms, int)
        assert elapsed_ms >= 0

    def test_engine_receives_fixed_shape_tensor(self) -> None:
        engine = FakeEngine(_dog_output())
        pipeline = _pipeline(engine)

        pipeline.classify(_image(1080, 1920))
        pipeline.classify(_image(10, 10))

        assert [t.shape for t in engine.tensors] == [(224, 224, 3), (224, 224, 3)]
        assert all(t.dtype == np.float32 for t in engine.tensors)

    def test_elapsed_time_covers_inference_only(self) -> None:
        with patch("mobiclassify.ml.pipeline.time.perf_counter", side_effect=[10.0, 10.25]) as clock:
            outcome = _pipeline(FakeEngine(_dog_output())).classify(_image())
        assert outcome.elapsed_ms == 250
        assert clock.call_count == 2

    def test_max_results_is_configurable(self) -> None:
        outcome = _pipeline(FakeEngine(_dog_output()), max_results=2).classify(_image())
        assert [r.label for r in outcome.results] == BREEDS[:2]

    def test_short_label_table_yields_unknown(self) -> None:
        engine = FakeEngine(np.array([0.1, 0.7, 0.2], dtype=np.float32))
        pipeline = ClassificationPipeline(engine, LabelTable(["only"]), Preprocessor())
        outcome = pipeline.classify(_image())
        assert [r.label for r in outcome.results] == ["Unknown", "Unknown", "only"]


# ---------------------------------------------------------------------------
# Error propagation
# ---------------------------------------------------------------------------


class TestErrors:
    def test_invalid_image_propagates(self) -> None:
        engine = FakeEngine(_dog_output())
        with pytest.raises(InvalidImageError):
            _pipeline(engine).classify(np.zeros((0, 10, 4), dtype=np.uint8))
        assert engine.tensors == []

    def test_not_loaded_propagates(self) -> None:
        engine = FakeEngine(_dog_output(), error=NotLoadedError("Inference engine is not loaded"))
        with pytest.raises(NotLoadedError):
            _pipeline(engine).classify(_image())

    def test_shape_mismatch_propagates(self) -> None:
        engine = FakeEngine(_dog_output(), error=ShapeMismatchError((3, 224, 224), (224, 224, 3)))
        with pytest.raises(ShapeMismatchError):
            _pipeline(engine).classify(_image())

    def test_cancel_before_inference_skips_engine(self) -> None:
        engine = FakeEngine(_dog_output())
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ClassificationCancelledError):
            _pipeline(engine).classify(_image(), cancel)
        assert engine.tensors == []

    def test_unset_cancel_event_runs_normally(self) -> None:
        outcome = _pipeline(FakeEngine(_dog_output())).classify(_image(), threading.Event())
        assert outcome.results[0].label == "golden retriever"


class TestLifecycle:
    def test_close_releases_engine(self) -> None:
        engine = FakeEngine(_dog_output())
        _pipeline(engine).close()
        assert engine.closed
        assert engine.status == EngineStatus.NOT_LOADED
