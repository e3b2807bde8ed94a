"""ONNX Runtime inference engine for the classification network.

The model blob is handed over once, parsed into an InferenceSession, and
treated as immutable for the engine's lifetime. A single forward pass may
use several intra-op threads, but calls on one engine are serialized.
"""

from __future__ import annotations

import logging
import threading
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

import numpy as np
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from mobiclassify.errors import AssetLoadError, NotLoadedError, ShapeMismatchError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from mobiclassify.config import Settings

logger = logging.getLogger(__name__)


class EngineStatus(StrEnum):
    READY = "ready"
    NOT_LOADED = "not_loaded"


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ClassificationEngine(Protocol):
    """Protocol for a loaded classification network."""

    @property
    def status(self) -> EngineStatus:
        """Return whether the engine can execute."""
        ...

    @property
    def input_shape(self) -> tuple[int, ...]:
        """Return the declared (height, width, channels) input shape."""
        ...

    @property
    def output_length(self) -> int | None:
        """Return the declared number of output classes, if known."""
        ...

    def execute(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        """Run one forward pass and return the 1-D probability vector."""
        ...

    def close(self) -> None:
        """Release the loaded network."""
        ...


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class InferenceEngine:
    """Owns one ONNX Runtime session for an NHWC image classifier."""

    def __init__(
        self,
        session: InferenceSession,
        input_shape: tuple[int, ...],
        output_length: int | None,
    ) -> None:
        self._session: InferenceSession | None = session
        self._input_name: str = session.get_inputs()[0].name
        self._output_name: str = session.get_outputs()[0].name
        self._input_shape = input_shape
        self._output_length = output_length
        self._lock = threading.Lock()

    @classmethod
    def load(cls, model_blob: bytes, settings: Settings) -> InferenceEngine:
        """Parse a serialized model and create a ready engine.

        A load failure is terminal: no retry is attempted and no engine is
        returned. Callers construct a new engine to try again.

        Raises:
            AssetLoadError: If the blob is empty or the runtime rejects it.
        """
        if not model_blob:
            raise AssetLoadError("Model asset is empty")

        providers = build_providers(settings)
        try:
            session = InferenceSession(
                model_blob,
                sess_options=build_session_options(settings),
                providers=providers,
            )
        except Exception as exc:
            raise AssetLoadError(f"Model asset could not be loaded: {exc}") from exc

        input_shape = _declared_input_shape(session, settings.input_size)
        output_length = _declared_output_length(session)
        logger.info(
            "Loaded model (input=%s, outputs=%s, providers=%s)",
            input_shape,
            output_length,
            providers,
        )
        return cls(session, input_shape, output_length)

    # -- Public API ---------------------------------------------------------

    @property
    def status(self) -> EngineStatus:
        return EngineStatus.READY if self._session is not None else EngineStatus.NOT_LOADED

    @property
    def input_shape(self) -> tuple[int, ...]:
        return self._input_shape

    @property
    def output_length(self) -> int | None:
        return self._output_length

    def execute(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        """Run one forward pass.

        Args:
            tensor: float32 array matching ``input_shape`` (no batch dimension).

        Returns:
            1-D float32 vector of per-class confidences.

        Raises:
            NotLoadedError: If the engine has been closed.
            ShapeMismatchError: If the tensor shape differs from ``input_shape``.
        """
        with self._lock:
            session = self._session
            if session is None:
                raise NotLoadedError("Inference engine is not loaded")
            if tuple(tensor.shape) != self._input_shape:
                raise ShapeMismatchError(self._input_shape, tuple(tensor.shape))

            batch = np.ascontiguousarray(tensor[np.newaxis, ...], dtype=np.float32)
            outputs = session.run([self._output_name], {self._input_name: batch})
        return np.asarray(outputs[0], dtype=np.float32).reshape(-1)

    def close(self) -> None:
        """Release the session. Further ``execute`` calls raise NotLoadedError."""
        with self._lock:
            if self._session is not None:
                self._session = None
                logger.info("Inference engine released")


# ---------------------------------------------------------------------------
# Session construction
# ---------------------------------------------------------------------------


def build_providers(settings: Settings) -> list[str | tuple[str, dict[str, object]]]:
    device = settings.device
    if device == "cuda":
        return [
            (
                "CUDAExecutionProvider",
                {
                    "device_id": 0,
                    "gpu_mem_limit": settings.gpu_mem_limit,
                    "arena_extend_strategy": "kSameAsRequested",
                },
            ),
            "CPUExecutionProvider",
        ]
    if device == "openvino":
        return [
            ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
            "CPUExecutionProvider",
        ]
    return ["CPUExecutionProvider"]


def build_session_options(settings: Settings) -> SessionOptions:
    opts = SessionOptions()
    opts.intra_op_num_threads = settings.intra_op_threads
    opts.inter_op_num_threads = settings.inter_op_threads
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    opts.enable_mem_pattern = True
    opts.enable_mem_reuse = True

    if settings.device == "openvino":
        # OpenVINO does its own graph optimization
        from onnxruntime import GraphOptimizationLevel

        opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
    return opts


def _declared_input_shape(session: InferenceSession, fallback_size: int) -> tuple[int, ...]:
    # NHWC with a leading batch dimension; symbolic dims fall back to the configured size.
    dims = list(session.get_inputs()[0].shape)[1:]
    if len(dims) != 3:
        raise AssetLoadError(f"Model input must be rank 4 (NHWC), got shape {session.get_inputs()[0].shape}")
    height, width, channels = (dim if isinstance(dim, int) else None for dim in dims)
    return (
        height if height is not None else fallback_size,
        width if width is not None else fallback_size,
        channels if channels is not None else 3,
    )


def _declared_output_length(session: InferenceSession) -> int | None:
    dims = list(session.get_outputs()[0].shape)
    last = dims[-1] if dims else None
    return last if isinstance(last, int) else None
