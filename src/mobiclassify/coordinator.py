"""State machine coordinating the classification pipeline with a UI caller.

All public methods run on the asyncio event loop thread, which is the only
writer of the state. ``classify`` itself runs on the inference pool's worker
thread; its result is published back on the loop.

Transitions::

    Idle            --request_source_selection--> Selecting
    Selecting       --cancel_selection----------> Idle
    Idle/Selecting/
    Failed          --submit_image--------------> Processing
    Processing      --classify succeeded--------> ShowingResults
    Processing      --classify raised-----------> Failed
    Processing      --cancel_processing---------> Idle
    ShowingResults  --dismiss-------------------> Idle (image released)
    Failed          --dismiss-------------------> Idle

Any other event raises InvalidTransitionError. Only one classification may
be in flight: ``submit_image`` raises PipelineBusyError until the previous
one, cancelled or not, has left the worker.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING

from mobiclassify.errors import (
    ClassificationError,
    InvalidTransitionError,
    PipelineBusyError,
)
from mobiclassify.state import Failed, Idle, PipelineState, Processing, Selecting, ShowingResults

if TYPE_CHECKING:
    from collections.abc import Callable

    from mobiclassify.ml.image_classifier import ClassificationOutcome, ImageClassifier
    from mobiclassify.ml.inference import InferencePool

logger = logging.getLogger(__name__)


def release_image(image: object) -> None:
    """Free an image buffer's backing memory when it exposes ``close()``."""
    close = getattr(image, "close", None)
    if callable(close):
        close()


class PipelineCoordinator:
    """Runs classifications asynchronously and publishes PipelineState changes."""

    def __init__(self, classifier: ImageClassifier, pool: InferencePool) -> None:
        self._classifier = classifier
        self._pool = pool
        self._state: PipelineState = Idle()
        self._listeners: list[Callable[[PipelineState], None]] = []
        self._task: asyncio.Task[None] | None = None
        self._cancel_event: threading.Event | None = None
        self._generation = 0
        self._closed = False

    # -- Observation ----------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def in_flight(self) -> bool:
        """Whether a classification is still running on the worker."""
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: Callable[[PipelineState], None]) -> Callable[[], None]:
        """Register a listener called with every new state. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- Events -----------------------------------------------------------------

    def request_source_selection(self) -> None:
        match self._state:
            case Idle():
                self._set_state(Selecting())
            case _:
                raise InvalidTransitionError("request_source_selection", self._state.kind)

    def cancel_selection(self) -> None:
        match self._state:
            case Selecting():
                self._set_state(Idle())
            case _:
                raise InvalidTransitionError("cancel_selection", self._state.kind)

    def submit_image(self, image: object) -> None:
        """Start classifying a decoded image.

        Must be called from within the running event loop.

        Raises:
            PipelineBusyError: If a classification is already in flight.
            InvalidTransitionError: If results are still being shown.
        """
        if self._closed:
            raise InvalidTransitionError("submit_image", "closed")
        if self.in_flight:
            logger.warning("Rejected image: a classification is already in flight")
            raise PipelineBusyError("A classification is already in flight")

        match self._state:
            case Idle() | Selecting() | Failed():
                pass
            case _:
                raise InvalidTransitionError("submit_image", self._state.kind)

        loop = asyncio.get_running_loop()
        self._generation += 1
        self._cancel_event = threading.Event()
        self._set_state(Processing())
        self._task = loop.create_task(self._classify(self._generation, image, self._cancel_event))

    def cancel_processing(self) -> None:
        """Abandon the running classification and return to Idle.

        Inference itself is not preempted: if it has already started, it
        finishes on the worker and its result is discarded.
        """
        match self._state:
            case Processing():
                if self._cancel_event is not None:
                    self._cancel_event.set()
                self._generation += 1
                self._set_state(Idle())
            case _:
                raise InvalidTransitionError("cancel_processing", self._state.kind)

    def dismiss(self) -> None:
        """Leave ShowingResults or Failed, releasing any held image."""
        match self._state:
            case ShowingResults(image=image):
                self._set_state(Idle())
                release_image(image)
            case Failed():
                self._set_state(Idle())
            case _:
                raise InvalidTransitionError("dismiss", self._state.kind)

    # -- Lifecycle ----------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until no classification is running on the worker."""
        task = self._task
        if task is not None:
            await task

    async def aclose(self) -> None:
        """Finish in-flight work, release the held image and the model."""
        if self._closed:
            return
        self._closed = True
        await self.wait_idle()

        if isinstance(self._state, ShowingResults):
            image = self._state.image
            self._set_state(Idle())
            release_image(image)

        self._pool.shutdown()
        self._classifier.close()
        self._listeners.clear()
        logger.info("Pipeline coordinator closed")

    # -- Internal -------------------------------------------------------------------

    async def _classify(self, generation: int, image: object, cancel_event: threading.Event) -> None:
        try:
            outcome: ClassificationOutcome = await self._pool.run(self._classifier.classify, image, cancel_event)
        except ClassificationError as exc:
            self._finish_failed(generation, image, exc)
            return
        except Exception as exc:
            logger.exception("Unexpected classification failure")
            error = ClassificationError(f"Unexpected classification failure: {exc}")
            error.__cause__ = exc
            self._finish_failed(generation, image, error)
            return

        if not self._is_current(generation):
            logger.debug("Discarding stale result for request %d", generation)
            release_image(image)
            return

        self._set_state(
            ShowingResults(
                results=outcome.results,
                image=image,
                elapsed_ms=outcome.elapsed_ms,
            )
        )

    def _finish_failed(self, generation: int, image: object, error: ClassificationError) -> None:
        release_image(image)
        if not self._is_current(generation):
            logger.debug("Discarding stale failure for request %d: %s", generation, error)
            return
        logger.warning("Classification failed: %s", error)
        self._set_state(Failed(error=error))

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and isinstance(self._state, Processing)

    def _set_state(self, new_state: PipelineState) -> None:
        old_state = self._state
        self._state = new_state
        logger.debug("State %s -> %s", old_state.kind, new_state.kind)
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("State listener %r raised", listener)
