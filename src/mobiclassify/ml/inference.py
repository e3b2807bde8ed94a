"""Inference dispatch layer.

Architecture:
    PipelineCoordinator (event loop) -> ThreadPoolExecutor(1) -> classify

A single worker thread keeps the event loop responsive. Admission (at most
one classification in flight) is enforced by the coordinator.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Owns the worker thread that runs classifications."""

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="classify-worker",
        )

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run a synchronous function on the worker thread and await its result."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    def shutdown(self) -> None:
        """Shut down the worker thread, waiting for running work."""
        self._executor.shutdown(wait=True)
        logger.info("Inference pool shut down")
