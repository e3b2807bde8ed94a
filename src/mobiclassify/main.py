"""Pipeline construction and lifecycle entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from mobiclassify.config import Settings, configure_logging, get_settings
from mobiclassify.coordinator import PipelineCoordinator
from mobiclassify.ml.engine import InferenceEngine
from mobiclassify.ml.inference import InferencePool
from mobiclassify.ml.model_manager import AssetLoader, check_label_coverage
from mobiclassify.ml.pipeline import ClassificationPipeline
from mobiclassify.ml.preprocessing import Preprocessor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


def create_pipeline(settings: Settings) -> ClassificationPipeline:
    """Load the model and label assets and assemble a ready pipeline.

    Raises:
        AssetLoadError: If either asset is missing, empty, or rejected by the runtime.
        KeyError: If ``settings.model_name`` is not in the model registry.
    """
    loader = AssetLoader(settings)
    labels = loader.load_labels(settings.model_name)
    engine = InferenceEngine.load(loader.load_model_blob(settings.model_name), settings)
    check_label_coverage(labels, engine.output_length, settings.model_name)

    return ClassificationPipeline(
        engine=engine,
        labels=labels,
        preprocessor=Preprocessor(settings.input_size),
        max_results=settings.max_results,
    )


@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncIterator[PipelineCoordinator]:
    """Build the coordinator on entry and tear down model resources on exit."""
    settings = settings or get_settings()
    configure_logging(settings)

    logger.info(
        "Starting mobiclassify (model=%s, device=%s, threads=%s)",
        settings.model_name,
        settings.device,
        settings.intra_op_threads,
    )

    pipeline = create_pipeline(settings)
    coordinator = PipelineCoordinator(pipeline, InferencePool())

    logger.info("mobiclassify ready")
    try:
        yield coordinator
    finally:
        logger.info("Shutting down mobiclassify")
        await coordinator.aclose()
        logger.info("mobiclassify shutdown complete")
