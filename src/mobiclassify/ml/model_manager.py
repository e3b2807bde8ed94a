"""Model asset resolution: locate and read the model and label files.

Assets live under ``Settings.models_dir`` and are named by the model
registry. Explicit ``model_path`` / ``labels_path`` settings take priority
over registry resolution. Every failure surfaces as AssetLoadError so a
pipeline is never built around a missing or empty asset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from mobiclassify.errors import AssetLoadError
from mobiclassify.ml.labels import LabelTable

if TYPE_CHECKING:
    from mobiclassify.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single classification model."""

    name: str
    filename: str
    labels_filename: str
    num_classes: int


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "mobilenet_v2_1.0_224": ModelSpec(
        name="mobilenet_v2_1.0_224",
        filename="mobilenet_v2_1.0_224.onnx",
        labels_filename="labels.txt",
        num_classes=1000,
    ),
}


def get_spec(model_name: str) -> ModelSpec:
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None


# ---------------------------------------------------------------------------
# Asset loader
# ---------------------------------------------------------------------------


class AssetLoader:
    """Reads the model blob and label table for the configured model."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)

    def model_path(self, model_name: str) -> Path:
        if self._settings.model_path is not None:
            return Path(self._settings.model_path)
        return self._models_dir / get_spec(model_name).filename

    def labels_path(self, model_name: str) -> Path:
        if self._settings.labels_path is not None:
            return Path(self._settings.labels_path)
        return self._models_dir / get_spec(model_name).labels_filename

    def load_model_blob(self, model_name: str) -> bytes:
        """Read the serialized network as an immutable blob."""
        path = self.model_path(model_name)
        try:
            blob = path.read_bytes()
        except OSError as exc:
            raise AssetLoadError(f"Cannot read model asset {path}: {exc}") from exc
        if not blob:
            raise AssetLoadError(f"Model asset {path} is empty")
        logger.info("Read model %s (%d bytes) from %s", model_name, len(blob), path)
        return blob

    def load_labels(self, model_name: str) -> LabelTable:
        return LabelTable.from_file(self.labels_path(model_name))


def check_label_coverage(labels: LabelTable, output_length: int | None, model_name: str) -> None:
    """Warn when the label table does not cover every output index.

    When the network leaves its output dimension symbolic, the registry's
    class count for ``model_name`` stands in for it.
    """
    if output_length is None:
        output_length = get_spec(model_name).num_classes
    if len(labels) == output_length:
        return
    logger.warning(
        "Label table has %d entries but the model produces %d outputs; uncovered indices map to 'Unknown'",
        len(labels),
        output_length,
    )
